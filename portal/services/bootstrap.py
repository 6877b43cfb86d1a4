# portal/services/bootstrap.py
import logging
from typing import Any, Dict, Optional, Tuple

from portal.core.security import hash_password
from portal.policy.roles import Role
from portal.repositories import accounts
from portal.repositories.audit import record_audit
from portal.services.credentials import generate_temporary_password

logger = logging.getLogger(__name__)


async def ensure_super_admin(email: str, password: Optional[str] = None,
                             name: str = "Super Admin") -> Tuple[Dict[str, Any], Optional[str]]:
    """
    Create the first super admin unless an active one exists.

    Returns (user, password). password is None when nothing was created; when
    no password was supplied a temporary one is generated and must be changed
    on first login.
    """
    existing = await accounts.find_super_admin()
    if existing is not None:
        logger.info("Super admin already exists: %s", existing["email"])
        return existing, None
    temporary = password is None
    if temporary:
        password = generate_temporary_password()
    user = await accounts.insert_user(email, hash_password(password), Role.SUPER_ADMIN.value, name=name,
                                      must_change_password=temporary)
    await record_audit(None, "super_admin_seeded", "user", user["_id"])
    logger.info("Super admin created: %s", user["email"])
    return user, password
