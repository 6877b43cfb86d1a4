# portal/api/deps.py
from typing import Optional

from fastapi import Depends, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from portal.core.errors import ForbiddenError, UnauthorizedError
from portal.core.security import decode_access_token
from portal.policy.access import Principal
from portal.policy.roles import Role, at_least
from portal.policy.scoping import PageRequest, parse_pagination

# auto_error off so a missing header becomes our 401 envelope
security = HTTPBearer(auto_error=False)


async def get_current_principal(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> Principal:
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError()
    claims = decode_access_token(credentials.credentials)
    try:
        role = Role(claims["role"])
    except ValueError as exc:
        raise UnauthorizedError("Invalid or expired token") from exc
    return Principal(id=str(claims["sub"]), role=role, tenant_id=claims.get("tenant_id"))


def require_role(min_role: Role):
    """Dependency factory: the principal must rank at least `min_role`."""

    async def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        if not at_least(principal.role, min_role):
            raise ForbiddenError()
        return principal

    return _dep


require_admin = require_role(Role.ADMIN)
require_super_admin = require_role(Role.SUPER_ADMIN)


def pagination(page: Optional[str] = Query(None), limit: Optional[str] = Query(None)) -> PageRequest:
    return parse_pagination(page, limit)
