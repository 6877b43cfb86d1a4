# portal/repositories/audit.py
import logging
from typing import Any, Dict, Optional

from portal.db.mongo import get_db
from portal.repositories.base import _now

logger = logging.getLogger(__name__)

AUDIT_COLLECTION = "audit_logs"


async def record_audit(principal_id: Optional[str], action: str, resource_type: Optional[str] = None,
                       resource_id: Optional[str] = None, details: Optional[Dict[str, Any]] = None,
                       success: bool = True) -> Optional[str]:
    """Best-effort audit write; a failure is logged and never aborts the caller."""
    payload = {
        "principal_id": principal_id,
        "action": action,
        "resource_type": resource_type,
        "resource_id": str(resource_id) if resource_id is not None else None,
        "details": details or {},
        "success": success,
        "created_at": _now(),
    }
    try:
        res = await get_db()[AUDIT_COLLECTION].insert_one(payload)
        return str(res.inserted_id)
    except Exception:
        logger.exception("Failed to record audit entry for action %s", action)
        return None

