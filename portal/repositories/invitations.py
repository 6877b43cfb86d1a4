# portal/repositories/invitations.py
from datetime import datetime
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument

from portal.db.mongo import get_db
from portal.repositories.base import _now

INVITATIONS_COLLECTION = "invitations"


def _collection():
    return get_db()[INVITATIONS_COLLECTION]


async def insert_invitation(token_hash: str, test_id: str, candidate_id: str, email: str,
                            tenant_id: Optional[str], expires_at: datetime, created_by: str) -> Dict[str, Any]:
    doc = {
        "token_hash": token_hash,
        "test_id": test_id,
        "candidate_id": candidate_id,
        "email": email,
        "tenant_id": tenant_id,
        "expires_at": expires_at,
        "used_at": None,
        "created_by": created_by,
        "created_at": _now(),
    }
    res = await _collection().insert_one(doc)
    doc["_id"] = res.inserted_id
    return doc


async def redeem(token_hash: str, now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
    """Mark an unexpired, unused invitation as used. Returns None if it can't be redeemed."""
    now = now or _now()
    return await _collection().find_one_and_update(
        {"token_hash": token_hash, "used_at": None, "expires_at": {"$gt": now}},
        {"$set": {"used_at": now}},
        return_document=ReturnDocument.AFTER,
    )


async def list_for_test(test_id: str) -> List[Dict[str, Any]]:
    cur = _collection().find({"test_id": test_id}, {"token_hash": 0}).sort("created_at", -1)
    return [d async for d in cur]
