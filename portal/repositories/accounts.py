# portal/repositories/accounts.py
"""Users (staff and super admins) and candidates."""
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from portal.core.errors import ConflictError, NotFoundError
from portal.db.mongo import get_db
from portal.policy.scoping import PageRequest
from portal.repositories.base import _now, find_page, to_object_id

USERS_COLLECTION = "users"
CANDIDATES_COLLECTION = "candidates"

PUBLIC_PROJECTION = {"password_hash": 0}

USER_SEARCH_FIELDS = ("email", "name")
USER_SORT_FIELDS = ("created_at", "email", "name", "role", "last_login")


def _users():
    return get_db()[USERS_COLLECTION]


def _candidates():
    return get_db()[CANDIDATES_COLLECTION]


async def find_user_by_email(email: str) -> Optional[Dict[str, Any]]:
    return await _users().find_one({"email": email.lower()})


async def insert_user(email: str, password_hash: str, role: str, name: Optional[str] = None,
                      tenant_id: Optional[str] = None, must_change_password: bool = False) -> Dict[str, Any]:
    if await find_user_by_email(email):
        raise ConflictError("User with this email already exists")
    now = _now()
    doc = {
        "email": email.lower(),
        "name": name,
        "password_hash": password_hash,
        "role": role,
        "tenant_id": tenant_id,
        "is_active": True,
        "must_change_password": must_change_password,
        "created_at": now,
        "updated_at": now,
    }
    try:
        res = await _users().insert_one(doc)
    except DuplicateKeyError as exc:
        raise ConflictError("User with this email already exists") from exc
    doc["_id"] = res.inserted_id
    doc.pop("password_hash")
    return doc


async def list_users(predicate: Mapping[str, Any], page: PageRequest,
                     sort: Sequence[Tuple[str, int]]) -> Tuple[List[Dict[str, Any]], int]:
    return await find_page(_users(), predicate, page, sort, projection=PUBLIC_PROJECTION)


async def get_user(user_id: Any) -> Dict[str, Any]:
    doc = await _users().find_one({"_id": to_object_id(user_id, "User")}, PUBLIC_PROJECTION)
    if not doc:
        raise NotFoundError("User not found")
    return doc


async def find_super_admin() -> Optional[Dict[str, Any]]:
    return await _users().find_one({"role": "super_admin", "is_active": True}, PUBLIC_PROJECTION)


async def set_user_active(user_id: Any, active: bool) -> Dict[str, Any]:
    doc = await _users().find_one_and_update(
        {"_id": to_object_id(user_id, "User")},
        {"$set": {"is_active": active, "updated_at": _now()}},
        projection=PUBLIC_PROJECTION,
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        raise NotFoundError("User not found")
    return doc


async def find_candidates_by_email(email: str) -> List[Dict[str, Any]]:
    # the same address may be a candidate of several companies
    cur = _candidates().find({"email": email.lower(), "is_active": True})
    return [d async for d in cur]


async def upsert_candidate(tenant_id: Optional[str], email: str, password_hash: str, created_by: str,
                           name: Optional[str] = None) -> Dict[str, Any]:
    """Create the candidate for (tenant, email), or reset its temporary password."""
    now = _now()
    return await _candidates().find_one_and_update(
        {"tenant_id": tenant_id, "email": email.lower()},
        {
            "$set": {"password_hash": password_hash, "must_change_password": True, "updated_at": now},
            "$setOnInsert": {"name": name or email.split("@")[0], "created_by": created_by,
                             "is_active": True, "created_at": now},
        },
        upsert=True,
        projection=PUBLIC_PROJECTION,
        return_document=ReturnDocument.AFTER,
    )


async def set_password(collection: str, account_id: Any, password_hash: str) -> None:
    res = await get_db()[collection].update_one(
        {"_id": to_object_id(account_id, "Account")},
        {"$set": {"password_hash": password_hash, "must_change_password": False, "updated_at": _now()}},
    )
    if res.matched_count == 0:
        raise NotFoundError("Account not found")


async def find_account(collection: str, account_id: Any) -> Optional[Dict[str, Any]]:
    return await get_db()[collection].find_one({"_id": to_object_id(account_id, "Account")})


async def touch_login(collection: str, account_id: Any) -> None:
    await get_db()[collection].update_one({"_id": to_object_id(account_id, "Account")},
                                          {"$set": {"last_login": _now()}})
