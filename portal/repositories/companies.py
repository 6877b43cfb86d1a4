# portal/repositories/companies.py
import asyncio
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from portal.core.errors import ConflictError, NotFoundError
from portal.db.mongo import get_db
from portal.policy.scoping import PageRequest
from portal.repositories.base import _now, find_page, group_count, to_object_id

COMPANIES_COLLECTION = "companies"

SEARCH_FIELDS = ("company_name", "email", "contact_name")
SORT_FIELDS = ("created_at", "company_name", "email", "status", "plan_name", "credits_remaining")
UPDATABLE_FIELDS = ("company_name", "industry", "size", "contact_name", "phone", "website", "plan_name", "status")
# never returned to clients
SECRET_FIELDS = ("password_hash",)
PUBLIC_PROJECTION = {f: 0 for f in SECRET_FIELDS}

DEFAULT_CREDITS = 100


def _collection():
    return get_db()[COMPANIES_COLLECTION]


async def list_companies(predicate: Mapping[str, Any], page: PageRequest,
                         sort: Sequence[Tuple[str, int]]) -> Tuple[List[Dict[str, Any]], int]:
    return await find_page(_collection(), predicate, page, sort, projection=PUBLIC_PROJECTION)


async def get_company(company_id: Any, with_secrets: bool = False) -> Dict[str, Any]:
    projection = None if with_secrets else PUBLIC_PROJECTION
    doc = await _collection().find_one({"_id": to_object_id(company_id, "Company")}, projection)
    if not doc:
        raise NotFoundError("Company not found")
    return doc


async def find_by_email(email: str) -> Optional[Dict[str, Any]]:
    return await _collection().find_one({"email": email.lower()})


async def insert_company(data: Mapping[str, Any], password_hash: str, created_by: str) -> Dict[str, Any]:
    email = data["email"].lower()
    if await find_by_email(email):
        raise ConflictError("Company with this email already exists")
    now = _now()
    doc = dict(data)
    doc.update({
        "email": email,
        "password_hash": password_hash,
        "must_change_password": True,
        "status": "active",
        "credits_remaining": DEFAULT_CREDITS,
        "total_credits_used": 0,
        "created_by": created_by,
        "last_password_reset": now,
        "created_at": now,
        "updated_at": now,
    })
    try:
        res = await _collection().insert_one(doc)
    except DuplicateKeyError as exc:
        raise ConflictError("Company with this email already exists") from exc
    doc["_id"] = res.inserted_id
    doc.pop("password_hash", None)
    return doc


async def update_company(company_id: Any, changes: Mapping[str, Any]) -> Dict[str, Any]:
    fields = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS}
    fields["updated_at"] = _now()
    doc = await _collection().find_one_and_update(
        {"_id": to_object_id(company_id, "Company")},
        {"$set": fields},
        projection=PUBLIC_PROJECTION,
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        raise NotFoundError("Company not found")
    return doc


async def set_password(company_id: Any, password_hash: str, must_change: bool) -> None:
    now = _now()
    res = await _collection().update_one(
        {"_id": to_object_id(company_id, "Company")},
        {"$set": {"password_hash": password_hash, "must_change_password": must_change,
                  "last_password_reset": now, "updated_at": now}},
    )
    if res.matched_count == 0:
        raise NotFoundError("Company not found")


async def add_credits(company_id: Any, amount: int) -> Dict[str, Any]:
    doc = await _collection().find_one_and_update(
        {"_id": to_object_id(company_id, "Company")},
        {"$inc": {"credits_remaining": amount}, "$set": {"updated_at": _now()}},
        projection=PUBLIC_PROJECTION,
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        raise NotFoundError("Company not found")
    return doc


async def touch_login(company_id: Any) -> None:
    await _collection().update_one({"_id": to_object_id(company_id, "Company")}, {"$set": {"last_login": _now()}})


async def statistics() -> Dict[str, Any]:
    coll = _collection()
    total, by_status, by_plan, by_industry = await asyncio.gather(
        coll.count_documents({}),
        group_count(coll, {}, "status"),
        group_count(coll, {}, "plan_name"),
        group_count(coll, {}, "industry"),
    )
    return {
        "total_companies": total,
        "by_status": by_status,
        "by_plan": by_plan,
        "by_industry": by_industry,
    }
