# portal/repositories/system_settings.py
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument

from portal.core.errors import ForbiddenError, NotFoundError
from portal.db.mongo import get_db
from portal.policy.scoping import search_clause
from portal.repositories.base import _now

SETTINGS_COLLECTION = "system_settings"


def _collection():
    return get_db()[SETTINGS_COLLECTION]


async def list_settings(category: Optional[str] = None, search: Optional[str] = None) -> Dict[str, List[Dict[str, Any]]]:
    query: Dict[str, Any] = {}
    if category:
        query["category"] = category
    clause = search_clause(search, ("key", "description"))
    if clause:
        query.update(clause)
    grouped: Dict[str, List[Dict[str, Any]]] = {}
    cur = _collection().find(query).sort([("category", 1), ("key", 1)])
    async for doc in cur:
        grouped.setdefault(doc.get("category") or "general", []).append(doc)
    return grouped


async def get_setting(key: str) -> Dict[str, Any]:
    doc = await _collection().find_one({"key": key})
    if not doc:
        raise NotFoundError("Setting not found")
    return doc


async def upsert_setting(key: str, value: Any, category: str, description: Optional[str],
                         updated_by: str) -> Dict[str, Any]:
    existing = await _collection().find_one({"key": key})
    if existing and existing.get("is_editable") is False:
        raise ForbiddenError("Setting is not editable")
    now = _now()
    fields: Dict[str, Any] = {"value": value, "category": category, "updated_by": updated_by, "updated_at": now}
    if description is not None:
        fields["description"] = description
    return await _collection().find_one_and_update(
        {"key": key},
        {"$set": fields, "$setOnInsert": {"is_editable": True, "created_at": now}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )


async def update_value(key: str, value: Any, updated_by: str) -> Dict[str, Any]:
    """Change the value of an existing editable setting."""
    doc = await _collection().find_one_and_update(
        {"key": key, "is_editable": {"$ne": False}},
        {"$set": {"value": value, "updated_by": updated_by, "updated_at": _now()}},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        await get_setting(key)
        raise ForbiddenError("Setting is not editable")
    return doc


async def delete_setting(key: str) -> None:
    res = await _collection().delete_one({"key": key})
    if res.deleted_count == 0:
        raise NotFoundError("Setting not found")
