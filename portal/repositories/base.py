# portal/repositories/base.py
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from bson import ObjectId
from bson.errors import InvalidId

from portal.core.errors import NotFoundError
from portal.policy.scoping import PageRequest


def _now() -> datetime:
    return datetime.utcnow()


def to_object_id(value: Any, label: str = "Resource") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError) as exc:
        raise NotFoundError(f"{label} not found") from exc


def maybe_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if value is not None and ObjectId.is_valid(str(value)):
        return ObjectId(str(value))
    return None


def _jsonable(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def _to_id(doc: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    # convert Mongo's _id (ObjectId) to a string `id` and make the doc JSON safe
    if not doc:
        return None
    doc = dict(doc)
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    return _jsonable(doc)


async def find_page(collection, predicate: Mapping[str, Any], page: PageRequest,
                    sort: Sequence[Tuple[str, int]], projection: Optional[Mapping[str, Any]] = None
                    ) -> Tuple[List[Dict[str, Any]], int]:
    cur = collection.find(dict(predicate), projection).sort(list(sort)).skip(page.skip).limit(page.limit)
    items = [d async for d in cur]
    total = await collection.count_documents(dict(predicate))
    return items, total


async def group_count(collection, match: Mapping[str, Any], key: str) -> List[Dict[str, Any]]:
    pipeline = [
        {"$match": dict(match)},
        {"$group": {"_id": f"${key}", "count": {"$sum": 1}}},
        {"$sort": {"count": -1}},
    ]
    return [{"key": row["_id"], "count": row["count"]} async for row in collection.aggregate(pipeline)]


async def group_sum(collection, match: Mapping[str, Any], key: Optional[str], field: str) -> List[Dict[str, Any]]:
    pipeline = [
        {"$match": dict(match)},
        {"$group": {"_id": f"${key}" if key else None, "total": {"$sum": f"${field}"},
                    "average": {"$avg": f"${field}"}, "count": {"$sum": 1}}},
    ]
    return [
        {"key": row["_id"], "total": row["total"], "average": row["average"], "count": row["count"]}
        async for row in collection.aggregate(pipeline)
    ]
