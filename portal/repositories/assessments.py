# portal/repositories/assessments.py
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pymongo import ReturnDocument

from portal.core.errors import ConflictError, NotFoundError
from portal.db.mongo import get_db
from portal.policy.scoping import PageRequest
from portal.repositories.base import _now, find_page, to_object_id

TESTS_COLLECTION = "tests"

SEARCH_FIELDS = ("title", "description", "tags", "category")
SORT_FIELDS = ("created_at", "updated_at", "title", "duration_minutes", "status", "difficulty")
UPDATABLE_FIELDS = (
    "title", "description", "type", "difficulty", "duration_minutes", "passing_score",
    "instructions", "tags", "category", "settings", "visibility",
)


def _collection():
    return get_db()[TESTS_COLLECTION]


def unique_ids(ids: Sequence[Any]) -> List[str]:
    """Stringify and de-duplicate, keeping first-seen order."""
    seen = set()
    out = []
    for i in ids:
        s = str(i)
        if s not in seen:
            seen.add(s)
            out.append(s)
    return out


async def list_tests(predicate: Mapping[str, Any], page: PageRequest,
                     sort: Sequence[Tuple[str, int]]) -> Tuple[List[Dict[str, Any]], int]:
    return await find_page(_collection(), predicate, page, sort)


async def get_test(test_id: Any) -> Dict[str, Any]:
    doc = await _collection().find_one({"_id": to_object_id(test_id, "Test")})
    if not doc:
        raise NotFoundError("Test not found")
    return doc


async def insert_test(data: Mapping[str, Any], question_ids: Sequence[Any], tenant_id: Optional[str],
                      visibility: str, created_by: str) -> Dict[str, Any]:
    now = _now()
    questions = unique_ids(question_ids)
    doc = {k: v for k, v in data.items() if k in UPDATABLE_FIELDS}
    doc.update({
        "questions": questions,
        "total_questions": len(questions),
        "status": "draft",
        "visibility": visibility,
        "tenant_id": tenant_id,
        "created_by": created_by,
        "published_at": None,
        "archived_at": None,
        "created_at": now,
        "updated_at": now,
    })
    res = await _collection().insert_one(doc)
    doc["_id"] = res.inserted_id
    return doc


async def update_test(test_id: Any, changes: Mapping[str, Any],
                      question_ids: Optional[Sequence[Any]] = None) -> Dict[str, Any]:
    fields = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS}
    if question_ids is not None:
        questions = unique_ids(question_ids)
        fields["questions"] = questions
        fields["total_questions"] = len(questions)
    fields["updated_at"] = _now()
    doc = await _collection().find_one_and_update(
        {"_id": to_object_id(test_id, "Test")},
        {"$set": fields},
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        raise NotFoundError("Test not found")
    return doc


async def transition_status(test_id: Any, from_status: str, to_status: str) -> Dict[str, Any]:
    """Move a test from `from_status` to `to_status` only if it is still in `from_status`."""
    now = _now()
    fields: Dict[str, Any] = {"status": to_status, "updated_at": now}
    if to_status == "published":
        fields["published_at"] = now
    elif to_status == "archived":
        fields["archived_at"] = now
    query: Dict[str, Any] = {"_id": to_object_id(test_id, "Test"), "status": from_status}
    if to_status == "published":
        # never publish an empty test, even if questions were removed concurrently
        query["total_questions"] = {"$gt": 0}
    doc = await _collection().find_one_and_update(query, {"$set": fields}, return_document=ReturnDocument.AFTER)
    if not doc:
        raise ConflictError(f"Test is no longer {from_status}")
    return doc


async def set_questions(test: Mapping[str, Any], questions: Sequence[Any]) -> Dict[str, Any]:
    """Replace the question list, matching on the list that was read."""
    ordered = unique_ids(questions)
    doc = await _collection().find_one_and_update(
        {"_id": test["_id"], "questions": test.get("questions", [])},
        {"$set": {"questions": ordered, "total_questions": len(ordered), "updated_at": _now()}},
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        raise ConflictError("Test questions were modified concurrently; reload and retry")
    return doc


async def delete_test(test_id: Any, allowed_statuses: Sequence[str]) -> bool:
    res = await _collection().delete_one(
        {"_id": to_object_id(test_id, "Test"), "status": {"$in": list(allowed_statuses)}}
    )
    return res.deleted_count > 0
