# portal/repositories/attempts.py
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from portal.core.errors import ConflictError, NotFoundError
from portal.db.mongo import get_db
from portal.repositories.base import _now, to_object_id

ATTEMPTS_COLLECTION = "test_attempts"

IN_PROGRESS = "in_progress"
COMPLETED = "completed"


def _collection():
    return get_db()[ATTEMPTS_COLLECTION]


async def get_attempt(attempt_id: Any) -> Dict[str, Any]:
    doc = await _collection().find_one({"_id": to_object_id(attempt_id, "Attempt")})
    if not doc:
        raise NotFoundError("Attempt not found")
    return doc


async def find_in_progress(test_id: str, principal_id: str) -> Optional[Dict[str, Any]]:
    return await _collection().find_one({"test_id": test_id, "principal_id": principal_id, "status": IN_PROGRESS})


async def count_attempts(test_id: str, principal_id: str) -> int:
    return await _collection().count_documents({"test_id": test_id, "principal_id": principal_id})


async def create_attempt(test: Mapping[str, Any], principal_id: str) -> Dict[str, Any]:
    now = _now()
    doc = {
        "test_id": str(test["_id"]),
        "principal_id": principal_id,
        "tenant_id": test.get("tenant_id"),
        "status": IN_PROGRESS,
        "answers": [],
        "started_at": now,
        "expires_at": now + timedelta(minutes=int(test.get("duration_minutes") or 0)),
        "submitted_at": None,
        "result": None,
        "passed": None,
    }
    try:
        res = await _collection().insert_one(doc)
    except DuplicateKeyError as exc:
        raise ConflictError("An attempt is already in progress") from exc
    doc["_id"] = res.inserted_id
    return doc


def is_expired(attempt: Mapping[str, Any], now: Optional[datetime] = None) -> bool:
    expires_at = attempt.get("expires_at")
    return expires_at is not None and (now or _now()) > expires_at


async def record_answer(attempt_id: Any, question_id: str, answer: Any) -> Dict[str, Any]:
    """Replace any earlier answer to `question_id` while the attempt is still open."""
    oid = to_object_id(attempt_id, "Attempt")
    coll = _collection()
    open_attempt = {"_id": oid, "status": IN_PROGRESS}
    # two conditional writes: drop the old answer, then append the new one
    res = await coll.update_one(open_attempt, {"$pull": {"answers": {"question_id": question_id}}})
    if res.matched_count == 0:
        raise ConflictError("Attempt is already completed")
    doc = await coll.find_one_and_update(
        open_attempt,
        {"$push": {"answers": {"question_id": question_id, "answer": answer, "answered_at": _now()}}},
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        raise ConflictError("Attempt is already completed")
    return doc


async def complete_attempt(attempt_id: Any, result: Mapping[str, Any], passed: bool) -> Dict[str, Any]:
    doc = await _collection().find_one_and_update(
        {"_id": to_object_id(attempt_id, "Attempt"), "status": IN_PROGRESS},
        {"$set": {"status": COMPLETED, "submitted_at": _now(), "result": dict(result), "passed": passed}},
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        raise ConflictError("Attempt is already completed")
    return doc


async def list_attempts_for_test(test_id: str, principal_id: Optional[str] = None, limit: int = 100) -> List[Dict[str, Any]]:
    query: Dict[str, Any] = {"test_id": test_id}
    if principal_id:
        query["principal_id"] = principal_id
    cur = _collection().find(query).sort("started_at", -1).limit(limit)
    return [d async for d in cur]


async def list_since(test_id: str, since: datetime) -> List[Dict[str, Any]]:
    cur = _collection().find(
        {"test_id": test_id, "started_at": {"$gte": since}},
        {"answers": 0},
    ).sort("started_at", -1)
    return [d async for d in cur]
