# portal/repositories/jobs.py
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pymongo import ReturnDocument

from portal.core.errors import ConflictError, NotFoundError
from portal.db.mongo import get_db
from portal.policy.scoping import PageRequest
from portal.repositories.base import _now, find_page, to_object_id

JOBS_COLLECTION = "scheduled_jobs"

JOB_TYPES = ("invite_test",)
SORT_FIELDS = ("created_at", "scheduled_at", "status", "attempts")


def _collection():
    return get_db()[JOBS_COLLECTION]


async def enqueue(job_type: str, payload: Mapping[str, Any], scheduled_at: datetime,
                  tenant_id: Optional[str], created_by: Optional[str]) -> Dict[str, Any]:
    if job_type not in JOB_TYPES:
        raise ValueError(f"unknown job type: {job_type}")
    now = _now()
    doc = {
        "type": job_type,
        "payload": dict(payload),
        "status": "pending",
        "attempts": 0,
        "scheduled_at": scheduled_at,
        "last_error": None,
        "tenant_id": tenant_id,
        "created_by": created_by,
        "created_at": now,
        "updated_at": now,
    }
    res = await _collection().insert_one(doc)
    doc["_id"] = res.inserted_id
    return doc


async def due_jobs(now: datetime, limit: int) -> List[Dict[str, Any]]:
    cur = _collection().find({"status": "pending", "scheduled_at": {"$lte": now}}).sort("scheduled_at", 1).limit(limit)
    return [d async for d in cur]


async def claim(job_id: Any) -> Optional[Dict[str, Any]]:
    """pending -> processing; None when another sweep already took the job."""
    return await _collection().find_one_and_update(
        {"_id": job_id, "status": "pending"},
        {"$set": {"status": "processing", "updated_at": _now()}, "$inc": {"attempts": 1}},
        return_document=ReturnDocument.AFTER,
    )


async def mark_done(job_id: Any) -> None:
    await _collection().update_one(
        {"_id": job_id, "status": "processing"},
        {"$set": {"status": "done", "last_error": None, "updated_at": _now()}},
    )


async def mark_failed(job_id: Any, error: str) -> None:
    await _collection().update_one(
        {"_id": job_id, "status": "processing"},
        {"$set": {"status": "failed", "last_error": error, "updated_at": _now()}},
    )


async def requeue(job_id: Any) -> Dict[str, Any]:
    oid = to_object_id(job_id, "Job")
    doc = await _collection().find_one_and_update(
        {"_id": oid, "status": "failed"},
        {"$set": {"status": "pending", "scheduled_at": _now(), "updated_at": _now()}},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        if not await _collection().find_one({"_id": oid}):
            raise NotFoundError("Job not found")
        raise ConflictError("Only failed jobs can be requeued")
    return doc


async def list_jobs(predicate: Mapping[str, Any], page: PageRequest,
                    sort: Sequence[Tuple[str, int]]) -> Tuple[List[Dict[str, Any]], int]:
    return await find_page(_collection(), predicate, page, sort)
