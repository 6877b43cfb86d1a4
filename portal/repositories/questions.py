# portal/repositories/questions.py
import asyncio
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pymongo import ReturnDocument

from portal.core.errors import ConflictError, NotFoundError
from portal.db.mongo import get_db
from portal.policy.scoping import PageRequest
from portal.repositories.base import _now, find_page, group_count, group_sum, maybe_object_id, to_object_id

QUESTIONS_COLLECTION = "questions"

SEARCH_FIELDS = ("question", "explanation", "tags")
SORT_FIELDS = ("created_at", "updated_at", "difficulty", "points", "domain", "usage_count", "average_score")
# fields a caller may change through update; tenant_id and created_by never move
UPDATABLE_FIELDS = (
    "question", "type", "domain", "sub_domain", "difficulty", "points", "options",
    "correct_answer", "explanation", "code_template", "test_cases", "tags",
)


def _collection():
    return get_db()[QUESTIONS_COLLECTION]


def active(predicate: Mapping[str, Any]) -> Dict[str, Any]:
    return {"$and": [{"is_active": True}, dict(predicate)]} if predicate else {"is_active": True}


async def list_questions(predicate: Mapping[str, Any], page: PageRequest,
                         sort: Sequence[Tuple[str, int]]) -> Tuple[List[Dict[str, Any]], int]:
    return await find_page(_collection(), active(predicate), page, sort)


async def get_question(question_id: str) -> Dict[str, Any]:
    doc = await _collection().find_one({"_id": to_object_id(question_id, "Question"), "is_active": True})
    if not doc:
        raise NotFoundError("Question not found")
    return doc


async def find_by_ids(ids: Sequence[Any], include_inactive: bool = False) -> List[Dict[str, Any]]:
    oids = [oid for oid in (maybe_object_id(i) for i in ids) if oid is not None]
    if not oids:
        return []
    query: Dict[str, Any] = {"_id": {"$in": oids}}
    if not include_inactive:
        query["is_active"] = True
    cur = _collection().find(query)
    return [d async for d in cur]


async def insert_question(data: Mapping[str, Any], tenant_id: Optional[str], visibility: str,
                          created_by: str) -> Dict[str, Any]:
    now = _now()
    doc = dict(data)
    doc.update({
        "tenant_id": tenant_id,
        "visibility": visibility,
        "created_by": created_by,
        "version": 1,
        "previous_versions": [],
        "usage_count": 0,
        "correct_count": 0,
        "average_score": 0,
        "is_active": True,
        "created_at": now,
        "updated_at": now,
    })
    res = await _collection().insert_one(doc)
    doc["_id"] = res.inserted_id
    return doc


async def update_question(current: Mapping[str, Any], changes: Mapping[str, Any], updated_by: str) -> Dict[str, Any]:
    """Apply `changes` as a new version.

    The write matches on the version that was read, so two concurrent edits
    cannot both append to the audit trail from the same base version.
    """
    now = _now()
    fields = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS or k == "visibility"}
    fields["updated_at"] = now
    snapshot = {
        "version": current.get("version", 1),
        "question": current.get("question"),
        "updated_at": now,
        "updated_by": updated_by,
    }
    updated = await _collection().find_one_and_update(
        {"_id": current["_id"], "version": current.get("version", 1), "is_active": True},
        {"$set": fields, "$push": {"previous_versions": snapshot}, "$inc": {"version": 1}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise ConflictError("Question was modified concurrently; reload and retry")
    return updated


async def soft_delete_question(question_id: Any) -> bool:
    res = await _collection().update_one(
        {"_id": to_object_id(question_id, "Question"), "is_active": True},
        {"$set": {"is_active": False, "updated_at": _now()}},
    )
    return res.modified_count > 0


async def record_usage(question_ids: Sequence[Any], correct_ids: Sequence[Any]) -> None:
    """Count one more use of each question and refresh its share of correct answers (0-100)."""
    coll = _collection()
    correct = {str(i) for i in correct_ids}
    for qid in question_ids:
        oid = maybe_object_id(qid)
        if oid is None:
            continue
        doc = await coll.find_one_and_update(
            {"_id": oid},
            {"$inc": {"usage_count": 1, "correct_count": 1 if str(qid) in correct else 0}},
            projection={"usage_count": 1, "correct_count": 1},
            return_document=ReturnDocument.AFTER,
        )
        if not doc or not doc.get("usage_count"):
            continue
        average = round(doc.get("correct_count", 0) / doc["usage_count"] * 100, 2)
        # a later submit that already bumped usage_count writes the newer figure
        await coll.update_one({"_id": oid, "usage_count": doc["usage_count"]}, {"$set": {"average_score": average}})


async def domain_stats(predicate: Mapping[str, Any]) -> List[Dict[str, Any]]:
    match = active(predicate)
    pipeline = [
        {"$match": match},
        {"$group": {
            "_id": "$domain",
            "total_questions": {"$sum": 1},
            "easy": {"$sum": {"$cond": [{"$eq": ["$difficulty", "easy"]}, 1, 0]}},
            "medium": {"$sum": {"$cond": [{"$eq": ["$difficulty", "medium"]}, 1, 0]}},
            "hard": {"$sum": {"$cond": [{"$eq": ["$difficulty", "hard"]}, 1, 0]}},
            "avg_usage": {"$avg": "$usage_count"},
            "avg_score": {"$avg": "$average_score"},
        }},
        {"$sort": {"total_questions": -1}},
    ]
    out = []
    async for row in _collection().aggregate(pipeline):
        out.append({
            "domain": row["_id"],
            "total_questions": row["total_questions"],
            "difficulty_breakdown": {"easy": row["easy"], "medium": row["medium"], "hard": row["hard"]},
            "avg_usage": round(row.get("avg_usage") or 0, 2),
            "avg_score": round(row.get("avg_score") or 0, 2),
        })
    return out


async def analytics(predicate: Mapping[str, Any]) -> Dict[str, Any]:
    match = active(predicate)
    coll = _collection()

    async def _top():
        cur = coll.find(match, {"question": 1, "domain": 1, "difficulty": 1, "usage_count": 1, "average_score": 1})
        cur = cur.sort([("usage_count", -1), ("average_score", -1)]).limit(10)
        return [d async for d in cur]

    # independent read-only aggregations
    total, by_domain, by_difficulty, by_type, usage, top = await asyncio.gather(
        coll.count_documents(match),
        group_count(coll, match, "domain"),
        group_count(coll, match, "difficulty"),
        group_count(coll, match, "type"),
        group_sum(coll, match, None, "usage_count"),
        _top(),
    )
    usage_row = usage[0] if usage else {}
    score_rows = await group_sum(coll, match, None, "average_score")
    score_row = score_rows[0] if score_rows else {}
    return {
        "overview": {
            "total_questions": total,
            "total_usage": usage_row.get("total") or 0,
            "average_usage": round(usage_row.get("average") or 0),
            "average_score": round(score_row.get("average") or 0),
        },
        "distribution": {"by_domain": by_domain, "by_difficulty": by_difficulty, "by_type": by_type},
        "top_performing": top,
    }
