# portal/services/assessments.py
"""
Test lifecycle and attempt flow.

Status only moves forward: draft -> published -> archived, or straight from
draft to archived. Publishing needs at least one question. Each move is a
conditional write on the status that was read, so a concurrent change shows
up as a conflict instead of being overwritten.
"""
import logging
from typing import Any, Dict, Mapping, Tuple

from portal.core.errors import ConflictError, ForbiddenError, ValidationError
from portal.policy.access import Principal
from portal.repositories import assessments, attempts, questions
from portal.repositories.audit import record_audit
from portal.services.scoring import ScoreResult, correct_question_ids, score

logger = logging.getLogger(__name__)

DRAFT = "draft"
PUBLISHED = "published"
ARCHIVED = "archived"

ALLOWED_TRANSITIONS = {
    DRAFT: (PUBLISHED, ARCHIVED),
    PUBLISHED: (ARCHIVED,),
    ARCHIVED: (),
}
DELETABLE_STATUSES = (DRAFT, ARCHIVED)


def validate_transition(current: str, target: str, total_questions: int) -> None:
    if target not in ALLOWED_TRANSITIONS:
        raise ValidationError.for_field("status", f"Unknown status: {target}")
    if current == target:
        raise ConflictError(f"Test is already {target}")
    if target not in ALLOWED_TRANSITIONS.get(current, ()):
        raise ConflictError(f"Cannot move a test from {current} to {target}")
    if target == PUBLISHED and total_questions < 1:
        raise ValidationError.for_field("questions", "A test needs at least one question before publishing")


async def change_status(test: Mapping[str, Any], target: str, principal: Principal) -> Dict[str, Any]:
    current = test.get("status", DRAFT)
    validate_transition(current, target, int(test.get("total_questions") or 0))
    updated = await assessments.transition_status(test["_id"], current, target)
    await record_audit(principal.id, f"test_{target}", "test", test["_id"], {"from": current, "to": target})
    return updated


def is_deletable(test: Mapping[str, Any]) -> bool:
    return test.get("status", DRAFT) in DELETABLE_STATUSES


async def start_attempt(test: Mapping[str, Any], principal: Principal) -> Tuple[Dict[str, Any], bool]:
    """Return (attempt, resumed). An open attempt is resumed rather than duplicated."""
    if test.get("status") != PUBLISHED:
        raise ConflictError("Test is not published")
    test_id = str(test["_id"])
    existing = await attempts.find_in_progress(test_id, principal.id)
    if existing is not None:
        if not attempts.is_expired(existing):
            return existing, True
        # time ran out without a submit: close it with what was answered
        await finalize_attempt(existing, test)

    configured = (test.get("settings") or {}).get("attempts_allowed")
    allowed = 1 if configured is None else int(configured)
    used = await attempts.count_attempts(test_id, principal.id)
    if used >= allowed:
        raise ConflictError("No attempts remaining for this test")
    try:
        attempt = await attempts.create_attempt(test, principal.id)
    except ConflictError:
        # a concurrent start opened the attempt first
        existing = await attempts.find_in_progress(test_id, principal.id)
        if existing is None:
            raise
        return existing, True
    logger.info("Attempt %s started on test %s", attempt["_id"], test_id)
    return attempt, False


def ensure_owner(attempt: Mapping[str, Any], principal: Principal) -> None:
    if attempt.get("principal_id") != principal.id:
        raise ForbiddenError("Access denied")


async def submit_answer(attempt: Mapping[str, Any], test: Mapping[str, Any], question_id: str,
                        answer: Any) -> Dict[str, Any]:
    if attempt.get("status") != attempts.IN_PROGRESS:
        raise ConflictError("Attempt is already completed")
    if attempts.is_expired(attempt):
        raise ConflictError("Attempt time has expired")
    if question_id not in (test.get("questions") or []):
        raise ValidationError.for_field("question_id", "Question is not part of this test")
    return await attempts.record_answer(attempt["_id"], question_id, answer)


async def finalize_attempt(attempt: Mapping[str, Any], test: Mapping[str, Any]) -> Tuple[Dict[str, Any], ScoreResult]:
    if attempt.get("status") != attempts.IN_PROGRESS:
        raise ConflictError("Attempt is already completed")
    question_ids = test.get("questions") or []
    docs = await questions.find_by_ids(question_ids, include_inactive=True)
    by_id = {str(d["_id"]): d for d in docs}
    ordered = [by_id[qid] for qid in question_ids if qid in by_id]
    result = score(attempt.get("answers") or [], ordered)
    passed = result.percentage >= int(test.get("passing_score") or 0)
    completed = await attempts.complete_attempt(attempt["_id"], result.to_dict(), passed)
    await questions.record_usage(list(by_id), correct_question_ids(attempt.get("answers") or [], ordered))
    await record_audit(
        attempt.get("principal_id"), "test_submitted", "test_attempt", attempt["_id"],
        {"test_id": str(test["_id"]), "percentage": result.percentage, "passed": passed},
    )
    return completed, result
