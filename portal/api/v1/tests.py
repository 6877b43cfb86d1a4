# portal/api/v1/tests.py
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from fastapi import APIRouter, Depends, Query

from portal.api.deps import get_current_principal, pagination, require_admin
from portal.core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from portal.core.responses import success_response
from portal.models.test import (
    AnswerSubmit,
    AttemptSubmit,
    InvitationCreate,
    QuestionIds,
    StatusChange,
    TestCreate,
    TestUpdate,
)
from portal.policy.access import PRIVATE, PUBLIC, Action, Principal, ResourceDescriptor, can_access, ensure_access
from portal.policy.roles import Role, at_least
from portal.policy.scoping import PageRequest, build_filters, pagination_meta, parse_sort, scope_filter
from portal.repositories import assessments, attempts, companies, invitations, jobs, questions
from portal.repositories.audit import record_audit
from portal.repositories.base import _now, _to_id
from portal.services import assessments as lifecycle
from portal.services.invitations import invite_candidates
from portal.services.question_bank import resolve_owner
from portal.services.reports import build_test_report
from portal.services.shaping import shape_attempt, shape_test

router = APIRouter(prefix="/tests", tags=["tests"])


async def _load(test_id: str, principal: Principal, action: Action):
    test = await assessments.get_test(test_id)
    ensure_access(principal, ResourceDescriptor.from_document(test), action)
    if principal.role == Role.CANDIDATE and test.get("status") != lifecycle.PUBLISHED:
        # candidates never see drafts or archived tests
        raise NotFoundError("Test not found")
    return test


async def _readable_question_ids(ids: List[str], principal: Principal, visibility: str = PRIVATE) -> List[str]:
    wanted = assessments.unique_ids(ids)
    docs = {str(d["_id"]): d for d in await questions.find_by_ids(wanted)}
    missing = [qid for qid in wanted if qid not in docs]
    if missing:
        raise ValidationError("Some questions do not exist",
                              errors=[{"field": "questions", "message": f"Unknown question {qid}"} for qid in missing])
    for qid in wanted:
        ensure_access(principal, ResourceDescriptor.from_document(docs[qid]), Action.READ)
    _ensure_shareable(docs.values(), visibility)
    return wanted


def _ensure_shareable(docs: Iterable[Mapping[str, Any]], visibility: str) -> None:
    # a public test is readable by every tenant, so it may only carry public questions
    if visibility != PUBLIC:
        return
    private = [str(d["_id"]) for d in docs if (d.get("visibility") or PRIVATE) != PUBLIC]
    if private:
        raise ValidationError("A public test can only contain public questions",
                              errors=[{"field": "questions", "message": f"Question {qid} is private"} for qid in private])


async def _visible_questions(test, principal: Principal) -> List[Dict[str, Any]]:
    docs = await questions.find_by_ids(test.get("questions") or [])
    return [d for d in docs if can_access(principal, ResourceDescriptor.from_document(d), Action.READ)]


def _ensure_draft(test) -> None:
    if test.get("status") != lifecycle.DRAFT:
        raise ConflictError("Questions can only be changed while the test is a draft")


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


@router.get("")
async def list_tests(
    search: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    type: Optional[str] = Query(None),
    difficulty: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    visibility: Optional[str] = Query(None),
    sort_by: Optional[str] = Query(None),
    sort_order: Optional[str] = Query(None),
    page: PageRequest = Depends(pagination),
    principal: Principal = Depends(require_admin),
):
    raw = build_filters(search, assessments.SEARCH_FIELDS,
                        exact={"status": status, "type": type, "difficulty": difficulty,
                               "category": category, "visibility": visibility})
    items, total = await assessments.list_tests(
        scope_filter(principal, raw), page, parse_sort(sort_by, sort_order, assessments.SORT_FIELDS)
    )
    return success_response("Tests retrieved successfully", [shape_test(t, principal) for t in items],
                            pagination_meta(page, total))


@router.get("/{test_id}")
async def get_test(test_id: str, principal: Principal = Depends(get_current_principal)):
    test = await _load(test_id, principal, Action.READ)
    docs = await _visible_questions(test, principal)
    return success_response("Test retrieved successfully", shape_test(test, principal, docs))


@router.post("", status_code=201)
async def create_test(payload: TestCreate, principal: Principal = Depends(require_admin)):
    tenant_id, visibility = resolve_owner(principal, payload.tenant_id, payload.visibility)
    question_ids = await _readable_question_ids(payload.questions, principal, visibility)
    data = payload.model_dump(mode="json", exclude={"questions", "tenant_id", "visibility"})
    test = await assessments.insert_test(data, question_ids, tenant_id, visibility, principal.id)
    await record_audit(principal.id, "test_created", "test", test["_id"], {"total_questions": test["total_questions"]})
    return success_response("Test created successfully", shape_test(test, principal))


@router.put("/{test_id}")
async def update_test(test_id: str, payload: TestUpdate, principal: Principal = Depends(require_admin)):
    test = await _load(test_id, principal, Action.WRITE)
    changes = payload.model_dump(mode="json", exclude_unset=True)
    if changes.get("visibility") == PUBLIC and not principal.is_super_admin:
        raise ForbiddenError("Only a super admin can make a test public")
    visibility = changes.get("visibility") or test.get("visibility") or PRIVATE
    question_ids = None
    if "questions" in changes:
        _ensure_draft(test)
        question_ids = await _readable_question_ids(changes.pop("questions") or [], principal, visibility)
    elif visibility == PUBLIC:
        _ensure_shareable(await questions.find_by_ids(test.get("questions") or [], include_inactive=True), visibility)
    updated = await assessments.update_test(test["_id"], changes, question_ids)
    await record_audit(principal.id, "test_updated", "test", test_id, {"fields": sorted(payload.model_fields_set)})
    return success_response("Test updated successfully", shape_test(updated, principal))


@router.delete("/{test_id}")
async def delete_test(test_id: str, principal: Principal = Depends(require_admin)):
    test = await _load(test_id, principal, Action.DELETE)
    if not lifecycle.is_deletable(test):
        raise ConflictError("Published tests must be archived before deletion")
    if not await assessments.delete_test(test["_id"], lifecycle.DELETABLE_STATUSES):
        raise ConflictError("Test status changed; reload and retry")
    await record_audit(principal.id, "test_deleted", "test", test_id)
    return success_response("Test deleted successfully")


@router.patch("/{test_id}/status")
async def change_status(test_id: str, payload: StatusChange, principal: Principal = Depends(require_admin)):
    test = await _load(test_id, principal, Action.WRITE)
    updated = await lifecycle.change_status(test, payload.status.value, principal)
    return success_response(f"Test {payload.status.value} successfully", shape_test(updated, principal))


@router.post("/{test_id}/publish")
async def publish_test(test_id: str, principal: Principal = Depends(require_admin)):
    test = await _load(test_id, principal, Action.WRITE)
    updated = await lifecycle.change_status(test, lifecycle.PUBLISHED, principal)
    return success_response("Test published successfully", shape_test(updated, principal))


@router.post("/{test_id}/archive")
async def archive_test(test_id: str, principal: Principal = Depends(require_admin)):
    test = await _load(test_id, principal, Action.WRITE)
    updated = await lifecycle.change_status(test, lifecycle.ARCHIVED, principal)
    return success_response("Test archived successfully", shape_test(updated, principal))


@router.post("/{test_id}/questions")
async def assign_questions(test_id: str, payload: QuestionIds, principal: Principal = Depends(require_admin)):
    test = await _load(test_id, principal, Action.WRITE)
    _ensure_draft(test)
    added = await _readable_question_ids(payload.question_ids, principal, test.get("visibility") or PRIVATE)
    updated = await assessments.set_questions(test, list(test.get("questions") or []) + added)
    await record_audit(principal.id, "test_questions_assigned", "test", test_id, {"question_ids": added})
    return success_response("Questions assigned successfully", shape_test(updated, principal))


@router.post("/{test_id}/questions/remove")
async def remove_questions(test_id: str, payload: QuestionIds, principal: Principal = Depends(require_admin)):
    test = await _load(test_id, principal, Action.WRITE)
    _ensure_draft(test)
    drop = set(payload.question_ids)
    remaining = [q for q in test.get("questions") or [] if q not in drop]
    updated = await assessments.set_questions(test, remaining)
    await record_audit(principal.id, "test_questions_removed", "test", test_id, {"question_ids": sorted(drop)})
    return success_response("Questions removed successfully", shape_test(updated, principal))


@router.post("/{test_id}/duplicate", status_code=201)
async def duplicate_test(test_id: str, principal: Principal = Depends(require_admin)):
    source = await _load(test_id, principal, Action.READ)
    tenant_id = source.get("tenant_id") if principal.is_super_admin else principal.tenant
    if tenant_id is None and not principal.is_super_admin:
        raise ForbiddenError("No tenant associated with this account")
    data = {k: source.get(k) for k in assessments.UPDATABLE_FIELDS if k in source}
    data["title"] = f"{source.get('title', '')} (Copy)"[:100]
    copy = await assessments.insert_test(data, source.get("questions") or [], tenant_id, "private", principal.id)
    await record_audit(principal.id, "test_duplicated", "test", copy["_id"], {"source_id": test_id})
    return success_response("Test duplicated successfully", shape_test(copy, principal))


@router.post("/{test_id}/start")
async def start_attempt(test_id: str, principal: Principal = Depends(get_current_principal)):
    test = await _load(test_id, principal, Action.READ)
    attempt, resumed = await lifecycle.start_attempt(test, principal)
    docs = await _visible_questions(test, principal)
    data = {"attempt": shape_attempt(attempt, principal), "test": shape_test(test, principal, docs), "resumed": resumed}
    return success_response("Attempt resumed" if resumed else "Attempt started", data)


@router.post("/{test_id}/answer")
async def submit_answer(test_id: str, payload: AnswerSubmit, principal: Principal = Depends(get_current_principal)):
    test = await _load(test_id, principal, Action.READ)
    attempt = await attempts.get_attempt(payload.attempt_id)
    lifecycle.ensure_owner(attempt, principal)
    if attempt.get("test_id") != str(test["_id"]):
        raise ValidationError.for_field("attempt_id", "Attempt does not belong to this test")
    updated = await lifecycle.submit_answer(attempt, test, payload.question_id, payload.answer)
    return success_response("Answer saved", {"attempt_id": str(updated["_id"]), "answered": len(updated["answers"])})


@router.post("/{test_id}/submit")
async def submit_attempt(test_id: str, payload: AttemptSubmit, principal: Principal = Depends(get_current_principal)):
    test = await _load(test_id, principal, Action.READ)
    attempt = await attempts.get_attempt(payload.attempt_id)
    lifecycle.ensure_owner(attempt, principal)
    if attempt.get("test_id") != str(test["_id"]):
        raise ValidationError.for_field("attempt_id", "Attempt does not belong to this test")
    completed, _ = await lifecycle.finalize_attempt(attempt, test)
    show = bool((test.get("settings") or {}).get("show_results", True))
    return success_response("Test submitted successfully", shape_attempt(completed, principal, show_results=show))


@router.get("/{test_id}/results")
async def test_results(test_id: str, principal: Principal = Depends(get_current_principal)):
    test = await _load(test_id, principal, Action.READ)
    show = bool((test.get("settings") or {}).get("show_results", True))
    if at_least(principal.role, Role.ADMIN):
        # tenant staff see every attempt on their own tests
        ensure_access(principal, ResourceDescriptor.from_document(test), Action.WRITE)
        rows = await attempts.list_attempts_for_test(str(test["_id"]))
    else:
        rows = await attempts.list_attempts_for_test(str(test["_id"]), principal_id=principal.id)
    return success_response("Results retrieved successfully",
                            [shape_attempt(a, principal, show_results=show) for a in rows])


@router.get("/{test_id}/report")
async def get_report(test_id: str, period: Optional[str] = Query(None), principal: Principal = Depends(require_admin)):
    test = await _load(test_id, principal, Action.WRITE)
    return success_response("Test report retrieved successfully", await build_test_report(test, period))


@router.post("/{test_id}/invitations", status_code=201)
async def invite(test_id: str, payload: InvitationCreate, principal: Principal = Depends(require_admin)):
    test = await _load(test_id, principal, Action.WRITE)
    if test.get("status") != lifecycle.PUBLISHED:
        raise ConflictError("Only published tests can be sent to candidates")
    company_name = None
    if test.get("tenant_id"):
        try:
            company_name = (await companies.get_company(test["tenant_id"])).get("company_name")
        except NotFoundError:
            company_name = None
    emails = [str(e) for e in payload.emails]

    scheduled_at = _naive_utc(payload.scheduled_at)
    if scheduled_at is not None and scheduled_at > _now():
        job = await jobs.enqueue(
            "invite_test",
            {"test_id": str(test["_id"]), "emails": emails, "message": payload.message, "company_name": company_name},
            scheduled_at, test.get("tenant_id"), principal.id,
        )
        await record_audit(principal.id, "test_invitations_scheduled", "test", test_id,
                           {"count": len(emails), "job_id": str(job["_id"])})
        return success_response("Invitations scheduled", {"scheduled": True, "job": _to_id(job)})

    results = await invite_candidates(test, emails, principal.id, message=payload.message, company_name=company_name)
    await record_audit(principal.id, "test_invitations_sent", "test", test_id,
                       {"count": len(results), "emails_sent": sum(1 for r in results if r["email_sent"])})
    return success_response("Invitations created", {"scheduled": False, "invitations": results})


@router.get("/{test_id}/invitations")
async def list_invitations(test_id: str, principal: Principal = Depends(require_admin)):
    test = await _load(test_id, principal, Action.WRITE)
    rows = await invitations.list_for_test(str(test["_id"]))
    return success_response("Invitations retrieved successfully", [_to_id(r) for r in rows])
