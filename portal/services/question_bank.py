# portal/services/question_bank.py
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import ValidationError as PydanticValidationError

from portal.core.errors import ForbiddenError, ValidationError, field_errors
from portal.models.question import QuestionCreate, QuestionUpdate
from portal.policy.access import PRIVATE, PUBLIC, Action, Principal, ResourceDescriptor, ensure_access
from portal.repositories import questions
from portal.repositories.audit import record_audit

OWNER_FIELDS = ("visibility", "tenant_id")


def resolve_owner(principal: Principal, tenant_id: Optional[str], visibility: Optional[str]) -> Tuple[Optional[str], str]:
    """Pick tenant and visibility for a new question. Only a super admin may go public or pick a tenant."""
    visibility = visibility or PRIVATE
    if principal.is_super_admin:
        return tenant_id or principal.tenant, visibility
    if visibility == PUBLIC:
        raise ForbiddenError("Only a super admin can create public questions")
    if principal.tenant is None:
        raise ForbiddenError("No tenant associated with this account")
    return principal.tenant, PRIVATE


def question_fields(model: QuestionCreate) -> Dict[str, Any]:
    data = model.model_dump(mode="json", exclude=set(OWNER_FIELDS))
    if data.get("correct_answer") in (None, "") and data.get("options"):
        # derive the answer from options flagged correct
        flagged = [o["text"] for o in data["options"] if o.get("is_correct")]
        if flagged:
            data["correct_answer"] = flagged[0] if len(flagged) == 1 else flagged
    return data


async def create_question(principal: Principal, payload: QuestionCreate) -> Dict[str, Any]:
    tenant_id, visibility = resolve_owner(principal, payload.tenant_id, payload.visibility)
    doc = await questions.insert_question(question_fields(payload), tenant_id, visibility, principal.id)
    await record_audit(principal.id, "question_created", "question", doc["_id"], {"visibility": visibility})
    return doc


def _merged_for_validation(current: Mapping[str, Any], changes: Mapping[str, Any]) -> Dict[str, Any]:
    merged = {k: current.get(k) for k in QuestionCreate.model_fields if k in current and k not in OWNER_FIELDS}
    merged.update({k: v for k, v in changes.items() if k not in OWNER_FIELDS})
    return merged


async def update_question(principal: Principal, question_id: str, payload: QuestionUpdate) -> Dict[str, Any]:
    current = await questions.get_question(question_id)
    ensure_access(principal, ResourceDescriptor.from_document(current), Action.WRITE)
    changes = payload.model_dump(mode="json", exclude_unset=True)
    if changes.get("visibility") == PUBLIC and not principal.is_super_admin:
        raise ForbiddenError("Only a super admin can make a question public")
    try:
        validated = QuestionCreate.model_validate(_merged_for_validation(current, changes))
    except PydanticValidationError as exc:
        raise ValidationError("Validation failed", errors=field_errors(exc.errors())) from exc
    if "options" in changes or "correct_answer" in changes:
        changes["correct_answer"] = question_fields(validated).get("correct_answer")
    updated = await questions.update_question(current, changes, principal.id)
    await record_audit(principal.id, "question_updated", "question", question_id,
                       {"version": updated.get("version"), "fields": sorted(changes)})
    return updated


async def delete_question(principal: Principal, question_id: str) -> None:
    current = await questions.get_question(question_id)
    ensure_access(principal, ResourceDescriptor.from_document(current), Action.DELETE)
    await questions.soft_delete_question(current["_id"])
    await record_audit(principal.id, "question_deleted", "question", question_id)


async def bulk_import(principal: Principal, items: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    """Validate and insert each item on its own; bad rows are reported, good rows kept."""
    imported: List[str] = []
    errors: List[Dict[str, Any]] = []
    for index, raw in enumerate(items):
        try:
            model = QuestionCreate.model_validate(raw)
            tenant_id, visibility = resolve_owner(principal, model.tenant_id, model.visibility)
        except PydanticValidationError as exc:
            errors.append({"index": index, "errors": field_errors(exc.errors())})
            continue
        except ForbiddenError as exc:
            errors.append({"index": index, "errors": [{"field": "visibility", "message": exc.message}]})
            continue
        doc = await questions.insert_question(question_fields(model), tenant_id, visibility, principal.id)
        imported.append(str(doc["_id"]))
    await record_audit(principal.id, "questions_imported", "question",
                       details={"imported": len(imported), "failed": len(errors)})
    return {"imported": len(imported), "failed": len(errors), "ids": imported, "errors": errors}
