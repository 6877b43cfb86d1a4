# portal/api/v1/questions.py
from typing import Optional

from fastapi import APIRouter, Depends, Query

from portal.api.deps import get_current_principal, pagination, require_admin
from portal.core.responses import success_response
from portal.models.question import BulkImportRequest, QuestionCreate, QuestionUpdate
from portal.policy.access import Action, Principal, ResourceDescriptor, ensure_access
from portal.policy.scoping import PageRequest, build_filters, pagination_meta, parse_sort, scope_filter
from portal.repositories import questions
from portal.services import question_bank
from portal.services.shaping import shape_question, shape_questions

router = APIRouter(prefix="/questions", tags=["questions"])


def _split_tags(tags: Optional[str]):
    if not tags:
        return None
    values = [t.strip().lower() for t in tags.split(",") if t.strip()]
    return {"$in": values} if values else None


@router.get("")
async def list_questions(
    search: Optional[str] = Query(None),
    domain: Optional[str] = Query(None),
    sub_domain: Optional[str] = Query(None),
    difficulty: Optional[str] = Query(None),
    type: Optional[str] = Query(None),
    visibility: Optional[str] = Query(None),
    tags: Optional[str] = Query(None),
    sort_by: Optional[str] = Query(None),
    sort_order: Optional[str] = Query(None),
    page: PageRequest = Depends(pagination),
    principal: Principal = Depends(require_admin),
):
    raw = build_filters(
        search,
        questions.SEARCH_FIELDS,
        exact={"domain": domain, "sub_domain": sub_domain, "difficulty": difficulty, "type": type,
               "visibility": visibility, "tags": _split_tags(tags)},
    )
    items, total = await questions.list_questions(
        scope_filter(principal, raw), page, parse_sort(sort_by, sort_order, questions.SORT_FIELDS)
    )
    return success_response("Questions retrieved successfully", shape_questions(items, principal),
                            pagination_meta(page, total))


@router.get("/domains")
async def question_domains(principal: Principal = Depends(require_admin)):
    return success_response("Domains retrieved successfully", await questions.domain_stats(scope_filter(principal)))


@router.get("/analytics")
async def question_analytics(principal: Principal = Depends(require_admin)):
    data = await questions.analytics(scope_filter(principal))
    data["top_performing"] = shape_questions(data["top_performing"], principal)
    return success_response("Question analytics retrieved successfully", data)


@router.post("/bulk-import", status_code=201)
async def bulk_import(payload: BulkImportRequest, principal: Principal = Depends(require_admin)):
    result = await question_bank.bulk_import(principal, payload.questions)
    message = f"Imported {result['imported']} questions"
    if result["failed"]:
        message += f", {result['failed']} failed"
    return success_response(message, result)


@router.get("/{question_id}")
async def get_question(question_id: str, principal: Principal = Depends(get_current_principal)):
    doc = await questions.get_question(question_id)
    ensure_access(principal, ResourceDescriptor.from_document(doc), Action.READ)
    return success_response("Question retrieved successfully", shape_question(doc, principal))


@router.post("", status_code=201)
async def create_question(payload: QuestionCreate, principal: Principal = Depends(require_admin)):
    doc = await question_bank.create_question(principal, payload)
    return success_response("Question created successfully", shape_question(doc, principal))


@router.put("/{question_id}")
async def update_question(question_id: str, payload: QuestionUpdate, principal: Principal = Depends(require_admin)):
    doc = await question_bank.update_question(principal, question_id, payload)
    return success_response("Question updated successfully", shape_question(doc, principal))


@router.delete("/{question_id}")
async def delete_question(question_id: str, principal: Principal = Depends(require_admin)):
    await question_bank.delete_question(principal, question_id)
    return success_response("Question deleted successfully")
