# portal/api/v1/scheduler.py
import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query

from portal.api.deps import pagination, require_super_admin
from portal.core.config import settings
from portal.core.errors import ForbiddenError
from portal.core.responses import success_response
from portal.policy.access import Principal
from portal.policy.scoping import PageRequest, build_filters, pagination_meta, parse_sort
from portal.repositories import jobs
from portal.repositories.audit import record_audit
from portal.repositories.base import _to_id
from portal.services.scheduler import process_due_jobs

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scheduler", tags=["scheduler"])


def verify_cron_token(x_cron_token: Optional[str] = Header(None)) -> None:
    expected = settings.CRON_TOKEN
    # closed until a token is configured
    if not expected or not x_cron_token or not secrets.compare_digest(x_cron_token, expected):
        raise ForbiddenError("Forbidden")


@router.post("/cron", dependencies=[Depends(verify_cron_token)])
async def run_cron():
    summary = await process_due_jobs()
    return success_response("Cron processed", summary)


@router.get("/jobs")
async def list_jobs(
    status: Optional[str] = Query(None),
    type: Optional[str] = Query(None),
    sort_by: Optional[str] = Query(None),
    sort_order: Optional[str] = Query(None),
    page: PageRequest = Depends(pagination),
    principal: Principal = Depends(require_super_admin),
):
    predicate = build_filters(exact={"status": status, "type": type})
    items, total = await jobs.list_jobs(predicate, page, parse_sort(sort_by, sort_order, jobs.SORT_FIELDS))
    return success_response("Jobs retrieved successfully", [_to_id(j) for j in items], pagination_meta(page, total))


@router.post("/jobs/{job_id}/requeue")
async def requeue_job(job_id: str, principal: Principal = Depends(require_super_admin)):
    job = await jobs.requeue(job_id)
    await record_audit(principal.id, "job_requeued", "scheduled_job", job_id)
    return success_response("Job requeued", _to_id(job))
