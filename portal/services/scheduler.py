# portal/services/scheduler.py
"""
Time-triggered job sweep.

An external cron hits the sweep endpoint; each sweep claims up to
SCHEDULER_BATCH_SIZE due jobs and runs them one at a time. A failing job is
marked failed with its error and the sweep moves on.
"""
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from portal.core.config import settings
from portal.core.errors import NotFoundError
from portal.repositories import assessments, jobs
from portal.repositories.base import _now
from portal.services.invitations import invite_candidates

logger = logging.getLogger(__name__)

JobHandler = Callable[[Mapping[str, Any]], Awaitable[None]]


async def handle_invite_test(job: Mapping[str, Any]) -> None:
    payload = job.get("payload") or {}
    test_id = payload.get("test_id")
    emails = payload.get("emails") or []
    if not test_id or not emails:
        raise ValueError("invite_test job needs test_id and emails")
    try:
        test = await assessments.get_test(test_id)
    except NotFoundError as exc:
        raise ValueError(f"test {test_id} no longer exists") from exc
    await invite_candidates(
        test,
        emails,
        inviter_id=job.get("created_by"),
        message=payload.get("message"),
        company_name=payload.get("company_name"),
        base_url=payload.get("login_base_url"),
    )


HANDLERS: Dict[str, JobHandler] = {
    "invite_test": handle_invite_test,
}


async def run_job(job: Mapping[str, Any]) -> Optional[bool]:
    """Claim and run a single job. None means another sweep claimed it first."""
    claimed = await jobs.claim(job["_id"])
    if claimed is None:
        return None
    handler = HANDLERS.get(claimed.get("type"))
    try:
        if handler is None:
            raise ValueError(f"no handler for job type {claimed.get('type')!r}")
        await handler(claimed)
    except Exception as exc:
        logger.exception("Scheduled job %s failed", claimed["_id"])
        await jobs.mark_failed(claimed["_id"], str(exc) or exc.__class__.__name__)
        return False
    await jobs.mark_done(claimed["_id"])
    return True


async def process_due_jobs(now: Optional[datetime] = None, batch_size: Optional[int] = None) -> Dict[str, int]:
    due = await jobs.due_jobs(now or _now(), batch_size or settings.SCHEDULER_BATCH_SIZE)
    processed = failed = skipped = 0
    for job in due:
        outcome = await run_job(job)
        if outcome is None:
            skipped += 1
        elif outcome:
            processed += 1
        else:
            failed += 1
    if due:
        logger.info("Scheduler sweep: %d processed, %d failed, %d skipped", processed, failed, skipped)
    return {"due": len(due), "processed": processed, "failed": failed, "skipped": skipped}
