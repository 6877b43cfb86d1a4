# portal/services/reports.py
"""Per-test attempt reports: summary figures, score distribution and the latest attempts."""
from datetime import timedelta
from typing import Any, Dict, List, Mapping, Optional

from portal.core.errors import ValidationError
from portal.repositories import attempts
from portal.repositories.base import _now

PERIODS = {"7d": 7, "30d": 30, "90d": 90, "1y": 365}
DEFAULT_PERIOD = "30d"
# lower bounds of the 20-point score buckets; the last one includes 100
BUCKETS = (0, 20, 40, 60, 80)
RECENT_LIMIT = 20


def _percentage(attempt: Mapping[str, Any]) -> Optional[float]:
    result = attempt.get("result") or {}
    return result.get("percentage")


def score_distribution(percentages: List[float]) -> List[Dict[str, Any]]:
    out = []
    for i, low in enumerate(BUCKETS):
        high = BUCKETS[i + 1] if i + 1 < len(BUCKETS) else None
        if high is None:
            count = sum(1 for p in percentages if p >= low)
            label = f"{low}-100"
        else:
            count = sum(1 for p in percentages if low <= p < high)
            label = f"{low}-{high - 1}"
        out.append({"range": label, "count": count})
    return out


def summarize(rows: List[Mapping[str, Any]]) -> Dict[str, Any]:
    completed = [r for r in rows if r.get("status") == attempts.COMPLETED]
    percentages = [p for p in (_percentage(r) for r in completed) if p is not None]
    passed = sum(1 for r in completed if r.get("passed"))
    return {
        "total_attempts": len(rows),
        "completed_attempts": len(completed),
        "in_progress_attempts": len(rows) - len(completed),
        "average_score": round(sum(percentages) / len(percentages), 2) if percentages else 0,
        "highest_score": max(percentages) if percentages else None,
        "lowest_score": min(percentages) if percentages else None,
        "pass_rate": round(passed / len(completed) * 100, 2) if completed else 0,
    }


async def build_test_report(test: Mapping[str, Any], period: Optional[str] = None) -> Dict[str, Any]:
    period = period or DEFAULT_PERIOD
    if period not in PERIODS:
        raise ValidationError.for_field("period", f"Period must be one of {', '.join(PERIODS)}")
    rows = await attempts.list_since(str(test["_id"]), _now() - timedelta(days=PERIODS[period]))
    completed = [r for r in rows if r.get("status") == attempts.COMPLETED]
    return {
        "test_id": str(test["_id"]),
        "title": test.get("title"),
        "period": period,
        "summary": summarize(rows),
        "score_distribution": score_distribution([p for p in (_percentage(r) for r in completed) if p is not None]),
        "recent_attempts": [
            {
                "attempt_id": str(r["_id"]),
                "principal_id": r.get("principal_id"),
                "status": r.get("status"),
                "percentage": _percentage(r),
                "passed": r.get("passed"),
                "started_at": r.get("started_at"),
                "submitted_at": r.get("submitted_at"),
            }
            for r in rows[:RECENT_LIMIT]
        ],
    }
