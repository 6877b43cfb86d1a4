# tests/test_reports.py
from datetime import timedelta

import pytest

from portal.policy.roles import Role
from portal.repositories import assessments, attempts
from portal.repositories.base import _now
from portal.services.reports import score_distribution, summarize

from conftest import api_client, auth_headers, make_principal


async def _finished(test, principal_id, percentage, passed):
    attempt = await attempts.create_attempt(test, principal_id)
    return await attempts.complete_attempt(attempt["_id"], {"percentage": percentage}, passed)


def test_distribution_puts_a_perfect_score_in_the_top_bucket():
    buckets = score_distribution([0, 19, 20, 59.5, 80, 100])
    assert buckets == [
        {"range": "0-19", "count": 2},
        {"range": "20-39", "count": 1},
        {"range": "40-59", "count": 1},
        {"range": "60-79", "count": 0},
        {"range": "80-100", "count": 2},
    ]


def test_summary_of_no_attempts():
    assert summarize([]) == {
        "total_attempts": 0, "completed_attempts": 0, "in_progress_attempts": 0,
        "average_score": 0, "highest_score": None, "lowest_score": None, "pass_rate": 0,
    }


@pytest.mark.asyncio
async def test_report_aggregates_recent_attempts(db):
    test = await assessments.insert_test({"title": "Go quiz", "duration_minutes": 20}, [], "t1", "private", "u1")
    await _finished(test, "p1", 90, True)
    await _finished(test, "p2", 40, False)
    await _finished(test, "p3", 65, True)
    await attempts.create_attempt(test, "p4")
    old = await attempts.create_attempt(test, "p5")
    await db[attempts.ATTEMPTS_COLLECTION].update_one({"_id": old["_id"]},
                                                      {"$set": {"started_at": _now() - timedelta(days=60)}})

    async with api_client() as client:
        resp = await client.get(f"/api/v1/tests/{test['_id']}/report",
                                headers=auth_headers(make_principal(Role.ADMIN, tenant_id="t1")))
        year = await client.get(f"/api/v1/tests/{test['_id']}/report", params={"period": "1y"},
                                headers=auth_headers(make_principal(Role.ADMIN, tenant_id="t1")))
        bad = await client.get(f"/api/v1/tests/{test['_id']}/report", params={"period": "2w"},
                               headers=auth_headers(make_principal(Role.ADMIN, tenant_id="t1")))
        outsider = await client.get(f"/api/v1/tests/{test['_id']}/report",
                                    headers=auth_headers(make_principal(Role.ADMIN, tenant_id="t2")))

    summary = resp.json()["data"]["summary"]
    assert summary["total_attempts"] == 4
    assert summary["completed_attempts"] == 3
    assert summary["average_score"] == 65
    assert (summary["highest_score"], summary["lowest_score"]) == (90, 40)
    assert summary["pass_rate"] == 66.67
    assert len(resp.json()["data"]["recent_attempts"]) == 4
    assert year.json()["data"]["summary"]["total_attempts"] == 5
    assert bad.status_code == 400
    assert outsider.status_code == 403
