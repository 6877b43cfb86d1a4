# tests/test_tests_api.py
from datetime import datetime, timedelta
from urllib.parse import parse_qs, urlparse

import pytest

from portal.policy.roles import Role
from portal.repositories import assessments, jobs, questions

from conftest import api_client, auth_headers, company_principal, make_principal


def _question(text, answer, points=1):
    return {
        "question": text,
        "type": "multiple_choice",
        "domain": "python",
        "difficulty": "easy",
        "points": points,
        "options": [{"text": "A"}, {"text": "B"}],
        "correct_answer": answer,
        "explanation": "because",
    }


def _test_body(**extra):
    body = {"title": "Python screening", "type": "technical", "duration_minutes": 30, "passing_score": 60}
    body.update(extra)
    return body


async def _published_test(client, headers):
    q1 = (await client.post("/api/v1/questions", json=_question("first", "B", 10), headers=headers)).json()["data"]["id"]
    q2 = (await client.post("/api/v1/questions", json=_question("second", "A", 5), headers=headers)).json()["data"]["id"]
    created = await client.post("/api/v1/tests", json=_test_body(questions=[q1, q2]), headers=headers)
    test_id = created.json()["data"]["id"]
    published = await client.post(f"/api/v1/tests/{test_id}/publish", headers=headers)
    assert published.status_code == 200
    return test_id, q1, q2


def _token_from(invite_url):
    return parse_qs(urlparse(invite_url).query)["token"][0]


@pytest.mark.asyncio
async def test_empty_test_cannot_be_published(db):
    headers = auth_headers(company_principal())
    async with api_client() as client:
        created = await client.post("/api/v1/tests", json=_test_body(), headers=headers)
        test_id = created.json()["data"]["id"]
        resp = await client.post(f"/api/v1/tests/{test_id}/publish", headers=headers)
        again = await client.get(f"/api/v1/tests/{test_id}", headers=headers)
    assert created.json()["data"]["status"] == "draft"
    assert resp.status_code == 400
    assert resp.json()["errors"][0]["field"] == "questions"
    assert again.json()["data"]["status"] == "draft"


@pytest.mark.asyncio
async def test_status_only_moves_forward(db):
    headers = auth_headers(company_principal())
    async with api_client() as client:
        test_id, _, _ = await _published_test(client, headers)
        back = await client.patch(f"/api/v1/tests/{test_id}/status", json={"status": "draft"}, headers=headers)
        delete_live = await client.delete(f"/api/v1/tests/{test_id}", headers=headers)
        archived = await client.post(f"/api/v1/tests/{test_id}/archive", headers=headers)
        deleted = await client.delete(f"/api/v1/tests/{test_id}", headers=headers)
    assert back.status_code == 409
    assert delete_live.status_code == 409
    assert archived.json()["data"]["status"] == "archived"
    assert deleted.status_code == 200


@pytest.mark.asyncio
async def test_questions_are_frozen_once_published(db):
    headers = auth_headers(company_principal())
    async with api_client() as client:
        test_id, q1, q2 = await _published_test(client, headers)
        resp = await client.post(f"/api/v1/tests/{test_id}/questions/remove", json={"question_ids": [q1]},
                                 headers=headers)
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_assigning_questions_dedupes_and_checks_access(db):
    owner = company_principal()
    headers = auth_headers(owner)
    async with api_client() as client:
        q1 = (await client.post("/api/v1/questions", json=_question("mine", "A"), headers=headers)).json()["data"]["id"]
        foreign = (await client.post("/api/v1/questions", json=_question("theirs", "A"),
                                     headers=auth_headers(company_principal()))).json()["data"]["id"]
        test_id = (await client.post("/api/v1/tests", json=_test_body(), headers=headers)).json()["data"]["id"]

        ok = await client.post(f"/api/v1/tests/{test_id}/questions", json={"question_ids": [q1, q1]}, headers=headers)
        stolen = await client.post(f"/api/v1/tests/{test_id}/questions", json={"question_ids": [foreign]},
                                   headers=headers)
    assert ok.json()["data"]["questions"] == [q1]
    assert ok.json()["data"]["total_questions"] == 1
    assert stolen.status_code == 403


@pytest.mark.asyncio
async def test_candidate_takes_an_invited_test(db):
    headers = auth_headers(company_principal())
    async with api_client() as client:
        test_id, q1, q2 = await _published_test(client, headers)

        invited = await client.post(f"/api/v1/tests/{test_id}/invitations", json={"emails": ["cand@mail.io"]},
                                    headers=headers)
        entry = invited.json()["data"]["invitations"][0]
        # no mail server in tests, so the credentials come back to the inviter
        assert entry["email_sent"] is False
        token = _token_from(entry["credentials"]["invite_url"])

        session = (await client.post("/api/v1/auth/invite/redeem", json={"token": token})).json()["data"]
        cand = {"Authorization": f"Bearer {session['access_token']}"}

        view = await client.get(f"/api/v1/tests/{test_id}", headers=cand)
        started = (await client.post(f"/api/v1/tests/{test_id}/start", headers=cand)).json()["data"]
        attempt_id = started["attempt"]["id"]
        await client.post(f"/api/v1/tests/{test_id}/answer",
                          json={"attempt_id": attempt_id, "question_id": q1, "answer": "B"}, headers=cand)
        submitted = await client.post(f"/api/v1/tests/{test_id}/submit", json={"attempt_id": attempt_id},
                                      headers=cand)
        twice = await client.post(f"/api/v1/tests/{test_id}/submit", json={"attempt_id": attempt_id}, headers=cand)
        results = await client.get(f"/api/v1/tests/{test_id}/results", headers=headers)

    details = view.json()["data"]["question_details"]
    assert [d["id"] for d in details] == [q1, q2]
    assert all("correct_answer" not in d for d in details)
    assert started["resumed"] is False

    result = submitted.json()["data"]
    assert result["status"] == "completed"
    assert result["result"]["percentage"] == 67
    assert result["passed"] is True
    assert twice.status_code == 409
    assert len(results.json()["data"]) == 1


@pytest.mark.asyncio
async def test_candidates_do_not_see_drafts(db):
    headers = auth_headers(company_principal())
    async with api_client() as client:
        test_id, _, _ = await _published_test(client, headers)
        invited = await client.post(f"/api/v1/tests/{test_id}/invitations", json={"emails": ["c@mail.io"]},
                                    headers=headers)
        token = _token_from(invited.json()["data"]["invitations"][0]["credentials"]["invite_url"])
        session = (await client.post("/api/v1/auth/invite/redeem", json={"token": token})).json()["data"]
        draft_id = (await client.post("/api/v1/tests", json=_test_body(title="draft"), headers=headers)).json()["data"]["id"]
        resp = await client.get(f"/api/v1/tests/{draft_id}",
                                headers={"Authorization": f"Bearer {session['access_token']}"})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_future_invitations_are_scheduled(db):
    headers = auth_headers(company_principal())
    when = (datetime.utcnow() + timedelta(days=1)).isoformat()
    async with api_client() as client:
        test_id, _, _ = await _published_test(client, headers)
        resp = await client.post(f"/api/v1/tests/{test_id}/invitations",
                                 json={"emails": ["later@mail.io"], "scheduled_at": when}, headers=headers)
    data = resp.json()["data"]
    assert data["scheduled"] is True
    stored = await db[jobs.JOBS_COLLECTION].find_one({})
    assert stored["payload"]["emails"] == ["later@mail.io"]
    assert stored["status"] == "pending"


@pytest.mark.asyncio
async def test_duplicate_makes_a_private_draft_copy(db):
    headers = auth_headers(company_principal())
    async with api_client() as client:
        test_id, q1, q2 = await _published_test(client, headers)
        resp = await client.post(f"/api/v1/tests/{test_id}/duplicate", headers=headers)
    data = resp.json()["data"]
    assert resp.status_code == 201
    assert data["id"] != test_id
    assert data["title"] == "Python screening (Copy)"
    assert data["status"] == "draft"
    assert data["questions"] == [q1, q2]


@pytest.mark.asyncio
async def test_public_test_does_not_expose_another_tenants_private_questions(db):
    private = await questions.insert_question(_question("tenant A only", "ANSWER-A"), "tenantA", "private", "u1")
    shared = await questions.insert_question(_question("for everyone", "B"), None, "public", "root")
    test = await assessments.insert_test(_test_body(), [str(private["_id"]), str(shared["_id"])],
                                         "tenantA", "public", "root")
    outsider = auth_headers(make_principal(Role.ADMIN, tenant_id="tenantB"))
    owner = auth_headers(make_principal(Role.ADMIN, tenant_id="tenantA"))
    async with api_client() as client:
        seen_by_b = await client.get(f"/api/v1/tests/{test['_id']}", headers=outsider)
        seen_by_a = await client.get(f"/api/v1/tests/{test['_id']}", headers=owner)
    assert seen_by_b.status_code == 200
    assert "ANSWER-A" not in seen_by_b.text
    assert [q["id"] for q in seen_by_b.json()["data"]["question_details"]] == [str(shared["_id"])]
    assert len(seen_by_a.json()["data"]["question_details"]) == 2


@pytest.mark.asyncio
async def test_tests_with_private_questions_cannot_go_public(db, super_admin):
    private = await questions.insert_question(_question("tenant A only", "A"), "tenantA", "private", "u1")
    qid = str(private["_id"])
    headers = auth_headers(super_admin)
    async with api_client() as client:
        created = await client.post("/api/v1/tests", headers=headers,
                                    json=_test_body(questions=[qid], tenant_id="tenantA", visibility="public"))
        draft = await client.post("/api/v1/tests", headers=headers,
                                  json=_test_body(questions=[qid], tenant_id="tenantA"))
        test_id = draft.json()["data"]["id"]
        flipped = await client.put(f"/api/v1/tests/{test_id}", json={"visibility": "public"}, headers=headers)
    assert created.status_code == 400
    assert created.json()["errors"][0]["field"] == "questions"
    assert draft.status_code == 201
    assert flipped.status_code == 400
    assert (await assessments.get_test(test_id))["visibility"] == "private"
