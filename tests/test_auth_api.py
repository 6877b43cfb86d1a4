# tests/test_auth_api.py
from datetime import timedelta

import pytest

from portal.core.security import decode_access_token, hash_password
from portal.policy.roles import Role
from portal.repositories import accounts, companies, invitations
from portal.repositories.base import _now
from portal.services.credentials import generate_invite_token, hash_invite_token

from conftest import api_client, auth_headers, make_principal


async def _company(email="hr@acme.io", password="Company#123"):
    return await companies.insert_company({"company_name": "Acme", "email": email}, hash_password(password), "root")


@pytest.mark.asyncio
async def test_staff_login_issues_a_token(db):
    user = await accounts.insert_user("Root@Portal.io", hash_password("Sup3r#secret"), "super_admin", name="Root")
    async with api_client() as client:
        resp = await client.post("/api/v1/auth/login", json={"email": "root@portal.io", "password": "Sup3r#secret"})
    data = resp.json()["data"]
    assert resp.status_code == 200
    claims = decode_access_token(data["access_token"])
    assert claims["sub"] == str(user["_id"])
    assert claims["role"] == "super_admin"


@pytest.mark.asyncio
async def test_company_login_uses_its_own_tenant(db):
    company = await _company()
    async with api_client() as client:
        resp = await client.post("/api/v1/auth/login", json={"email": "hr@acme.io", "password": "Company#123"})
    data = resp.json()["data"]
    claims = decode_access_token(data["access_token"])
    assert claims["role"] == "company"
    assert claims["tenant_id"] == str(company["_id"])
    assert data["must_change_password"] is True


@pytest.mark.asyncio
async def test_bad_password_is_rejected_and_audited(db):
    await _company()
    async with api_client() as client:
        resp = await client.post("/api/v1/auth/login", json={"email": "hr@acme.io", "password": "wrong"})
    assert resp.status_code == 401
    assert resp.json() == {"success": False, "message": "Invalid credentials"}
    assert await db["audit_logs"].count_documents({"action": "login_failed"}) == 1


@pytest.mark.asyncio
async def test_inactive_company_cannot_log_in(db):
    company = await _company()
    await companies.update_company(company["_id"], {"status": "suspended"})
    async with api_client() as client:
        resp = await client.post("/api/v1/auth/login", json={"email": "hr@acme.io", "password": "Company#123"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_candidate_login_finds_the_right_tenant(db):
    await accounts.upsert_candidate("tenant-a", "sam@mail.io", hash_password("Alpha#1234"), "u1")
    await accounts.upsert_candidate("tenant-b", "sam@mail.io", hash_password("Bravo#1234"), "u2")
    async with api_client() as client:
        resp = await client.post("/api/v1/auth/candidate/login", json={"email": "sam@mail.io", "password": "Bravo#1234"})
        bad = await client.post("/api/v1/auth/candidate/login", json={"email": "sam@mail.io", "password": "nope"})
    claims = decode_access_token(resp.json()["data"]["access_token"])
    assert claims["role"] == "candidate"
    assert claims["tenant_id"] == "tenant-b"
    assert bad.status_code == 401


@pytest.mark.asyncio
async def test_invite_tokens_redeem_once(db):
    candidate = await accounts.upsert_candidate("t1", "kim@mail.io", hash_password("x"), "u1")
    token = generate_invite_token()
    await invitations.insert_invitation(
        hash_invite_token(token), "test-1", str(candidate["_id"]), "kim@mail.io", "t1", _now() + timedelta(hours=1), "u1",
    )
    async with api_client() as client:
        first = await client.post("/api/v1/auth/invite/redeem", json={"token": token})
        second = await client.post("/api/v1/auth/invite/redeem", json={"token": token})
    assert first.status_code == 200
    assert first.json()["data"]["test_id"] == "test-1"
    assert decode_access_token(first.json()["data"]["access_token"])["sub"] == str(candidate["_id"])
    assert second.status_code == 401


@pytest.mark.asyncio
async def test_expired_invite_is_refused(db):
    token = generate_invite_token()
    await invitations.insert_invitation(
        hash_invite_token(token), "test-1", "c1", "kim@mail.io", "t1", _now() - timedelta(minutes=1), "u1",
    )
    async with api_client() as client:
        resp = await client.post("/api/v1/auth/invite/redeem", json={"token": token})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_me_hides_the_password_hash(db):
    company = await _company()
    principal = make_principal(Role.COMPANY, principal_id=str(company["_id"]))
    async with api_client() as client:
        resp = await client.get("/api/v1/auth/me", headers=auth_headers(principal))
        anonymous = await client.get("/api/v1/auth/me")
    data = resp.json()["data"]
    assert data["email"] == "hr@acme.io"
    assert "password_hash" not in data
    assert data["tenant_id"] == str(company["_id"])
    assert anonymous.status_code == 401


@pytest.mark.asyncio
async def test_garbage_token_is_unauthorized(db):
    async with api_client() as client:
        resp = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_change_password_clears_the_reset_flag(db):
    company = await _company()
    principal = make_principal(Role.COMPANY, principal_id=str(company["_id"]))
    async with api_client() as client:
        wrong = await client.post("/api/v1/auth/change-password", headers=auth_headers(principal),
                                  json={"current_password": "nope", "new_password": "N3w#password"})
        ok = await client.post("/api/v1/auth/change-password", headers=auth_headers(principal),
                               json={"current_password": "Company#123", "new_password": "N3w#password"})
        relogin = await client.post("/api/v1/auth/login", json={"email": "hr@acme.io", "password": "N3w#password"})
    assert wrong.status_code == 401
    assert ok.status_code == 200
    assert relogin.json()["data"]["must_change_password"] is False
