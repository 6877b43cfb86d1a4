# tests/test_users_api.py
import pytest

from portal.core.security import hash_password, verify_password
from portal.policy.roles import Role
from portal.repositories import accounts, companies
from portal.services.bootstrap import ensure_super_admin

from conftest import api_client, auth_headers, company_principal, make_principal


async def _company(email="hr@acme.io"):
    return await companies.insert_company({"company_name": "Acme", "email": email}, hash_password("x"), "root")


@pytest.mark.asyncio
async def test_super_admin_creates_staff_who_can_log_in(db, super_admin):
    company = await _company()
    tenant = str(company["_id"])
    async with api_client() as client:
        resp = await client.post("/api/v1/users", headers=auth_headers(super_admin),
                                 json={"email": "Ana@Acme.io", "name": "Ana", "role": "admin", "tenant_id": tenant})
        body = resp.json()["data"]
        login = await client.post("/api/v1/auth/login",
                                  json={"email": "ana@acme.io", "password": body["temporary_password"]})
    assert resp.status_code == 201
    assert "password_hash" not in body["user"]
    assert body["user"]["tenant_id"] == tenant
    assert login.status_code == 200
    assert login.json()["data"]["role"] == "admin"
    assert login.json()["data"]["must_change_password"] is True


@pytest.mark.asyncio
async def test_staff_creation_rules(db, super_admin):
    company = await _company()
    headers = auth_headers(super_admin)
    async with api_client() as client:
        no_tenant = await client.post("/api/v1/users", json={"email": "a@x.io", "role": "user"}, headers=headers)
        by_company = await client.post("/api/v1/users", headers=auth_headers(company_principal(str(company["_id"]))),
                                       json={"email": "b@x.io", "role": "user", "tenant_id": str(company["_id"])})
        first = await client.post("/api/v1/users", headers=headers,
                                  json={"email": "c@x.io", "role": "user", "tenant_id": str(company["_id"])})
        dup = await client.post("/api/v1/users", headers=headers,
                                json={"email": "C@x.io", "role": "user", "tenant_id": str(company["_id"])})
    assert no_tenant.status_code == 400
    assert no_tenant.json()["errors"][0]["field"] == "tenant_id"
    assert by_company.status_code == 403
    assert first.status_code == 201
    assert dup.status_code == 409


@pytest.mark.asyncio
async def test_listing_is_scoped_to_the_tenant(db, super_admin):
    await accounts.insert_user("a@one.io", hash_password("x"), "user", tenant_id="t1")
    await accounts.insert_user("b@two.io", hash_password("x"), "admin", tenant_id="t2")
    async with api_client() as client:
        own = await client.get("/api/v1/users", headers=auth_headers(make_principal(Role.ADMIN, tenant_id="t1")))
        every = await client.get("/api/v1/users", headers=auth_headers(super_admin))
        candidate = await client.get("/api/v1/users",
                                     headers=auth_headers(make_principal(Role.CANDIDATE, tenant_id="t1")))
    assert [u["email"] for u in own.json()["data"]] == ["a@one.io"]
    assert every.json()["pagination"]["totalCount"] == 2
    assert candidate.status_code == 403


@pytest.mark.asyncio
async def test_deactivated_staff_cannot_log_in(db, super_admin):
    user = await accounts.insert_user("gone@x.io", hash_password("Pa55#word"), "user", tenant_id="t1")
    async with api_client() as client:
        resp = await client.delete(f"/api/v1/users/{user['_id']}", headers=auth_headers(super_admin))
        login = await client.post("/api/v1/auth/login", json={"email": "gone@x.io", "password": "Pa55#word"})
        self_delete = await client.delete(f"/api/v1/users/{super_admin.id}", headers=auth_headers(super_admin))
    assert resp.json()["data"]["is_active"] is False
    assert login.status_code == 401
    assert self_delete.status_code == 409


@pytest.mark.asyncio
async def test_seeding_creates_one_super_admin(db):
    user, password = await ensure_super_admin("Root@Portal.io")
    again, second = await ensure_super_admin("other@portal.io", "ignored")
    stored = await accounts.find_user_by_email("root@portal.io")
    assert user["role"] == "super_admin"
    assert verify_password(password, stored["password_hash"])
    assert stored["must_change_password"] is True
    assert second is None
    assert again["email"] == "root@portal.io"
    assert await accounts.find_user_by_email("other@portal.io") is None
