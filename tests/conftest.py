# tests/conftest.py
import pytest
from bson import ObjectId
from httpx import AsyncClient, ASGITransport
from mongomock_motor import AsyncMongoMockClient

from portal.core.config import settings
from portal.core.security import create_access_token
from portal.db.mongo import use_database
from portal.policy.access import Principal
from portal.policy.roles import Role


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """No real provider, mail server or cron secret leaks into a test."""
    monkeypatch.setattr(settings, "OPENAI_API_KEY", None)
    monkeypatch.setattr(settings, "GROQ_API_KEY", None)
    monkeypatch.setattr(settings, "AI_PROVIDER", "openai")
    monkeypatch.setattr(settings, "SMTP_HOST", None)
    monkeypatch.setattr(settings, "CRON_TOKEN", None)
    monkeypatch.setattr(settings, "SECRET_KEY", "test-secret")
    monkeypatch.setattr(settings, "INVITE_TOKEN_TTL_HOURS", 72)
    monkeypatch.setattr(settings, "UPLOAD_TEMP_DIR", str(tmp_path / "uploads"))
    yield


@pytest.fixture
def db():
    """In-memory Motor-compatible database wired into every repository."""
    client = AsyncMongoMockClient()
    database = client["portal_test"]
    use_database(database)
    yield database
    use_database(None)


def new_id() -> str:
    return str(ObjectId())


def make_principal(role: Role, tenant_id=None, principal_id=None) -> Principal:
    return Principal(id=principal_id or new_id(), role=role, tenant_id=tenant_id)


def company_principal(company_id=None) -> Principal:
    return make_principal(Role.COMPANY, principal_id=company_id or new_id())


def auth_headers(principal: Principal) -> dict:
    token = create_access_token(principal.id, principal.role.value, tenant_id=principal.tenant)
    return {"Authorization": f"Bearer {token}"}


def api_client() -> AsyncClient:
    from portal.main import app
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver")


@pytest.fixture
def super_admin() -> Principal:
    return make_principal(Role.SUPER_ADMIN)
