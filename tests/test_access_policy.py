# tests/test_access_policy.py
import random

import pytest

from portal.core.errors import ForbiddenError
from portal.policy.access import (
    PRIVATE,
    PUBLIC,
    Action,
    Principal,
    ResourceDescriptor,
    can_access,
    ensure_access,
)
from portal.policy.roles import Role

NON_SUPER_ROLES = [Role.CANDIDATE, Role.USER, Role.COMPANY, Role.ADMIN]
TENANTS = ["t1", "t2", "t3", None]


def _principals(rng, n=200):
    for _ in range(n):
        role = rng.choice(NON_SUPER_ROLES)
        if role == Role.COMPANY:
            yield Principal(id=rng.choice(["t1", "t2", "t3"]), role=role)
        else:
            yield Principal(id=f"u{rng.randint(0, 999)}", role=role, tenant_id=rng.choice(TENANTS))


def test_private_resources_of_other_tenants_are_denied():
    rng = random.Random(1234)
    for p in _principals(rng):
        for tenant in ("t1", "t2", "t3", "other"):
            if tenant == p.tenant:
                continue
            r = ResourceDescriptor(owner_id="x", tenant_id=tenant, visibility=PRIVATE)
            assert not can_access(p, r, Action.READ)
            assert not can_access(p, r, Action.WRITE)
            assert not can_access(p, r, Action.DELETE)


def test_public_resources_are_readable_by_everyone():
    rng = random.Random(99)
    principals = list(_principals(rng)) + [Principal(id="s", role=Role.SUPER_ADMIN)]
    for p in principals:
        for tenant in TENANTS:
            assert can_access(p, ResourceDescriptor(tenant_id=tenant, visibility=PUBLIC), Action.READ)


def test_public_does_not_grant_write_to_other_tenants():
    p = Principal(id="u1", role=Role.ADMIN, tenant_id="t1")
    r = ResourceDescriptor(tenant_id="t2", visibility=PUBLIC)
    assert not can_access(p, r, Action.WRITE)
    assert not can_access(p, r, Action.DELETE)


def test_same_tenant_may_read_and_write():
    p = Principal(id="u1", role=Role.ADMIN, tenant_id="t1")
    r = ResourceDescriptor(tenant_id="t1")
    for action in Action:
        assert can_access(p, r, action)


def test_company_principal_is_its_own_tenant():
    p = Principal(id="c1", role=Role.COMPANY)
    assert p.tenant == "c1"
    assert can_access(p, ResourceDescriptor(tenant_id="c1"), Action.WRITE)


def test_missing_tenant_on_both_sides_is_denied():
    p = Principal(id="u1", role=Role.USER)
    assert not can_access(p, ResourceDescriptor(tenant_id=None), Action.READ)


def test_super_admin_is_always_allowed():
    p = Principal(id="root", role=Role.SUPER_ADMIN)
    for tenant in TENANTS:
        for action in Action:
            assert can_access(p, ResourceDescriptor(tenant_id=tenant), action)


def test_descriptor_from_document_stringifies_ids():
    from bson import ObjectId

    oid = ObjectId()
    r = ResourceDescriptor.from_document({"tenant_id": oid, "created_by": 7})
    assert r.tenant_id == str(oid)
    assert r.owner_id == "7"
    assert r.visibility == PRIVATE


def test_ensure_access_raises_forbidden():
    with pytest.raises(ForbiddenError):
        ensure_access(Principal(id="u", role=Role.ADMIN, tenant_id="a"), ResourceDescriptor(tenant_id="b"), Action.READ)
