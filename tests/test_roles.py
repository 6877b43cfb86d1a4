# tests/test_roles.py
import pytest

from portal.policy.roles import Role, at_least, rank


def test_hierarchy_order():
    assert rank(Role.CANDIDATE) < rank(Role.USER) < rank(Role.ADMIN) < rank(Role.SUPER_ADMIN)
    assert rank(Role.COMPANY) == rank(Role.ADMIN)


def test_plain_strings_are_accepted():
    assert rank("super_admin") == rank(Role.SUPER_ADMIN)
    assert at_least("company", "admin")
    assert at_least("admin", "company")


@pytest.mark.parametrize("role", ["", "root", None, "SUPER_ADMIN"])
def test_unknown_roles_rank_below_candidate(role):
    assert rank(role) < rank(Role.CANDIDATE)
    assert not at_least(role, Role.CANDIDATE)


@pytest.mark.parametrize("role", list(Role))
def test_every_role_meets_candidate_and_itself(role):
    assert at_least(role, Role.CANDIDATE)
    assert at_least(role, role)


def test_super_admin_is_required_for_super_admin():
    for role in (Role.CANDIDATE, Role.USER, Role.COMPANY, Role.ADMIN):
        assert not at_least(role, Role.SUPER_ADMIN)
