# portal/policy/roles.py
from enum import Enum


class Role(str, Enum):
    CANDIDATE = "candidate"
    USER = "user"
    COMPANY = "company"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


# company principals rank with admin
_RANKS = {
    Role.CANDIDATE: 0,
    Role.USER: 1,
    Role.COMPANY: 2,
    Role.ADMIN: 2,
    Role.SUPER_ADMIN: 3,
}


def _coerce(role) -> "Role | None":
    if isinstance(role, Role):
        return role
    try:
        return Role(str(role))
    except ValueError:
        return None


def rank(role) -> int:
    """Position of a role in the hierarchy; unknown roles rank below candidate."""
    r = _coerce(role)
    return _RANKS[r] if r is not None else -1


def at_least(role, required) -> bool:
    return rank(role) >= rank(required)
