# portal/policy/access.py
"""
Resource access policy.

A single pure decision function used by every resource route instead of
per-route role string comparisons:

1. super_admin may do anything.
2. anyone may read a public resource.
3. otherwise the resource must belong to the principal's tenant.
4. write/delete always require the tenant match, public or not.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

from portal.core.errors import ForbiddenError
from portal.policy.roles import Role

PUBLIC = "public"
PRIVATE = "private"


class Action(str, Enum):
    READ = "read"
    WRITE = "write"
    DELETE = "delete"


@dataclass(frozen=True)
class Principal:
    id: str
    role: Role
    tenant_id: Optional[str] = None

    @property
    def tenant(self) -> Optional[str]:
        # a company principal is its own tenant
        if self.tenant_id:
            return self.tenant_id
        if self.role == Role.COMPANY:
            return self.id
        return None

    @property
    def is_super_admin(self) -> bool:
        return self.role == Role.SUPER_ADMIN


@dataclass(frozen=True)
class ResourceDescriptor:
    owner_id: Optional[str] = None
    tenant_id: Optional[str] = None
    visibility: str = PRIVATE

    @classmethod
    def from_document(cls, doc: Mapping[str, Any], tenant_field: str = "tenant_id") -> "ResourceDescriptor":
        tenant = doc.get(tenant_field)
        owner = doc.get("created_by")
        return cls(
            owner_id=str(owner) if owner is not None else None,
            tenant_id=str(tenant) if tenant is not None else None,
            visibility=doc.get("visibility") or PRIVATE,
        )


def can_access(principal: Principal, resource: ResourceDescriptor, action: Action) -> bool:
    action = Action(action)
    if principal.is_super_admin:
        return True
    if action == Action.READ and resource.visibility == PUBLIC:
        return True
    tenant = principal.tenant
    return tenant is not None and resource.tenant_id is not None and str(resource.tenant_id) == str(tenant)


def ensure_access(principal: Principal, resource: ResourceDescriptor, action: Action) -> None:
    if not can_access(principal, resource, action):
        raise ForbiddenError("Access denied")
