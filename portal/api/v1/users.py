# portal/api/v1/users.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from portal.api.deps import get_current_principal, pagination, require_admin, require_super_admin
from portal.core.errors import ConflictError, ForbiddenError, ValidationError
from portal.core.responses import success_response
from portal.core.security import hash_password
from portal.models.user import UserCreate
from portal.policy.access import Action, Principal, ResourceDescriptor, ensure_access
from portal.policy.roles import Role, at_least
from portal.policy.scoping import PageRequest, build_filters, pagination_meta, parse_sort, scope_filter
from portal.repositories import accounts, companies
from portal.repositories.audit import record_audit
from portal.repositories.base import _to_id
from portal.services.credentials import generate_temporary_password
from portal.services.invitations import login_url
from portal.services.mailer import email_sender

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


@router.get("")
async def list_users(
    search: Optional[str] = Query(None),
    role: Optional[str] = Query(None),
    tenant_id: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None),
    sort_by: Optional[str] = Query(None),
    sort_order: Optional[str] = Query(None),
    page: PageRequest = Depends(pagination),
    principal: Principal = Depends(require_admin),
):
    raw = build_filters(search, accounts.USER_SEARCH_FIELDS,
                        exact={"role": role, "tenant_id": tenant_id, "is_active": is_active})
    # staff accounts are never public
    items, total = await accounts.list_users(
        scope_filter(principal, raw, public_readable=False), page,
        parse_sort(sort_by, sort_order, accounts.USER_SORT_FIELDS),
    )
    return success_response("Users retrieved successfully", [_to_id(u) for u in items], pagination_meta(page, total))


@router.get("/{user_id}")
async def get_user(user_id: str, principal: Principal = Depends(get_current_principal)):
    user = await accounts.get_user(user_id)
    if str(user["_id"]) != principal.id:
        if not at_least(principal.role, Role.ADMIN):
            raise ForbiddenError()
        ensure_access(principal, ResourceDescriptor.from_document(user), Action.READ)
    return success_response("User retrieved successfully", _to_id(user))


@router.post("", status_code=201)
async def create_user(payload: UserCreate, principal: Principal = Depends(require_super_admin)):
    tenant_id = payload.tenant_id
    if payload.role == Role.SUPER_ADMIN.value:
        tenant_id = None
    elif not tenant_id:
        raise ValidationError.for_field("tenant_id", "Staff accounts need a tenant")
    else:
        # raises NotFoundError for an unknown company
        await companies.get_company(tenant_id)

    password = generate_temporary_password()
    user = await accounts.insert_user(str(payload.email), hash_password(password), payload.role,
                                      name=payload.name, tenant_id=tenant_id, must_change_password=True)
    sent = await email_sender.send(
        user["email"],
        "Your assessment portal account",
        "credentials",
        {"name": user.get("name") or user["email"], "email": user["email"], "password": password,
         "login_url": login_url()},
    )
    await record_audit(principal.id, "user_created", "user", user["_id"], {"role": payload.role, "email_sent": sent})
    logger.info("User %s (%s) created by %s", user["_id"], payload.role, principal.id)
    return success_response("User created successfully",
                            {"user": _to_id(user), "temporary_password": password, "email_sent": sent})


@router.delete("/{user_id}")
async def deactivate_user(user_id: str, principal: Principal = Depends(require_super_admin)):
    if user_id == principal.id:
        raise ConflictError("You cannot deactivate your own account")
    user = await accounts.set_user_active(user_id, False)
    await record_audit(principal.id, "user_deactivated", "user", user_id)
    return success_response("User deactivated successfully", _to_id(user))


@router.post("/{user_id}/activate")
async def activate_user(user_id: str, principal: Principal = Depends(require_super_admin)):
    user = await accounts.set_user_active(user_id, True)
    await record_audit(principal.id, "user_activated", "user", user_id)
    return success_response("User activated successfully", _to_id(user))
