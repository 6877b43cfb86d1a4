# portal/api/v1/auth.py
import logging

from fastapi import APIRouter, Depends

from portal.api.deps import get_current_principal
from portal.core.errors import NotFoundError, UnauthorizedError, ValidationError
from portal.core.responses import success_response
from portal.core.security import create_access_token, hash_password, verify_password
from portal.models.common import ChangePasswordIn, InviteRedeemIn, LoginIn
from portal.policy.access import Principal
from portal.policy.roles import Role
from portal.repositories import accounts, companies, invitations
from portal.repositories.audit import record_audit
from portal.repositories.base import _to_id
from portal.services.credentials import hash_invite_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

INVALID_CREDENTIALS = "Invalid credentials"


def _collection_for(role: Role) -> str:
    if role == Role.CANDIDATE:
        return accounts.CANDIDATES_COLLECTION
    if role == Role.COMPANY:
        return companies.COMPANIES_COLLECTION
    return accounts.USERS_COLLECTION


def _session(principal: Principal, **extra):
    token = create_access_token(principal.id, principal.role.value, tenant_id=principal.tenant)
    data = {"access_token": token, "token_type": "bearer", "role": principal.role.value}
    data.update(extra)
    return data


@router.post("/login")
async def login(payload: LoginIn):
    """Staff users and companies share this endpoint; users are checked first."""
    user = await accounts.find_user_by_email(payload.email)
    if user and user.get("is_active", True) and verify_password(payload.password, user.get("password_hash")):
        principal = Principal(id=str(user["_id"]), role=Role(user["role"]), tenant_id=user.get("tenant_id"))
        await accounts.touch_login(accounts.USERS_COLLECTION, user["_id"])
    else:
        company = await companies.find_by_email(payload.email)
        if not company or not verify_password(payload.password, company.get("password_hash")):
            await record_audit(None, "login_failed", "account", details={"email": payload.email}, success=False)
            raise UnauthorizedError(INVALID_CREDENTIALS)
        if company.get("status") != "active":
            raise UnauthorizedError("Company account is not active")
        principal = Principal(id=str(company["_id"]), role=Role.COMPANY)
        user = company
        await companies.touch_login(company["_id"])

    await record_audit(principal.id, "login", "account", principal.id)
    return success_response(
        "Login successful",
        _session(principal, must_change_password=bool(user.get("must_change_password"))),
    )


@router.post("/candidate/login")
async def candidate_login(payload: LoginIn):
    for candidate in await accounts.find_candidates_by_email(payload.email):
        if verify_password(payload.password, candidate.get("password_hash")):
            principal = Principal(id=str(candidate["_id"]), role=Role.CANDIDATE, tenant_id=candidate.get("tenant_id"))
            await accounts.touch_login(accounts.CANDIDATES_COLLECTION, candidate["_id"])
            return success_response(
                "Login successful",
                _session(principal, must_change_password=bool(candidate.get("must_change_password"))),
            )
    raise UnauthorizedError(INVALID_CREDENTIALS)


@router.post("/invite/redeem")
async def redeem_invite(payload: InviteRedeemIn):
    invite = await invitations.redeem(hash_invite_token(payload.token.strip()))
    if invite is None:
        raise UnauthorizedError("Invalid or expired invitation")
    principal = Principal(id=invite["candidate_id"], role=Role.CANDIDATE, tenant_id=invite.get("tenant_id"))
    await record_audit(principal.id, "invite_redeemed", "invitation", invite["_id"], {"test_id": invite["test_id"]})
    return success_response("Invitation accepted", _session(principal, test_id=invite["test_id"]))


@router.get("/me")
async def me(principal: Principal = Depends(get_current_principal)):
    doc = await accounts.find_account(_collection_for(principal.role), principal.id)
    if not doc:
        raise NotFoundError("Account not found")
    doc.pop("password_hash", None)
    data = _to_id(doc)
    data["role"] = principal.role.value
    data["tenant_id"] = principal.tenant
    return success_response("Profile retrieved successfully", data)


@router.post("/change-password")
async def change_password(payload: ChangePasswordIn, principal: Principal = Depends(get_current_principal)):
    collection = _collection_for(principal.role)
    doc = await accounts.find_account(collection, principal.id)
    if not doc or not verify_password(payload.current_password, doc.get("password_hash")):
        raise UnauthorizedError("Current password is incorrect")
    if payload.current_password == payload.new_password:
        raise ValidationError.for_field("new_password", "New password must differ from the current one")
    await accounts.set_password(collection, principal.id, hash_password(payload.new_password))
    await record_audit(principal.id, "password_changed", "account", principal.id)
    return success_response("Password changed successfully")
