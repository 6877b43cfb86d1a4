# portal/api/v1/companies.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from portal.api.deps import pagination, require_admin, require_super_admin
from portal.core.errors import ForbiddenError
from portal.core.responses import success_response
from portal.core.security import hash_password
from portal.models.company import CompanyCreate, CompanyUpdate, CreditsIn
from portal.policy.access import Action, Principal, ResourceDescriptor, ensure_access
from portal.policy.scoping import PageRequest, build_filters, pagination_meta, parse_sort
from portal.repositories import companies
from portal.repositories.audit import record_audit
from portal.repositories.base import _to_id
from portal.services.credentials import generate_temporary_password
from portal.services.invitations import login_url
from portal.services.mailer import email_sender

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/companies", tags=["companies"])

# only a super admin may change these
RESTRICTED_FIELDS = ("plan_name", "status")


def _company_resource(company_id: str) -> ResourceDescriptor:
    # a company is its own tenant
    return ResourceDescriptor(owner_id=company_id, tenant_id=company_id)


async def _send_credentials(company, password: str) -> bool:
    return await email_sender.send(
        company["email"],
        "Your assessment portal account",
        "credentials",
        {"name": company.get("contact_name") or company.get("company_name"), "email": company["email"],
         "password": password, "login_url": login_url()},
    )


@router.get("")
async def list_companies(
    search: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    industry: Optional[str] = Query(None),
    plan_name: Optional[str] = Query(None),
    sort_by: Optional[str] = Query(None),
    sort_order: Optional[str] = Query(None),
    page: PageRequest = Depends(pagination),
    principal: Principal = Depends(require_super_admin),
):
    predicate = build_filters(search, companies.SEARCH_FIELDS,
                              exact={"status": status, "industry": industry, "plan_name": plan_name})
    items, total = await companies.list_companies(predicate, page, parse_sort(sort_by, sort_order, companies.SORT_FIELDS))
    return success_response("Companies retrieved successfully", [_to_id(c) for c in items],
                            pagination_meta(page, total))


@router.get("/statistics")
async def company_statistics(principal: Principal = Depends(require_super_admin)):
    return success_response("Company statistics retrieved successfully", await companies.statistics())


@router.get("/{company_id}")
async def get_company(company_id: str, principal: Principal = Depends(require_admin)):
    ensure_access(principal, _company_resource(company_id), Action.READ)
    return success_response("Company retrieved successfully", _to_id(await companies.get_company(company_id)))


@router.post("", status_code=201)
async def create_company(payload: CompanyCreate, principal: Principal = Depends(require_super_admin)):
    password = generate_temporary_password()
    company = await companies.insert_company(payload.model_dump(), hash_password(password), principal.id)
    sent = await _send_credentials(company, password)
    await record_audit(principal.id, "company_created", "company", company["_id"], {"email_sent": sent})
    logger.info("Company %s created by %s", company["_id"], principal.id)
    # the temporary password is shown once and never stored in clear
    return success_response(
        "Company created successfully",
        {"company": _to_id(company), "temporary_password": password, "email_sent": sent},
    )


@router.put("/{company_id}")
async def update_company(company_id: str, payload: CompanyUpdate, principal: Principal = Depends(require_admin)):
    ensure_access(principal, _company_resource(company_id), Action.WRITE)
    changes = payload.model_dump(exclude_unset=True)
    if not principal.is_super_admin and any(f in changes for f in RESTRICTED_FIELDS):
        raise ForbiddenError("Only a super admin can change plan or status")
    company = await companies.update_company(company_id, changes)
    await record_audit(principal.id, "company_updated", "company", company_id, {"fields": sorted(changes)})
    return success_response("Company updated successfully", _to_id(company))


@router.delete("/{company_id}")
async def delete_company(company_id: str, principal: Principal = Depends(require_super_admin)):
    company = await companies.update_company(company_id, {"status": "inactive"})
    await record_audit(principal.id, "company_deactivated", "company", company_id)
    return success_response("Company deactivated successfully", _to_id(company))


@router.post("/{company_id}/resend-credentials")
async def resend_credentials(company_id: str, principal: Principal = Depends(require_super_admin)):
    company = await companies.get_company(company_id)
    password = generate_temporary_password()
    await companies.set_password(company_id, hash_password(password), must_change=True)
    sent = await _send_credentials(company, password)
    await record_audit(principal.id, "company_credentials_reset", "company", company_id, {"email_sent": sent})
    return success_response("Credentials reset successfully", {"temporary_password": password, "email_sent": sent})


@router.post("/{company_id}/credits")
async def add_credits(company_id: str, payload: CreditsIn, principal: Principal = Depends(require_super_admin)):
    company = await companies.add_credits(company_id, payload.amount)
    await record_audit(principal.id, "company_credits_added", "company", company_id,
                       {"amount": payload.amount, "reason": payload.reason})
    return success_response("Credits added successfully", _to_id(company))
