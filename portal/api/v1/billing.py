# portal/api/v1/billing.py
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from portal.api.deps import pagination, require_admin, require_super_admin
from portal.core.errors import ConflictError
from portal.core.responses import success_response
from portal.models.billing import BillingCreate, BillingUpdate, PaymentIn
from portal.policy.access import Action, Principal, ResourceDescriptor, ensure_access
from portal.policy.scoping import PageRequest, build_filters, pagination_meta, parse_sort, scope_filter
from portal.repositories import billing, companies
from portal.repositories.audit import record_audit
from portal.repositories.base import _to_id
from portal.services.mailer import email_sender

router = APIRouter(prefix="/billing", tags=["billing"])


async def _load(billing_id: str, principal: Principal, action: Action):
    doc = await billing.get_billing(billing_id)
    # invoices are never public
    ensure_access(principal, ResourceDescriptor(tenant_id=doc.get("tenant_id")), action)
    return doc


@router.get("")
async def list_billing(
    search: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    plan_name: Optional[str] = Query(None),
    tenant_id: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    sort_by: Optional[str] = Query(None),
    sort_order: Optional[str] = Query(None),
    page: PageRequest = Depends(pagination),
    principal: Principal = Depends(require_admin),
):
    raw = build_filters(search, billing.SEARCH_FIELDS,
                        exact={"status": status, "plan_name": plan_name, "tenant_id": tenant_id},
                        date_range=(start_date, end_date))
    items, total = await billing.list_billing(
        scope_filter(principal, raw, public_readable=False), page,
        parse_sort(sort_by, sort_order, billing.SORT_FIELDS),
    )
    return success_response("Billing records retrieved successfully", [_to_id(b) for b in items],
                            pagination_meta(page, total))


@router.get("/statistics")
async def billing_statistics(principal: Principal = Depends(require_admin)):
    stats = await billing.statistics(scope_filter(principal, public_readable=False))
    return success_response("Billing statistics retrieved successfully", stats)


@router.get("/{billing_id}")
async def get_billing(billing_id: str, principal: Principal = Depends(require_admin)):
    return success_response("Billing record retrieved successfully",
                            _to_id(await _load(billing_id, principal, Action.READ)))


@router.post("", status_code=201)
async def create_billing(payload: BillingCreate, principal: Principal = Depends(require_super_admin)):
    await companies.get_company(payload.tenant_id)
    data = payload.model_dump(mode="python")
    data["items"] = [
        dict(i, total_price=i["total_price"] if i.get("total_price") is not None else i["quantity"] * i["unit_price"])
        for i in data["items"]
    ]
    doc = await billing.insert_billing(data, principal.id)
    await record_audit(principal.id, "billing_created", "billing", doc["_id"],
                       {"invoice_number": doc["invoice_number"], "amount": doc["amount"]})
    return success_response("Billing record created successfully", _to_id(doc))


@router.put("/{billing_id}")
async def update_billing(billing_id: str, payload: BillingUpdate, principal: Principal = Depends(require_super_admin)):
    changes = payload.model_dump(mode="python", exclude_unset=True)
    doc = await billing.update_open_billing(billing_id, changes)
    await record_audit(principal.id, "billing_updated", "billing", billing_id, {"fields": sorted(changes)})
    return success_response("Billing record updated successfully", _to_id(doc))


@router.post("/{billing_id}/pay")
async def pay_billing(billing_id: str, payload: PaymentIn, principal: Principal = Depends(require_admin)):
    await _load(billing_id, principal, Action.WRITE)
    doc = await billing.mark_paid(billing_id, payload.transaction_id, payload.payment_details)
    # only the request that actually flipped the status gets here
    await record_audit(principal.id, "billing_paid", "billing", billing_id,
                       {"transaction_id": payload.transaction_id, "amount": doc.get("amount")})
    return success_response("Payment recorded successfully", _to_id(doc))


@router.post("/{billing_id}/reminder")
async def send_reminder(billing_id: str, principal: Principal = Depends(require_super_admin)):
    doc = await billing.get_billing(billing_id)
    if doc.get("status") == "paid":
        raise ConflictError("Cannot send reminder for paid invoice")
    company = await companies.get_company(doc["tenant_id"])
    due = doc.get("due_date")
    sent = await email_sender.send(
        company["email"],
        f"Payment reminder: invoice {doc['invoice_number']}",
        "payment_reminder",
        {"company_name": company.get("company_name"), "invoice_number": doc["invoice_number"],
         "amount": doc.get("amount"), "currency": doc.get("currency"),
         "due_date": due.date().isoformat() if isinstance(due, datetime) else due},
    )
    await billing.flag_reminder(doc["_id"])
    await record_audit(principal.id, "billing_reminder_sent", "billing", billing_id, {"email_sent": sent})
    return success_response("Payment reminder processed", {"email_sent": sent})
