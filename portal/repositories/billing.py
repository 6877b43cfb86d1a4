# portal/repositories/billing.py
import asyncio
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from portal.core.errors import ConflictError, NotFoundError
from portal.db.mongo import get_db
from portal.policy.scoping import PageRequest
from portal.repositories.base import _now, find_page, group_sum, to_object_id

BILLING_COLLECTION = "billing"

SEARCH_FIELDS = ("invoice_number", "plan_name", "notes")
SORT_FIELDS = ("created_at", "due_date", "amount", "status", "invoice_number", "paid_date")
UPDATABLE_FIELDS = ("amount", "currency", "plan_name", "due_date", "payment_method", "items", "notes", "status")
OPEN_STATUSES = ("pending", "overdue")

_INVOICE_ATTEMPTS = 5


def _collection():
    return get_db()[BILLING_COLLECTION]


def _month_bounds(now: datetime) -> Tuple[datetime, datetime]:
    start = datetime(now.year, now.month, 1)
    if now.month == 12:
        end = datetime(now.year + 1, 1, 1)
    else:
        end = datetime(now.year, now.month + 1, 1)
    return start, end


def format_invoice_number(now: datetime, sequence: int) -> str:
    return f"INV-{now.year}{now.month:02d}-{sequence:04d}"


async def list_billing(predicate: Mapping[str, Any], page: PageRequest,
                       sort: Sequence[Tuple[str, int]]) -> Tuple[List[Dict[str, Any]], int]:
    return await find_page(_collection(), predicate, page, sort)


async def get_billing(billing_id: Any) -> Dict[str, Any]:
    doc = await _collection().find_one({"_id": to_object_id(billing_id, "Billing record")})
    if not doc:
        raise NotFoundError("Billing record not found")
    return doc


async def insert_billing(data: Mapping[str, Any], created_by: str) -> Dict[str, Any]:
    coll = _collection()
    now = _now()
    start, end = _month_bounds(now)
    count = await coll.count_documents({"created_at": {"$gte": start, "$lt": end}})
    for offset in range(_INVOICE_ATTEMPTS):
        doc = dict(data)
        doc.update({
            "invoice_number": format_invoice_number(now, count + 1 + offset),
            "status": "pending",
            "paid_date": None,
            "transaction_id": None,
            "payment_details": {},
            "created_by": created_by,
            "created_at": now,
            "updated_at": now,
        })
        try:
            res = await coll.insert_one(doc)
        except DuplicateKeyError:
            # another invoice took this sequence number; try the next one
            continue
        doc["_id"] = res.inserted_id
        return doc
    raise ConflictError("Could not allocate an invoice number")


async def update_open_billing(billing_id: Any, changes: Mapping[str, Any]) -> Dict[str, Any]:
    """Update an invoice that is still pending or overdue; paid invoices are immutable."""
    oid = to_object_id(billing_id, "Billing record")
    fields = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS}
    fields["updated_at"] = _now()
    doc = await _collection().find_one_and_update(
        {"_id": oid, "status": {"$in": list(OPEN_STATUSES)}},
        {"$set": fields},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        await get_billing(oid)
        raise ConflictError("Cannot modify a paid invoice")
    return doc


async def mark_paid(billing_id: Any, transaction_id: str, payment_details: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    oid = to_object_id(billing_id, "Billing record")
    now = _now()
    doc = await _collection().find_one_and_update(
        {"_id": oid, "status": {"$in": list(OPEN_STATUSES)}},
        {"$set": {
            "status": "paid",
            "paid_date": now,
            "transaction_id": transaction_id,
            "payment_details": dict(payment_details or {}),
            "updated_at": now,
        }},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        await get_billing(oid)
        raise ConflictError("Invoice is already paid")
    return doc


async def statistics(predicate: Mapping[str, Any]) -> Dict[str, Any]:
    coll = _collection()
    base = dict(predicate)

    def _with_status(status: str) -> Dict[str, Any]:
        return {"$and": [base, {"status": status}]} if base else {"status": status}

    async def _totals(status: str) -> Dict[str, Any]:
        rows = await group_sum(coll, _with_status(status), None, "amount")
        row = rows[0] if rows else {}
        return {"total": row.get("total") or 0, "count": row.get("count") or 0}

    paid, pending, overdue, by_plan = await asyncio.gather(
        _totals("paid"),
        _totals("pending"),
        _totals("overdue"),
        group_sum(coll, _with_status("paid"), "plan_name", "amount"),
    )
    by_plan.sort(key=lambda r: r["total"] or 0, reverse=True)
    return {
        "total_revenue": paid,
        "pending": pending,
        "overdue": overdue,
        "revenue_by_plan": [
            {"plan_name": r["key"], "revenue": r["total"], "count": r["count"]} for r in by_plan
        ],
    }


async def flag_reminder(billing_id: Any) -> None:
    now = _now()
    await _collection().update_one(
        {"_id": to_object_id(billing_id, "Billing record")},
        {"$set": {"reminder_sent_at": now, "updated_at": now}, "$inc": {"reminder_count": 1}},
    )
