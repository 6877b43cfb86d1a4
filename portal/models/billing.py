# portal/models/billing.py
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

Currency = Literal["USD", "EUR", "GBP", "INR"]
PlanName = Literal["basic", "standard", "premium", "enterprise"]
PaymentMethod = Literal["credit_card", "bank_transfer", "paypal", "invoice"]


class BillingItem(BaseModel):
    description: str
    quantity: int = Field(1, ge=1)
    unit_price: float = Field(..., ge=0)
    total_price: Optional[float] = Field(None, ge=0)


class BillingCreate(BaseModel):
    tenant_id: str
    amount: float = Field(..., ge=0)
    currency: Currency = "USD"
    plan_name: PlanName
    due_date: datetime
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    payment_method: PaymentMethod = "credit_card"
    items: List[BillingItem] = Field(default_factory=list)
    notes: Optional[str] = Field(None, max_length=1000)


class BillingUpdate(BaseModel):
    amount: Optional[float] = Field(None, ge=0)
    currency: Optional[Currency] = None
    plan_name: Optional[PlanName] = None
    due_date: Optional[datetime] = None
    payment_method: Optional[PaymentMethod] = None
    items: Optional[List[BillingItem]] = None
    notes: Optional[str] = Field(None, max_length=1000)
    # paid is only reachable through the pay endpoint
    status: Optional[Literal["pending", "overdue"]] = None


class PaymentIn(BaseModel):
    transaction_id: str = Field(..., min_length=1)
    payment_details: Dict[str, Any] = Field(default_factory=dict)
