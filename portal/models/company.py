# portal/models/company.py
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field


class CompanyCreate(BaseModel):
    company_name: str = Field(..., min_length=2, max_length=120)
    email: EmailStr
    industry: Optional[str] = None
    size: Optional[Literal["1-10", "11-50", "51-200", "201-500", "500+"]] = None
    contact_name: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    plan_name: Literal["basic", "standard", "premium", "enterprise"] = "basic"


class CompanyUpdate(BaseModel):
    company_name: Optional[str] = Field(None, min_length=2, max_length=120)
    industry: Optional[str] = None
    size: Optional[Literal["1-10", "11-50", "51-200", "201-500", "500+"]] = None
    contact_name: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    # super_admin only
    plan_name: Optional[Literal["basic", "standard", "premium", "enterprise"]] = None
    status: Optional[Literal["active", "suspended", "inactive"]] = None


class CreditsIn(BaseModel):
    amount: int = Field(..., gt=0, le=100000)
    reason: Optional[str] = None
