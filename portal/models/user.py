# portal/models/user.py
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field


class UserCreate(BaseModel):
    email: EmailStr
    name: Optional[str] = Field(None, max_length=100)
    role: Literal["user", "admin", "super_admin"] = "user"
    # required for user and admin; super admins belong to no tenant
    tenant_id: Optional[str] = None
