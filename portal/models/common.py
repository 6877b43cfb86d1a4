# portal/models/common.py
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field


class LoginIn(BaseModel):
    email: EmailStr
    password: str


class ChangePasswordIn(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=8, max_length=128)


class InviteRedeemIn(BaseModel):
    token: str = Field(..., min_length=16, max_length=256)


class GenerateQuestionsIn(BaseModel):
    prompt: str = Field("Generate technical questions", max_length=4000)
    count: int = Field(5, ge=1, le=50)
    difficulty: Literal["easy", "medium", "hard"] = "medium"
    type: Literal["multiple_choice", "true_false", "short_answer", "essay", "coding"] = "multiple_choice"
    subject: str = Field("General", max_length=200)


class SettingIn(BaseModel):
    key: str = Field(..., min_length=1, max_length=100, pattern=r"^[a-zA-Z0-9_.\-]+$")
    value: Any = None
    category: str = Field("general", max_length=50)
    description: Optional[str] = Field(None, max_length=500)


class SettingValue(BaseModel):
    key: str
    value: Any = None


class BulkSettingsIn(BaseModel):
    settings: List[SettingValue] = Field(..., min_length=1, max_length=200)
