# portal/models/test.py
from datetime import datetime
from enum import Enum
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field


class TestType(str, Enum):
    TECHNICAL = "technical"
    APTITUDE = "aptitude"
    BEHAVIORAL = "behavioral"
    MIXED = "mixed"


class TestStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class ProctoringSettings(BaseModel):
    enabled: bool = False
    strict_mode: bool = False
    allow_copy_paste: bool = True
    detect_tab_switch: bool = False
    require_webcam: bool = False


class TestSettings(BaseModel):
    shuffle_questions: bool = False
    shuffle_options: bool = False
    show_results: bool = True
    allow_review: bool = True
    attempts_allowed: int = Field(1, ge=1, le=10)
    proctoring: ProctoringSettings = Field(default_factory=ProctoringSettings)


class TestCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    type: TestType
    difficulty: Literal["easy", "medium", "hard", "mixed"] = "medium"
    duration_minutes: int = Field(..., ge=5, le=300)
    passing_score: int = Field(70, ge=0, le=100)
    instructions: Optional[str] = Field(None, max_length=1000)
    tags: List[str] = Field(default_factory=list)
    category: Optional[str] = None
    settings: TestSettings = Field(default_factory=TestSettings)
    questions: List[str] = Field(default_factory=list)
    visibility: Literal["public", "private"] = "private"
    tenant_id: Optional[str] = None


class TestUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    type: Optional[TestType] = None
    difficulty: Optional[Literal["easy", "medium", "hard", "mixed"]] = None
    duration_minutes: Optional[int] = Field(None, ge=5, le=300)
    passing_score: Optional[int] = Field(None, ge=0, le=100)
    instructions: Optional[str] = Field(None, max_length=1000)
    tags: Optional[List[str]] = None
    category: Optional[str] = None
    settings: Optional[TestSettings] = None
    questions: Optional[List[str]] = None
    visibility: Optional[Literal["public", "private"]] = None


class StatusChange(BaseModel):
    status: TestStatus


class QuestionIds(BaseModel):
    question_ids: List[str] = Field(..., min_length=1)


class AnswerSubmit(BaseModel):
    attempt_id: str
    question_id: str
    answer: Any = None


class AttemptSubmit(BaseModel):
    attempt_id: str


class InvitationCreate(BaseModel):
    emails: List[EmailStr] = Field(..., min_length=1, max_length=200)
    message: Optional[str] = Field(None, max_length=2000)
    scheduled_at: Optional[datetime] = None
