# portal/models/question.py
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    SHORT_ANSWER = "short_answer"
    ESSAY = "essay"
    CODING = "coding"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


Visibility = Literal["public", "private"]


class QuestionOption(BaseModel):
    text: str = Field(..., min_length=1)
    is_correct: bool = False


class TestCase(BaseModel):
    input: Any = None
    expected_output: Any = None
    is_hidden: bool = False
    description: Optional[str] = None


def _normalize_tags(tags: Optional[List[str]]) -> Optional[List[str]]:
    if tags is None:
        return None
    return [t.strip().lower() for t in tags if t and t.strip()]


def _check_answer_shape(qtype: Optional[QuestionType], options: Optional[List[QuestionOption]], correct_answer: Any):
    if qtype == QuestionType.MULTIPLE_CHOICE:
        if not options or len(options) < 2:
            raise ValueError("Multiple choice questions must have at least 2 options")
        if len(options) > 6:
            raise ValueError("Multiple choice questions cannot have more than 6 options")
        if not any(o.is_correct for o in options) and correct_answer in (None, ""):
            raise ValueError("Multiple choice questions must have at least one correct answer")
    if qtype == QuestionType.TRUE_FALSE:
        if not isinstance(correct_answer, str) or correct_answer not in ("true", "false"):
            raise ValueError('True/false questions must have correct_answer set to "true" or "false"')


class QuestionCreate(BaseModel):
    question: str = Field(..., min_length=1, max_length=2000)
    type: QuestionType
    domain: str = Field(..., min_length=1, max_length=100)
    sub_domain: Optional[str] = Field(None, max_length=100)
    difficulty: Difficulty
    points: int = Field(1, ge=1, le=100)
    options: List[QuestionOption] = Field(default_factory=list)
    correct_answer: Any = None
    explanation: Optional[str] = Field(None, max_length=1000)
    code_template: Optional[str] = None
    test_cases: List[TestCase] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    # honoured for super_admin only
    visibility: Visibility = "private"
    tenant_id: Optional[str] = None

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, v):
        return _normalize_tags(v)

    @model_validator(mode="after")
    def check_answer_shape(self):
        _check_answer_shape(self.type, self.options, self.correct_answer)
        return self


class QuestionUpdate(BaseModel):
    question: Optional[str] = Field(None, min_length=1, max_length=2000)
    type: Optional[QuestionType] = None
    domain: Optional[str] = Field(None, min_length=1, max_length=100)
    sub_domain: Optional[str] = Field(None, max_length=100)
    difficulty: Optional[Difficulty] = None
    points: Optional[int] = Field(None, ge=1, le=100)
    options: Optional[List[QuestionOption]] = None
    correct_answer: Any = None
    explanation: Optional[str] = Field(None, max_length=1000)
    code_template: Optional[str] = None
    test_cases: Optional[List[TestCase]] = None
    tags: Optional[List[str]] = None
    visibility: Optional[Visibility] = None

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, v):
        return _normalize_tags(v)


class BulkImportRequest(BaseModel):
    # items are validated one by one so a bad row doesn't sink the batch
    questions: List[Dict[str, Any]] = Field(..., min_length=1, max_length=500)
