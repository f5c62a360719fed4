"""
quiz_engine/schemas/quiz.py
Pydantic schemas for quiz definitions: quizzes, questions, options
Request payloads are validated here before any write happens
"""

from __future__ import annotations

from typing import Annotated, List, Optional, Literal, Sequence
from datetime import datetime

from pydantic import AfterValidator, BeforeValidator, Field, field_validator, model_validator, ValidationInfo

from quiz_engine.models.quiz import QuestionType
from quiz_engine.schemas.common import CamelModel
from quiz_engine.utils.timeutils import ensure_utc


def _normalize_question_type(value):
    if isinstance(value, str):
        value = value.strip().lower()
        # Older clients send "text" for free-text questions
        if value == "text":
            return QuestionType.ESSAY.value
    return value


QuestionTypeField = Annotated[QuestionType, BeforeValidator(_normalize_question_type)]

# Stored and compared as UTC; naive input is read as UTC
UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]


def option_structure_error(question_type: QuestionType, options: Sequence) -> Optional[str]:
    """Why an option set is invalid for the question type, or None"""
    correct_count = sum(1 for opt in options if opt.is_correct)

    if question_type == QuestionType.ESSAY:
        return "Essay questions cannot have options" if options else None
    if question_type == QuestionType.MULTIPLE_CHOICE and len(options) < 2:
        return "Multiple choice questions must have at least 2 options"
    if question_type == QuestionType.TRUE_FALSE and len(options) != 2:
        return "True/False questions must have exactly 2 options"
    if correct_count != 1:
        return "Exactly one option must be correct"
    return None


# =============================================================================
# OPTIONS
# =============================================================================

class OptionIn(CamelModel):
    option_text: str = Field(..., min_length=1, max_length=1000)
    is_correct: bool = False
    order_index: Optional[int] = Field(None, ge=1)


class OptionOut(CamelModel):
    id: str
    option_text: str
    is_correct: bool
    order_index: int


class OptionStudentOut(CamelModel):
    """Option as a student sees it: no correctness flag"""
    id: str
    option_text: str
    order_index: int


# =============================================================================
# QUESTIONS
# =============================================================================

class QuestionIn(CamelModel):
    id: Optional[str] = Field(None, description="Existing question id (update sync only)")
    question_text: str = Field(..., min_length=5, max_length=2000)
    question_type: QuestionTypeField
    points: int = Field(1, ge=1, le=100)
    order_index: Optional[int] = Field(None, ge=1)
    is_required: bool = True
    options: List[OptionIn] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_options(self) -> "QuestionIn":
        error = option_structure_error(self.question_type, self.options)
        if error:
            raise ValueError(error)
        return self


class QuestionPatch(CamelModel):
    question_text: Optional[str] = Field(None, min_length=5, max_length=2000)
    question_type: Optional[QuestionTypeField] = None
    points: Optional[int] = Field(None, ge=1, le=100)
    order_index: Optional[int] = Field(None, ge=1)
    is_required: Optional[bool] = None
    options: Optional[List[OptionIn]] = None


class QuestionOut(CamelModel):
    id: str
    quiz_id: str
    question_text: str
    question_type: QuestionType
    points: int
    order_index: int
    is_required: bool
    options: List[OptionOut] = []


class QuestionStudentOut(CamelModel):
    id: str
    question_text: str
    question_type: QuestionType
    points: int
    order_index: int
    is_required: bool
    options: List[OptionStudentOut] = []


# =============================================================================
# QUIZ REQUESTS
# =============================================================================

class QuizCreate(CamelModel):
    title: str = Field(..., min_length=2, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    course_id: str = Field(..., min_length=1, max_length=64)
    start_date: UtcDatetime
    due_date: UtcDatetime
    late_due_date: Optional[UtcDatetime] = None
    allow_late_submission: bool = False
    max_attempts: int = Field(1, ge=1, le=10)
    time_limit: Optional[int] = Field(None, ge=1, le=300, description="Minutes")
    shuffle_questions: bool = False
    shuffle_options: bool = False
    show_correct_answers: bool = False
    group_ids: List[str] = Field(default_factory=list)
    questions: List[QuestionIn] = Field(default_factory=list)

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Quiz title must be at least 2 characters")
        return v

    @field_validator("due_date")
    @classmethod
    def due_after_start(cls, v: datetime, info: ValidationInfo) -> datetime:
        start = info.data.get("start_date")
        if start is not None and v < start:
            raise ValueError("Due date must be after start date")
        return v

    @field_validator("late_due_date")
    @classmethod
    def late_after_due(cls, v: Optional[datetime], info: ValidationInfo) -> Optional[datetime]:
        due = info.data.get("due_date")
        if v is not None and due is not None and v < due:
            raise ValueError("Late due date must be after due date")
        return v


class QuizUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=2, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    start_date: Optional[UtcDatetime] = None
    due_date: Optional[UtcDatetime] = None
    late_due_date: Optional[UtcDatetime] = None
    allow_late_submission: Optional[bool] = None
    max_attempts: Optional[int] = Field(None, ge=1, le=10)
    time_limit: Optional[int] = Field(None, ge=1, le=300)
    shuffle_questions: Optional[bool] = None
    shuffle_options: Optional[bool] = None
    show_correct_answers: Optional[bool] = None
    is_active: Optional[bool] = None
    group_ids: Optional[List[str]] = None
    questions: Optional[List[QuestionIn]] = None


class QuizListFilters(CamelModel):
    search: str = ""
    course_id: Optional[str] = None
    status: Literal["all", "active", "inactive", "upcoming", "past"] = "all"
    sort_by: Literal["created_at", "title", "start_date", "due_date"] = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"


# =============================================================================
# QUIZ RESPONSES
# =============================================================================

class QuizOut(CamelModel):
    id: str
    title: str
    description: Optional[str] = None
    course_id: str
    instructor_id: str
    start_date: datetime
    due_date: datetime
    late_due_date: Optional[datetime] = None
    allow_late_submission: bool
    max_attempts: int
    time_limit: Optional[int] = None
    shuffle_questions: bool
    shuffle_options: bool
    show_correct_answers: bool
    is_active: bool
    created_at: datetime
    updated_at: datetime
    group_ids: List[str] = []
    question_count: int = 0
    max_score: int = 0


class QuizSummaryOut(QuizOut):
    # Student listings only
    attempts_used: Optional[int] = None
    can_attempt: Optional[bool] = None


class QuizDetailOut(QuizOut):
    questions: List[QuestionOut] = []


class QuizStudentView(QuizOut):
    """Quiz as an enrolled student sees it before/between attempts"""
    questions: List[QuestionStudentOut] = []
    attempts_used: int = 0
    can_attempt: bool = True
    eligibility: str = "on_time"
