"""
quiz_engine/schemas/submission.py
Pydantic schemas for submissions, answers, essay review and grading
Also the single place where ORM rows are mapped into response views
"""

from __future__ import annotations

import enum
from typing import List, Optional, Literal

from pydantic import Field

from quiz_engine.models.quiz import Question, QuestionType
from quiz_engine.models.submission import QuizAnswer, QuizSubmission, ReviewStatus
from quiz_engine.schemas.common import CamelModel
from quiz_engine.schemas.quiz import UtcDatetime
from quiz_engine.services.auto_grader import grade_answer, derived_points


# =============================================================================
# STUDENT SUBMISSION REQUEST
# =============================================================================

class AnswerSubmit(CamelModel):
    question_id: str
    answer_text: Optional[str] = Field(None, max_length=5000)
    selected_option_id: Optional[str] = None

    @property
    def is_blank(self) -> bool:
        return not (self.answer_text or "").strip() and not self.selected_option_id


class QuizSubmitRequest(CamelModel):
    answers: List[AnswerSubmit] = Field(default_factory=list)
    started_at: Optional[UtcDatetime] = None


# =============================================================================
# GRADING REQUESTS
# =============================================================================

class ReviewAction(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"


class ReviewAnswerRequest(CamelModel):
    action: ReviewAction
    manual_score: Optional[float] = Field(None, ge=0)


class GradeSubmissionRequest(CamelModel):
    grade: float = Field(..., ge=0, le=100)
    feedback: Optional[str] = Field(None, max_length=2000)


class SubmissionListFilters(CamelModel):
    status: Literal["all", "submitted", "not_submitted", "late"] = "all"


# =============================================================================
# RESPONSES
# =============================================================================

class AnswerOut(CamelModel):
    id: str
    question_id: str
    question_text: str
    question_type: QuestionType
    points: int
    answer_text: Optional[str] = None
    selected_option_id: Optional[str] = None
    correct_option_id: Optional[str] = None
    is_correct: Optional[bool] = None
    points_earned: Optional[float] = None
    review_status: Optional[ReviewStatus] = None
    manual_score: Optional[float] = None
    reviewed_at: Optional[UtcDatetime] = None

    @classmethod
    def build(cls, answer: QuizAnswer, question: Question, reveal_correctness: bool = True) -> "AnswerOut":
        # Objective results are re-derived from the option set on every read
        if question.question_type == QuestionType.ESSAY:
            is_correct = answer.is_correct
            correct_option_id = None
        else:
            is_correct = grade_answer(question, answer.selected_option_id).is_correct
            correct = question.correct_option
            correct_option_id = correct.id if correct else None

        return cls(
            id=answer.id,
            question_id=question.id,
            question_text=question.question_text,
            question_type=question.question_type,
            points=question.points,
            answer_text=answer.answer_text,
            selected_option_id=answer.selected_option_id,
            correct_option_id=correct_option_id if reveal_correctness else None,
            is_correct=is_correct if reveal_correctness else None,
            points_earned=derived_points(answer, question),
            review_status=answer.review_status,
            manual_score=answer.manual_score,
            reviewed_at=answer.reviewed_at,
        )


class SubmissionSummaryOut(CamelModel):
    id: str
    quiz_id: str
    student_id: str
    attempt_number: int
    started_at: Optional[UtcDatetime] = None
    submitted_at: UtcDatetime
    time_spent: Optional[int] = None
    is_late: bool
    status: str
    total_score: float
    max_score: float
    is_graded: bool
    pending_review_count: int = 0
    grade: Optional[float] = None
    feedback: Optional[str] = None
    graded_at: Optional[UtcDatetime] = None
    graded_by: Optional[str] = None

    @classmethod
    def build(cls, submission: QuizSubmission) -> "SubmissionSummaryOut":
        return cls(
            id=submission.id,
            quiz_id=submission.quiz_id,
            student_id=submission.student_id,
            attempt_number=submission.attempt_number,
            started_at=submission.started_at,
            submitted_at=submission.submitted_at,
            time_spent=submission.time_spent,
            is_late=submission.is_late,
            status="late" if submission.is_late else "on_time",
            total_score=submission.total_score,
            max_score=submission.max_score,
            is_graded=submission.is_graded,
            pending_review_count=submission.pending_review_count,
            grade=submission.grade,
            feedback=submission.feedback,
            graded_at=submission.graded_at,
            graded_by=submission.graded_by,
        )


class SubmissionDetailOut(SubmissionSummaryOut):
    answers: List[AnswerOut] = []

    @classmethod
    def build(cls, submission: QuizSubmission, reveal_correctness: bool = True) -> "SubmissionDetailOut":
        summary = SubmissionSummaryOut.build(submission)
        ordered = sorted(submission.answers, key=lambda a: a.question.order_index)
        return cls(
            **summary.model_dump(),
            answers=[AnswerOut.build(a, a.question, reveal_correctness) for a in ordered],
        )


class ReviewResultOut(CamelModel):
    answer: AnswerOut
    submission: SubmissionSummaryOut


class StudentSubmissionRow(CamelModel):
    """One row of the instructor's per-student tracking table"""
    student_id: str
    total_submissions: int = 0
    best_score: Optional[float] = None
    pending_review_count: int = 0
    latest_submission: Optional[SubmissionSummaryOut] = None
    status: Literal["not_submitted", "submitted", "late"] = "not_submitted"
