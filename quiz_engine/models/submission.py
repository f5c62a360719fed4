"""
quiz_engine/models/submission.py
Student attempts and their answers, plus the review state of essay answers
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    String, Text, DateTime, Boolean, ForeignKey, Enum, Integer, Float,
    UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quiz_engine.database.base import external_id
from quiz_engine.models.base_model import BaseModel
from quiz_engine.models.quiz import Quiz, Question, QuestionOption


class ReviewStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# =============================================================================
# SUBMISSION – one attempt of one student
# =============================================================================
class QuizSubmission(BaseModel):
    __tablename__ = "quiz_submissions"

    quiz_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("quizzes.id"), nullable=False, index=True
    )
    student_id: Mapped[external_id]
    attempt_number: Mapped[int] = mapped_column(Integer, nullable=False)

    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    time_spent: Mapped[Optional[int]] = mapped_column(Integer)  # seconds
    is_late: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Recomputed by the score aggregator, never edited by hand
    total_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    max_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    is_graded: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    graded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    graded_by: Mapped[Optional[str]] = mapped_column(String(64))

    # Optional holistic overlay set by the instructor
    grade: Mapped[Optional[float]] = mapped_column(Float)
    feedback: Mapped[Optional[str]] = mapped_column(Text)

    quiz: Mapped[Quiz] = relationship("Quiz", back_populates="submissions")
    answers: Mapped[List[QuizAnswer]] = relationship(
        "QuizAnswer", back_populates="submission", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("quiz_id", "student_id", "attempt_number", name="uq_student_attempt"),
    )

    @property
    def pending_review_count(self) -> int:
        return sum(1 for a in self.answers if a.review_status == ReviewStatus.PENDING)


# =============================================================================
# ANSWER – exactly one per (submission, question)
# =============================================================================
class QuizAnswer(BaseModel):
    __tablename__ = "quiz_answers"

    submission_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("quiz_submissions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    question_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("quiz_questions.id"), nullable=False, index=True
    )

    answer_text: Mapped[Optional[str]] = mapped_column(Text)
    selected_option_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("quiz_question_options.id")
    )

    is_correct: Mapped[Optional[bool]] = mapped_column(Boolean)
    points_earned: Mapped[Optional[float]] = mapped_column(Float)

    # Essay review state
    review_status: Mapped[Optional[ReviewStatus]] = mapped_column(
        Enum(
            ReviewStatus,
            name="review_status",
            values_callable=lambda e: [member.value for member in e],
        )
    )
    manual_score: Mapped[Optional[float]] = mapped_column(Float)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    reviewed_by: Mapped[Optional[str]] = mapped_column(String(64))

    submission: Mapped[QuizSubmission] = relationship("QuizSubmission", back_populates="answers")
    question: Mapped[Question] = relationship("Question", back_populates="answers")
    selected_option: Mapped[Optional[QuestionOption]] = relationship("QuestionOption")

    __table_args__ = (
        UniqueConstraint("submission_id", "question_id", name="uq_one_answer_per_question"),
    )
