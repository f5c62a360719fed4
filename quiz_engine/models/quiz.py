"""
quiz_engine/models/quiz.py
Quiz definition tables – quiz, group assignment, questions, options
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import (
    String, Text, DateTime, Boolean, ForeignKey, Enum, Integer,
    UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quiz_engine.database.base import external_id
from quiz_engine.models.base_model import BaseModel

if TYPE_CHECKING:
    from quiz_engine.models.submission import QuizSubmission, QuizAnswer


class QuestionType(str, enum.Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    ESSAY = "essay"


# =============================================================================
# QUIZ
# =============================================================================
class Quiz(BaseModel):
    __tablename__ = "quizzes"

    course_id: Mapped[external_id]
    instructor_id: Mapped[external_id]
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)

    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    due_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    late_due_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    allow_late_submission: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    max_attempts: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    time_limit: Mapped[Optional[int]] = mapped_column(Integer)  # minutes
    shuffle_questions: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    shuffle_options: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    show_correct_answers: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)

    # Relationships
    questions: Mapped[List[Question]] = relationship(
        "Question",
        back_populates="quiz",
        cascade="all, delete-orphan",
        order_by="Question.order_index",
    )
    groups: Mapped[List[QuizGroup]] = relationship(
        "QuizGroup", back_populates="quiz", cascade="all, delete-orphan"
    )
    submissions: Mapped[List[QuizSubmission]] = relationship(
        "QuizSubmission", back_populates="quiz"
    )

    __table_args__ = (
        CheckConstraint("max_attempts BETWEEN 1 AND 10", name="max_attempts_range"),
        CheckConstraint("start_date <= due_date", name="start_before_due"),
    )

    @property
    def group_ids(self) -> List[str]:
        return [g.group_id for g in self.groups]

    @property
    def question_count(self) -> int:
        return len(self.questions)

    @property
    def max_score(self) -> int:
        return sum(q.points for q in self.questions)


# =============================================================================
# QUIZ → STUDENT GROUP ASSIGNMENT
# =============================================================================
class QuizGroup(BaseModel):
    __tablename__ = "quiz_groups"

    quiz_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    group_id: Mapped[external_id]

    quiz: Mapped[Quiz] = relationship("Quiz", back_populates="groups")

    __table_args__ = (
        UniqueConstraint("quiz_id", "group_id", name="uq_quiz_group"),
    )


# =============================================================================
# QUESTION
# =============================================================================
class Question(BaseModel):
    __tablename__ = "quiz_questions"

    quiz_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    question_text: Mapped[str] = mapped_column(Text, nullable=False)
    question_type: Mapped[QuestionType] = mapped_column(
        Enum(
            QuestionType,
            name="question_type",
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=False
    )
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False)
    is_required: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    quiz: Mapped[Quiz] = relationship("Quiz", back_populates="questions")
    options: Mapped[List[QuestionOption]] = relationship(
        "QuestionOption",
        back_populates="question",
        cascade="all, delete-orphan",
        order_by="QuestionOption.order_index",
    )
    answers: Mapped[List[QuizAnswer]] = relationship("QuizAnswer", back_populates="question")

    __table_args__ = (
        CheckConstraint("points >= 1", name="positive_points"),
    )

    @property
    def correct_option(self) -> Optional[QuestionOption]:
        return next((opt for opt in self.options if opt.is_correct), None)


# =============================================================================
# MULTIPLE CHOICE / TRUE-FALSE OPTIONS
# =============================================================================
class QuestionOption(BaseModel):
    __tablename__ = "quiz_question_options"

    question_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("quiz_questions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    option_text: Mapped[str] = mapped_column(Text, nullable=False)
    is_correct: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False)

    question: Mapped[Question] = relationship("Question", back_populates="options")
