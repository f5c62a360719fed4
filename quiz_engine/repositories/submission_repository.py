"""
quiz_engine/repositories/submission_repository.py
Repository for submissions and answers
Attempt numbering, row locking and the per-student lookups live here
"""

from __future__ import annotations

from typing import Optional, List, Dict, Iterable

from sqlalchemy.orm import Session, selectinload
from sqlalchemy import func

from quiz_engine.models.quiz import Question
from quiz_engine.models.submission import QuizSubmission, QuizAnswer, ReviewStatus


class SubmissionRepository:
    def __init__(self, db: Session):
        self.db = db

    # ===================================================================
    # ATTEMPTS
    # ===================================================================

    def count_attempts(self, quiz_id: str, student_id: str) -> int:
        return (
            self.db.query(func.count(QuizSubmission.id))
            .filter(QuizSubmission.quiz_id == quiz_id, QuizSubmission.student_id == student_id)
            .scalar()
        )

    def next_attempt_number(self, quiz_id: str, student_id: str) -> int:
        last_attempt = (
            self.db.query(func.max(QuizSubmission.attempt_number))
            .filter(QuizSubmission.quiz_id == quiz_id, QuizSubmission.student_id == student_id)
            .scalar()
        )
        return (last_attempt or 0) + 1

    def attempt_counts(self, student_id: str, quiz_ids: Iterable[str]) -> Dict[str, int]:
        ids = list(quiz_ids)
        if not ids:
            return {}
        rows = (
            self.db.query(QuizSubmission.quiz_id, func.count(QuizSubmission.id))
            .filter(QuizSubmission.student_id == student_id, QuizSubmission.quiz_id.in_(ids))
            .group_by(QuizSubmission.quiz_id)
            .all()
        )
        return {quiz_id: count for quiz_id, count in rows}

    def add(self, submission: QuizSubmission) -> QuizSubmission:
        self.db.add(submission)
        self.db.flush()
        return submission

    # ===================================================================
    # LOOKUPS
    # ===================================================================

    def get_by_id(self, submission_id: str) -> Optional[QuizSubmission]:
        return (
            self.db.query(QuizSubmission)
            .options(
                selectinload(QuizSubmission.answers)
                .selectinload(QuizAnswer.question)
                .selectinload(Question.options)
            )
            .filter(QuizSubmission.id == submission_id)
            .first()
        )

    def get_for_update(self, submission_id: str) -> Optional[QuizSubmission]:
        """Row-locked fetch; review and completion serialize on this lock"""
        # Eager loads stay out of the locking statement (FOR UPDATE cannot cover outer joins)
        return (
            self.db.query(QuizSubmission)
            .filter(QuizSubmission.id == submission_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def get_answer(self, submission_id: str, answer_id: str) -> Optional[QuizAnswer]:
        return (
            self.db.query(QuizAnswer)
            .filter(QuizAnswer.id == answer_id, QuizAnswer.submission_id == submission_id)
            .first()
        )

    def pending_review_count(self, submission_id: str) -> int:
        return (
            self.db.query(func.count(QuizAnswer.id))
            .filter(
                QuizAnswer.submission_id == submission_id,
                QuizAnswer.review_status == ReviewStatus.PENDING,
            )
            .scalar()
        )

    def list_for_student(self, quiz_id: str, student_id: str) -> List[QuizSubmission]:
        return (
            self.db.query(QuizSubmission)
            .options(selectinload(QuizSubmission.answers))
            .filter(QuizSubmission.quiz_id == quiz_id, QuizSubmission.student_id == student_id)
            .order_by(QuizSubmission.attempt_number)
            .all()
        )

    def list_for_quiz(self, quiz_id: str) -> List[QuizSubmission]:
        return (
            self.db.query(QuizSubmission)
            .options(selectinload(QuizSubmission.answers))
            .filter(QuizSubmission.quiz_id == quiz_id)
            .order_by(QuizSubmission.student_id, QuizSubmission.attempt_number)
            .all()
        )
