"""
quiz_engine/services/auto_grader.py
Deterministic grading of objective questions

grade_answer() is pure: it reads the question's option set and never
touches the session. Essay questions are never auto-graded; they come back
flagged for manual review.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from quiz_engine.models.quiz import Question, QuestionType
from quiz_engine.models.submission import QuizAnswer, ReviewStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GradeResult:
    is_correct: Optional[bool]
    points_earned: Optional[float]
    needs_manual_review: bool = False


def grade_answer(question: Question, selected_option_id: Optional[str]) -> GradeResult:
    if question.question_type == QuestionType.ESSAY:
        return GradeResult(is_correct=None, points_earned=None, needs_manual_review=True)

    correct = question.correct_option
    if correct is None:
        logger.warning(f"Question {question.id} has no correct option; grading as incorrect")
        return GradeResult(is_correct=False, points_earned=0.0)

    is_correct = selected_option_id is not None and selected_option_id == correct.id
    return GradeResult(
        is_correct=is_correct,
        points_earned=float(question.points) if is_correct else 0.0,
    )


def apply_auto_grade(answer: QuizAnswer, question: Question) -> GradeResult:
    """Write the auto-grade result onto a freshly recorded answer"""
    result = grade_answer(question, answer.selected_option_id)

    if not result.needs_manual_review:
        answer.is_correct = result.is_correct
        answer.points_earned = result.points_earned
        return result

    if (answer.answer_text or "").strip():
        answer.review_status = ReviewStatus.PENDING
        answer.is_correct = None
        answer.points_earned = None
    else:
        # Blank optional essay: nothing to review
        answer.review_status = ReviewStatus.REJECTED
        answer.is_correct = False
        answer.manual_score = 0.0
        answer.points_earned = 0.0
    return result


def derived_points(answer: QuizAnswer, question: Question) -> Optional[float]:
    """Points for an answer as they should read now, re-derived for objective questions"""
    if question.question_type == QuestionType.ESSAY:
        if answer.review_status == ReviewStatus.PENDING or answer.manual_score is None:
            return None
        # Points may have been lowered after the review
        return min(answer.manual_score, float(question.points))
    return grade_answer(question, answer.selected_option_id).points_earned
