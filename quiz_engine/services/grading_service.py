"""
quiz_engine/services/grading_service.py
Manual essay review and the completion gate

Both operations lock the submission row first, so a review and a
completion on the same submission serialize: completion always counts
pending reviews after any in-flight review has committed.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from sqlalchemy.orm import Session

from quiz_engine.models.quiz import QuestionType
from quiz_engine.models.submission import QuizSubmission, ReviewStatus
from quiz_engine.repositories.submission_repository import SubmissionRepository
from quiz_engine.schemas.submission import (
    ReviewAction, ReviewAnswerRequest, ReviewResultOut,
    AnswerOut, SubmissionSummaryOut, SubmissionDetailOut,
)
from quiz_engine.services.notification_service import Notification, NotificationSink, notify_safely
from quiz_engine.services.score_aggregator import ScoreAggregator
from quiz_engine.utils.exceptions import (
    NotFoundException, ConflictException, BadRequestException,
    ValidationException, PendingReviewsException
)
from quiz_engine.utils.timeutils import utcnow

logger = logging.getLogger(__name__)


class GradingService:
    def __init__(
        self,
        db: Session,
        notifier: NotificationSink,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.submission_repo = SubmissionRepository(db)
        self.aggregator = ScoreAggregator()
        self.notifier = notifier
        self.clock = clock
        self.db = db

    def _locked_owned_submission(self, submission_id: str, instructor_id: str) -> QuizSubmission:
        submission = self.submission_repo.get_for_update(submission_id)
        if submission is None or submission.quiz.instructor_id != instructor_id:
            raise NotFoundException("Submission not found", code="SUBMISSION_NOT_FOUND")
        return submission

    # ===================================================================
    # ESSAY REVIEW
    # ===================================================================

    def review_answer(
        self,
        submission_id: str,
        answer_id: str,
        review: ReviewAnswerRequest,
        instructor_id: str
    ) -> ReviewResultOut:
        submission = self._locked_owned_submission(submission_id, instructor_id)

        answer = self.submission_repo.get_answer(submission.id, answer_id)
        if answer is None:
            raise NotFoundException("Answer not found", code="ANSWER_NOT_FOUND")

        question = answer.question
        if question.question_type != QuestionType.ESSAY:
            raise BadRequestException("Only essay answers can be reviewed", code="ANSWER_NOT_REVIEWABLE")

        approve = review.action == ReviewAction.APPROVE
        if review.manual_score is not None:
            score = review.manual_score
        else:
            score = float(question.points) if approve else 0.0
        if score > question.points:
            raise ValidationException.single(
                "manualScore", f"Manual score cannot exceed the question's {question.points} points"
            )

        status = ReviewStatus.APPROVED if approve else ReviewStatus.REJECTED

        if answer.review_status != ReviewStatus.PENDING:
            if answer.review_status == status and answer.manual_score == score:
                # Identical repeat review
                return ReviewResultOut(
                    answer=AnswerOut.build(answer, question),
                    submission=SubmissionSummaryOut.build(submission),
                )
            raise ConflictException(
                f"Answer was already reviewed ({answer.review_status.value})",
                code="ANSWER_ALREADY_REVIEWED",
            )

        answer.review_status = status
        answer.is_correct = approve
        answer.manual_score = score
        answer.points_earned = score
        answer.reviewed_at = self.clock()
        answer.reviewed_by = instructor_id

        self.aggregator.recompute(submission)
        self.db.commit()

        logger.info(
            f"Answer {answer.id} of submission {submission.id} {status.value} "
            f"with {score}/{question.points} by {instructor_id}"
        )
        return ReviewResultOut(
            answer=AnswerOut.build(answer, question),
            submission=SubmissionSummaryOut.build(submission),
        )

    # ===================================================================
    # COMPLETION GATE
    # ===================================================================

    def complete_grading(self, submission_id: str, instructor_id: str) -> SubmissionDetailOut:
        submission = self._locked_owned_submission(submission_id, instructor_id)

        pending = self.submission_repo.pending_review_count(submission.id)
        if pending:
            raise PendingReviewsException(pending)

        self.aggregator.recompute(submission)
        submission.is_graded = True
        submission.graded_at = self.clock()
        submission.graded_by = instructor_id
        self.db.commit()

        logger.info(
            f"Grading completed for submission {submission.id}: "
            f"{submission.total_score}/{submission.max_score} by {instructor_id}"
        )

        quiz = submission.quiz
        notify_safely(self.notifier, Notification(
            recipient_id=submission.student_id,
            type="quiz_graded",
            title=f"{quiz.title} has been graded",
            body=f"You scored {submission.total_score:g} out of {submission.max_score:g}",
            data={
                "quizId": quiz.id,
                "submissionId": submission.id,
                "totalScore": submission.total_score,
                "maxScore": submission.max_score,
            },
        ))

        return SubmissionDetailOut.build(submission, reveal_correctness=True)
