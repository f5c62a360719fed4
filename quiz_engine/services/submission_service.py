"""
quiz_engine/services/submission_service.py
Student submissions and the submission read paths

submit_quiz() records one attempt atomically: eligibility, attempt number,
answers, auto-grade and score all land in a single commit. A concurrent
duplicate attempt number is caught by the unique constraint and the whole
unit is retried with a fresh count.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Dict, List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from quiz_engine.core.config import settings
from quiz_engine.core.security import ROLE_INSTRUCTOR
from quiz_engine.models.quiz import Quiz, Question, QuestionType
from quiz_engine.models.submission import QuizSubmission, QuizAnswer
from quiz_engine.repositories.submission_repository import SubmissionRepository
from quiz_engine.schemas.common import PaginatedResponse, PaginationMeta, PaginationParams
from quiz_engine.schemas.submission import (
    AnswerSubmit, QuizSubmitRequest, GradeSubmissionRequest, SubmissionListFilters,
    SubmissionSummaryOut, SubmissionDetailOut, StudentSubmissionRow,
)
from quiz_engine.services.auto_grader import apply_auto_grade
from quiz_engine.services.eligibility_gate import evaluate_quiz_eligibility
from quiz_engine.services.membership_service import MembershipResolver
from quiz_engine.services.notification_service import Notification, NotificationSink, notify_safely
from quiz_engine.services.quiz_service import QuizService
from quiz_engine.services.score_aggregator import ScoreAggregator
from quiz_engine.utils.exceptions import (
    NotFoundException, ValidationException, InternalServerErrorException
)
from quiz_engine.utils.timeutils import utcnow, ensure_utc

logger = logging.getLogger(__name__)


class SubmissionService:
    def __init__(
        self,
        db: Session,
        membership: MembershipResolver,
        notifier: NotificationSink,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.submission_repo = SubmissionRepository(db)
        self.quiz_service = QuizService(db, membership, clock)
        self.membership = membership
        self.notifier = notifier
        self.aggregator = ScoreAggregator()
        self.clock = clock
        self.db = db

    # ===================================================================
    # STUDENT: SUBMIT
    # ===================================================================

    def submit_quiz(self, quiz_id: str, payload: QuizSubmitRequest, student_id: str) -> SubmissionDetailOut:
        quiz = self.quiz_service.get_visible_quiz_or_404(quiz_id, student_id)
        quiz_id = quiz.id
        self._validate_answers(quiz, payload.answers)

        max_retries = max(1, settings.SUBMISSION_MAX_RETRIES)
        submission = None
        for attempt in range(1, max_retries + 1):
            # The session is rolled back between tries; reload what we use
            quiz = self.quiz_service.get_visible_quiz_or_404(quiz_id, student_id)
            now = self.clock()

            attempt_count = self.submission_repo.count_attempts(quiz.id, student_id)
            decision = evaluate_quiz_eligibility(quiz, now, attempt_count)
            decision.raise_if_rejected()

            submission = self._build_submission(
                quiz, student_id, payload, now,
                attempt_number=self.submission_repo.next_attempt_number(quiz.id, student_id),
                is_late=decision.is_late,
            )
            try:
                self.submission_repo.add(submission)
                self.db.commit()
                break
            except IntegrityError as e:
                self.db.rollback()
                logger.warning(
                    f"Attempt number conflict for quiz {quiz_id}, student {student_id} "
                    f"(try {attempt}/{max_retries}): {e.orig!r}"
                )
        else:
            raise InternalServerErrorException(
                "Could not record the submission because of concurrent attempts; please retry",
                code="SUBMISSION_CONFLICT",
            )

        logger.info(
            f"Submission {submission.id} recorded: quiz {quiz.id}, student {student_id}, "
            f"attempt {submission.attempt_number}, late={submission.is_late}, "
            f"score {submission.total_score}/{submission.max_score}"
        )

        notify_safely(self.notifier, Notification(
            recipient_id=quiz.instructor_id,
            type="quiz_submitted",
            title=f"New submission for {quiz.title}",
            body=f"Student {student_id} submitted attempt {submission.attempt_number}",
            data={
                "quizId": quiz.id,
                "submissionId": submission.id,
                "studentId": student_id,
                "attemptNumber": submission.attempt_number,
                "isLate": submission.is_late,
            },
        ))

        return SubmissionDetailOut.build(submission, reveal_correctness=quiz.show_correct_answers)

    def _validate_answers(self, quiz: Quiz, answers: List[AnswerSubmit]) -> None:
        questions: Dict[str, Question] = {q.id: q for q in quiz.questions}
        errors = []
        seen = {}

        for position, answer in enumerate(answers):
            field = f"answers -> {position}"
            question = questions.get(answer.question_id)
            if question is None:
                errors.append({"field": f"{field} -> questionId",
                               "message": "Question does not belong to this quiz", "type": "unknown_question"})
                continue
            if answer.question_id in seen:
                errors.append({"field": f"{field} -> questionId",
                               "message": "Question answered more than once", "type": "duplicate_answer"})
                continue
            seen[answer.question_id] = answer

            if answer.selected_option_id is not None:
                if question.question_type == QuestionType.ESSAY:
                    errors.append({"field": f"{field} -> selectedOptionId",
                                   "message": "Essay questions take a text answer", "type": "value_error"})
                elif answer.selected_option_id not in {opt.id for opt in question.options}:
                    errors.append({"field": f"{field} -> selectedOptionId",
                                   "message": "Option does not belong to this question", "type": "unknown_option"})

        for question in quiz.questions:
            if not question.is_required:
                continue
            answer = seen.get(question.id)
            if answer is None or answer.is_blank:
                errors.append({"field": f"questions -> {question.id}",
                               "message": "This question is required", "type": "missing"})

        if errors:
            raise ValidationException(errors)

    def _build_submission(
        self,
        quiz: Quiz,
        student_id: str,
        payload: QuizSubmitRequest,
        now: datetime,
        attempt_number: int,
        is_late: bool,
    ) -> QuizSubmission:
        started_at = ensure_utc(payload.started_at)
        time_spent = None
        if started_at is not None:
            time_spent = max(0, int((ensure_utc(now) - started_at).total_seconds()))

        submission = QuizSubmission(
            quiz=quiz,
            quiz_id=quiz.id,
            student_id=student_id,
            attempt_number=attempt_number,
            started_at=started_at,
            submitted_at=now,
            time_spent=time_spent,
            is_late=is_late,
        )

        questions = {q.id: q for q in quiz.questions}
        for item in payload.answers:
            question = questions[item.question_id]
            answer = QuizAnswer(
                question=question,
                question_id=question.id,
                answer_text=item.answer_text,
                selected_option_id=item.selected_option_id,
            )
            apply_auto_grade(answer, question)
            submission.answers.append(answer)

        self.aggregator.recompute(submission)
        if submission.pending_review_count == 0:
            submission.is_graded = True
            submission.graded_at = now
        return submission

    # ===================================================================
    # READ
    # ===================================================================

    def list_my_submissions(self, quiz_id: str, student_id: str) -> List[SubmissionSummaryOut]:
        quiz = self.quiz_service.get_visible_quiz_or_404(quiz_id, student_id)
        submissions = self.submission_repo.list_for_student(quiz.id, student_id)
        return [SubmissionSummaryOut.build(s) for s in submissions]

    def get_submission(self, submission_id: str, user: dict) -> SubmissionDetailOut:
        submission = self.submission_repo.get_by_id(submission_id)
        if submission is None:
            raise NotFoundException("Submission not found", code="SUBMISSION_NOT_FOUND")

        if user["role"] == ROLE_INSTRUCTOR:
            if submission.quiz.instructor_id != user["user_id"]:
                raise NotFoundException("Submission not found", code="SUBMISSION_NOT_FOUND")
            return SubmissionDetailOut.build(submission, reveal_correctness=True)

        if submission.student_id != user["user_id"]:
            raise NotFoundException("Submission not found", code="SUBMISSION_NOT_FOUND")
        return SubmissionDetailOut.build(submission, reveal_correctness=submission.quiz.show_correct_answers)

    def list_quiz_submissions(
        self,
        quiz_id: str,
        instructor_id: str,
        filters: SubmissionListFilters,
        pagination: PaginationParams,
    ) -> PaginatedResponse[StudentSubmissionRow]:
        """One row per student on the quiz roster (assigned groups plus anyone who submitted)"""
        quiz = self.quiz_service.get_owned_quiz_or_404(quiz_id, instructor_id)

        by_student: Dict[str, List[QuizSubmission]] = {}
        for submission in self.submission_repo.list_for_quiz(quiz.id):
            by_student.setdefault(submission.student_id, []).append(submission)

        roster = self.membership.student_ids_for_groups(quiz.group_ids) | set(by_student)

        rows = []
        for student_id in sorted(roster):
            row = self._tracking_row(student_id, by_student.get(student_id, []))
            if filters.status in ("all", row.status) or (filters.status == "submitted" and row.status == "late"):
                rows.append(row)

        page = rows[pagination.offset:pagination.offset + pagination.limit]
        return PaginatedResponse[StudentSubmissionRow](
            data=page,
            pagination=PaginationMeta.build(pagination.page, pagination.limit, len(rows)),
        )

    @staticmethod
    def _tracking_row(student_id: str, submissions: List[QuizSubmission]) -> StudentSubmissionRow:
        if not submissions:
            return StudentSubmissionRow(student_id=student_id)

        latest = max(submissions, key=lambda s: s.attempt_number)
        return StudentSubmissionRow(
            student_id=student_id,
            total_submissions=len(submissions),
            best_score=max(s.total_score for s in submissions),
            pending_review_count=sum(s.pending_review_count for s in submissions),
            latest_submission=SubmissionSummaryOut.build(latest),
            status="late" if latest.is_late else "submitted",
        )

    # ===================================================================
    # INSTRUCTOR: HOLISTIC GRADE OVERLAY
    # ===================================================================

    def grade_submission(
        self,
        submission_id: str,
        grade_data: GradeSubmissionRequest,
        instructor_id: str
    ) -> SubmissionSummaryOut:
        submission = self.submission_repo.get_by_id(submission_id)
        if submission is None or submission.quiz.instructor_id != instructor_id:
            raise NotFoundException("Submission not found", code="SUBMISSION_NOT_FOUND")

        submission.grade = grade_data.grade
        submission.feedback = grade_data.feedback
        submission.graded_at = self.clock()
        submission.graded_by = instructor_id
        self.db.commit()

        logger.info(f"Submission {submission.id} given overlay grade {grade_data.grade} by {instructor_id}")
        return SubmissionSummaryOut.build(submission)
