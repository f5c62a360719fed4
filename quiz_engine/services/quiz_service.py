"""
quiz_engine/services/quiz_service.py
Business logic for the quiz definition store
Orchestrates repository + membership + validation; controllers stay thin

Every write is a single transaction: the quiz, its groups, questions and
options are flushed together and committed once.
"""

from __future__ import annotations

import logging
import random
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from quiz_engine.core.security import ROLE_INSTRUCTOR
from quiz_engine.models.quiz import Quiz, Question, QuestionOption, QuestionType
from quiz_engine.repositories.quiz_repository import QuizRepository
from quiz_engine.repositories.submission_repository import SubmissionRepository
from quiz_engine.schemas.common import PaginatedResponse, PaginationMeta, PaginationParams
from quiz_engine.schemas.quiz import (
    OptionIn, QuestionIn, QuestionPatch, QuestionOut, QuestionStudentOut, OptionStudentOut,
    QuizCreate, QuizUpdate, QuizListFilters,
    QuizDetailOut, QuizSummaryOut, QuizStudentView, QuizOut,
    option_structure_error,
)
from quiz_engine.services.eligibility_gate import evaluate_quiz_eligibility
from quiz_engine.services.membership_service import MembershipResolver
from quiz_engine.services.question_sync import assign_order_indexes, plan_question_sync, option_signature
from quiz_engine.services.score_aggregator import ScoreAggregator
from quiz_engine.utils.exceptions import NotFoundException, ConflictException, ValidationException
from quiz_engine.utils.timeutils import utcnow, ensure_utc

logger = logging.getLogger(__name__)


def build_options(options: Sequence[OptionIn]) -> List[QuestionOption]:
    return [
        QuestionOption(
            option_text=opt.option_text,
            is_correct=opt.is_correct,
            order_index=opt.order_index if opt.order_index is not None else position,
        )
        for position, opt in enumerate(options, start=1)
    ]


def build_question(data: QuestionIn, order_index: int) -> Question:
    return Question(
        question_text=data.question_text,
        question_type=data.question_type,
        points=data.points,
        order_index=order_index,
        is_required=data.is_required,
        options=build_options(data.options),
    )


class QuizService:
    def __init__(
        self,
        db: Session,
        membership: MembershipResolver,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.quiz_repo = QuizRepository(db)
        self.submission_repo = SubmissionRepository(db)
        self.aggregator = ScoreAggregator()
        self.membership = membership
        self.clock = clock
        self.db = db

    # ===================================================================
    # VISIBILITY
    # ===================================================================

    def get_owned_quiz_or_404(self, quiz_id: str, instructor_id: str) -> Quiz:
        quiz = self.quiz_repo.get_owned_quiz(quiz_id, instructor_id, load_questions=True)
        if quiz is None:
            raise NotFoundException("Quiz not found", code="QUIZ_NOT_FOUND")
        return quiz

    def get_visible_quiz_or_404(self, quiz_id: str, student_id: str) -> Quiz:
        """Active quiz assigned to one of the student's groups"""
        quiz = self.quiz_repo.get_quiz_by_id(quiz_id, load_questions=True)
        if (
            quiz is None
            or not quiz.is_active
            or not self.membership.is_member_of_any(student_id, quiz.group_ids)
        ):
            raise NotFoundException("Quiz not found", code="QUIZ_NOT_FOUND")
        return quiz

    # ===================================================================
    # CREATE & UPDATE QUIZ
    # ===================================================================

    def create_quiz(self, quiz_data: QuizCreate, instructor_id: str) -> QuizDetailOut:
        fields = quiz_data.model_dump(exclude={"group_ids", "questions"})
        quiz = Quiz(**fields, instructor_id=instructor_id)

        indexes = assign_order_indexes(quiz_data.questions)
        quiz.questions = [build_question(q, index) for q, index in zip(quiz_data.questions, indexes)]

        self.quiz_repo.add_quiz(quiz)
        self.quiz_repo.replace_groups(quiz, quiz_data.group_ids)
        self.db.commit()

        logger.info(
            f"Quiz {quiz.id} created by {instructor_id} "
            f"({len(quiz_data.questions)} questions, groups={quiz_data.group_ids})"
        )
        return self._detail(quiz.id)

    def update_quiz(self, quiz_id: str, update_data: QuizUpdate, instructor_id: str) -> QuizDetailOut:
        quiz = self.get_owned_quiz_or_404(quiz_id, instructor_id)

        fields = update_data.model_dump(exclude_unset=True, exclude={"group_ids", "questions"})
        if "title" in fields and fields["title"] is not None:
            fields["title"] = fields["title"].strip()
        self._validate_temporal_patch(quiz, fields)
        # Columns that cannot be null are only changed when a value is sent
        fields = {
            key: value for key, value in fields.items()
            if value is not None or key in ("description", "late_due_date", "time_limit")
        }
        quiz.update(**fields)

        if update_data.group_ids is not None:
            self.quiz_repo.replace_groups(quiz, update_data.group_ids)

        if update_data.questions is not None:
            self._sync_questions(quiz, update_data.questions)
            self._rescore_submissions(quiz)

        self.db.commit()
        logger.info(f"Quiz {quiz.id} updated by {instructor_id} (fields={sorted(fields)})")
        return self._detail(quiz.id)

    def delete_quiz(self, quiz_id: str, instructor_id: str) -> None:
        quiz = self.get_owned_quiz_or_404(quiz_id, instructor_id)

        if self.quiz_repo.has_submissions(quiz.id):
            raise ConflictException(
                "Quiz has submissions and cannot be deleted; deactivate it instead",
                code="QUIZ_HAS_SUBMISSIONS",
            )

        self.quiz_repo.delete_quiz(quiz)
        self.db.commit()
        logger.info(f"Quiz {quiz_id} deleted by {instructor_id}")

    # ===================================================================
    # SINGLE QUESTION ROUTES
    # ===================================================================

    def add_question(self, quiz_id: str, question_data: QuestionIn, instructor_id: str) -> QuestionOut:
        quiz = self.get_owned_quiz_or_404(quiz_id, instructor_id)

        if question_data.order_index is not None:
            order_index = question_data.order_index
        else:
            order_index = self.quiz_repo.max_order_index(quiz.id) + 1

        question = build_question(question_data, order_index)
        quiz.questions.append(question)
        self.db.flush()
        self._rescore_submissions(quiz)
        self.db.commit()

        logger.info(f"Question {question.id} added to quiz {quiz.id}")
        return QuestionOut.model_validate(question)

    def update_question(
        self,
        quiz_id: str,
        question_id: str,
        patch: QuestionPatch,
        instructor_id: str
    ) -> QuestionOut:
        quiz = self.get_owned_quiz_or_404(quiz_id, instructor_id)
        question = self._question_or_404(quiz, question_id)
        answered = bool(self.quiz_repo.answered_question_ids([question.id]))

        new_type = patch.question_type or question.question_type
        new_options = patch.options if patch.options is not None else question.options
        error = option_structure_error(new_type, new_options)
        if error:
            raise ValidationException.single("options", error)

        self._apply_question_changes(
            question,
            answered=answered,
            question_type=new_type,
            options=patch.options,
            text=patch.question_text,
            points=patch.points,
            order_index=patch.order_index,
            is_required=patch.is_required,
        )
        if patch.points is not None:
            self._rescore_submissions(quiz)
        self.db.commit()

        logger.info(f"Question {question.id} of quiz {quiz.id} updated")
        return QuestionOut.model_validate(question)

    def delete_question(self, quiz_id: str, question_id: str, instructor_id: str) -> None:
        quiz = self.get_owned_quiz_or_404(quiz_id, instructor_id)
        question = self._question_or_404(quiz, question_id)

        if self.quiz_repo.answered_question_ids([question.id]):
            raise ConflictException(
                "Question has answers and cannot be deleted",
                code="QUESTION_HAS_ANSWERS",
                extra={"questionIds": [question.id]},
            )

        self.quiz_repo.delete_question(question)
        self._rescore_submissions(quiz)
        self.db.commit()
        logger.info(f"Question {question_id} removed from quiz {quiz.id}")

    # ===================================================================
    # READ
    # ===================================================================

    def get_quiz(self, quiz_id: str, user: dict):
        if user["role"] == ROLE_INSTRUCTOR:
            quiz = self.get_owned_quiz_or_404(quiz_id, user["user_id"])
            return QuizDetailOut.model_validate(quiz)

        quiz = self.get_visible_quiz_or_404(quiz_id, user["user_id"])
        return self.student_view(quiz, user["user_id"])

    def student_view(self, quiz: Quiz, student_id: str) -> QuizStudentView:
        attempts_used = self.submission_repo.count_attempts(quiz.id, student_id)
        decision = evaluate_quiz_eligibility(quiz, self.clock(), attempts_used)

        questions = sorted(quiz.questions, key=lambda q: q.order_index)
        if quiz.shuffle_questions:
            random.Random(f"{quiz.id}:{student_id}").shuffle(questions)

        student_questions = []
        for question in questions:
            options = [OptionStudentOut.model_validate(opt) for opt in question.options]
            if quiz.shuffle_options:
                random.Random(f"{quiz.id}:{student_id}:{question.id}").shuffle(options)
            student_questions.append(
                QuestionStudentOut(
                    id=question.id,
                    question_text=question.question_text,
                    question_type=question.question_type,
                    points=question.points,
                    order_index=question.order_index,
                    is_required=question.is_required,
                    options=options,
                )
            )

        base = QuizOut.model_validate(quiz).model_dump()
        return QuizStudentView(
            **base,
            questions=student_questions,
            attempts_used=attempts_used,
            can_attempt=decision.accepted,
            eligibility=decision.status,
        )

    def list_quizzes(
        self,
        user: dict,
        filters: QuizListFilters,
        pagination: PaginationParams,
    ) -> PaginatedResponse[QuizSummaryOut]:
        now = self.clock()

        if user["role"] == ROLE_INSTRUCTOR:
            quizzes, total = self.quiz_repo.list_quizzes(
                filters, now, pagination.offset, pagination.limit,
                instructor_id=user["user_id"],
            )
            items = [QuizSummaryOut.model_validate(q) for q in quizzes]
        else:
            student_id = user["user_id"]
            quizzes, total = self.quiz_repo.list_quizzes(
                filters, now, pagination.offset, pagination.limit,
                group_ids=self.membership.group_ids_for_student(student_id),
                active_only=True,
            )
            counts = self.submission_repo.attempt_counts(student_id, [q.id for q in quizzes])
            items = []
            for quiz in quizzes:
                used = counts.get(quiz.id, 0)
                item = QuizSummaryOut.model_validate(quiz)
                item.attempts_used = used
                item.can_attempt = evaluate_quiz_eligibility(quiz, now, used).accepted
                items.append(item)

        return PaginatedResponse[QuizSummaryOut](
            data=items,
            pagination=PaginationMeta.build(pagination.page, pagination.limit, total),
        )

    # ===================================================================
    # INTERNALS
    # ===================================================================

    def _detail(self, quiz_id: str) -> QuizDetailOut:
        # Collections were mutated in place; reload them in order_index order
        self.db.expire_all()
        quiz = self.quiz_repo.get_quiz_by_id(quiz_id, load_questions=True)
        return QuizDetailOut.model_validate(quiz)

    def _question_or_404(self, quiz: Quiz, question_id: str) -> Question:
        question = next((q for q in quiz.questions if q.id == question_id), None)
        if question is None:
            raise NotFoundException("Question not found", code="QUESTION_NOT_FOUND")
        return question

    def _validate_temporal_patch(self, quiz: Quiz, fields: Dict) -> None:
        start = ensure_utc(fields.get("start_date") or quiz.start_date)
        due = ensure_utc(fields.get("due_date") or quiz.due_date)
        late = ensure_utc(fields["late_due_date"] if "late_due_date" in fields else quiz.late_due_date)

        errors = []
        if due < start:
            errors.append({"field": "dueDate", "message": "Due date must be after start date", "type": "value_error"})
        if late is not None and late < due:
            errors.append({"field": "lateDueDate", "message": "Late due date must be after due date", "type": "value_error"})
        if errors:
            raise ValidationException(errors)

    def _sync_questions(self, quiz: Quiz, incoming: List[QuestionIn]) -> None:
        by_id = {q.id: q for q in quiz.questions}
        plan = plan_question_sync({qid: q.order_index for qid, q in by_id.items()}, incoming)
        answered = self.quiz_repo.answered_question_ids(by_id.keys())

        blocked = [qid for qid in plan.to_delete if qid in answered]
        if blocked:
            raise ConflictException(
                "Questions with answers cannot be deleted",
                code="QUESTION_HAS_ANSWERS",
                extra={"questionIds": blocked},
            )

        for question_id, data, order_index in plan.to_update:
            self._apply_question_changes(
                by_id[question_id],
                answered=question_id in answered,
                question_type=data.question_type,
                options=data.options,
                text=data.question_text,
                points=data.points,
                order_index=order_index,
                is_required=data.is_required,
            )

        for question_id in plan.to_delete:
            self.quiz_repo.delete_question(by_id[question_id])

        for data, order_index in plan.to_create:
            quiz.questions.append(build_question(data, order_index))

        self.db.flush()
        logger.info(
            f"Quiz {quiz.id} question sync: {len(plan.to_create)} created, "
            f"{len(plan.to_update)} updated, {len(plan.to_delete)} deleted"
        )

    def _rescore_submissions(self, quiz: Quiz) -> None:
        """Recompute stored totals of every submission after the question set or points changed"""
        submissions = self.submission_repo.list_for_quiz(quiz.id)
        for submission in submissions:
            self.aggregator.recompute(submission)
        if submissions:
            self.db.flush()
            logger.info(f"Rescored {len(submissions)} submission(s) of quiz {quiz.id}")

    def _apply_question_changes(
        self,
        question: Question,
        answered: bool,
        question_type: QuestionType,
        options: Optional[Sequence[OptionIn]],
        text: Optional[str] = None,
        points: Optional[int] = None,
        order_index: Optional[int] = None,
        is_required: Optional[bool] = None,
    ) -> None:
        type_changed = question_type != question.question_type
        options_changed = options is not None and option_signature(options) != option_signature(question.options)

        if answered and (type_changed or options_changed):
            raise ConflictException(
                "Question has answers; its type and options can no longer change",
                code="QUESTION_HAS_ANSWERS",
                extra={"questionIds": [question.id]},
            )

        question.update(
            question_text=text if text is not None else question.question_text,
            points=points if points is not None else question.points,
            order_index=order_index if order_index is not None else question.order_index,
            is_required=is_required if is_required is not None else question.is_required,
            question_type=question_type,
        )
        if options_changed:
            self.quiz_repo.replace_options(question, build_options(options))
