"""
quiz_engine/repositories/quiz_repository.py
Repository for quiz definitions: quizzes, group assignment, questions, options
All database reads/writes for the definition store – no business rules here
"""

from __future__ import annotations

from typing import Optional, List, Iterable, Set, Tuple
from datetime import datetime

from sqlalchemy.orm import Session, selectinload
from sqlalchemy import or_, func, desc, asc

from quiz_engine.models.quiz import Quiz, QuizGroup, Question, QuestionOption
from quiz_engine.models.submission import QuizSubmission, QuizAnswer
from quiz_engine.schemas.quiz import QuizListFilters


class QuizRepository:
    def __init__(self, db: Session):
        self.db = db

    # ===================================================================
    # QUIZ CRUD
    # ===================================================================

    def add_quiz(self, quiz: Quiz) -> Quiz:
        self.db.add(quiz)
        self.db.flush()
        return quiz

    def get_quiz_by_id(self, quiz_id: str, load_questions: bool = False) -> Optional[Quiz]:
        query = self.db.query(Quiz).filter(Quiz.id == quiz_id)
        if load_questions:
            query = query.options(
                selectinload(Quiz.questions).selectinload(Question.options),
                selectinload(Quiz.groups),
            )
        return query.first()

    def get_owned_quiz(self, quiz_id: str, instructor_id: str, load_questions: bool = False) -> Optional[Quiz]:
        quiz = self.get_quiz_by_id(quiz_id, load_questions=load_questions)
        if quiz is None or quiz.instructor_id != instructor_id:
            return None
        return quiz

    def delete_quiz(self, quiz: Quiz) -> None:
        self.db.delete(quiz)
        self.db.flush()

    def has_submissions(self, quiz_id: str) -> bool:
        return self.db.query(
            self.db.query(QuizSubmission.id).filter(QuizSubmission.quiz_id == quiz_id).exists()
        ).scalar()

    # ===================================================================
    # GROUP ASSIGNMENT
    # ===================================================================

    def replace_groups(self, quiz: Quiz, group_ids: Iterable[str]) -> None:
        wanted = list(dict.fromkeys(group_ids))
        current = {g.group_id: g for g in quiz.groups}

        for group_id, link in current.items():
            if group_id not in wanted:
                quiz.groups.remove(link)
        for group_id in wanted:
            if group_id not in current:
                quiz.groups.append(QuizGroup(group_id=group_id))
        self.db.flush()

    # ===================================================================
    # QUESTIONS & OPTIONS
    # ===================================================================

    def max_order_index(self, quiz_id: str) -> int:
        value = self.db.query(func.max(Question.order_index)).filter(Question.quiz_id == quiz_id).scalar()
        return value or 0

    def delete_question(self, question: Question) -> None:
        question.quiz.questions.remove(question)
        self.db.flush()

    def replace_options(self, question: Question, options: List[QuestionOption]) -> None:
        question.options.clear()
        self.db.flush()
        question.options.extend(options)
        self.db.flush()

    def answered_question_ids(self, question_ids: Iterable[str]) -> Set[str]:
        ids = list(question_ids)
        if not ids:
            return set()
        rows = (
            self.db.query(QuizAnswer.question_id)
            .filter(QuizAnswer.question_id.in_(ids))
            .distinct()
            .all()
        )
        return {row[0] for row in rows}

    # ===================================================================
    # LIST & FILTER
    # ===================================================================

    def list_quizzes(
        self,
        filters: QuizListFilters,
        now: datetime,
        offset: int,
        limit: int,
        instructor_id: Optional[str] = None,
        group_ids: Optional[Iterable[str]] = None,
        active_only: bool = False,
    ) -> Tuple[List[Quiz], int]:
        query = self.db.query(Quiz)

        if instructor_id is not None:
            query = query.filter(Quiz.instructor_id == instructor_id)

        if group_ids is not None:
            group_ids = list(group_ids)
            if not group_ids:
                return [], 0
            query = query.filter(
                Quiz.id.in_(
                    self.db.query(QuizGroup.quiz_id).filter(QuizGroup.group_id.in_(group_ids))
                )
            )

        if active_only:
            query = query.filter(Quiz.is_active == True)

        if filters.course_id:
            query = query.filter(Quiz.course_id == filters.course_id)

        if filters.search:
            search_term = f"%{filters.search.lower()}%"
            query = query.filter(
                or_(
                    func.lower(Quiz.title).like(search_term),
                    func.lower(Quiz.description).like(search_term),
                )
            )

        if filters.status == "active":
            query = query.filter(Quiz.is_active == True, Quiz.start_date <= now, Quiz.due_date >= now)
        elif filters.status == "inactive":
            query = query.filter(Quiz.is_active == False)
        elif filters.status == "upcoming":
            query = query.filter(Quiz.start_date > now)
        elif filters.status == "past":
            query = query.filter(Quiz.due_date < now)

        total = query.count()

        column = getattr(Quiz, filters.sort_by)
        order = asc(column) if filters.sort_order == "asc" else desc(column)
        quizzes = (
            query.options(selectinload(Quiz.questions), selectinload(Quiz.groups))
            .order_by(order, Quiz.id)
            .offset(offset)
            .limit(limit)
            .all()
        )
        return quizzes, total
