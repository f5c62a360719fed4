"""
quiz_engine/controllers/quiz_controller.py
FastAPI controller for quiz definitions and quiz-scoped submission routes
Thin layer: parse request → call service → return DTO
"""

from typing import List, Literal, Optional, Union

from fastapi import APIRouter, Depends, Query, status

from quiz_engine.core.config import settings
from quiz_engine.core.dependencies import (
    get_current_user, get_instructor_user, get_student_user,
    get_quiz_service, get_submission_service,
)
from quiz_engine.services.quiz_service import QuizService
from quiz_engine.services.submission_service import SubmissionService
from quiz_engine.schemas.common import MessageResponse, PaginatedResponse, PaginationParams
from quiz_engine.schemas.quiz import (
    QuizCreate, QuizUpdate, QuizListFilters,
    QuestionIn, QuestionPatch, QuestionOut,
    QuizDetailOut, QuizSummaryOut, QuizStudentView,
)
from quiz_engine.schemas.submission import (
    QuizSubmitRequest, SubmissionListFilters,
    SubmissionDetailOut, SubmissionSummaryOut, StudentSubmissionRow,
)

router = APIRouter(prefix="/quizzes", tags=["Quizzes"])


def pagination_params(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
) -> PaginationParams:
    return PaginationParams(page=page, limit=limit)


# ===================================================================
# QUIZ DEFINITIONS
# ===================================================================

@router.post("", response_model=QuizDetailOut, status_code=status.HTTP_201_CREATED)
def create_quiz(
    quiz_data: QuizCreate,
    instructor: dict = Depends(get_instructor_user),
    service: QuizService = Depends(get_quiz_service),
):
    """Create a quiz with its questions, options and group assignment in one transaction"""
    return service.create_quiz(quiz_data, instructor["user_id"])


@router.get("", response_model=PaginatedResponse[QuizSummaryOut])
def list_quizzes(
    search: str = Query(""),
    course_id: Optional[str] = Query(None, alias="courseId"),
    quiz_status: Literal["all", "active", "inactive", "upcoming", "past"] = Query("all", alias="status"),
    sort_by: Literal["created_at", "title", "start_date", "due_date"] = Query("created_at", alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query("desc", alias="sortOrder"),
    pagination: PaginationParams = Depends(pagination_params),
    user: dict = Depends(get_current_user),
    service: QuizService = Depends(get_quiz_service),
):
    """Instructors list their own quizzes; students list active quizzes of their groups"""
    filters = QuizListFilters(
        search=search, course_id=course_id, status=quiz_status,
        sort_by=sort_by, sort_order=sort_order,
    )
    return service.list_quizzes(user, filters, pagination)


@router.get(
    "/{quiz_id}",
    response_model=None,
    responses={200: {"model": Union[QuizDetailOut, QuizStudentView]}},
)
def get_quiz(
    quiz_id: str,
    user: dict = Depends(get_current_user),
    service: QuizService = Depends(get_quiz_service),
) -> Union[QuizDetailOut, QuizStudentView]:
    """Owner instructor gets the full definition; enrolled students get the student view"""
    return service.get_quiz(quiz_id, user)


@router.put("/{quiz_id}", response_model=QuizDetailOut)
def update_quiz(
    quiz_id: str,
    update_data: QuizUpdate,
    instructor: dict = Depends(get_instructor_user),
    service: QuizService = Depends(get_quiz_service),
):
    """Partial update; when `questions` is sent the stored questions are reconciled with it"""
    return service.update_quiz(quiz_id, update_data, instructor["user_id"])


@router.delete("/{quiz_id}", response_model=MessageResponse)
def delete_quiz(
    quiz_id: str,
    instructor: dict = Depends(get_instructor_user),
    service: QuizService = Depends(get_quiz_service),
):
    service.delete_quiz(quiz_id, instructor["user_id"])
    return MessageResponse(message="Quiz deleted successfully")


# ===================================================================
# QUESTIONS
# ===================================================================

@router.post("/{quiz_id}/questions", response_model=QuestionOut, status_code=status.HTTP_201_CREATED)
def add_question(
    quiz_id: str,
    question_data: QuestionIn,
    instructor: dict = Depends(get_instructor_user),
    service: QuizService = Depends(get_quiz_service),
):
    return service.add_question(quiz_id, question_data, instructor["user_id"])


@router.put("/{quiz_id}/questions/{question_id}", response_model=QuestionOut)
def update_question(
    quiz_id: str,
    question_id: str,
    patch: QuestionPatch,
    instructor: dict = Depends(get_instructor_user),
    service: QuizService = Depends(get_quiz_service),
):
    return service.update_question(quiz_id, question_id, patch, instructor["user_id"])


@router.delete("/{quiz_id}/questions/{question_id}", response_model=MessageResponse)
def delete_question(
    quiz_id: str,
    question_id: str,
    instructor: dict = Depends(get_instructor_user),
    service: QuizService = Depends(get_quiz_service),
):
    service.delete_question(quiz_id, question_id, instructor["user_id"])
    return MessageResponse(message="Question deleted successfully")


# ===================================================================
# SUBMISSIONS (quiz scoped)
# ===================================================================

@router.post("/{quiz_id}/submit", response_model=SubmissionDetailOut, status_code=status.HTTP_201_CREATED)
def submit_quiz(
    quiz_id: str,
    payload: QuizSubmitRequest,
    student: dict = Depends(get_student_user),
    service: SubmissionService = Depends(get_submission_service),
):
    """Record one attempt; objective answers are graded immediately"""
    return service.submit_quiz(quiz_id, payload, student["user_id"])


@router.get("/{quiz_id}/my-submissions", response_model=List[SubmissionSummaryOut])
def list_my_submissions(
    quiz_id: str,
    student: dict = Depends(get_student_user),
    service: SubmissionService = Depends(get_submission_service),
):
    return service.list_my_submissions(quiz_id, student["user_id"])


@router.get("/{quiz_id}/submissions", response_model=PaginatedResponse[StudentSubmissionRow])
def list_quiz_submissions(
    quiz_id: str,
    submission_status: Literal["all", "submitted", "not_submitted", "late"] = Query("all", alias="status"),
    pagination: PaginationParams = Depends(pagination_params),
    instructor: dict = Depends(get_instructor_user),
    service: SubmissionService = Depends(get_submission_service),
):
    """Per-student tracking: every student on the roster, submitted or not"""
    return service.list_quiz_submissions(
        quiz_id,
        instructor["user_id"],
        SubmissionListFilters(status=submission_status),
        pagination,
    )
