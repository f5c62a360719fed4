"""
quiz_engine/controllers/submission_controller.py
FastAPI controller for submission detail, essay review and grading
"""

from fastapi import APIRouter, Depends

from quiz_engine.core.dependencies import (
    get_current_user, get_instructor_user,
    get_submission_service, get_grading_service,
)
from quiz_engine.services.grading_service import GradingService
from quiz_engine.services.submission_service import SubmissionService
from quiz_engine.schemas.submission import (
    GradeSubmissionRequest, ReviewAnswerRequest,
    ReviewResultOut, SubmissionDetailOut, SubmissionSummaryOut,
)

router = APIRouter(prefix="/submissions", tags=["Submissions"])


@router.get("/{submission_id}", response_model=SubmissionDetailOut)
def get_submission(
    submission_id: str,
    user: dict = Depends(get_current_user),
    service: SubmissionService = Depends(get_submission_service),
):
    """Owner student or the instructor owning the quiz"""
    return service.get_submission(submission_id, user)


@router.put("/{submission_id}/grade", response_model=SubmissionSummaryOut)
def grade_submission(
    submission_id: str,
    grade_data: GradeSubmissionRequest,
    instructor: dict = Depends(get_instructor_user),
    service: SubmissionService = Depends(get_submission_service),
):
    """Holistic 0-100 grade and feedback; does not finalize grading"""
    return service.grade_submission(submission_id, grade_data, instructor["user_id"])


@router.put("/{submission_id}/answers/{answer_id}/review", response_model=ReviewResultOut)
def review_answer(
    submission_id: str,
    answer_id: str,
    review: ReviewAnswerRequest,
    instructor: dict = Depends(get_instructor_user),
    service: GradingService = Depends(get_grading_service),
):
    return service.review_answer(submission_id, answer_id, review, instructor["user_id"])


@router.post("/{submission_id}/complete-grading", response_model=SubmissionDetailOut)
def complete_grading(
    submission_id: str,
    instructor: dict = Depends(get_instructor_user),
    service: GradingService = Depends(get_grading_service),
):
    """Finalize grading; refused while any essay answer is still pending review"""
    return service.complete_grading(submission_id, instructor["user_id"])
