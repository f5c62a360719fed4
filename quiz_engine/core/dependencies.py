"""
quiz_engine/core/dependencies.py
FastAPI dependency functions – reusable across all controllers

Provides:
- Current principal (from JWT)
- Role-based access enforcement
- Clock, membership resolver and notification sink (overridable in tests)
- Service factories wired from the above

Used in every controller via Depends()
"""

from datetime import datetime
from typing import Callable, List

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from quiz_engine.database.session import get_db
from quiz_engine.core.security import SecurityManager, ROLE_INSTRUCTOR, ROLE_STUDENT
from quiz_engine.services.grading_service import GradingService
from quiz_engine.services.membership_service import MembershipResolver, DatabaseMembershipResolver
from quiz_engine.services.notification_service import NotificationSink, LoggingNotificationSink
from quiz_engine.services.quiz_service import QuizService
from quiz_engine.services.submission_service import SubmissionService
from quiz_engine.utils.exceptions import UnauthorizedException, ForbiddenException
from quiz_engine.utils.timeutils import utcnow

# Bearer scheme; missing header is reported as 401 by get_current_user
bearer_scheme = HTTPBearer(auto_error=False)

_default_sink = LoggingNotificationSink()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> dict:
    """
    Extract and validate JWT token → return principal payload (user_id + role)
    """
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise UnauthorizedException("Not authenticated")
    return SecurityManager.decode_token(credentials.credentials)


# Role-based dependency factories
def require_roles(allowed_roles: List[str]):
    """
    Factory function to create role-specific dependencies
    Usage: Depends(require_roles(["instructor"]))
    """
    def role_checker(current_user: dict = Depends(get_current_user)):
        if current_user["role"] not in allowed_roles:
            raise ForbiddenException(f"Access denied. Required roles: {allowed_roles}")
        return current_user
    return role_checker


def get_instructor_user(user: dict = Depends(require_roles([ROLE_INSTRUCTOR]))):
    return user


def get_student_user(user: dict = Depends(require_roles([ROLE_STUDENT]))):
    return user


# =============================================================================
# Collaborators
# =============================================================================

def get_clock() -> Callable[[], datetime]:
    return utcnow


def get_membership_resolver(db: Session = Depends(get_db)) -> MembershipResolver:
    return DatabaseMembershipResolver(db)


def get_notification_sink() -> NotificationSink:
    return _default_sink


# =============================================================================
# Services
# =============================================================================

def get_quiz_service(
    db: Session = Depends(get_db),
    membership: MembershipResolver = Depends(get_membership_resolver),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> QuizService:
    return QuizService(db, membership, clock)


def get_submission_service(
    db: Session = Depends(get_db),
    membership: MembershipResolver = Depends(get_membership_resolver),
    notifier: NotificationSink = Depends(get_notification_sink),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> SubmissionService:
    return SubmissionService(db, membership, notifier, clock)


def get_grading_service(
    db: Session = Depends(get_db),
    notifier: NotificationSink = Depends(get_notification_sink),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> GradingService:
    return GradingService(db, notifier, clock)
