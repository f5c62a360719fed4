"""
quiz_engine/services/eligibility_gate.py
Decides whether a submission may be recorded right now.

Pure function of the clock, the quiz's temporal policy and the attempt
count. Callers evaluate it immediately before recording; the result must
never be cached because it depends on wall-clock time.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from quiz_engine.models.quiz import Quiz
from quiz_engine.utils.exceptions import IneligibleSubmissionException
from quiz_engine.utils.timeutils import ensure_utc


class EligibilityOutcome(str, enum.Enum):
    ACCEPTED = "accepted"
    REJECTED_NOT_OPEN = "not_open"
    REJECTED_CLOSED = "closed"
    REJECTED_LATE_CLOSED = "late_closed"
    REJECTED_MAX_ATTEMPTS = "max_attempts"


_REJECTIONS = {
    EligibilityOutcome.REJECTED_NOT_OPEN: ("QUIZ_NOT_OPEN", "Quiz is not open for submissions yet"),
    EligibilityOutcome.REJECTED_CLOSED: ("QUIZ_CLOSED", "Quiz submission deadline has passed"),
    EligibilityOutcome.REJECTED_LATE_CLOSED: ("LATE_DEADLINE_PASSED", "Late submission deadline has passed"),
    EligibilityOutcome.REJECTED_MAX_ATTEMPTS: ("MAX_ATTEMPTS_EXCEEDED", "Maximum attempts exceeded"),
}


@dataclass(frozen=True)
class EligibilityDecision:
    outcome: EligibilityOutcome
    is_late: bool = False

    @property
    def accepted(self) -> bool:
        return self.outcome is EligibilityOutcome.ACCEPTED

    @property
    def status(self) -> str:
        """on_time / late for accepted decisions, the rejection reason otherwise"""
        if self.accepted:
            return "late" if self.is_late else "on_time"
        return self.outcome.value

    def raise_if_rejected(self) -> None:
        if self.accepted:
            return
        code, detail = _REJECTIONS[self.outcome]
        raise IneligibleSubmissionException(code, detail)


def evaluate_eligibility(
    now: datetime,
    start_date: datetime,
    due_date: datetime,
    late_due_date: Optional[datetime],
    allow_late_submission: bool,
    attempt_count: int,
    max_attempts: int,
) -> EligibilityDecision:
    now = ensure_utc(now)
    start_date = ensure_utc(start_date)
    due_date = ensure_utc(due_date)
    late_due_date = ensure_utc(late_due_date)

    if now < start_date:
        return EligibilityDecision(EligibilityOutcome.REJECTED_NOT_OPEN)

    if now > due_date:
        if not allow_late_submission or late_due_date is None:
            return EligibilityDecision(EligibilityOutcome.REJECTED_CLOSED)
        if now > late_due_date:
            return EligibilityDecision(EligibilityOutcome.REJECTED_LATE_CLOSED)

    if attempt_count >= max_attempts:
        return EligibilityDecision(EligibilityOutcome.REJECTED_MAX_ATTEMPTS)

    return EligibilityDecision(EligibilityOutcome.ACCEPTED, is_late=now > due_date)


def evaluate_quiz_eligibility(quiz: Quiz, now: datetime, attempt_count: int) -> EligibilityDecision:
    return evaluate_eligibility(
        now=now,
        start_date=quiz.start_date,
        due_date=quiz.due_date,
        late_due_date=quiz.late_due_date,
        allow_late_submission=quiz.allow_late_submission,
        attempt_count=attempt_count,
        max_attempts=quiz.max_attempts,
    )
