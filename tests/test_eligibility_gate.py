"""
Unit tests for the eligibility gate: window boundaries and attempt limits.
"""
from datetime import timedelta

import pytest

from conftest import T0, T1, T2
from quiz_engine.services.eligibility_gate import EligibilityOutcome, evaluate_eligibility
from quiz_engine.utils.exceptions import IneligibleSubmissionException

pytestmark = pytest.mark.unit

ONE_SECOND = timedelta(seconds=1)


def decide(now, attempts=0, max_attempts=1, allow_late=True, late_due=T2):
    return evaluate_eligibility(
        now=now,
        start_date=T0,
        due_date=T1,
        late_due_date=late_due,
        allow_late_submission=allow_late,
        attempt_count=attempts,
        max_attempts=max_attempts,
    )


class TestTimeWindow:
    def test_before_start_is_not_open(self):
        assert decide(T0 - ONE_SECOND).outcome is EligibilityOutcome.REJECTED_NOT_OPEN

    def test_exactly_at_start_is_accepted(self):
        decision = decide(T0)
        assert decision.accepted
        assert decision.is_late is False

    def test_exactly_at_due_is_on_time(self):
        decision = decide(T1)
        assert decision.accepted
        assert decision.status == "on_time"

    def test_after_due_inside_late_window_is_late(self):
        decision = decide(T1 + ONE_SECOND)
        assert decision.accepted
        assert decision.is_late is True
        assert decision.status == "late"

    def test_exactly_at_late_due_is_still_accepted(self):
        assert decide(T2).accepted

    def test_after_late_due_is_late_closed(self):
        assert decide(T2 + ONE_SECOND).outcome is EligibilityOutcome.REJECTED_LATE_CLOSED

    def test_after_due_without_late_window_is_closed(self):
        assert decide(T1 + ONE_SECOND, late_due=None).outcome is EligibilityOutcome.REJECTED_CLOSED

    def test_after_due_with_late_disallowed_is_closed(self):
        assert decide(T1 + ONE_SECOND, allow_late=False).outcome is EligibilityOutcome.REJECTED_CLOSED

    def test_naive_datetimes_are_read_as_utc(self):
        assert decide((T0 - ONE_SECOND).replace(tzinfo=None)).outcome is EligibilityOutcome.REJECTED_NOT_OPEN


class TestAttempts:
    def test_attempt_limit_reached(self):
        decision = decide(T0 + ONE_SECOND, attempts=2, max_attempts=2)
        assert decision.outcome is EligibilityOutcome.REJECTED_MAX_ATTEMPTS

    def test_attempt_below_limit(self):
        assert decide(T0 + ONE_SECOND, attempts=1, max_attempts=2).accepted

    def test_window_is_checked_before_attempts(self):
        decision = decide(T0 - ONE_SECOND, attempts=5, max_attempts=1)
        assert decision.outcome is EligibilityOutcome.REJECTED_NOT_OPEN


class TestRejectionErrors:
    @pytest.mark.parametrize("now,attempts,code,status_code", [
        (T0 - ONE_SECOND, 0, "QUIZ_NOT_OPEN", 403),
        (T2 + ONE_SECOND, 0, "LATE_DEADLINE_PASSED", 403),
        (T0 + ONE_SECOND, 1, "MAX_ATTEMPTS_EXCEEDED", 409),
    ])
    def test_rejections_raise_coded_errors(self, now, attempts, code, status_code):
        with pytest.raises(IneligibleSubmissionException) as exc_info:
            decide(now, attempts=attempts).raise_if_rejected()
        assert exc_info.value.code == code
        assert exc_info.value.status_code == status_code

    def test_accepted_does_not_raise(self):
        decide(T0).raise_if_rejected()
