"""
HTTP tests for submissions, essay review, the completion gate and the
per-student tracking list.
"""
import logging
from datetime import timedelta

import pytest

from conftest import (
    T0, T1, T2, STUDENT_ID, OTHER_STUDENT_ID, INSTRUCTOR_ID, answers_for, tf_question, essay_question,
)
from quiz_engine.repositories.submission_repository import SubmissionRepository

pytestmark = pytest.mark.integration

QUIZZES = "/api/v1/quizzes"
SUBMISSIONS = "/api/v1/submissions"


def error_of(response):
    return response.json()["error"]


def essay_answer(submission):
    return next(a for a in submission["answers"] if a["questionType"] == "essay")


@pytest.fixture
def quiz(enroll, create_quiz):
    enroll()
    return create_quiz()


@pytest.fixture
def submit(client, student):
    def _submit(quiz, payload=None, headers=None):
        return client.post(
            f"{QUIZZES}/{quiz['id']}/submit",
            json=payload if payload is not None else answers_for(quiz),
            headers=headers or student,
        )
    return _submit


class TestLifecycle:
    def test_full_grading_lifecycle(self, client, instructor, student, sink, quiz, submit):
        # 1. student submits, objective answers graded on the spot
        response = submit(quiz, {**answers_for(quiz), "startedAt": (T0 + timedelta(hours=23)).isoformat()})
        assert response.status_code == 201
        submission = response.json()
        assert submission["attemptNumber"] == 1
        assert submission["status"] == "on_time"
        assert submission["isLate"] is False
        assert submission["totalScore"] == 3
        assert submission["maxScore"] == 8
        assert submission["isGraded"] is False
        assert submission["pendingReviewCount"] == 1
        assert submission["timeSpent"] == 3600
        assert essay_answer(submission)["reviewStatus"] == "pending"

        notified = sink.of_type("quiz_submitted")
        assert len(notified) == 1
        assert notified[0].recipient_id == INSTRUCTOR_ID
        assert notified[0].data["submissionId"] == submission["id"]

        # 2. completion refused while the essay is pending
        response = client.post(f"{SUBMISSIONS}/{submission['id']}/complete-grading", headers=instructor)
        assert response.status_code == 409
        assert error_of(response)["code"] == "PENDING_REVIEWS"
        assert error_of(response)["pendingCount"] == 1

        # 3. instructor approves the essay with a partial score
        answer = essay_answer(submission)
        response = client.put(
            f"{SUBMISSIONS}/{submission['id']}/answers/{answer['id']}/review",
            json={"action": "approve", "manualScore": 4},
            headers=instructor,
        )
        assert response.status_code == 200
        review = response.json()
        assert review["answer"]["reviewStatus"] == "approved"
        assert review["answer"]["isCorrect"] is True
        assert review["answer"]["pointsEarned"] == 4
        assert review["submission"]["totalScore"] == 7
        assert review["submission"]["pendingReviewCount"] == 0
        assert review["submission"]["isGraded"] is False

        # 4. completion succeeds and the student is told
        response = client.post(f"{SUBMISSIONS}/{submission['id']}/complete-grading", headers=instructor)
        assert response.status_code == 200
        final = response.json()
        assert final["isGraded"] is True
        assert final["gradedBy"] == INSTRUCTOR_ID
        assert final["totalScore"] == 7

        graded = sink.of_type("quiz_graded")
        assert len(graded) == 1
        assert graded[0].recipient_id == STUDENT_ID

        # 5. the student reads back the final result
        mine = client.get(f"{SUBMISSIONS}/{submission['id']}", headers=student).json()
        assert mine["isGraded"] is True
        assert mine["totalScore"] == 7

    def test_objective_only_quiz_is_graded_on_submit(self, client, instructor, enroll, create_quiz, submit):
        enroll()
        quiz = create_quiz(questions=[tf_question(points=3)])
        response = submit(quiz, answers_for(quiz, tf="wrong"))
        body = response.json()
        assert body["isGraded"] is True
        assert body["totalScore"] == 0
        assert body["maxScore"] == 3

        response = client.post(f"{SUBMISSIONS}/{body['id']}/complete-grading", headers=instructor)
        assert response.status_code == 200


class TestAttempts:
    def test_attempt_numbers_increase_until_limit(self, client, student, quiz, submit):
        assert submit(quiz).json()["attemptNumber"] == 1
        assert submit(quiz).json()["attemptNumber"] == 2

        response = submit(quiz)
        assert response.status_code == 409
        assert error_of(response)["code"] == "MAX_ATTEMPTS_EXCEEDED"

        mine = client.get(f"{QUIZZES}/{quiz['id']}/my-submissions", headers=student).json()
        assert [s["attemptNumber"] for s in mine] == [1, 2]

    def test_concurrent_duplicate_attempt_is_retried(self, monkeypatch, caplog, quiz, submit):
        assert submit(quiz).status_code == 201

        original = SubmissionRepository.next_attempt_number
        calls = []

        def stale_then_fresh(self, quiz_id, student_id):
            calls.append(quiz_id)
            # first try sees the count from before the other request committed
            return 1 if len(calls) == 1 else original(self, quiz_id, student_id)

        monkeypatch.setattr(SubmissionRepository, "next_attempt_number", stale_then_fresh)
        with caplog.at_level(logging.WARNING):
            response = submit(quiz)

        assert response.status_code == 201
        assert response.json()["attemptNumber"] == 2
        assert len(calls) == 2
        assert "Attempt number conflict" in caplog.text

    def test_retries_are_bounded(self, monkeypatch, client, student, quiz, submit):
        assert submit(quiz).status_code == 201
        monkeypatch.setattr(SubmissionRepository, "next_attempt_number", lambda self, q, s: 1)

        response = submit(quiz)
        assert response.status_code == 500
        assert error_of(response)["code"] == "SUBMISSION_CONFLICT"

        mine = client.get(f"{QUIZZES}/{quiz['id']}/my-submissions", headers=student).json()
        assert len(mine) == 1


class TestTimeWindow:
    def test_before_start(self, clock, quiz, submit):
        clock.set(T0 - timedelta(seconds=1))
        response = submit(quiz)
        assert response.status_code == 403
        assert error_of(response)["code"] == "QUIZ_NOT_OPEN"

    def test_exactly_at_due_is_on_time(self, clock, quiz, submit):
        clock.set(T1)
        assert submit(quiz).json()["status"] == "on_time"

    def test_late_window(self, clock, quiz, submit):
        clock.set(T1 + timedelta(seconds=1))
        body = submit(quiz).json()
        assert body["isLate"] is True
        assert body["status"] == "late"

    def test_after_late_due(self, clock, quiz, submit):
        clock.set(T2 + timedelta(seconds=1))
        response = submit(quiz)
        assert response.status_code == 403
        assert error_of(response)["code"] == "LATE_DEADLINE_PASSED"

    def test_closed_without_late_submission(self, clock, enroll, create_quiz, submit):
        enroll()
        quiz = create_quiz(allowLateSubmission=False)
        clock.set(T1 + timedelta(seconds=1))
        assert error_of(submit(quiz))["code"] == "QUIZ_CLOSED"


class TestAnswerValidation:
    def test_missing_required_answer(self, quiz, submit):
        payload = answers_for(quiz)
        payload["answers"] = payload["answers"][:2]
        response = submit(quiz, payload)
        assert response.status_code == 422
        assert error_of(response)["errors"][0]["type"] == "missing"

    def test_blank_required_essay(self, quiz, submit):
        response = submit(quiz, answers_for(quiz, essay="   "))
        assert response.status_code == 422

    def test_option_from_another_question(self, quiz, submit):
        payload = answers_for(quiz)
        payload["answers"][0]["selectedOptionId"] = quiz["questions"][1]["options"][0]["id"]
        response = submit(quiz, payload)
        assert response.status_code == 422
        assert error_of(response)["errors"][0]["type"] == "unknown_option"

    def test_unknown_question(self, quiz, submit):
        payload = answers_for(quiz)
        payload["answers"].append({"questionId": "nope", "answerText": "hello"})
        assert submit(quiz, payload).status_code == 422

    def test_duplicate_answer(self, quiz, submit):
        payload = answers_for(quiz)
        payload["answers"].append(dict(payload["answers"][0]))
        assert submit(quiz, payload).status_code == 422

    def test_nothing_recorded_on_rejection(self, client, student, quiz, submit):
        submit(quiz, {"answers": []})
        assert client.get(f"{QUIZZES}/{quiz['id']}/my-submissions", headers=student).json() == []

    def test_all_optional_quiz_can_be_submitted_empty(self, enroll, create_quiz, submit):
        enroll()
        quiz = create_quiz(questions=[essay_question(isRequired=False), tf_question(isRequired=False)])
        response = submit(quiz, {"answers": []})
        assert response.status_code == 201
        assert response.json()["answers"] == []
        assert response.json()["isGraded"] is True

    def test_blank_optional_essay_needs_no_review(self, enroll, create_quiz, submit):
        enroll()
        quiz = create_quiz(questions=[essay_question(isRequired=False)])
        body = submit(quiz, answers_for(quiz, essay="")).json()
        assert body["pendingReviewCount"] == 0
        assert body["answers"][0]["reviewStatus"] == "rejected"
        assert body["isGraded"] is True

    def test_unassigned_student_cannot_submit(self, create_quiz, submit, other_student):
        quiz = create_quiz()
        response = submit(quiz, headers=other_student)
        assert response.status_code == 404


class TestReview:
    @pytest.fixture
    def submission(self, quiz, submit):
        return submit(quiz).json()

    def review(self, client, instructor, submission, answer, **body):
        return client.put(
            f"{SUBMISSIONS}/{submission['id']}/answers/{answer['id']}/review",
            json=body,
            headers=instructor,
        )

    def test_reject_defaults_to_zero(self, client, instructor, submission):
        response = self.review(client, instructor, submission, essay_answer(submission), action="reject")
        assert response.json()["answer"]["manualScore"] == 0
        assert response.json()["answer"]["isCorrect"] is False
        assert response.json()["submission"]["totalScore"] == 3

    def test_approve_defaults_to_full_points(self, client, instructor, submission):
        response = self.review(client, instructor, submission, essay_answer(submission), action="approve")
        assert response.json()["answer"]["manualScore"] == 5
        assert response.json()["submission"]["totalScore"] == 8

    def test_score_above_points_is_rejected(self, client, instructor, submission):
        response = self.review(client, instructor, submission, essay_answer(submission),
                               action="approve", manualScore=6)
        assert response.status_code == 422

    def test_negative_score_is_rejected(self, client, instructor, submission):
        response = self.review(client, instructor, submission, essay_answer(submission),
                               action="approve", manualScore=-1)
        assert response.status_code == 422

    def test_objective_answers_are_not_reviewable(self, client, instructor, submission):
        objective = submission["answers"][0]
        response = self.review(client, instructor, submission, objective, action="approve")
        assert response.status_code == 400
        assert error_of(response)["code"] == "ANSWER_NOT_REVIEWABLE"

    def test_identical_repeat_is_a_no_op(self, client, instructor, submission):
        answer = essay_answer(submission)
        first = self.review(client, instructor, submission, answer, action="approve", manualScore=2)
        second = self.review(client, instructor, submission, answer, action="approve", manualScore=2)
        assert second.status_code == 200
        assert second.json()["answer"]["reviewedAt"] == first.json()["answer"]["reviewedAt"]

    def test_changing_a_review_is_refused(self, client, instructor, submission):
        answer = essay_answer(submission)
        self.review(client, instructor, submission, answer, action="approve", manualScore=2)
        response = self.review(client, instructor, submission, answer, action="reject")
        assert response.status_code == 409
        assert error_of(response)["code"] == "ANSWER_ALREADY_REVIEWED"

    def test_unknown_answer(self, client, instructor, submission):
        response = self.review(client, instructor, submission, {"id": "missing"}, action="approve")
        assert response.status_code == 404
        assert error_of(response)["code"] == "ANSWER_NOT_FOUND"

    def test_other_instructor_gets_404(self, client, other_instructor, submission):
        response = self.review(client, other_instructor, submission, essay_answer(submission), action="approve")
        assert response.status_code == 404

    def test_students_cannot_review(self, client, student, submission):
        response = self.review(client, student, submission, essay_answer(submission), action="approve")
        assert response.status_code == 403


class TestSubmissionVisibility:
    def test_correctness_hidden_from_students_by_default(self, client, student, quiz, submit):
        body = submit(quiz).json()
        for answer in body["answers"]:
            assert answer["isCorrect"] is None
            assert answer["correctOptionId"] is None
        # points are still reported
        assert sum(a["pointsEarned"] or 0 for a in body["answers"]) == 3

        detail = client.get(f"{SUBMISSIONS}/{body['id']}", headers=student).json()
        assert all(a["isCorrect"] is None for a in detail["answers"])

    def test_correctness_shown_when_enabled(self, client, student, enroll, create_quiz, submit):
        enroll()
        quiz = create_quiz(showCorrectAnswers=True)
        body = submit(quiz, answers_for(quiz, mc="wrong")).json()
        mc = body["answers"][0]
        assert mc["isCorrect"] is False
        assert mc["correctOptionId"] == next(o["id"] for o in quiz["questions"][0]["options"] if o["isCorrect"])

    def test_instructor_always_sees_correctness(self, client, instructor, quiz, submit):
        body = submit(quiz).json()
        detail = client.get(f"{SUBMISSIONS}/{body['id']}", headers=instructor).json()
        assert detail["answers"][0]["isCorrect"] is True

    def test_other_student_gets_404(self, client, other_student, quiz, submit):
        body = submit(quiz).json()
        response = client.get(f"{SUBMISSIONS}/{body['id']}", headers=other_student)
        assert response.status_code == 404
        assert error_of(response)["code"] == "SUBMISSION_NOT_FOUND"

    def test_other_instructor_gets_404(self, client, other_instructor, quiz, submit):
        body = submit(quiz).json()
        assert client.get(f"{SUBMISSIONS}/{body['id']}", headers=other_instructor).status_code == 404


class TestNotifications:
    def test_failing_sink_does_not_fail_submission(self, client, student, sink, quiz, submit, caplog):
        sink.fail = True
        with caplog.at_level(logging.WARNING):
            response = submit(quiz)
        assert response.status_code == 201
        assert "quiz_submitted" in caplog.text
        assert len(client.get(f"{QUIZZES}/{quiz['id']}/my-submissions", headers=student).json()) == 1


class TestInstructorViews:
    def test_tracking_lists_whole_roster(self, client, instructor, enroll, quiz, submit):
        enroll(OTHER_STUDENT_ID)
        submit(quiz)

        body = client.get(f"{QUIZZES}/{quiz['id']}/submissions", headers=instructor).json()
        rows = {row["studentId"]: row for row in body["data"]}
        assert set(rows) == {STUDENT_ID, OTHER_STUDENT_ID}
        assert rows[STUDENT_ID]["status"] == "submitted"
        assert rows[STUDENT_ID]["totalSubmissions"] == 1
        assert rows[STUDENT_ID]["bestScore"] == 3
        assert rows[STUDENT_ID]["pendingReviewCount"] == 1
        assert rows[OTHER_STUDENT_ID]["status"] == "not_submitted"
        assert rows[OTHER_STUDENT_ID]["latestSubmission"] is None

        pending = client.get(f"{QUIZZES}/{quiz['id']}/submissions", params={"status": "not_submitted"},
                             headers=instructor).json()
        assert [row["studentId"] for row in pending["data"]] == [OTHER_STUDENT_ID]

    def test_tracking_requires_ownership(self, client, other_instructor, quiz):
        response = client.get(f"{QUIZZES}/{quiz['id']}/submissions", headers=other_instructor)
        assert response.status_code == 404

    def test_holistic_grade_does_not_finalize(self, client, instructor, quiz, submit):
        body = submit(quiz).json()
        response = client.put(f"{SUBMISSIONS}/{body['id']}/grade", json={"grade": 85, "feedback": "Good work"},
                              headers=instructor)
        assert response.status_code == 200
        graded = response.json()
        assert graded["grade"] == 85
        assert graded["feedback"] == "Good work"
        assert graded["isGraded"] is False

    def test_holistic_grade_range(self, client, instructor, quiz, submit):
        body = submit(quiz).json()
        response = client.put(f"{SUBMISSIONS}/{body['id']}/grade", json={"grade": 101}, headers=instructor)
        assert response.status_code == 422


def assert_scores_consistent(submission, quiz):
    assert submission["totalScore"] == sum(a["pointsEarned"] or 0 for a in submission["answers"])
    assert submission["maxScore"] == sum(q["points"] for q in quiz["questions"])


class TestRescoringAfterEdits:
    def questions_with_points(self, quiz, **points_by_type):
        return [
            {
                "id": q["id"],
                "questionText": q["questionText"],
                "questionType": q["questionType"],
                "points": points_by_type.get(q["questionType"], q["points"]),
                "options": [{"optionText": o["optionText"], "isCorrect": o["isCorrect"]} for o in q["options"]],
            }
            for q in quiz["questions"]
        ]

    def test_raising_points_through_quiz_update(self, client, instructor, quiz, submit):
        body = submit(quiz).json()

        response = client.put(
            f"{QUIZZES}/{quiz['id']}",
            json={"questions": self.questions_with_points(quiz, multiple_choice=6)},
            headers=instructor,
        )
        assert response.status_code == 200, response.text
        edited = response.json()

        detail = client.get(f"{SUBMISSIONS}/{body['id']}", headers=instructor).json()
        assert detail["totalScore"] == 7
        assert detail["maxScore"] == 12
        assert_scores_consistent(detail, edited)

        client.put(
            f"{SUBMISSIONS}/{body['id']}/answers/{essay_answer(detail)['id']}/review",
            json={"action": "approve", "manualScore": 5},
            headers=instructor,
        )
        final = client.post(f"{SUBMISSIONS}/{body['id']}/complete-grading", headers=instructor).json()
        assert final["totalScore"] == 12
        assert final["maxScore"] == 12
        assert_scores_consistent(final, edited)

    def test_lowering_essay_points_below_reviewed_score(self, client, instructor, quiz, submit):
        body = submit(quiz).json()
        essay = essay_answer(body)
        client.put(
            f"{SUBMISSIONS}/{body['id']}/answers/{essay['id']}/review",
            json={"action": "approve", "manualScore": 5},
            headers=instructor,
        )

        response = client.put(
            f"{QUIZZES}/{quiz['id']}/questions/{essay['questionId']}",
            json={"points": 2},
            headers=instructor,
        )
        assert response.status_code == 200, response.text
        edited = client.get(f"{QUIZZES}/{quiz['id']}", headers=instructor).json()

        detail = client.get(f"{SUBMISSIONS}/{body['id']}", headers=instructor).json()
        assert essay_answer(detail)["pointsEarned"] == 2
        assert detail["totalScore"] == 5
        assert detail["totalScore"] <= detail["maxScore"]
        assert_scores_consistent(detail, edited)

        final = client.post(f"{SUBMISSIONS}/{body['id']}/complete-grading", headers=instructor).json()
        assert_scores_consistent(final, edited)

    def test_adding_a_question_raises_max_score(self, client, instructor, quiz, submit):
        body = submit(quiz).json()

        response = client.post(f"{QUIZZES}/{quiz['id']}/questions", json=tf_question(points=4), headers=instructor)
        assert response.status_code == 201
        edited = client.get(f"{QUIZZES}/{quiz['id']}", headers=instructor).json()

        detail = client.get(f"{SUBMISSIONS}/{body['id']}", headers=instructor).json()
        assert detail["maxScore"] == 12
        assert_scores_consistent(detail, edited)
