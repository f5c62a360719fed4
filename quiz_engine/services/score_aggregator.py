"""
quiz_engine/services/score_aggregator.py
Recomputes a submission's total and max score from its answers.

Safe to call any number of times: it only ever writes total_score and
max_score, both derived from the current questions. Per-answer points go
through derived_points(), the same function the answer views use, so the
total always equals the sum of the points shown.
"""

from __future__ import annotations

from typing import Iterable, Tuple

from quiz_engine.models.quiz import Question
from quiz_engine.models.submission import QuizAnswer, QuizSubmission
from quiz_engine.services.auto_grader import derived_points


def compute_scores(answers: Iterable[QuizAnswer], questions: Iterable[Question]) -> Tuple[float, float]:
    questions = list(questions)
    by_id = {q.id: q for q in questions}

    total = 0.0
    for answer in answers:
        question = by_id.get(answer.question_id)
        if question is None:
            continue
        total += derived_points(answer, question) or 0.0

    return total, float(sum(q.points for q in questions))


class ScoreAggregator:
    def recompute(self, submission: QuizSubmission) -> QuizSubmission:
        total, maximum = compute_scores(submission.answers, submission.quiz.questions)
        submission.total_score = total
        submission.max_score = maximum
        return submission
