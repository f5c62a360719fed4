"""
quiz_engine/services/question_sync.py
Reconciles a quiz's stored questions with the list sent on update.

plan_question_sync() is pure: it only looks at ids and order indexes and
returns three explicit lists. The quiz service applies the plan inside the
update transaction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence, Tuple

from quiz_engine.schemas.quiz import QuestionIn
from quiz_engine.utils.exceptions import ValidationException


@dataclass
class QuestionSyncPlan:
    to_create: List[Tuple[QuestionIn, int]] = field(default_factory=list)
    to_update: List[Tuple[str, QuestionIn, int]] = field(default_factory=list)
    to_delete: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.to_create or self.to_update or self.to_delete)


def assign_order_indexes(questions: Sequence[QuestionIn], start_after: int = 0) -> List[int]:
    """Explicit index when given, otherwise one past the highest index seen so far"""
    highest = start_after
    indexes = []
    for question in questions:
        if question.order_index is not None:
            index = question.order_index
        else:
            index = highest + 1
        highest = max(highest, index)
        indexes.append(index)
    return indexes


def plan_question_sync(
    existing: Dict[str, int],
    incoming: Sequence[QuestionIn],
) -> QuestionSyncPlan:
    """
    existing maps stored question id -> order_index.
    Incoming entries with an id update that question, entries without one
    are created, stored questions missing from the list are deleted.
    """
    errors = []
    seen = set()
    for position, question in enumerate(incoming):
        if question.id is None:
            continue
        if question.id not in existing:
            errors.append({
                "field": f"questions -> {position} -> id",
                "message": f"Question {question.id} does not belong to this quiz",
                "type": "unknown_question",
            })
        elif question.id in seen:
            errors.append({
                "field": f"questions -> {position} -> id",
                "message": f"Question {question.id} appears more than once",
                "type": "duplicate_question",
            })
        seen.add(question.id)
    if errors:
        raise ValidationException(errors)

    plan = QuestionSyncPlan()
    kept = [q for q in incoming if q.id is not None]
    plan.to_delete = [qid for qid in existing if qid not in seen]

    for question in kept:
        index = question.order_index if question.order_index is not None else existing[question.id]
        plan.to_update.append((question.id, question, index))

    highest_kept = max((index for _, _, index in plan.to_update), default=0)
    new_questions = [q for q in incoming if q.id is None]
    for question, index in zip(new_questions, assign_order_indexes(new_questions, highest_kept)):
        plan.to_create.append((question, index))

    return plan


def option_signature(options: Iterable) -> List[Tuple[str, bool]]:
    """Comparable form of an option set (stored rows or incoming payload)"""
    return [(opt.option_text.strip(), bool(opt.is_correct)) for opt in options]
