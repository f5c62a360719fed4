"""
quiz_engine/services/membership_service.py
Group membership resolution

The engine only needs two questions answered: which groups a student is in,
and which students a set of groups contains. The default resolver reads the
group_enrollments table; deployments can swap it through the
get_membership_resolver dependency.
"""

from __future__ import annotations

import abc
from typing import Iterable, Set

from sqlalchemy.orm import Session

from quiz_engine.models.group import GroupEnrollment


class MembershipResolver(abc.ABC):
    @abc.abstractmethod
    def group_ids_for_student(self, student_id: str) -> Set[str]:
        ...

    @abc.abstractmethod
    def student_ids_for_groups(self, group_ids: Iterable[str]) -> Set[str]:
        ...

    def is_member_of_any(self, student_id: str, group_ids: Iterable[str]) -> bool:
        return bool(self.group_ids_for_student(student_id) & set(group_ids))


class DatabaseMembershipResolver(MembershipResolver):
    def __init__(self, db: Session):
        self.db = db

    def group_ids_for_student(self, student_id: str) -> Set[str]:
        rows = (
            self.db.query(GroupEnrollment.group_id)
            .filter(GroupEnrollment.student_id == student_id)
            .all()
        )
        return {row[0] for row in rows}

    def student_ids_for_groups(self, group_ids: Iterable[str]) -> Set[str]:
        ids = list(group_ids)
        if not ids:
            return set()
        rows = (
            self.db.query(GroupEnrollment.student_id)
            .filter(GroupEnrollment.group_id.in_(ids))
            .distinct()
            .all()
        )
        return {row[0] for row in rows}

    def enroll(self, group_id: str, student_id: str) -> GroupEnrollment:
        enrollment = GroupEnrollment(group_id=group_id, student_id=student_id)
        self.db.add(enrollment)
        self.db.flush()
        return enrollment
