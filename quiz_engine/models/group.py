"""
quiz_engine/models/group.py
Student → group enrollments

Backs the default membership resolver. Group and course records themselves
live in the surrounding LMS; only the membership pairs are mirrored here.
"""

from __future__ import annotations

from sqlalchemy import UniqueConstraint
from sqlalchemy.orm import Mapped

from quiz_engine.database.base import external_id
from quiz_engine.models.base_model import BaseModel


class GroupEnrollment(BaseModel):
    __tablename__ = "group_enrollments"

    group_id: Mapped[external_id]
    student_id: Mapped[external_id]

    __table_args__ = (
        UniqueConstraint("group_id", "student_id", name="uq_group_student"),
    )
