"""
quiz_engine/models/base_model.py
Abstract base model class – every table model inherits from this

Features:
- UUID v4 primary key (string)
- created_at / updated_at timestamps
- update() method for safe partial updates
"""

from __future__ import annotations

from sqlalchemy.orm import Mapped

from quiz_engine.database.base import Base, str_pk, created_at_col, updated_at_col


class BaseModel(Base):
    """
    All models inherit from this class
    Provides common fields and utility methods
    """
    __abstract__ = True

    id: Mapped[str_pk]
    created_at: Mapped[created_at_col]
    updated_at: Mapped[updated_at_col]

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.id}>"

    def update(self, **kwargs) -> None:
        """
        Partial update: only touches attributes that exist on the model
        """
        for key, value in kwargs.items():
            if hasattr(self, key):
                setattr(self, key, value)
