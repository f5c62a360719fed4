"""
quiz_engine/database/base.py
SQLAlchemy declarative base + shared column types

All models inherit from Base (through models.base_model.BaseModel)
Handles:
- UUID primary keys (as string)
- Automatic timestamps
- Constraint naming conventions
"""

import uuid
from datetime import datetime
from typing import Annotated

from sqlalchemy import MetaData, String, DateTime, func
from sqlalchemy.orm import DeclarativeBase, mapped_column

from quiz_engine.utils.timeutils import utcnow

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s"
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


# === Reusable column types ===

# UUID as string
str_pk = Annotated[
    str,
    mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
]

# Timestamps (created_at, updated_at)
created_at_col = Annotated[
    datetime,
    mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
]

updated_at_col = Annotated[
    datetime,
    mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )
]

# Foreign ids owned by external collaborators (users, courses, groups)
external_id = Annotated[
    str,
    mapped_column(String(64), nullable=False, index=True)
]
