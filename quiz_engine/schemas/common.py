"""
quiz_engine/schemas/common.py
Shared response models, pagination and the camelCase DTO base
Used across all modules for consistent API design
"""

from __future__ import annotations

from typing import Generic, TypeVar, List
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Generic type for pagination
T = TypeVar("T")


# =============================================================================
# DTO BASE – wire format is camelCase, snake_case still accepted on input
# =============================================================================

class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# =============================================================================
# STANDARD SUCCESS RESPONSES
# =============================================================================

class MessageResponse(CamelModel):
    success: bool = True
    message: str


class HealthCheck(CamelModel):
    status: str = "healthy"
    service: str
    version: str
    timestamp: datetime


# =============================================================================
# PAGINATION
# =============================================================================

class PaginationMeta(CamelModel):
    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "PaginationMeta":
        return cls(page=page, limit=limit, total=total, pages=(total + limit - 1) // limit if limit else 0)


class PaginatedResponse(CamelModel, Generic[T]):
    success: bool = True
    data: List[T]
    pagination: PaginationMeta


class PaginationParams(CamelModel):
    page: int = Field(1, ge=1, description="Page number (1-indexed)")
    limit: int = Field(20, ge=1, le=100, description="Items per page")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit
