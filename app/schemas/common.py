"""
Shared response schemas.

Every endpoint answers with the same envelope:

    {"success": true, "message": "...", "data": {...}}
    {"success": false, "message": "Validation errors", "errors": {"field": ["..."]}}

Fields that are None are left out of the response.
"""

import math
from typing import Generic, TypeVar

from pydantic import BaseModel, Field, model_serializer

DataT = TypeVar("DataT")


class Envelope(BaseModel, Generic[DataT]):
    """Uniform response envelope."""

    success: bool = True
    message: str | None = None
    data: DataT | None = None
    errors: dict[str, list[str]] | None = None

    @model_serializer(mode="wrap")
    def _drop_empty(self, handler):
        return {key: value for key, value in handler(self).items() if value is not None}


class PaginationMeta(BaseModel):
    """Pagination block of list responses."""

    current_page: int = Field(..., ge=1)
    per_page: int = Field(..., ge=1)
    total: int = Field(..., ge=0)
    total_pages: int = Field(..., ge=0)

    @classmethod
    def build(cls, page: int, per_page: int, total: int) -> "PaginationMeta":
        return cls(
            current_page=page,
            per_page=per_page,
            total=total,
            total_pages=math.ceil(total / per_page) if per_page else 0,
        )
