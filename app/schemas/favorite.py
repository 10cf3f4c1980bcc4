"""
Favorite Pydantic Schemas
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class FavoriteRequest(BaseModel):
    """Body of POST /favorites and POST /favorites/toggle."""

    book_id: int = Field(..., ge=1, description="Internal book ID", examples=[42])


class FavoriteResponse(BaseModel):
    id: int
    user_id: int
    book_id: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class FavoriteCreatedData(BaseModel):
    favorite: FavoriteResponse
    book: dict[str, Any]


class FavoriteToggleData(BaseModel):
    is_favorited: bool
