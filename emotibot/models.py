"""
Shared data models for the Emotibot service.

This module defines the core domain models used across multiple layers
of the application (pipeline, storage, CLI).
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class Emotion(BaseModel):
    """Represents one user's emotion check-in."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="Identifier assigned by the store")
    user_id: str = Field(..., min_length=1, description="Submitting user")
    emoji: str = Field(..., min_length=1, description="Emoji token, e.g. :smile:")
    description: str = Field("", description="Free text following the emoji")
    score: int | None = Field(None, ge=0, le=100, description="Sentiment score")
    task: str | None = Field(None, description="Suggested mood-improving task")
    task_completed_at: datetime | None = Field(
        None, description="When the suggested task was completed"
    )
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CreateEmotionRequest(BaseModel):
    """Data required to create a new emotion record."""

    user_id: str = Field(..., min_length=1)
    emoji: str = Field(..., min_length=1)
    description: str = ""


class UpdateEmotionRequest(BaseModel):
    """
    Fields that can be amended on an existing emotion record.

    Only fields that were explicitly set are applied by the store, so
    `UpdateEmotionRequest(score=85)` leaves every other column untouched.
    """

    emoji: str | None = Field(None, min_length=1)
    description: str | None = None
    score: int | None = Field(None, ge=0, le=100)
    task: str | None = None
    task_completed_at: datetime | None = None

    def changes(self) -> dict:
        """Return only the fields the caller provided."""
        return self.model_dump(exclude_unset=True)
