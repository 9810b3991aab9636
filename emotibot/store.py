"""
Emotion storage for the Emotibot service.

This module defines the store contract used by the pipeline and a
SQLAlchemy-backed implementation over the `emotions` table. Creation is a
single atomic insert; updates are a read-modify-write inside one transaction.
"""

import logging
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import DateTime, Index, Integer, Text, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .database import Database, Dialect
from .errors import EmotionNotFoundError, PersistenceError
from .models import CreateEmotionRequest, Emotion, UpdateEmotionRequest

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class EmotionRow(Base):
    """ORM mapping of the `emotions` table."""

    __tablename__ = "emotions"
    __table_args__ = (Index("idx_user_id", "user_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    emoji: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    score: Mapped[int | None] = mapped_column(Integer)
    task: Mapped[str | None] = mapped_column(Text)
    task_completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class EmotionStore(Protocol):
    """Persistence contract for emotion records."""

    async def create_emotion(self, request: CreateEmotionRequest) -> int: ...

    async def update_emotion(self, emotion_id: int, request: UpdateEmotionRequest) -> None: ...

    async def get_emotion(self, emotion_id: int) -> Emotion: ...

    async def average_score(self, since: datetime) -> float | None: ...


class SQLEmotionStore:
    """
    Emotion store backed by a relational database.

    Every SQLAlchemy failure, and any OSError the driver raises while
    connecting, is re-raised as a PersistenceError so callers never depend on
    the database driver.
    """

    def __init__(self, database: Database) -> None:
        self._database = database
        # SQLite has no row locks
        self._lock_rows = database.options.dialect is Dialect.POSTGRES

    async def create_emotion(self, request: CreateEmotionRequest) -> int:
        """
        Insert a new emotion record.

        Args:
            request: The user, emoji and description of the check-in

        Returns:
            The id assigned to the new record
        """
        row = EmotionRow(
            user_id=request.user_id,
            emoji=request.emoji,
            description=request.description,
        )
        try:
            async with self._database.session() as session:
                async with session.begin():
                    session.add(row)
                    await session.flush()
                    emotion_id = row.id
        except (SQLAlchemyError, OSError) as e:
            raise PersistenceError(f"failed to create emotion: {e}") from e

        logger.debug("Created emotion %s for user %s", emotion_id, request.user_id)
        return emotion_id

    async def update_emotion(self, emotion_id: int, request: UpdateEmotionRequest) -> None:
        """
        Apply the provided fields to an existing record.

        Raises:
            EmotionNotFoundError: If no record has this id
            PersistenceError: If the database operation fails
        """
        changes = request.changes()
        try:
            async with self._database.session() as session:
                async with session.begin():
                    row = await session.get(
                        EmotionRow, emotion_id, with_for_update=self._lock_rows
                    )
                    if row is None:
                        raise EmotionNotFoundError(emotion_id)
                    for field, value in changes.items():
                        setattr(row, field, value)
        except (SQLAlchemyError, OSError) as e:
            raise PersistenceError(f"failed to update emotion {emotion_id}: {e}") from e

        logger.debug("Updated emotion %s: %s", emotion_id, sorted(changes))

    async def get_emotion(self, emotion_id: int) -> Emotion:
        try:
            async with self._database.session() as session:
                row = await session.get(EmotionRow, emotion_id)
        except (SQLAlchemyError, OSError) as e:
            raise PersistenceError(f"failed to find emotion {emotion_id}: {e}") from e

        if row is None:
            raise EmotionNotFoundError(emotion_id)
        return Emotion.model_validate(row)

    async def average_score(self, since: datetime) -> float | None:
        """Mean score of scored records created at or after `since`."""
        query = select(func.avg(EmotionRow.score)).where(
            EmotionRow.created_at >= since, EmotionRow.score.is_not(None)
        )
        try:
            async with self._database.session() as session:
                average = await session.scalar(query)
        except (SQLAlchemyError, OSError) as e:
            raise PersistenceError(f"failed to compute average score: {e}") from e

        return float(average) if average is not None else None
