"""
Shared fixtures and test doubles for the Emotibot test suite.
"""

from datetime import datetime

import pytest

from emotibot.database import Database, DatabaseOptions, Dialect
from emotibot.errors import EmotionNotFoundError, PersistenceError, UpstreamServiceError
from emotibot.migrations import Migrator
from emotibot.models import CreateEmotionRequest, Emotion, UpdateEmotionRequest
from emotibot.store import SQLEmotionStore


class FakeStore:
    """In-memory emotion store that records every call."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.emotions: dict[int, dict] = {}
        self.fail_create = False
        self.fail_update_fields: set[str] = set()

    async def create_emotion(self, request: CreateEmotionRequest) -> int:
        self.calls.append(("create", request))
        if self.fail_create:
            raise PersistenceError("database is down")
        emotion_id = len(self.emotions) + 1
        self.emotions[emotion_id] = {"id": emotion_id, **request.model_dump()}
        return emotion_id

    async def update_emotion(self, emotion_id: int, request: UpdateEmotionRequest) -> None:
        changes = request.changes()
        self.calls.append(("update", emotion_id, changes))
        if self.fail_update_fields & changes.keys():
            raise PersistenceError("write failed")
        if emotion_id not in self.emotions:
            raise EmotionNotFoundError(emotion_id)
        self.emotions[emotion_id].update(changes)

    async def get_emotion(self, emotion_id: int) -> Emotion:
        if emotion_id not in self.emotions:
            raise EmotionNotFoundError(emotion_id)
        return Emotion.model_validate(self.emotions[emotion_id])

    async def average_score(self, since: datetime) -> float | None:
        scores = [e["score"] for e in self.emotions.values() if e.get("score") is not None]
        return sum(scores) / len(scores) if scores else None


class FakeSentiment:
    """Sentiment service returning canned answers."""

    def __init__(self, score: int = 85, task: str = "take a walk") -> None:
        self.score = score
        self.task = task
        self.calls: list[tuple] = []
        self.fail_score = False
        self.fail_task = False

    async def get_emotion_score(self, text: str) -> int:
        self.calls.append(("score", text))
        if self.fail_score:
            raise UpstreamServiceError("no response received from Gemini")
        return self.score

    async def generate_task_suggestion(self, emoji: str, description: str, score: int) -> str:
        self.calls.append(("task", emoji, description, score))
        if self.fail_task:
            raise UpstreamServiceError("no response received for task suggestion")
        return self.task

    async def generate_daily_summary(self, average_score: float) -> str:
        self.calls.append(("summary", average_score))
        return "a good day overall"


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def fake_sentiment() -> FakeSentiment:
    return FakeSentiment()


@pytest.fixture
def db_options(tmp_path) -> DatabaseOptions:
    return DatabaseOptions(dialect=Dialect.SQLITE, host=str(tmp_path / "emotibot.db"))


@pytest.fixture
async def database(db_options):
    async with Database(db_options) as db:
        yield db


@pytest.fixture
async def store(database) -> SQLEmotionStore:
    await Migrator(database).upgrade()
    return SQLEmotionStore(database)


@pytest.fixture
async def unreachable_database():
    """A postgres database nothing listens for, so every connect is refused."""
    options = DatabaseOptions(dialect=Dialect.POSTGRES, host="127.0.0.1", port=1)
    async with Database(options) as db:
        yield db
