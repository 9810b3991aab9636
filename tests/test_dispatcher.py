"""
Tests for routing transport events through the dispatcher.
"""

import asyncio

import pytest

from emotibot.dispatcher import Dispatcher
from emotibot.errors import UnknownCommandError
from emotibot.events import (
    Connected,
    Connecting,
    ConnectionFailed,
    EventsApiEvent,
    Hello,
    OtherEvent,
    SlashCommand,
)
from emotibot.pipeline import EmotionPipeline


def _command(text: str = ":smile: had a great day", **overrides) -> SlashCommand:
    fields = {
        "envelope_id": "env-1",
        "command": "/emoji",
        "text": text,
        "user_id": "U123",
        "channel_id": "C456",
    }
    fields.update(overrides)
    return SlashCommand(**fields)


class RecordingReplier:
    def __init__(self, log: list) -> None:
        self.log = log
        self.replies: list[tuple[str, str]] = []

    async def send(self, command: SlashCommand, text: str) -> None:
        self.log.append("reply")
        self.replies.append((command.channel_id, text))


class TestDispatcher:
    @pytest.fixture(autouse=True)
    def setup(self, fake_store, fake_sentiment):
        self.log: list = []
        self.store = fake_store
        self.sentiment = fake_sentiment
        self.replier = RecordingReplier(self.log)

        async def ack(envelope_id: str) -> None:
            self.log.append(("ack", envelope_id))

        pipeline = EmotionPipeline(fake_store, fake_sentiment)
        self.dispatcher = Dispatcher(pipeline, self.replier, ack=ack)

    async def _drain(self) -> None:
        while self.dispatcher.in_flight:
            await asyncio.sleep(0.001)

    async def test_slash_command_is_acked_then_answered(self):
        original_create = self.store.create_emotion

        async def create_emotion(request):
            self.log.append("pipeline")
            return await original_create(request)

        self.store.create_emotion = create_emotion

        await self.dispatcher.dispatch(_command())
        await self._drain()

        assert self.log == [("ack", "env-1"), "pipeline", "reply"]
        assert self.replier.replies == [("C456", "take a walk")]

    async def test_unknown_command_skips_pipeline(self):
        await self.dispatcher.dispatch(_command(command="/weather"))
        await self._drain()

        assert self.log == [("ack", "env-1")]
        assert self.store.calls == []
        assert self.replier.replies == []

    async def test_handle_command_raises_for_unknown_command(self):
        with pytest.raises(UnknownCommandError) as exc_info:
            await self.dispatcher.handle_command(_command(command="/weather"))

        assert exc_info.value.command == "/weather"

    async def test_missing_user_id_produces_no_reply(self):
        await self.dispatcher.dispatch(_command(user_id=""))
        await self._drain()

        assert self.replier.replies == []
        assert self.store.calls == []

    async def test_usage_errors_are_replied(self):
        await self.dispatcher.dispatch(_command(text="smile"))
        await self._drain()

        assert len(self.replier.replies) == 1
        assert ":smile:" in self.replier.replies[0][1]

    async def test_events_api_is_acked(self):
        await self.dispatcher.dispatch(EventsApiEvent(envelope_id="env-9", payload={"type": "x"}))

        assert self.log == [("ack", "env-9")]

    @pytest.mark.parametrize(
        "event", [Connecting(), Connected(), ConnectionFailed(error="boom"), Hello(), OtherEvent(raw_type="x")]
    )
    async def test_lifecycle_events_are_only_logged(self, event):
        await self.dispatcher.dispatch(event)

        assert self.log == []
        assert self.dispatcher.in_flight == 0

    async def test_commands_run_concurrently(self):
        both_started = asyncio.Event()
        release = asyncio.Event()
        started = 0

        async def get_emotion_score(text: str) -> int:
            nonlocal started
            started += 1
            if started == 2:
                both_started.set()
            await release.wait()
            return 50

        self.sentiment.get_emotion_score = get_emotion_score

        async def events():
            yield _command(envelope_id="a")
            yield _command(envelope_id="b")

        await self.dispatcher.run(events())
        await asyncio.wait_for(both_started.wait(), timeout=1.0)
        assert self.dispatcher.in_flight == 2

        release.set()
        await self._drain()
        assert len(self.replier.replies) == 2

    async def test_shutdown_cancels_in_flight_commands(self):
        started = asyncio.Event()
        cancelled = asyncio.Event()

        async def get_emotion_score(text: str) -> int:
            started.set()
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise
            return 50

        self.sentiment.get_emotion_score = get_emotion_score

        task = self.dispatcher.submit(_command())
        await asyncio.wait_for(started.wait(), timeout=1.0)

        await self.dispatcher.shutdown(grace_period=1.0)

        assert cancelled.is_set()
        assert task.cancelled()
        assert self.dispatcher.in_flight == 0
        assert self.replier.replies == []

    async def test_reply_failure_is_contained(self):
        async def send(command, text):
            raise RuntimeError("slack is down")

        self.replier.send = send

        task = self.dispatcher.submit(_command())
        await task

        assert task.exception() is None

    async def test_undecodable_envelope_is_acked(self):
        await self.dispatcher.dispatch(OtherEvent(raw_type="slash_commands", envelope_id="env-7"))

        assert self.log == [("ack", "env-7")]
        assert self.dispatcher.in_flight == 0

    async def test_unexpected_pipeline_error_is_contained(self, caplog):
        async def create_emotion(request):
            raise RuntimeError("driver exploded")

        self.store.create_emotion = create_emotion

        task = self.dispatcher.submit(_command())
        await task

        assert task.exception() is None
        assert self.replier.replies == []
        assert "Error handling slash command /emoji" in caplog.text
