"""
Routing of transport events into the emotion pipeline.

The dispatcher consumes events in order, acknowledges the ones that need it
and runs each recognized slash command as its own asyncio task, so several
commands can be processed concurrently.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from typing import Protocol

from .errors import TransportContractError, UnknownCommandError
from .events import (
    Connected,
    Connecting,
    ConnectionFailed,
    Event,
    EventsApiEvent,
    Hello,
    SlashCommand,
)
from .pipeline import EmotionPipeline

logger = logging.getLogger(__name__)

EMOJI_COMMAND = "/emoji"

Ack = Callable[[str], Awaitable[None]]


class Replier(Protocol):
    """Sends the pipeline's reply back to where the command came from."""

    async def send(self, command: SlashCommand, text: str) -> None: ...


class Dispatcher:
    """
    Acknowledges transport events and routes slash commands.

    Args:
        pipeline: The pipeline that handles recognized commands
        replier: Delivers replies over the transport
        ack: Acknowledges a Socket Mode envelope by id, if the transport needs it
        commands: Command names routed into the pipeline
    """

    def __init__(
        self,
        pipeline: EmotionPipeline,
        replier: Replier,
        *,
        ack: Ack | None = None,
        commands: Iterable[str] = (EMOJI_COMMAND,),
    ) -> None:
        self._pipeline = pipeline
        self._replier = replier
        self._ack = ack
        self._commands = frozenset(commands)
        self._tasks: set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def run(self, events: AsyncIterator[Event]) -> None:
        """Dispatch events one after another until the stream ends."""
        async for event in events:
            await self.dispatch(event)

    async def dispatch(self, event: Event) -> None:
        if isinstance(event, Connecting):
            logger.info("Connecting to Slack with Socket Mode...")
        elif isinstance(event, Connected):
            logger.info("Connected to Slack with Socket Mode.")
        elif isinstance(event, ConnectionFailed):
            logger.info("Connection failed: %s. Retrying later...", event.error)
        elif isinstance(event, Hello):
            logger.debug("Hello received from Slack")
        elif isinstance(event, EventsApiEvent):
            await self._acknowledge(event.envelope_id)
            logger.info("Event received: %s", event.payload.get("type"))
        elif isinstance(event, SlashCommand):
            await self._acknowledge(event.envelope_id)
            self.submit(event)
        else:
            # Slack redelivers unacked envelopes
            await self._acknowledge(event.envelope_id)
            logger.info("Unexpected event type received: %s", event.raw_type)

    def submit(self, command: SlashCommand) -> asyncio.Task:
        """Process a slash command in the background."""
        task = asyncio.create_task(self._process(command))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def handle_command(self, command: SlashCommand) -> str:
        """
        Route a command into the pipeline and return the reply.

        Raises:
            UnknownCommandError: If the command is not handled by this bot
            TransportContractError: If the command carries no user id
        """
        logger.info(
            "Handling slash command %s from user %s in channel %s",
            command.command,
            command.user_id,
            command.channel_id,
        )
        if command.command not in self._commands:
            raise UnknownCommandError(command.command)

        return await self._pipeline.handle(command.user_id, command.text)

    async def shutdown(self, grace_period: float = 1.0) -> None:
        """Cancel in-flight commands and give them time to unwind."""
        if not self._tasks:
            return

        tasks = list(self._tasks)
        logger.info("Cancelling %d in-flight command(s)", len(tasks))
        for task in tasks:
            task.cancel()

        _, pending = await asyncio.wait(tasks, timeout=grace_period)
        if pending:
            logger.warning("%d command(s) did not stop within %.1fs", len(pending), grace_period)

    # MARK: - Private Helpers

    async def _acknowledge(self, envelope_id: str | None) -> None:
        if self._ack is not None and envelope_id:
            await self._ack(envelope_id)

    async def _process(self, command: SlashCommand) -> None:
        try:
            reply = await self.handle_command(command)
        except UnknownCommandError as e:
            logger.warning("Error handling slash command: %s", e)
            return
        except TransportContractError as e:
            logger.error("Error handling slash command: %s", e)
            return
        except Exception:
            logger.exception("Error handling slash command %s", command.command)
            return

        try:
            await self._replier.send(command, reply)
        except Exception:
            logger.exception("Error sending message to channel %s", command.channel_id)
