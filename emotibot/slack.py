"""
Slack Socket Mode transport.

Raw Socket Mode messages are decoded into events and queued, so the
dispatcher sees them strictly in arrival order. Envelopes are acknowledged
through the socket; replies are posted to the command's channel.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

from slack_sdk.socket_mode.aiohttp import SocketModeClient
from slack_sdk.socket_mode.async_client import AsyncBaseSocketModeClient
from slack_sdk.socket_mode.response import SocketModeResponse
from slack_sdk.web.async_client import AsyncWebClient

from .dispatcher import Dispatcher
from .events import (
    Connected,
    Connecting,
    ConnectionFailed,
    Event,
    SlashCommand,
    decode_socket_message,
)
from .pipeline import EmotionPipeline

logger = logging.getLogger(__name__)


def _redact(token: str) -> str:
    return token[:10] + "..."


class ChannelReplier:
    """Posts replies to the channel the command was issued in."""

    def __init__(self, web_client: AsyncWebClient) -> None:
        self._web_client = web_client

    async def send(self, command: SlashCommand, text: str) -> None:
        await self._web_client.chat_postMessage(channel=command.channel_id, text=text)


class SlackBot:
    """
    Runs the emotion pipeline behind a Slack Socket Mode connection.

    Args:
        bot_token: Bot user OAuth token, used to post replies
        app_token: App-level token, used to open the socket
        pipeline: The pipeline handling `/emoji` commands
        grace_period: Seconds in-flight commands get to stop on shutdown
    """

    def __init__(
        self,
        bot_token: str,
        app_token: str,
        pipeline: EmotionPipeline,
        *,
        grace_period: float = 1.0,
        web_client: AsyncWebClient | None = None,
        socket_client: AsyncBaseSocketModeClient | None = None,
    ) -> None:
        logger.info("Bot token: %s", _redact(bot_token))
        logger.info("App token: %s", _redact(app_token))

        self._web_client = web_client or AsyncWebClient(token=bot_token)
        self._socket_client = socket_client or SocketModeClient(
            app_token=app_token, web_client=self._web_client
        )
        self._socket_client.message_listeners.append(self._on_message)
        self._events: asyncio.Queue[Event] = asyncio.Queue()
        self._grace_period = grace_period

        self.dispatcher = Dispatcher(
            pipeline, ChannelReplier(self._web_client), ack=self._ack
        )

    async def run(self, stop: asyncio.Event) -> None:
        """Listen for Slack events until `stop` is set."""
        consumer = asyncio.create_task(self.dispatcher.run(self._event_stream()))
        try:
            await self.dispatcher.dispatch(Connecting())
            try:
                await self._socket_client.connect()
            except Exception as e:
                await self.dispatcher.dispatch(ConnectionFailed(error=str(e)))
                raise
            await self.dispatcher.dispatch(Connected())

            logger.info("Starting to listen for Slack events")
            await stop.wait()
            logger.info("Stop requested")
        finally:
            consumer.cancel()
            await asyncio.gather(consumer, return_exceptions=True)
            await self._socket_client.close()
            await self.dispatcher.shutdown(self._grace_period)
            logger.info("Bot execution completed")

    # MARK: - Private Helpers

    async def _ack(self, envelope_id: str) -> None:
        await self._socket_client.send_socket_mode_response(
            SocketModeResponse(envelope_id=envelope_id)
        )

    async def _on_message(
        self,
        client: AsyncBaseSocketModeClient,
        message: dict[str, Any],
        raw_message: str | None,
    ) -> None:
        self._events.put_nowait(decode_socket_message(message))

    async def _event_stream(self) -> AsyncIterator[Event]:
        while True:
            yield await self._events.get()
