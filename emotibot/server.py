"""
FastAPI server for the Emotibot service.

This module receives Slack slash commands over HTTP (the "request URL"
delivery mode). The HTTP 200 response acknowledges the command; the pipeline
runs in the background and its reply is posted to the command's
`response_url`.
"""

import logging
from collections.abc import AsyncGenerator, Mapping
from contextlib import asynccontextmanager
from urllib.parse import parse_qs

import httpx
from fastapi import FastAPI, HTTPException, Request, Response
from pydantic import ValidationError
from slack_sdk.signature import SignatureVerifier

from .dispatcher import Dispatcher
from .events import SlashCommand
from .pipeline import EmotionPipeline

logger = logging.getLogger(__name__)


class ResponseUrlReplier:
    """Posts replies to the `response_url` Slack sends with each command."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def send(self, command: SlashCommand, text: str) -> None:
        if not command.response_url:
            logger.warning("Command from %s has no response_url, dropping reply", command.user_id)
            return

        response = await self._client.post(
            command.response_url,
            json={"response_type": "in_channel", "text": text},
        )
        response.raise_for_status()


def create_app(
    pipeline: EmotionPipeline,
    *,
    signing_secret: str | None = None,
    http_client: httpx.AsyncClient | None = None,
    grace_period: float = 1.0,
) -> FastAPI:
    """
    Create a FastAPI application around the given pipeline.

    Args:
        pipeline: The pipeline handling `/emoji` commands
        signing_secret: Slack signing secret; requests are verified when set
        http_client: Client used to post replies (created if omitted)
        grace_period: Seconds in-flight commands get to stop on shutdown

    Returns:
        Configured FastAPI application
    """
    client = http_client or httpx.AsyncClient(timeout=10.0)
    dispatcher = Dispatcher(pipeline, ResponseUrlReplier(client))
    verifier = SignatureVerifier(signing_secret) if signing_secret else None

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Lifespan context manager for FastAPI application."""
        yield
        await dispatcher.shutdown(grace_period)
        if http_client is None:
            await client.aclose()

    app = FastAPI(
        title="Emotibot",
        description="Emotion check-ins for Slack, scored by Gemini",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.dispatcher = dispatcher

    @app.get("/")
    async def root() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "emotibot"}

    @app.post("/slack/commands")
    async def slash_command(request: Request) -> Response:
        """
        Accept a slash command and process it in the background.

        Returns:
            An empty 200 response, which Slack treats as the acknowledgement
        """
        body = await request.body()
        if verifier is not None and not verifier.is_valid_request(body, dict(request.headers)):
            raise HTTPException(status_code=401, detail="Invalid request signature")

        try:
            command = SlashCommand.model_validate(_form_fields(parse_qs(body.decode())))
        except (ValidationError, UnicodeDecodeError) as e:
            raise HTTPException(status_code=400, detail=f"Invalid slash command: {e}")

        dispatcher.submit(command)
        return Response(status_code=200)

    return app


def _form_fields(form: Mapping[str, list[str]]) -> dict[str, str]:
    """Keep the first value of each form field."""
    return {key: values[0] for key, values in form.items() if values}

