"""
The emotion pipeline: from `/emoji` command text to a reply.

Stages run in strict order: parse, create, score, persist score, suggest,
persist task, respond. Failing to create the record, score it or generate a
suggestion ends the run with a message for the user. Failing to persist the
score or the task is logged and the run continues, since the user-facing
suggestion does not depend on those writes.
"""

import logging

from .errors import (
    PersistenceError,
    TransportContractError,
    UpstreamServiceError,
    UsageError,
)
from .models import CreateEmotionRequest, UpdateEmotionRequest
from .parser import parse_command
from .sentiment import SentimentService
from .store import EmotionStore

logger = logging.getLogger(__name__)

PROMPT_MESSAGE = "Please provide an emoji and optional text."
RETRY_MESSAGE = "Error processing your request. Please try again."
SCORE_FAILED_MESSAGE = "Sorry, I could not analyze your emotion right now. Please try again later."
SUGGESTION_FAILED_MESSAGE = (
    "Your emotion was recorded, but I could not come up with a task suggestion. "
    "Please try again later."
)


class EmotionPipeline:
    """
    Processes one emotion check-in per call.

    The pipeline keeps no state between calls or between stages other than
    the record id returned by the store.
    """

    def __init__(self, store: EmotionStore, sentiment: SentimentService) -> None:
        self._store = store
        self._sentiment = sentiment

    async def handle(self, user_id: str, raw_input: str) -> str:
        """
        Run the pipeline for one command.

        Args:
            user_id: The submitting user, supplied by the transport
            raw_input: The text following the slash command

        Returns:
            The reply to send back, for success and user-facing failures alike

        Raises:
            TransportContractError: If the transport supplied no user id
        """
        try:
            return await self._run(user_id, raw_input)
        except UsageError as e:
            logger.info("Rejected command from %s: %s", user_id, raw_input)
            return str(e)
        except UpstreamServiceError as e:
            return str(e)

    async def _run(self, user_id: str, raw_input: str) -> str:
        parsed = parse_command(raw_input)
        if parsed is None:
            logger.info("Empty input received")
            return PROMPT_MESSAGE

        if not user_id:
            raise TransportContractError("slash command has no user id")

        try:
            emotion_id = await self._store.create_emotion(
                CreateEmotionRequest(
                    user_id=user_id,
                    emoji=parsed.emoji,
                    description=parsed.description,
                )
            )
        except PersistenceError:
            logger.exception("Error storing initial data")
            return RETRY_MESSAGE

        logger.info("Analyzing emotion score for emotion %s", emotion_id)
        try:
            score = await self._sentiment.get_emotion_score(raw_input)
        except UpstreamServiceError as e:
            logger.error("Error analyzing emotion %s: %s", emotion_id, e)
            raise UpstreamServiceError(SCORE_FAILED_MESSAGE) from e

        await self._update(emotion_id, UpdateEmotionRequest(score=score), "score")

        logger.info("Generating task suggestion for emotion %s", emotion_id)
        try:
            task = await self._sentiment.generate_task_suggestion(
                parsed.emoji, parsed.description, score
            )
        except UpstreamServiceError as e:
            logger.error("Error generating task suggestion for %s: %s", emotion_id, e)
            raise UpstreamServiceError(SUGGESTION_FAILED_MESSAGE) from e

        await self._update(emotion_id, UpdateEmotionRequest(task=task), "task")

        return task

    async def _update(
        self, emotion_id: int, request: UpdateEmotionRequest, field: str
    ) -> None:
        """Best-effort write of a secondary field."""
        try:
            await self._store.update_emotion(emotion_id, request)
        except PersistenceError:
            logger.exception("Error updating %s of emotion %s", field, emotion_id)
