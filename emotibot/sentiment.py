"""
Sentiment scoring and task suggestions backed by Gemini.

This module defines the sentiment service contract used by the pipeline and
a client for the Gemini `generateContent` REST endpoint. Each call is a
single request with no retry; any failure surfaces as UpstreamServiceError.
"""

import logging
import re
from typing import Protocol

import httpx
from pydantic import BaseModel, ValidationError

from .errors import UpstreamServiceError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com"
DEFAULT_MODEL = "gemini-1.5-flash"
DEFAULT_LANGUAGE = "Traditional Chinese"

# Plain ASCII integer, no underscores or other Unicode digits
_INTEGER_RE = re.compile(r"[+-]?[0-9]+", re.ASCII)

SCORE_PROMPT = (
    "Analyze the emotion in the following text or emoji and provide a score "
    "from 0 to 100, where 0 is very negative and 100 is very positive. Only "
    "respond with the number, no other text. Text to analyze: {text}"
)

TASK_PROMPT = (
    "Based on the emoji {emoji}, description '{description}', and emotion "
    "score {score} (0-100, where 0 is very negative and 100 is very positive), "
    "suggest a task in {language} that can improve mood in an office setting. "
    "Provide only one short suggestion, no numbering or explanation."
)

SUMMARY_PROMPT = (
    "Based on the average emotion score of {average:.2f} (0-100, where 0 is "
    "very negative and 100 is very positive), provide a brief summary in "
    "{language} about the overall mood and a general suggestion for "
    "improvement. Keep it concise and positive."
)


class SentimentService(Protocol):
    """Remote capability that scores emotions and suggests tasks."""

    async def get_emotion_score(self, text: str) -> int: ...

    async def generate_task_suggestion(
        self, emoji: str, description: str, score: int
    ) -> str: ...

    async def generate_daily_summary(self, average_score: float) -> str: ...


# Gemini response schema, limited to the fields we read
class _Part(BaseModel):
    text: str | None = None


class _Content(BaseModel):
    parts: list[_Part] = []


class _Candidate(BaseModel):
    content: _Content | None = None


class GenerateContentResponse(BaseModel):
    candidates: list[_Candidate] = []

    def text(self) -> str:
        """Concatenate the text parts of the first candidate."""
        if not self.candidates or self.candidates[0].content is None:
            return ""
        return "".join(part.text or "" for part in self.candidates[0].content.parts)


class GeminiService:
    """
    Sentiment service using the Gemini REST API.

    The underlying httpx client is created on demand unless one is passed in,
    and is closed by `aclose()` or when used as an async context manager.
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        *,
        base_url: str = DEFAULT_BASE_URL,
        language: str = DEFAULT_LANGUAGE,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.model = model
        self.language = language
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._headers = {"x-goog-api-key": api_key}

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "GeminiService":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def get_emotion_score(self, text: str) -> int:
        """
        Score the sentiment of a text or emoji.

        Args:
            text: The raw command text to analyze

        Returns:
            An integer from 0 (very negative) to 100 (very positive)
        """
        reply = await self._generate(SCORE_PROMPT.format(text=text))
        if not reply:
            raise UpstreamServiceError("no response received from Gemini")

        if not _INTEGER_RE.fullmatch(reply):
            raise UpstreamServiceError(f"failed to parse score: {reply!r}")
        score = int(reply)

        if score < 0 or score > 100:
            raise UpstreamServiceError(f"invalid score received: {score}")

        return score

    async def generate_task_suggestion(
        self, emoji: str, description: str, score: int
    ) -> str:
        """Suggest one short office task that could improve the mood."""
        prompt = TASK_PROMPT.format(
            emoji=emoji, description=description, score=score, language=self.language
        )
        suggestion = await self._generate(prompt)
        if not suggestion:
            raise UpstreamServiceError("no response received for task suggestion")
        return suggestion

    async def generate_daily_summary(self, average_score: float) -> str:
        """Summarize the overall mood for an average score."""
        prompt = SUMMARY_PROMPT.format(average=average_score, language=self.language)
        summary = await self._generate(prompt)
        if not summary:
            raise UpstreamServiceError("no response received for summary")
        return summary

    # MARK: - Private Helpers

    async def _generate(self, prompt: str) -> str:
        """Send a single-turn prompt and return the stripped reply text."""
        payload = {"contents": [{"parts": [{"text": prompt}]}]}
        try:
            response = await self._client.post(
                f"/v1beta/models/{self.model}:generateContent",
                json=payload,
                headers=self._headers,
            )
            response.raise_for_status()
            result = GenerateContentResponse.model_validate(response.json())
        except httpx.HTTPStatusError as e:
            raise UpstreamServiceError(
                f"error generating content: HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamServiceError(f"error generating content: {e}") from e
        except (ValueError, ValidationError) as e:
            raise UpstreamServiceError(f"malformed response from Gemini: {e}") from e

        logger.debug("Gemini %s replied %d characters", self.model, len(result.text()))
        return result.text().strip()
