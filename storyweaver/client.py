"""HTTP client for the generation endpoint.

ApiStoryBuilder is what a reader-side session plugs in as its builder when
generation runs on a server:

    session = ReaderSession(ApiStoryBuilder("http://localhost:13013"))
"""

from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError

from storyweaver.errors import StoryError
from storyweaver.models import CompleteStory

logger = logging.getLogger(__name__)

DEFAULT_ERROR = "Failed to generate story"


class StoryGenerationFailed(StoryError):
    """The server could not produce a story; the message is user-facing."""


class ApiStoryBuilder:
    def __init__(self, base_url: str, timeout: float = 180.0) -> None:
        self._url = f"{base_url.rstrip('/')}/api/generate-story"
        self._timeout = timeout

    async def __call__(self, favorite_books: str, why_love_books: str) -> CompleteStory:
        body = {"favoriteBooks": favorite_books, "whyLoveBooks": why_love_books}
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self._url, json=body)
        except httpx.TimeoutException as e:
            raise StoryGenerationFailed("Story generation timed out") from e
        except httpx.HTTPError as e:
            raise StoryGenerationFailed(f"Cannot reach story server: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            logger.error("Story server returned non-JSON (HTTP %d): %r", resp.status_code, resp.text)
            raise StoryGenerationFailed(DEFAULT_ERROR) from e

        if not isinstance(data, dict) or not data.get("success"):
            message = data.get("error") if isinstance(data, dict) else None
            raise StoryGenerationFailed(message or DEFAULT_ERROR)

        try:
            return CompleteStory.model_validate(data.get("story"))
        except ValidationError as e:
            logger.error("Story server returned an invalid story: %s", e)
            raise StoryGenerationFailed(DEFAULT_ERROR) from e
