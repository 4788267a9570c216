"""Tests for storyweaver.client — ApiStoryBuilder."""

import pytest
import httpx
from unittest.mock import AsyncMock, MagicMock, patch

from storyweaver.client import ApiStoryBuilder, StoryGenerationFailed
from storyweaver.reader import ReaderSession


def _mock_response(body, status: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = body
    resp.text = str(body)
    return resp


@pytest.fixture
def builder() -> ApiStoryBuilder:
    return ApiStoryBuilder("http://localhost:13013/")


@pytest.fixture
def story_body(complete_story) -> dict:
    return {"success": True, "story": complete_story.model_dump(mode="json", by_alias=True)}


async def test_returns_complete_story(builder, story_body, complete_story) -> None:
    mock_post = AsyncMock(return_value=_mock_response(story_body))
    with patch("httpx.AsyncClient.post", mock_post):
        story = await builder("Harry Potter", "magic")
    assert story == complete_story


async def test_posts_camel_case_body(builder, story_body) -> None:
    mock_post = AsyncMock(return_value=_mock_response(story_body))
    with patch("httpx.AsyncClient.post", mock_post):
        await builder("Harry Potter", "magic")
    assert mock_post.call_args[0][0] == "http://localhost:13013/api/generate-story"
    assert mock_post.call_args.kwargs["json"] == {
        "favoriteBooks": "Harry Potter",
        "whyLoveBooks": "magic",
    }


async def test_server_error_message_surfaces(builder) -> None:
    body = {"success": False, "error": "Invalid JSON response from AI for story foundation"}
    mock_post = AsyncMock(return_value=_mock_response(body, status=500))
    with patch("httpx.AsyncClient.post", mock_post):
        with pytest.raises(StoryGenerationFailed, match="story foundation"):
            await builder("Harry Potter", "magic")


async def test_failure_without_message(builder) -> None:
    mock_post = AsyncMock(return_value=_mock_response({"success": False}, status=500))
    with patch("httpx.AsyncClient.post", mock_post):
        with pytest.raises(StoryGenerationFailed, match="Failed to generate story"):
            await builder("Harry Potter", "magic")


async def test_non_json_response(builder) -> None:
    resp = _mock_response(None, status=502)
    resp.json.side_effect = ValueError("no json")
    mock_post = AsyncMock(return_value=resp)
    with patch("httpx.AsyncClient.post", mock_post):
        with pytest.raises(StoryGenerationFailed, match="Failed to generate story"):
            await builder("Harry Potter", "magic")


async def test_invalid_story_payload(builder) -> None:
    mock_post = AsyncMock(return_value=_mock_response({"success": True, "story": {"id": "x"}}))
    with patch("httpx.AsyncClient.post", mock_post):
        with pytest.raises(StoryGenerationFailed):
            await builder("Harry Potter", "magic")


async def test_connection_error(builder) -> None:
    mock_post = AsyncMock(side_effect=httpx.ConnectError("refused"))
    with patch("httpx.AsyncClient.post", mock_post):
        with pytest.raises(StoryGenerationFailed, match="Cannot reach"):
            await builder("Harry Potter", "magic")


async def test_timeout(builder) -> None:
    mock_post = AsyncMock(side_effect=httpx.ReadTimeout("slow"))
    with patch("httpx.AsyncClient.post", mock_post):
        with pytest.raises(StoryGenerationFailed, match="timed out"):
            await builder("Harry Potter", "magic")


async def test_drives_reader_session(builder, story_body) -> None:
    mock_post = AsyncMock(return_value=_mock_response(story_body))
    session = ReaderSession(builder)
    session.submit_books("Harry Potter")
    with patch("httpx.AsyncClient.post", mock_post):
        state = await session.submit_preferences("magic")
    assert state.step == "choice"

    failing = AsyncMock(return_value=_mock_response({"success": False, "error": "nope"}))
    session.restart()
    session.submit_books("Harry Potter")
    with patch("httpx.AsyncClient.post", failing):
        state = await session.submit_preferences("magic")
    assert state.step == "error"
    assert state.error == "nope"
