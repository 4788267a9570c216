"""Story generation endpoint."""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from storyweaver.builder import build_story
from storyweaver.config import Settings
from storyweaver.errors import StoryError
from storyweaver.llm import LLM

from .models import GenerateStoryBody

logger = logging.getLogger(__name__)

router = APIRouter()

MISSING_FIELDS_ERROR = "Missing required fields"
GENERIC_ERROR = "Failed to generate story"


def failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code)


def get_llm(request: Request) -> LLM:
    return request.app.state.llm


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


@router.post("/generate-story")
async def generate_story(
    body: GenerateStoryBody,
    llm: LLM = Depends(get_llm),
    settings: Settings = Depends(get_settings),
):
    """Generate a complete branching story from the child's two answers."""
    favorite_books = (body.favorite_books or "").strip()
    why_love_books = (body.why_love_books or "").strip()
    if not favorite_books or not why_love_books:
        return failure(400, MISSING_FIELDS_ERROR)

    try:
        story = await build_story(llm, favorite_books, why_love_books, settings=settings)
    except StoryError as e:
        logger.exception("Story generation error")
        return failure(500, str(e) or GENERIC_ERROR)
    except Exception:
        logger.exception("Unexpected story generation error")
        return failure(500, GENERIC_ERROR)

    return {"success": True, "story": story.model_dump(mode="json", by_alias=True)}
