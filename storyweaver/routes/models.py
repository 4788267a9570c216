"""Pydantic request models for API endpoints."""

from pydantic import BaseModel, ConfigDict, Field


class GenerateStoryBody(BaseModel):
    # Emptiness is checked in the route so a missing answer gets the
    # generic 400 body instead of a field-level validation error.
    model_config = ConfigDict(populate_by_name=True)

    favorite_books: str | None = Field(None, alias="favoriteBooks")
    why_love_books: str | None = Field(None, alias="whyLoveBooks")
