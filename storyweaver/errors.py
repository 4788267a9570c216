"""Error taxonomy for story generation and traversal.

    StoryError
    ├── ModelResponseError      — LLM reply text is unusable
    │   ├── EmptyResponse
    │   └── MalformedJSON
    ├── GenerationError         — one generation phase failed
    │   ├── FoundationGenerationError
    │   └── TreeGenerationError
    ├── InvalidTreeShape        — decoded tree violates the 7-segment layout
    └── PathNotFound            — traversal could not resolve a choice target

Missing user input is rejected at the HTTP boundary and never gets here.
"""


class StoryError(Exception):
    """Base class for every error raised by the story core."""


class ModelResponseError(StoryError, ValueError):
    """Raised when a model reply cannot be decoded into structured data."""


class EmptyResponse(ModelResponseError):
    """The model returned no content."""


class MalformedJSON(ModelResponseError):
    """The model reply is not valid JSON once code fences are stripped."""


class GenerationError(StoryError):
    """A generation phase failed (remote call, parse, or payload shape)."""


class FoundationGenerationError(GenerationError):
    pass


class TreeGenerationError(GenerationError):
    pass


class InvalidTreeShape(StoryError):
    """The generated tree does not match the fixed segment layout."""


class PathNotFound(StoryError):
    """A choice points at a segment that is not in the generated tree."""
