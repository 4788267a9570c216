"""Decode LLM replies into structured data.

Models are told to return bare JSON but sometimes wrap it in a markdown
fence (```` ```json ... ``` ````). The fence is stripped if present; anything
else around the payload, such as a sentence of prose, is a decoding failure.
Shape validation is left to the caller.
"""

import json
import logging
import re
from typing import Any

from storyweaver.errors import EmptyResponse, MalformedJSON

logger = logging.getLogger(__name__)

_OPENING_FENCE = re.compile(r"\A```[A-Za-z0-9_-]*[ \t]*\n?")
_CLOSING_FENCE = re.compile(r"\n?[ \t]*```\Z")


def strip_code_fences(text: str) -> str:
    """Remove one surrounding markdown code fence and outer whitespace.

    Text without a fence comes back only trimmed, so applying this twice is
    the same as applying it once.
    """
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = _OPENING_FENCE.sub("", cleaned, count=1)
        cleaned = _CLOSING_FENCE.sub("", cleaned, count=1)
        cleaned = cleaned.strip()
    return cleaned


def parse_model_json(raw_text: str | None) -> Any:
    """Parse a model reply as JSON.

    Raises EmptyResponse when there is no content and MalformedJSON when the
    fence-stripped text does not decode.
    """
    if raw_text is None or not raw_text.strip():
        raise EmptyResponse("Model returned an empty response")

    cleaned = strip_code_fences(raw_text)
    if not cleaned:
        raise EmptyResponse("Model response contained only a code fence")

    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error("Failed to parse model response as JSON (%s): %r", e, raw_text)
        raise MalformedJSON(f"Invalid JSON in model response: {e}") from e
