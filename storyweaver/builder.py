"""Story tree builder — two sequential model calls into one validated tree.

Flow:
  1. Foundation: prompt → LLM("foundation") → parse → StoryFoundation.
  2. Tree: prompt conditioned on the foundation → LLM("tree") → parse →
     StoryTreePayload.
  3. Shape check: the seven fixed segment ids, two choices on each inner
     segment pointing at its fixed children, terminal endings.
  4. Path index: the four root-to-ending reading paths.

Failures keep their phase: anything wrong in step 1 is a
FoundationGenerationError, in step 2 a TreeGenerationError, in steps 3-4 an
InvalidTreeShape. Nothing is retried here; callers restart from scratch.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any

from pydantic import ValidationError

from storyweaver.config import PhaseSettings, Settings
from storyweaver.errors import (
    FoundationGenerationError,
    GenerationError,
    InvalidTreeShape,
    ModelResponseError,
    TreeGenerationError,
)
from storyweaver.llm import LLM, LLMError
from storyweaver.models import (
    ENDING_IDS,
    PATHS,
    SEGMENT_IDS,
    TREE_EDGES,
    Character,
    CompleteStory,
    StoryFoundation,
    StorySegment,
    StoryTreePayload,
)
from storyweaver.parser import parse_model_json
from storyweaver.prompts import compose_foundation_prompt, compose_tree_prompt

logger = logging.getLogger(__name__)


async def build_story(
    llm: LLM,
    favorite_books: str,
    why_love_books: str,
    *,
    settings: Settings | None = None,
    timeout: float | None = None,
) -> CompleteStory:
    """Generate a complete, shape-validated story tree.

    Makes exactly two LLM calls, the second only after the first succeeded.
    `timeout` (seconds, default settings.generation_timeout) bounds each call
    separately.
    """
    settings = settings or Settings()
    if timeout is None:
        timeout = settings.generation_timeout

    foundation = await generate_foundation(
        llm, favorite_books, why_love_books, settings=settings, timeout=timeout,
    )
    logger.info("Story foundation ready: %r", foundation.title)

    payload = await generate_tree(
        llm, foundation, favorite_books, why_love_books, settings=settings, timeout=timeout,
    )
    story = assemble_story(foundation, payload)
    logger.info("Story tree ready: id=%s title=%r", story.id, story.title)
    return story


# ---------------------------------------------------------------------------
# Phases
# ---------------------------------------------------------------------------

async def generate_foundation(
    llm: LLM,
    favorite_books: str,
    why_love_books: str,
    *,
    settings: Settings | None = None,
    timeout: float | None = None,
) -> StoryFoundation:
    settings = settings or Settings()
    prompt = compose_foundation_prompt(favorite_books, why_love_books)
    data = await _run_phase(
        llm, "foundation", prompt, settings.foundation, timeout, FoundationGenerationError,
    )
    try:
        return StoryFoundation.model_validate(data)
    except ValidationError as e:
        logger.error("Story foundation has missing or invalid fields: %s", e)
        raise FoundationGenerationError("Incomplete story foundation from AI") from e


async def generate_tree(
    llm: LLM,
    foundation: StoryFoundation,
    favorite_books: str,
    why_love_books: str,
    *,
    settings: Settings | None = None,
    timeout: float | None = None,
) -> StoryTreePayload:
    settings = settings or Settings()
    prompt = compose_tree_prompt(foundation, favorite_books, why_love_books)
    data = await _run_phase(llm, "tree", prompt, settings.tree, timeout, TreeGenerationError)
    try:
        return StoryTreePayload.model_validate(data)
    except ValidationError as e:
        logger.error("Story tree has missing or invalid fields: %s", e)
        raise TreeGenerationError("Incomplete story tree from AI") from e


_PHASE_LABELS = {"foundation": "story foundation", "tree": "complete story"}


async def _run_phase(
    llm: LLM,
    stage: str,
    prompt: str,
    phase: PhaseSettings,
    timeout: float | None,
    error_cls: type[GenerationError],
) -> Any:
    """Call the model once and decode its reply, mapping every failure to error_cls."""
    label = _PHASE_LABELS[stage]
    call = llm(stage, prompt, temperature=phase.temperature, max_tokens=phase.max_tokens)
    try:
        if timeout is not None:
            raw = await asyncio.wait_for(call, timeout)
        else:
            raw = await call
    except LLMError as e:
        logger.error("LLM call for %s failed: %s", label, e)
        raise error_cls(f"Failed to generate {label}: {e}") from e
    except TimeoutError as e:
        logger.error("LLM call for %s timed out after %ss", label, timeout)
        raise error_cls(f"Timed out generating {label}") from e
    except Exception as e:
        logger.exception("Unexpected error from LLM call for %s", label)
        raise error_cls(f"Failed to generate {label}") from e

    try:
        return parse_model_json(raw)
    except ModelResponseError as e:
        raise error_cls(f"Invalid JSON response from AI for {label}") from e


# ---------------------------------------------------------------------------
# Shape validation and path index
# ---------------------------------------------------------------------------

def validate_tree_shape(segments: list[StorySegment]) -> dict[str, StorySegment]:
    """Check the fixed 7-segment layout and return segments keyed by id."""
    by_id: dict[str, StorySegment] = {}
    for seg in segments:
        if seg.id in by_id:
            raise InvalidTreeShape(f"Duplicate segment id {seg.id!r}")
        by_id[seg.id] = seg

    missing = [sid for sid in SEGMENT_IDS if sid not in by_id]
    if missing:
        raise InvalidTreeShape(f"Missing segments: {', '.join(missing)}")
    extra = sorted(set(by_id) - set(SEGMENT_IDS))
    if extra:
        raise InvalidTreeShape(f"Unexpected segments: {', '.join(extra)}")

    for sid, children in TREE_EDGES.items():
        seg = by_id[sid]
        if seg.is_ending:
            raise InvalidTreeShape(f"{sid} is marked as an ending but must offer choices")
        if len(seg.choices) != 2:
            raise InvalidTreeShape(f"{sid} must have exactly 2 choices, got {len(seg.choices)}")
        for choice in seg.choices:
            if choice.lead_to not in by_id:
                raise InvalidTreeShape(
                    f"Choice {choice.id!r} in {sid} leads to unknown segment {choice.lead_to!r}"
                )
        targets = sorted(choice.lead_to for choice in seg.choices)
        if targets != sorted(children):
            raise InvalidTreeShape(
                f"{sid} choices must lead to {' and '.join(children)}, got {', '.join(targets)}"
            )

    for sid in ENDING_IDS:
        if not by_id[sid].is_terminal:
            raise InvalidTreeShape(f"{sid} must be an ending")

    return by_id


def build_path_index(by_id: dict[str, StorySegment]) -> dict[str, list[StorySegment]]:
    """Materialize the four reading paths. Any gap is a shape error."""
    paths: dict[str, list[StorySegment]] = {}
    for key, segment_ids in PATHS.items():
        path = [by_id.get(sid) for sid in segment_ids]
        if any(seg is None for seg in path):
            raise InvalidTreeShape(f"Path {key} cannot be resolved")
        paths[key] = path
    return paths


def merge_characters(
    foundation: StoryFoundation, payload: StoryTreePayload
) -> list[Character]:
    """Union of every character in the story, deduplicated by name.

    The foundation comes first so its protagonist and traits win over later
    restatements in the tree.
    """
    merged: dict[str, Character] = {}
    candidates = [foundation.protagonist, *foundation.supporting_characters, *payload.characters]
    for seg in payload.segments:
        candidates.extend(seg.context.characters)
    for char in candidates:
        merged.setdefault(char.name.strip().lower(), char)

    characters = list(merged.values())
    protagonists = [c.name for c in characters if c.role == "protagonist"]
    if len(protagonists) != 1:
        raise InvalidTreeShape(
            f"Story must have exactly one protagonist, got {len(protagonists)}: "
            f"{', '.join(protagonists) or 'none'}"
        )
    return characters


def assemble_story(foundation: StoryFoundation, payload: StoryTreePayload) -> CompleteStory:
    by_id = validate_tree_shape(payload.segments)
    paths = build_path_index(by_id)
    return CompleteStory(
        id=payload.id or f"story_{uuid.uuid4().hex[:12]}",
        title=payload.title or foundation.title,
        premise=payload.premise or foundation.premise,
        theme=payload.theme or foundation.theme,
        characters=merge_characters(foundation, payload),
        segments=[by_id[sid] for sid in SEGMENT_IDS],
        all_possible_paths=paths,
    )
