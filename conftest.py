import json
from typing import Any

import pytest

from storyweaver.builder import assemble_story
from storyweaver.models import CompleteStory, StoryFoundation, StoryTreePayload


class StubLLM:
    """Scripted LLM: returns queued replies in order and records every call.

    A reply that is an exception instance is raised instead of returned.
    """

    def __init__(self, *replies: Any) -> None:
        self._replies = list(replies)
        self.calls: list[dict[str, Any]] = []

    async def __call__(
        self, stage: str, prompt: str, *, temperature: float, max_tokens: int
    ) -> str:
        self.calls.append({
            "stage": stage,
            "prompt": prompt,
            "temperature": temperature,
            "max_tokens": max_tokens,
        })
        if not self._replies:
            raise AssertionError(f"StubLLM has no reply left for stage {stage!r}")
        reply = self._replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply

    @property
    def stages(self) -> list[str]:
        return [c["stage"] for c in self.calls]


# ---------------------------------------------------------------------------
# Canned model output
# ---------------------------------------------------------------------------

MILO = {
    "name": "Milo Finch",
    "description": "A small boy with round glasses and a lightning-shaped scar on his knee.",
    "personality": ["curious", "brave", "kind"],
    "role": "protagonist",
}
BISCUIT = {
    "name": "Biscuit",
    "description": "A scruffy dog who solves crimes.",
    "personality": ["loyal", "silly"],
    "role": "sidekick",
}
EMBER = {
    "name": "Professor Ember",
    "description": "A tall wizard with a cloak that smells of cinnamon.",
    "personality": ["wise", "patient"],
    "role": "mentor",
}


def make_foundation() -> dict:
    return {
        "title": "Milo and the Midnight Library",
        "premise": "Milo finds a library that only opens at midnight. "
                   "With his dog Biscuit he must return a runaway spell book.",
        "theme": "friendship",
        "protagonist": dict(MILO),
        "supportingCharacters": [dict(BISCUIT), dict(EMBER)],
        "setting": "A crooked stone library at the edge of a sleepy town.",
        "centralConflict": "A spell book has escaped and is turning words into frogs.",
        "backgroundScene": "Moonlit library with floating candles",
    }


def _context(setting: str, mood: str, events: list[str] | None = None) -> dict:
    return {
        "setting": setting,
        "timeOfDay": "night",
        "mood": mood,
        "theme": "friendship",
        "previousEvents": events or [],
        "characters": [dict(MILO), dict(BISCUIT)],
    }


def _choice(choice_id: str, lead_to: str, text: str) -> dict:
    return {
        "id": choice_id,
        "text": text,
        "consequence": f"Leads to {lead_to}",
        "leadTo": lead_to,
        "impact": "major",
    }


def _ending(segment_id: str, text: str) -> dict:
    return {
        "id": segment_id,
        "text": text,
        "context": _context("The library", "joyful", ["The spell book was found"]),
        "backgroundScene": f"Sunrise over the library ({segment_id})",
        "isEnding": True,
        "choices": [],
    }


def make_tree() -> dict:
    return {
        "id": "story_1700000000000",
        "title": "Milo and the Midnight Library",
        "premise": "Milo finds a library that only opens at midnight.",
        "theme": "friendship",
        "characters": [dict(MILO), dict(BISCUIT), dict(EMBER)],
        "segments": [
            {
                "id": "segment_1",
                "text": "The clock struck twelve and the library doors creaked open.",
                "context": _context("Library steps", "mysterious"),
                "backgroundScene": "Moonlit library doors",
                "choices": [
                    _choice("choice_1a", "segment_2a", "Follow the trail of frogs"),
                    _choice("choice_1b", "segment_2b", "Ask Professor Ember for help"),
                ],
            },
            {
                "id": "segment_2a",
                "text": "The frogs hopped toward the map room.",
                "context": _context("Map room", "tense", ["Milo entered the library"]),
                "backgroundScene": "Room full of glowing maps",
                "choices": [
                    _choice("choice_2a_x", "segment_3a", "Read the spell backwards"),
                    _choice("choice_2a_y", "segment_3b", "Let Biscuit sniff out the book"),
                ],
            },
            {
                "id": "segment_2b",
                "text": "Professor Ember's tower was warm and smelled of cinnamon.",
                "context": _context("Ember's tower", "cozy", ["Milo entered the library"]),
                "backgroundScene": "Wizard tower with bubbling potions",
                "choices": [
                    _choice("choice_2b_x", "segment_3c", "Brew a finding potion"),
                    _choice("choice_2b_y", "segment_3d", "Climb to the rooftop"),
                ],
            },
            _ending("segment_3a", "The frogs turned back into words and sang."),
            _ending("segment_3b", "Biscuit found the book asleep under a rug."),
            _ending("segment_3c", "The potion glowed and pointed the way home."),
            _ending("segment_3d", "From the rooftop Milo saw the book flying home."),
        ],
    }


@pytest.fixture
def foundation_data() -> dict:
    return make_foundation()


@pytest.fixture
def tree_data() -> dict:
    return make_tree()


@pytest.fixture
def foundation_json(foundation_data) -> str:
    return json.dumps(foundation_data)


@pytest.fixture
def tree_json(tree_data) -> str:
    return json.dumps(tree_data)


@pytest.fixture
def complete_story(foundation_data, tree_data) -> CompleteStory:
    return assemble_story(
        StoryFoundation.model_validate(foundation_data),
        StoryTreePayload.model_validate(tree_data),
    )


@pytest.fixture
def make_llm():
    """Factory for a StubLLM scripted with the given replies."""
    return StubLLM
