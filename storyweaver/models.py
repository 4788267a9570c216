"""Core domain models.

Every stage of generation and traversal operates on these types. Python
attributes are snake_case; the LLM and HTTP wire format is camelCase
(``leadTo``, ``isEnding``, ``allPossiblePaths``...). Models accept either
spelling and dump camelCase with ``by_alias=True``.

Segments and characters are frozen: a reader session holds references into
the same objects the generated tree owns.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

CharacterRole = Literal["protagonist", "ally", "mentor", "antagonist", "sidekick"]
ChoiceImpact = Literal["major", "minor"]

# Fixed tree layout: one opening, two middles, four endings.
SEGMENT_IDS: tuple[str, ...] = (
    "segment_1",
    "segment_2a",
    "segment_2b",
    "segment_3a",
    "segment_3b",
    "segment_3c",
    "segment_3d",
)
TREE_EDGES: dict[str, tuple[str, str]] = {
    "segment_1": ("segment_2a", "segment_2b"),
    "segment_2a": ("segment_3a", "segment_3b"),
    "segment_2b": ("segment_3c", "segment_3d"),
}
ENDING_IDS: tuple[str, ...] = ("segment_3a", "segment_3b", "segment_3c", "segment_3d")

# Path key → segment ids read along that route.
PATHS: dict[str, tuple[str, str, str]] = {
    "1a-a": ("segment_1", "segment_2a", "segment_3a"),
    "1a-b": ("segment_1", "segment_2a", "segment_3b"),
    "1b-c": ("segment_1", "segment_2b", "segment_3c"),
    "1b-d": ("segment_1", "segment_2b", "segment_3d"),
}
PATH_KEYS: tuple[str, ...] = tuple(PATHS)


class _Model(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


def _none_to_list(value):
    return [] if value is None else value


# Models sometimes emit null where an empty list is meant.
_NoneAsEmpty = BeforeValidator(_none_to_list)


class Character(_Model):
    """A story character. Exactly one protagonist per story."""

    name: str
    description: str
    personality: Annotated[list[str], _NoneAsEmpty] = Field(default_factory=list)
    role: CharacterRole

    @field_validator("role", mode="before")
    @classmethod
    def _normalize_role(cls, value):
        return value.strip().lower() if isinstance(value, str) else value


class StoryContext(_Model):
    """Narrative state as of the owning segment."""

    setting: str
    time_of_day: str
    mood: str
    theme: str
    previous_events: Annotated[list[str], _NoneAsEmpty] = Field(default_factory=list)
    characters: Annotated[list[Character], _NoneAsEmpty] = Field(default_factory=list)


class StoryChoice(_Model):
    id: str
    text: str
    consequence: str
    lead_to: str  # weak reference to a segment id in the same tree
    impact: ChoiceImpact = "major"

    @field_validator("impact", mode="before")
    @classmethod
    def _normalize_impact(cls, value):
        return value.strip().lower() if isinstance(value, str) else value


class StorySegment(_Model):
    id: str
    text: str
    context: StoryContext
    choices: Annotated[list[StoryChoice], _NoneAsEmpty] = Field(default_factory=list)
    is_ending: bool = False
    background_scene: str | None = None

    @field_validator("is_ending", mode="before")
    @classmethod
    def _none_is_false(cls, value):
        return False if value is None else value

    @property
    def is_terminal(self) -> bool:
        """True for endings: marked ending or nothing left to choose."""
        return self.is_ending or not self.choices


class StoryFoundation(_Model):
    """First-phase output that conditions the full tree generation."""

    title: str
    premise: str
    theme: str
    protagonist: Character
    supporting_characters: Annotated[list[Character], _NoneAsEmpty] = Field(default_factory=list)
    setting: str
    central_conflict: str
    background_scene: str

    @field_validator("protagonist")
    @classmethod
    def _is_protagonist(cls, value: Character) -> Character:
        if value.role != "protagonist":
            raise ValueError(f"protagonist must have role 'protagonist', got {value.role!r}")
        return value


class StoryTreePayload(_Model):
    """Second-phase output as decoded from the model, before shape checks."""

    id: str | None = None
    title: str | None = None
    premise: str | None = None
    theme: str | None = None
    characters: Annotated[list[Character], _NoneAsEmpty] = Field(default_factory=list)
    segments: list[StorySegment]


class CompleteStory(_Model):
    """A fully generated, shape-validated story tree."""

    id: str
    title: str
    premise: str
    theme: str
    characters: list[Character]
    segments: list[StorySegment]
    all_possible_paths: dict[str, list[StorySegment]]

    def segment(self, segment_id: str) -> StorySegment | None:
        for seg in self.segments:
            if seg.id == segment_id:
                return seg
        return None


class Story(_Model):
    """A reader's walk through a CompleteStory. Grows one segment per choice."""

    id: str
    title: str
    premise: str
    characters: list[Character]
    theme: str
    segments: list[StorySegment]
    current_segment_index: int = 0
    user_choices: list[str] = Field(default_factory=list)
    chosen_path: list[str] = Field(default_factory=list)

    @classmethod
    def start(cls, tree: CompleteStory) -> Story:
        """Begin a reading session at the tree's opening segment."""
        opening = tree.segment(SEGMENT_IDS[0])
        return cls(
            id=tree.id,
            title=tree.title,
            premise=tree.premise,
            characters=tree.characters,
            theme=tree.theme,
            segments=[opening] if opening else tree.segments[:1],
        )

    @property
    def current_segment(self) -> StorySegment | None:
        if 0 <= self.current_segment_index < len(self.segments):
            return self.segments[self.current_segment_index]
        return None


class UserPreferences(_Model):
    """The child's answers that seed generation."""

    favorite_books: str
    why_love_books: str
