"""Reader state machine — walks a generated story one choice at a time.

    welcome → preferences → generating → choice ⇄ choice → reading (The End)
                                 │          │
                                 └──────────┴──→ error ──retry──→ welcome

restart() returns to welcome from anywhere.

Each step is its own frozen model carrying only the data valid in that step,
joined into the AppState tagged union. The transition functions are pure:
they take a state and return the next one, and a call that does not apply to
the current step returns the state unchanged. ReaderSession holds the
current state and runs the async generation step.

The whole tree exists before the first choice is shown, so picking a choice
never calls the model again.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from storyweaver.errors import PathNotFound, StoryError
from storyweaver.models import CompleteStory, Story, StoryChoice, StorySegment, UserPreferences

logger = logging.getLogger(__name__)

PATH_NOT_FOUND_MESSAGE = "Story path not found"
GENERIC_ERROR_MESSAGE = "Something went wrong"

StoryBuilder = Callable[[str, str], Awaitable[CompleteStory]]


# ---------------------------------------------------------------------------
# States
# ---------------------------------------------------------------------------

class _State(BaseModel):
    model_config = ConfigDict(frozen=True)


class WelcomeState(_State):
    step: Literal["welcome"] = "welcome"


class PreferencesState(_State):
    step: Literal["preferences"] = "preferences"
    favorite_books: str


class GeneratingState(_State):
    step: Literal["generating"] = "generating"
    preferences: UserPreferences


class ChoiceState(_State):
    step: Literal["choice"] = "choice"
    story: Story
    tree: CompleteStory
    preferences: UserPreferences
    choices: list[StoryChoice]


class ReadingState(_State):
    step: Literal["reading"] = "reading"
    story: Story
    tree: CompleteStory
    preferences: UserPreferences


class ErrorState(_State):
    step: Literal["error"] = "error"
    error: str
    can_retry: bool = True


AppState = Annotated[
    Union[WelcomeState, PreferencesState, GeneratingState, ChoiceState, ReadingState, ErrorState],
    Field(discriminator="step"),
]


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

def submit_books(state: AppState, favorite_books: str) -> AppState:
    if not isinstance(state, WelcomeState) or not favorite_books.strip():
        return state
    return PreferencesState(favorite_books=favorite_books)


def begin_generation(state: AppState, preferences: UserPreferences) -> AppState:
    if not isinstance(state, PreferencesState):
        return state
    if not preferences.favorite_books.strip() or not preferences.why_love_books.strip():
        return state
    return GeneratingState(preferences=preferences)


def _show(story: Story, tree: CompleteStory, preferences: UserPreferences) -> AppState:
    segment = story.current_segment
    if segment is None or segment.is_terminal:
        return ReadingState(story=story, tree=tree, preferences=preferences)
    return ChoiceState(story=story, tree=tree, preferences=preferences, choices=segment.choices)


def finish_generation(state: AppState, tree: CompleteStory) -> AppState:
    if not isinstance(state, GeneratingState):
        return state
    return _show(Story.start(tree), tree, state.preferences)


def fail_generation(state: AppState, message: str) -> AppState:
    if not isinstance(state, GeneratingState):
        return state
    return ErrorState(error=message or GENERIC_ERROR_MESSAGE, can_retry=True)


def select_choice(state: AppState, choice: StoryChoice | str) -> AppState:
    """Follow one choice to its segment.

    `choice` is a StoryChoice or a choice id; either way it must be one of the
    state's current choices, otherwise the call is ignored.
    """
    if not isinstance(state, ChoiceState):
        logger.warning("select_choice ignored in step %r", state.step)
        return state

    choice_id = choice if isinstance(choice, str) else choice.id
    resolved = next((c for c in state.choices if c.id == choice_id), None)
    if resolved is None:
        logger.warning("Choice %r is not offered by the current segment; ignored", choice_id)
        return state

    story = state.story
    try:
        next_segment = _follow(state.tree, resolved)
    except PathNotFound as e:
        logger.error("%s (story %s)", e, story.id)
        return ErrorState(error=PATH_NOT_FOUND_MESSAGE, can_retry=True)

    updated = story.model_copy(update={
        "segments": [*story.segments, next_segment],
        "current_segment_index": story.current_segment_index + 1,
        "user_choices": [*story.user_choices, resolved.text],
        "chosen_path": [*story.chosen_path, resolved.lead_to],
    })
    return _show(updated, state.tree, state.preferences)


def _follow(tree: CompleteStory, choice: StoryChoice) -> StorySegment:
    segment = tree.segment(choice.lead_to)
    if segment is None:
        raise PathNotFound(f"Choice {choice.id!r} leads to missing segment {choice.lead_to!r}")
    return segment


def retry(state: AppState) -> AppState:
    if isinstance(state, ErrorState) and state.can_retry:
        return WelcomeState()
    return state


def restart(state: AppState) -> AppState:
    return WelcomeState()


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

class ReaderSession:
    """One reader's walk from the welcome screen to an ending.

    Sessions share nothing with each other; the builder is any async callable
    (favorite_books, why_love_books) -> CompleteStory, such as a partial of
    builder.build_story or client.ApiStoryBuilder.
    """

    def __init__(self, builder: StoryBuilder, transition_delay: float = 0.0) -> None:
        self._builder = builder
        self._delay = transition_delay
        self.state: AppState = WelcomeState()

    @property
    def step(self) -> str:
        return self.state.step

    def submit_books(self, favorite_books: str) -> AppState:
        self.state = submit_books(self.state, favorite_books)
        return self.state

    async def submit_preferences(self, why_love_books: str) -> AppState:
        """Generate the story for the books given earlier and show its opening."""
        if not isinstance(self.state, PreferencesState):
            return self.state
        preferences = UserPreferences(
            favorite_books=self.state.favorite_books, why_love_books=why_love_books,
        )
        generating = begin_generation(self.state, preferences)
        if generating is self.state:
            return self.state
        self.state = generating

        try:
            tree = await self._builder(preferences.favorite_books, preferences.why_love_books)
        except StoryError as e:
            outcome = fail_generation(generating, str(e))
        except Exception as e:
            logger.exception("Story generation failed unexpectedly")
            outcome = fail_generation(generating, str(e))
        else:
            outcome = finish_generation(generating, tree)

        if self.state is not generating:
            logger.debug("Generation result discarded; session moved to %r", self.state.step)
            return self.state
        self.state = outcome
        return self.state

    def select_choice(self, choice: StoryChoice | str) -> AppState:
        self.state = select_choice(self.state, choice)
        return self.state

    async def select_choice_delayed(self, choice: StoryChoice | str) -> AppState:
        """select_choice after the cosmetic page-turn delay."""
        before = self.state
        if self._delay > 0:
            await asyncio.sleep(self._delay)
        if self.state is not before:
            return self.state
        return self.select_choice(choice)

    def retry(self) -> AppState:
        self.state = retry(self.state)
        return self.state

    def restart(self) -> AppState:
        self.state = restart(self.state)
        return self.state

    @property
    def background_scene(self) -> str:
        """Scene description of the segment being read, or ""."""
        story = getattr(self.state, "story", None)
        segment = story.current_segment if story else None
        return (segment.background_scene or "") if segment else ""
