"""Handlebars prompts for the two generation phases.

  foundation — title, theme, characters and setting from the child's answers
  tree       — all seven segments, conditioned on the foundation JSON

Both tell the model to answer with a single JSON object and nothing else.
That is a request, not a guarantee; parser.py deals with what comes back.
"""

from collections.abc import Callable
from typing import Any

import pybars

from storyweaver.models import SEGMENT_IDS, StoryFoundation

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


STORYTELLING_PRINCIPLES = """\
CORE STORYTELLING PRINCIPLES FOR CHILDREN:

1. NARRATIVE STRUCTURE:
   - Clear beginning, middle, and end
   - Hero's journey adapted for children
   - Problem → Action → Resolution
   - Build tension and release it satisfyingly

2. CHARACTER DEVELOPMENT:
   - Relatable protagonist with clear wants and needs
   - Character growth through choices
   - Consistent character traits and voice
   - Supporting characters with distinct personalities

3. MEANINGFUL CHOICES:
   - Each choice stems from character motivation
   - Choices reveal character values
   - Consequences feel logical and earned
   - No "right" or "wrong" choices, just different paths

4. EMOTIONAL ENGAGEMENT:
   - Create empathy for the protagonist
   - Build emotional stakes (what could be lost or gained?)
   - Include moments of wonder, excitement, and reflection
   - Age-appropriate challenges and conflicts

5. PACING & FLOW:
   - Vary sentence length and rhythm
   - Balance action with character moments
   - Use cliffhangers at choice points

6. WORLD BUILDING:
   - Consistent rules and logic
   - Rich sensory details
   - Settings that enhance the story
   - Cultural sensitivity and inclusivity

7. THEME INTEGRATION:
   - Themes emerge naturally from story events
   - Avoid heavy-handed moralizing
   - Let children draw their own conclusions
   - Focus on universal values: friendship, courage, kindness
"""

FOUNDATION_TEMPLATE = """\
You are a master children's storyteller and narrative architect. Your task is to create the foundation for an interactive story.

{{{principles}}}
Based on the child's favorite books and what they love about them, create a story foundation that will resonate deeply with them.

Child's Input:
- Favorite books: {{{favorite_books}}}
- What they love: {{{why_love_books}}}

CRITICAL: Return ONLY a valid JSON object with this exact structure. Do NOT wrap it in markdown code blocks or add any explanatory text:
{
  "title": "Engaging story title",
  "premise": "2-3 sentence story premise that hooks the reader",
  "theme": "Central theme (friendship, courage, discovery, etc.)",
  "protagonist": {
    "name": "Character name",
    "description": "Physical description",
    "personality": ["trait1", "trait2", "trait3"],
    "role": "protagonist"
  },
  "supportingCharacters": [
    {
      "name": "Character name",
      "description": "Description",
      "personality": ["trait1", "trait2"],
      "role": "one of: ally, mentor, sidekick, antagonist"
    }
  ],
  "setting": "Vivid description of the main setting",
  "centralConflict": "What challenge or problem drives the story forward",
  "backgroundScene": "Description for visual background generation"
}
"""

TREE_TEMPLATE = """\
You are creating a complete interactive story tree with exactly 7 segments. Every segment except the four endings offers exactly 2 choices.

{{{principles}}}
STORY STRUCTURE:
- segment_1: Opening and first choice (choice_1a leads to segment_2a, choice_1b leads to segment_2b)
- segment_2a: Development after choice_1a (its two choices lead to segment_3a and segment_3b)
- segment_2b: Development after choice_1b (its two choices lead to segment_3c and segment_3d)
- segment_3a, segment_3b, segment_3c, segment_3d: Endings with "isEnding": true and no choices

REQUIREMENTS:
- Each segment should be 180-220 words
- Maintain character consistency throughout all paths
- Choices should feel meaningful and have clear consequences
- Each path should feel complete and satisfying
- Use rich sensory details and emotional engagement

Story Foundation:
{{{foundation_json}}}

Child's Preferences:
- Favorite books: {{{favorite_books}}}
- What they love: {{{why_love_books}}}

CRITICAL: Return ONLY a valid JSON object with this exact structure. Do NOT wrap it in markdown code blocks or add any explanatory text:
{
  "title": "{{{title}}}",
  "premise": "{{{premise}}}",
  "theme": "{{{theme}}}",
  "characters": [array of all characters with consistent details],
  "segments": [
    {
      "id": "segment_1",
      "text": "Opening segment text...",
      "context": {
        "setting": "Current location",
        "timeOfDay": "morning/afternoon/evening/night",
        "mood": "Current emotional tone",
        "theme": "Theme being explored",
        "previousEvents": [],
        "characters": [characters present in this segment]
      },
      "backgroundScene": "Scene description for background image",
      "choices": [
        {
          "id": "choice_1a",
          "text": "Choice description",
          "consequence": "What this leads to",
          "leadTo": "segment_2a",
          "impact": "major"
        },
        {
          "id": "choice_1b",
          "text": "Choice description",
          "consequence": "What this leads to",
          "leadTo": "segment_2b",
          "impact": "major"
        }
      ]
    },
    ... (continue for {{{following_ids}}})
  ]
}

CRITICAL: Ensure character names and traits remain consistent across ALL segments. Track what happens in each path carefully.
"""

FOLLOWING_SEGMENT_IDS = SEGMENT_IDS[1:]


def compose_foundation_prompt(favorite_books: str, why_love_books: str) -> str:
    return render_prompt(FOUNDATION_TEMPLATE, {
        "principles": STORYTELLING_PRINCIPLES,
        "favorite_books": favorite_books,
        "why_love_books": why_love_books,
    })


def compose_tree_prompt(
    foundation: StoryFoundation, favorite_books: str, why_love_books: str
) -> str:
    """Build the full-tree prompt.

    The whole foundation is embedded as JSON so the second call reuses the
    first call's character names and traits.
    """
    return render_prompt(TREE_TEMPLATE, {
        "principles": STORYTELLING_PRINCIPLES,
        "foundation_json": foundation.model_dump_json(by_alias=True, indent=2),
        "favorite_books": favorite_books,
        "why_love_books": why_love_books,
        "title": foundation.title,
        "premise": foundation.premise,
        "theme": foundation.theme,
        "following_ids": ", ".join(FOLLOWING_SEGMENT_IDS),
    })
