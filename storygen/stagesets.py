"""Per-story-mode stage parameters selected from a static registry."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple

from .errors import ValidationError
from .types import Mood, StoryMode


@dataclass(frozen=True, slots=True)
class StageSet:
    """Everything that differs between story modes."""

    mode: StoryMode
    script_guidance: str
    scene_beats: Tuple[str, ...]
    default_mood: Mood
    music_mood: str
    sound_effects: bool = False


STAGE_SETS: Dict[StoryMode, StageSet] = {
    StoryMode.PROBLEM_SOLUTION: StageSet(
        mode=StoryMode.PROBLEM_SOLUTION,
        script_guidance=(
            "Open on a relatable problem, agitate it briefly, then present the solution "
            "and close with a clear call to action."
        ),
        scene_beats=("hook", "problem", "agitation", "solution", "cta"),
        default_mood=Mood.CURIOUS,
        music_mood="uplifting",
    ),
    StoryMode.BEFORE_AFTER: StageSet(
        mode=StoryMode.BEFORE_AFTER,
        script_guidance=(
            "Describe the 'before' state vividly, show the turning point, then reveal the "
            "'after' state and the difference it makes."
        ),
        scene_beats=("before", "struggle", "turning point", "after", "payoff"),
        default_mood=Mood.THOUGHTFUL,
        music_mood="inspiring",
    ),
    StoryMode.MYTH_BUSTING: StageSet(
        mode=StoryMode.MYTH_BUSTING,
        script_guidance=(
            "State a common myth as if it were true, challenge it with evidence, and end "
            "with the surprising truth."
        ),
        scene_beats=("myth", "doubt", "evidence", "truth", "takeaway"),
        default_mood=Mood.SURPRISED,
        music_mood="playful",
    ),
    StoryMode.TEASE_REVEAL: StageSet(
        mode=StoryMode.TEASE_REVEAL,
        script_guidance=(
            "Tease an intriguing outcome without giving it away, build suspense, and save "
            "the reveal for the final scene."
        ),
        scene_beats=("tease", "build", "tension", "climax", "reveal"),
        default_mood=Mood.DRAMATIC,
        music_mood="suspenseful",
    ),
    StoryMode.AUTO_ASMR: StageSet(
        mode=StoryMode.AUTO_ASMR,
        script_guidance=(
            "Describe a calm, tactile sequence of satisfying actions with minimal narration, "
            "focused on textures and sounds."
        ),
        scene_beats=("setup", "texture", "action", "detail", "resolution"),
        default_mood=Mood.WHISPER,
        music_mood="ambient",
        sound_effects=True,
    ),
}


def stage_set_for(mode: StoryMode | str) -> StageSet:
    """Return the stage set registered for ``mode``."""
    try:
        return STAGE_SETS[StoryMode(mode)]
    except (KeyError, ValueError) as exc:
        raise ValidationError(f"Unsupported story mode: {mode}") from exc
