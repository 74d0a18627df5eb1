"""Node abstractions shared by concrete pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Dict, Iterable, List, Optional, Protocol

from ..types import Mood, PipelineRun, Scene, Stage
from ..utils.run_logger import RunLogger


class Node(Protocol):
    """A pipeline stage that mutates the shared run state."""

    name: str
    stage: Stage
    fatal: bool

    def enabled(self, state: PipelineRun) -> bool:
        ...

    def run(self, state: PipelineRun) -> PipelineRun:
        ...


@dataclass(slots=True)
class BaseNode:
    """Convenience base for nodes needing logging support."""

    stage: ClassVar[Stage]
    fatal: ClassVar[bool] = True

    name: str
    run_id: str
    logger: RunLogger

    def enabled(self, state: PipelineRun) -> bool:
        """Return False when the stage should be skipped for this run."""
        return True

    def log_prompt(self, prompt: str) -> None:
        """Persist the prompt."""
        self.logger.log_prompt(self.run_id, self.name, prompt)

    def log_response(self, response: object) -> None:
        """Persist the response."""
        self.logger.log_response(self.run_id, self.name, response)


@dataclass(slots=True)
class SceneUpdate:
    """Fields produced for one scene by a stage; ``None`` leaves a field untouched."""

    index: int
    narration: Optional[str] = None
    visual_prompt: Optional[str] = None
    video_prompt: Optional[str] = None
    mood: Optional[str] = None
    transition: Optional[str] = None
    animation: Optional[str] = None
    image_url: Optional[str] = None
    video_url: Optional[str] = None
    error: Optional[str] = None


def merge_scene_updates(scenes: List[Scene], updates: Iterable[SceneUpdate]) -> int:
    """Apply updates to the scenes with the matching index.

    Updates for unknown indices are ignored. Returns the number applied.
    """
    by_index: Dict[int, Scene] = {scene.index: scene for scene in scenes}
    applied = 0
    for update in updates:
        scene = by_index.get(update.index)
        if scene is None:
            continue
        if update.narration:
            scene.narration = update.narration
        if update.visual_prompt:
            scene.visual_prompt = update.visual_prompt
        if update.video_prompt:
            scene.video_prompt = update.video_prompt
        if update.mood is not None:
            scene.mood = Mood.coerce(update.mood)
        if update.transition:
            scene.transition = update.transition
        if update.animation:
            scene.animation = update.animation
        if update.image_url:
            scene.media.image_url = update.image_url
        if update.video_url:
            scene.media.video_url = update.video_url
        if update.error:
            scene.error = update.error
        applied += 1
    return applied


def renumber(scenes: List[Scene]) -> List[Scene]:
    """Make scene indices contiguous from 1 in list order."""
    for position, scene in enumerate(scenes, start=1):
        scene.index = position
    return scenes
