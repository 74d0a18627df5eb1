"""Nodes that split the script into timed scenes and enrich them for production."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence

from ..durations import check_narration_pacing, reconcile_scenes, supported_durations
from ..errors import ProviderFatalError, ReconciliationError
from ..services.text import MAX_SCENES, MIN_SCENES, StoryWriterClient
from ..stagesets import StageSet
from ..types import Mood, PipelineRun, Scene, Stage
from .base import BaseNode, SceneUpdate, merge_scene_updates, renumber

logger = logging.getLogger(__name__)

AUTO_TRANSITION = "auto"


class SplitScenes(BaseNode):
    """Breaks the script into 3-10 scenes whose durations sum to the target."""

    stage = Stage.SCENE_SPLIT

    def __init__(self, run_id: str, logger, writer: StoryWriterClient, stage_set: StageSet) -> None:
        super().__init__(name="SplitScenes", run_id=run_id, logger=logger)
        self._writer = writer
        self._stage_set = stage_set

    def run(self, state: PipelineRun) -> PipelineRun:
        settings = state.settings
        allowed = supported_durations(settings.video_model) if settings.is_animated else None
        self.log_prompt(
            f"script: {state.script_text}\ntarget: {settings.duration}s\n"
            f"allowed durations: {allowed or 'any'}"
        )

        result = self._writer.split_scenes(state.script_text or "", settings, self._stage_set, allowed)
        scenes = self._parse_scenes(result.payload, settings.duration)
        if len(scenes) < MIN_SCENES:
            raise ProviderFatalError(f"Expected at least {MIN_SCENES} scenes, got {len(scenes)}")
        if len(scenes) > MAX_SCENES:
            logger.warning("Scene split returned %d scenes; keeping the first %d", len(scenes), MAX_SCENES)
            scenes = scenes[:MAX_SCENES]
        renumber(scenes)

        outcome = reconcile_scenes(scenes, settings.duration, allowed)
        if not outcome.accepted:
            raise ReconciliationError(
                f"Scene durations total {outcome.total:g}s, {abs(outcome.residual):g}s away "
                f"from the requested {settings.duration}s"
            )
        if not outcome.ok:
            state.warnings.append(
                f"Scene durations total {outcome.total:g}s instead of {settings.duration}s"
            )
        for warning in check_narration_pacing(scenes, settings.language):
            logger.warning("Narration pacing: %s", warning)
            state.warnings.append(warning)

        self.log_response(
            {
                "scenes": [scene.to_dict() for scene in scenes],
                "total": outcome.total,
                "residual": outcome.residual,
                "cost": result.cost,
            }
        )
        state.scenes = scenes
        state.record_cost(self.stage, result.cost)
        return state

    def _parse_scenes(self, payload: Sequence[Any], target: float) -> List[Scene]:
        items = [item for item in payload if isinstance(item, dict)]
        items = [item for item in items if str(item.get("narration") or item.get("description") or "").strip()]
        items.sort(key=lambda item: _scene_number(item, default=len(items) + 1))
        fallback = round(target / len(items), 3) if items else 0.0

        scenes: List[Scene] = []
        for position, item in enumerate(items, start=1):
            try:
                duration = float(item.get("duration") or 0)
            except (TypeError, ValueError):
                duration = 0.0
            scenes.append(
                Scene(
                    index=position,
                    target_duration=duration if duration > 0 else fallback,
                    narration=str(item.get("narration") or "").strip(),
                    visual_prompt=str(item.get("description") or "").strip(),
                    mood=self._stage_set.default_mood,
                )
            )
        return scenes


class EnhanceStoryboard(BaseNode):
    """Adds image and video prompts, voice mood, animation and transitions per scene."""

    stage = Stage.STORYBOARD

    def __init__(self, run_id: str, logger, writer: StoryWriterClient, stage_set: StageSet) -> None:
        super().__init__(name="EnhanceStoryboard", run_id=run_id, logger=logger)
        self._writer = writer
        self._stage_set = stage_set

    def run(self, state: PipelineRun) -> PipelineRun:
        settings = state.settings
        self.log_prompt(f"scenes: {len(state.scenes)}\nstyle: {settings.image_style}")
        result = self._writer.enhance_storyboard(state.scenes, settings, self._stage_set)

        updates: List[SceneUpdate] = []
        for item in result.payload:
            if not isinstance(item, dict):
                continue
            number = _scene_number(item, default=None)
            if number is None:
                logger.warning("Storyboard entry without sceneNumber ignored: %s", item)
                continue
            updates.append(
                SceneUpdate(
                    index=number,
                    narration=item.get("voiceText"),
                    visual_prompt=item.get("imagePrompt"),
                    video_prompt=item.get("videoPrompt"),
                    mood=item.get("voiceMood"),
                    transition=item.get("transition"),
                    animation=item.get("animationName"),
                )
            )

        applied = merge_scene_updates(state.scenes, updates)
        if state.scenes and not applied:
            raise ProviderFatalError("Storyboard response did not match any scene")
        if applied < len(state.scenes):
            logger.warning("Storyboard covered %d of %d scenes", applied, len(state.scenes))

        override = (settings.transition_style or "").strip().lower()
        if override and override != AUTO_TRANSITION:
            for scene in state.scenes:
                scene.transition = override
        renumber(state.scenes)

        self.log_response(
            {
                "scenes": [scene.to_dict() for scene in state.scenes],
                "moods": _mood_counts(state.scenes),
                "cost": result.cost,
            }
        )
        state.record_cost(self.stage, result.cost)
        return state


def _scene_number(item: Dict[str, Any], default):
    value = item.get("sceneNumber", item.get("scene_number"))
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _mood_counts(scenes: Sequence[Scene]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for scene in scenes:
        mood = scene.mood.value if isinstance(scene.mood, Mood) else str(scene.mood)
        counts[mood] = counts.get(mood, 0) + 1
    return counts
