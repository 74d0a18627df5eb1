"""Nodes that fan scene media generation out through the batch correlator."""

from __future__ import annotations

import logging
from typing import List, Sequence

from ..batch import BatchTaskCorrelator
from ..durations import MODELS_WITH_NATIVE_AUDIO
from ..errors import InsufficientCreditsError, ProviderFatalError
from ..services.media import MediaBatchClient
from ..stagesets import StageSet
from ..types import BatchResult, PipelineRun, Stage
from .base import BaseNode, SceneUpdate, merge_scene_updates

logger = logging.getLogger(__name__)


def _updates_from_results(results: Sequence[BatchResult], field: str) -> List[SceneUpdate]:
    updates: List[SceneUpdate] = []
    for result in results:
        if result.ok:
            updates.append(SceneUpdate(index=result.scene_index, **{field: result.url}))
        else:
            updates.append(SceneUpdate(index=result.scene_index, error=result.error))
    return updates


def _all_failed_error(kind: str, results: Sequence[BatchResult]) -> ProviderFatalError:
    errors = [result.error for result in results if result.error]
    detail = errors[0] if errors else "nothing was submitted"
    if any("insufficient credits" in error.lower() for error in errors):
        return InsufficientCreditsError(f"All {kind} generations failed: {detail}")
    return ProviderFatalError(f"All {kind} generations failed: {detail}")


class GenerateImages(BaseNode):
    """Generates one still per scene; succeeds while at least one image exists."""

    stage = Stage.IMAGES

    def __init__(
        self, run_id: str, logger, client: MediaBatchClient, correlator: BatchTaskCorrelator
    ) -> None:
        super().__init__(name="GenerateImages", run_id=run_id, logger=logger)
        self._client = client
        self._correlator = correlator

    def run(self, state: PipelineRun) -> PipelineRun:
        settings = state.settings
        items = [
            (scene.index, self._client.image_payload(scene, settings))
            for scene in state.scenes
            if not scene.media.image_url
        ]
        self.log_prompt("\n".join(f"{index}: {payload['positivePrompt']}" for index, payload in items))

        results = self._correlator.dispatch(items)
        merge_scene_updates(state.scenes, _updates_from_results(results, "image_url"))
        self.log_response(
            [
                {"scene": r.scene_index, "status": r.status.value, "url": r.url, "error": r.error}
                for r in results
            ]
        )

        generated = sum(1 for scene in state.scenes if scene.media.image_url)
        if not generated:
            raise _all_failed_error("image", results)
        failed = len(state.scenes) - generated
        if failed:
            state.warnings.append(f"{failed} of {len(state.scenes)} scene images failed")
        state.record_cost(self.stage, sum(r.cost for r in results))
        return state


class GenerateVideos(BaseNode):
    """Animates scene images into clips; scenes without a clip keep their image."""

    stage = Stage.VIDEO

    def __init__(
        self,
        run_id: str,
        logger,
        client: MediaBatchClient,
        correlator: BatchTaskCorrelator,
        stage_set: StageSet,
    ) -> None:
        super().__init__(name="GenerateVideos", run_id=run_id, logger=logger)
        self._client = client
        self._correlator = correlator
        self._stage_set = stage_set

    def enabled(self, state: PipelineRun) -> bool:
        return state.settings.is_animated

    def run(self, state: PipelineRun) -> PipelineRun:
        settings = state.settings
        items = [
            (
                scene.index,
                self._client.video_payload(scene, settings, generate_audio=self._stage_set.sound_effects),
            )
            for scene in state.scenes
            if scene.media.image_url and not scene.media.video_url
        ]
        self.log_prompt(
            f"model: {settings.video_model}\n"
            + "\n".join(f"{index}: {payload['duration']}s {payload['positivePrompt']}" for index, payload in items)
        )

        results = self._correlator.dispatch(items)
        merge_scene_updates(state.scenes, _updates_from_results(results, "video_url"))
        self.log_response(
            [
                {"scene": r.scene_index, "status": r.status.value, "url": r.url, "error": r.error}
                for r in results
            ]
        )

        generated = sum(1 for scene in state.scenes if scene.media.video_url)
        if not generated:
            raise _all_failed_error("video", results)
        if generated < len(state.scenes):
            state.warnings.append(
                f"{len(state.scenes) - generated} of {len(state.scenes)} scenes fall back to still images"
            )
        if settings.video_model in MODELS_WITH_NATIVE_AUDIO and self._stage_set.sound_effects:
            logger.info("Video model %s generates its own audio", settings.video_model)
        state.record_cost(self.stage, sum(r.cost for r in results))
        return state
