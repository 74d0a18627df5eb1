"""Node posting the rendered video to social platforms."""

from __future__ import annotations

from dataclasses import asdict

from ..errors import PublishError
from ..services.publish import PublishClient, build_platform_metadata
from ..types import PipelineRun, Stage
from .base import BaseNode


class PublishVideo(BaseNode):
    """Publishes the final video; failures never fail the run."""

    stage = Stage.PUBLISH
    fatal = False

    def __init__(self, run_id: str, logger, publisher: PublishClient) -> None:
        super().__init__(name="PublishVideo", run_id=run_id, logger=logger)
        self._publisher = publisher

    def enabled(self, state: PipelineRun) -> bool:
        return state.settings.publish and bool(state.settings.platforms)

    def run(self, state: PipelineRun) -> PipelineRun:
        settings = state.settings
        if not state.final_video_url:
            raise PublishError("No rendered video to publish")
        platforms = [platform.lower() for platform in settings.platforms]
        metadata = build_platform_metadata(state.topic, state.script_text or "", platforms)
        self.log_prompt(f"video: {state.final_video_url}\nplatforms: {', '.join(platforms)}")

        result = self._publisher.publish(
            state.final_video_url,
            metadata,
            schedule_mode=settings.schedule_mode,
            scheduled_for=settings.scheduled_for,
        )
        state.publish_result = asdict(result)
        self.log_response(state.publish_result)
        if result.skipped:
            state.warnings.append(f"Not published to {', '.join(result.skipped)}: no connected account")
        return state
