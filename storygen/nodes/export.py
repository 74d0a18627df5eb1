"""Node assembling the final timeline and rendering it."""

from __future__ import annotations

import json
import logging

from ..captions import build_srt
from ..durations import MODELS_WITH_NATIVE_AUDIO
from ..services.render import RenderClient
from ..stagesets import StageSet
from ..timeline import TimelineAssembler
from ..types import PipelineRun, Stage
from .base import BaseNode

logger = logging.getLogger(__name__)


class ExportVideo(BaseNode):
    """Uploads captions, builds the multi-track timeline and waits for the render."""

    stage = Stage.EXPORT

    def __init__(
        self,
        run_id: str,
        logger,
        render: RenderClient,
        assembler: TimelineAssembler,
        stage_set: StageSet,
    ) -> None:
        super().__init__(name="ExportVideo", run_id=run_id, logger=logger)
        self._render = render
        self._assembler = assembler
        self._stage_set = stage_set

    def run(self, state: PipelineRun) -> PipelineRun:
        settings = state.settings
        native_audio = (
            self._stage_set.sound_effects
            and settings.is_animated
            and settings.video_model in MODELS_WITH_NATIVE_AUDIO
        )

        captions_url = None
        usable = self._assembler.usable_scenes(state.scenes, settings)
        if settings.text_overlay and any(scene.media.audio_url for scene in usable):
            srt = build_srt(list(zip(usable, self._assembler.clip_lengths(usable))))
            if srt.strip():
                captions_url = self._render.upload_captions(self.run_id, srt)
                logger.info("Captions uploaded to %s", captions_url)

        timeline = self._assembler.assemble(
            state.scenes,
            settings,
            music_url=state.music_url,
            captions_url=captions_url,
            native_audio=native_audio,
        )
        edit = timeline.to_edit()
        self.log_prompt(json.dumps(edit, ensure_ascii=False, indent=2))

        result = self._render.render(edit)
        self.log_response(
            {"renderId": result.render_id, "url": result.url, "thumbnail": result.thumbnail_url, "cost": result.cost}
        )
        state.final_video_url = result.url
        state.thumbnail_url = result.thumbnail_url
        state.record_cost(self.stage, result.cost)
        return state
