"""Nodes producing narration, ambient sound effects and background music."""

from __future__ import annotations

import logging
import time
from typing import Callable, List

from ..durations import MODELS_WITH_NATIVE_AUDIO
from ..errors import ProviderFatalError, StoryPipelineError
from ..retry import with_retries
from ..services.audio import MusicClient, SoundEffectsClient, SpeechClient
from ..services.base import AudioResult
from ..stagesets import StageSet
from ..types import PipelineRun, Scene, Stage
from .base import BaseNode

logger = logging.getLogger(__name__)


class GenerateVoiceover(BaseNode):
    """Generates scene audio one request at a time.

    Narrated modes use text-to-speech; sound-effect modes use ambient effects
    unless the video model already produced audio. A scene whose audio fails
    keeps no audio and the stage carries on.
    """

    stage = Stage.VOICE

    def __init__(
        self,
        run_id: str,
        logger,
        speech: SpeechClient,
        sound_effects: SoundEffectsClient,
        stage_set: StageSet,
        *,
        max_retries: int = 2,
        retry_base_delay: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(name="GenerateVoiceover", run_id=run_id, logger=logger)
        self._speech = speech
        self._sound_effects = sound_effects
        self._stage_set = stage_set
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._sleep = sleep

    def enabled(self, state: PipelineRun) -> bool:
        return state.settings.has_voiceover or self._stage_set.sound_effects

    def run(self, state: PipelineRun) -> PipelineRun:
        settings = state.settings
        use_effects = self._stage_set.sound_effects
        if use_effects and settings.is_animated and settings.video_model in MODELS_WITH_NATIVE_AUDIO:
            logger.info("Video model %s carries native audio; no sound effects needed", settings.video_model)
            self.log_response({"skipped": "native audio"})
            return state

        pending = [scene for scene in state.scenes if not scene.media.audio_url]
        required = [scene for scene in pending if use_effects or scene.narration.strip()]
        self.log_prompt(
            "\n".join(f"{scene.index} [{scene.mood.value}]: {self._audio_prompt(scene, use_effects)}" for scene in required)
        )

        cost = 0.0
        errors: List[str] = []
        generated = 0
        for scene in required:
            try:
                result = with_retries(
                    lambda scene=scene: self._generate(scene, settings.voice_id, use_effects),
                    max_retries=self._max_retries,
                    base_delay=self._retry_base_delay,
                    label=f"Audio for scene {scene.index}",
                    sleep=self._sleep,
                )
            except StoryPipelineError as exc:
                logger.warning("Audio for scene %d failed: %s", scene.index, exc)
                scene.error = str(exc)
                errors.append(str(exc))
                continue
            scene.media.audio_url = result.audio_url
            scene.actual_duration = round(result.duration, 3) if result.duration > 0 else None
            scene.word_timestamps = list(result.word_timestamps)
            cost += result.cost
            generated += 1

        self.log_response(
            [
                {
                    "scene": scene.index,
                    "audio": scene.media.audio_url,
                    "duration": scene.actual_duration,
                    "error": scene.error,
                }
                for scene in required
            ]
        )
        if required and not generated:
            raise ProviderFatalError(f"All audio generations failed: {errors[0] if errors else 'unknown error'}")
        if errors:
            state.warnings.append(f"{len(errors)} of {len(required)} scenes have no audio")
        state.record_cost(self.stage, cost)
        return state

    def _generate(self, scene: Scene, voice_id: str, use_effects: bool) -> AudioResult:
        if use_effects:
            return self._sound_effects.generate(self._audio_prompt(scene, True), scene.target_duration)
        return self._speech.synthesize(scene.narration, voice_id, scene.mood, scene.target_duration)

    @staticmethod
    def _audio_prompt(scene: Scene, use_effects: bool) -> str:
        if use_effects:
            return scene.video_prompt or scene.visual_prompt or scene.narration
        return scene.narration


class GenerateMusic(BaseNode):
    """Composes one background track covering the whole video."""

    stage = Stage.MUSIC

    def __init__(self, run_id: str, logger, music: MusicClient, stage_set: StageSet) -> None:
        super().__init__(name="GenerateMusic", run_id=run_id, logger=logger)
        self._music = music
        self._stage_set = stage_set

    def enabled(self, state: PipelineRun) -> bool:
        style = (state.settings.background_music or "").strip().lower()
        return bool(style) and style != "none"

    def run(self, state: PipelineRun) -> PipelineRun:
        total = sum(scene.clip_duration for scene in state.scenes) or state.settings.duration
        duration_ms = MusicClient.duration_ms_for(total)
        prompt = (
            f"{state.settings.background_music} instrumental background music, "
            f"{self._stage_set.music_mood} mood, no vocals, suitable under narration"
        )
        self.log_prompt(f"{prompt}\nlength: {duration_ms}ms")

        result = self._music.compose(prompt, duration_ms)
        self.log_response({"music": result.audio_url, "durationMs": duration_ms, "cost": result.cost})
        state.music_url = result.audio_url
        state.record_cost(self.stage, result.cost)
        return state
