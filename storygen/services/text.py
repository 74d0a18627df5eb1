"""OpenAI-compatible text client that writes scripts, scenes and storyboards."""

from __future__ import annotations

import json
import logging
import math
from typing import Any, Dict, List, Optional, Sequence

import openai
from openai import OpenAI

from ..errors import ProviderFatalError, ValidationError, from_openai_error
from ..retry import with_retries
from ..stagesets import StageSet
from ..types import GenerationSettings, Mood, Scene
from ..utils.prompts import load_prompt
from .base import TextResult, clean_json_text

logger = logging.getLogger(__name__)

MIN_SCENES = 3
MAX_SCENES = 10
STORYBOARD_TRANSITIONS = (
    "fade, cross-dissolve, wipe-left, wipe-right, wipe-up, wipe-down, slide-left, "
    "slide-right, slide-up, slide-down, zoom, carousel-left, carousel-right, reveal, none"
)
_ANIMATIONS = ("ken-burns-in", "pan-right", "ken-burns-out", "pan-left", "pan-up")


class StoryWriterClient:
    """Generates story text with an OpenAI-compatible API and a mock fallback."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        model: str = "gpt-4o-mini",
        use_mock: bool = True,
        timeout: int = 60,
        cost_per_1k_tokens: float = 0.0006,
        max_retries: int = 2,
        retry_base_delay: float = 1.0,
    ) -> None:
        self._api_key = api_key
        self._api_url = api_url
        self._model = model
        self._use_mock = use_mock
        self._timeout = timeout
        self._cost_per_1k_tokens = cost_per_1k_tokens
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._client: OpenAI | None = None

    def write_script(self, topic: str, settings: GenerationSettings, stage_set: StageSet) -> TextResult:
        """Return the full narration script for ``topic``."""
        if not topic or not topic.strip():
            raise ValidationError("Topic is required")
        if self._use_mock:
            return TextResult(payload=self._mock_script(topic, settings, stage_set))

        prompt = load_prompt(
            "write_script",
            {
                "topic": topic.strip(),
                "duration": settings.duration,
                "guidance": stage_set.script_guidance,
                "language": settings.language,
                "pacing": settings.pacing.value,
                "word_budget": int(settings.duration * (2.0 if settings.is_arabic else 2.5)),
            },
        )
        data, cost = self._complete_json(prompt)
        script = data.get("script") if isinstance(data, dict) else None
        if not isinstance(script, str) or not script.strip():
            raise ProviderFatalError(f"Script response missing 'script': {data}")
        return TextResult(payload=script.strip(), cost=cost)

    def split_scenes(
        self,
        script: str,
        settings: GenerationSettings,
        stage_set: StageSet,
        allowed_durations: Sequence[int] | None = None,
    ) -> TextResult:
        """Return raw scene dicts with ``sceneNumber``, ``duration``, ``narration``, ``description``."""
        if not script or not script.strip():
            raise ValidationError("Script text is empty; cannot split into scenes")
        if self._use_mock:
            return TextResult(payload=self._mock_scenes(script, settings, allowed_durations))

        if allowed_durations:
            rule = "Each scene duration must be one of: " + ", ".join(str(v) for v in allowed_durations) + " seconds."
        else:
            rule = "Each scene should last at least 3 seconds."
        prompt = load_prompt(
            "split_scenes",
            {
                "script": script,
                "duration": settings.duration,
                "min_scenes": MIN_SCENES,
                "max_scenes": MAX_SCENES,
                "beats": ", ".join(stage_set.scene_beats),
                "duration_rule": rule,
            },
        )
        data, cost = self._complete_json(prompt)
        if isinstance(data, dict):
            data = data.get("scenes", [])
        if not isinstance(data, list):
            raise ProviderFatalError("Scene response should be a JSON array of scenes.")
        return TextResult(payload=data, cost=cost)

    def enhance_storyboard(
        self, scenes: Sequence[Scene], settings: GenerationSettings, stage_set: StageSet
    ) -> TextResult:
        """Return per-scene storyboard fields keyed by ``sceneNumber``."""
        if self._use_mock:
            return TextResult(payload=self._mock_storyboard(scenes, settings, stage_set))

        scene_lines = json.dumps(
            [
                {
                    "sceneNumber": scene.index,
                    "duration": scene.target_duration,
                    "narration": scene.narration,
                    "description": scene.visual_prompt,
                }
                for scene in scenes
            ],
            ensure_ascii=False,
            indent=2,
        )
        prompt = load_prompt(
            "enhance_storyboard",
            {
                "aspect_ratio": settings.aspect_ratio,
                "image_style": settings.image_style,
                "moods": ", ".join(mood.value for mood in Mood),
                "transitions": STORYBOARD_TRANSITIONS,
                "scenes": scene_lines,
            },
        )
        data, cost = self._complete_json(prompt)
        if isinstance(data, dict):
            data = data.get("scenes", [])
        if not isinstance(data, list):
            raise ProviderFatalError("Storyboard response should be a JSON array of scenes.")
        return TextResult(payload=data, cost=cost)

    def _complete_json(self, prompt: str) -> tuple[Any, float]:
        if not self._api_key:
            raise ValueError("Text API key is missing; cannot call service.")
        client = self._resolve_client()

        def _call():
            try:
                return client.chat.completions.create(
                    model=self._model,
                    messages=[
                        {"role": "system", "content": load_prompt("writer_system").strip()},
                        {"role": "user", "content": prompt},
                    ],
                    temperature=0.7,
                    timeout=self._timeout,
                )
            except openai.OpenAIError as exc:
                raise from_openai_error(exc) from exc

        response = with_retries(
            _call,
            max_retries=self._max_retries,
            base_delay=self._retry_base_delay,
            label="text completion",
        )
        text = self._extract_text(response)
        if not text:
            raise ProviderFatalError(f"Text API response missing content: {response}")
        logger.debug("Text model response: %s", text)

        cleaned = clean_json_text(text)
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError as exc:
            raise ProviderFatalError(f"Failed to decode text response as JSON after cleaning: {cleaned}") from exc
        return data, self._cost_from_usage(response)

    def _resolve_client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(api_key=self._api_key, base_url=self._api_url)
        return self._client

    def _cost_from_usage(self, response: Any) -> float:
        usage = getattr(response, "usage", None)
        tokens = getattr(usage, "total_tokens", None) or 0
        return round(tokens / 1000 * self._cost_per_1k_tokens, 6)

    @staticmethod
    def _extract_text(response: Any) -> str | None:
        """Extract assistant text content from OpenAI-compatible responses."""
        choices = getattr(response, "choices", None)
        if not choices and isinstance(response, dict):
            choices = response.get("choices")
        if isinstance(choices, list) and choices:
            choice = choices[0]
            message = getattr(choice, "message", None)
            if message is None and isinstance(choice, dict):
                message = choice.get("message")
            if message:
                content = getattr(message, "content", None)
                if content is None and isinstance(message, dict):
                    content = message.get("content")
                if isinstance(content, str):
                    return content
        return None

    def _mock_script(self, topic: str, settings: GenerationSettings, stage_set: StageSet) -> str:
        subject = topic.strip().rstrip(".")
        lines = {
            "hook": f"Ever wondered why {subject} feels so hard to get right?",
            "problem": f"Most people struggle with {subject} every single day.",
            "agitation": "It wastes time, money and a lot of patience.",
            "solution": f"Here is the simple fix that makes {subject} effortless.",
            "cta": "Try it today and follow for more quick wins.",
        }
        sentences = [
            lines.get(beat, f"Then comes the {beat}, and {subject} starts to change.")
            for beat in stage_set.scene_beats
        ]
        return " ".join(sentences)

    def _mock_scenes(
        self, script: str, settings: GenerationSettings, allowed_durations: Sequence[int] | None
    ) -> List[Dict[str, Any]]:
        count = min(MAX_SCENES, max(MIN_SCENES, round(settings.duration / 6)))
        words = script.split()
        per_scene = max(1, math.ceil(len(words) / count))
        base = settings.duration / count
        scenes: List[Dict[str, Any]] = []
        for idx in range(count):
            chunk = words[idx * per_scene : (idx + 1) * per_scene] or words[-per_scene:]
            scenes.append(
                {
                    "sceneNumber": idx + 1,
                    "duration": int(round(base)),
                    "narration": " ".join(chunk),
                    "description": f"Scene {idx + 1}: {' '.join(chunk[:8])}",
                }
            )
        return scenes

    def _mock_storyboard(
        self, scenes: Sequence[Scene], settings: GenerationSettings, stage_set: StageSet
    ) -> List[Dict[str, Any]]:
        beats = stage_set.scene_beats
        moods = [stage_set.default_mood.value, Mood.NEUTRAL.value, Mood.EXCITED.value]
        board: List[Dict[str, Any]] = []
        for position, scene in enumerate(scenes):
            beat = beats[min(position, len(beats) - 1)]
            board.append(
                {
                    "sceneNumber": scene.index,
                    "imagePrompt": f"{settings.image_style} {beat} shot, {scene.visual_prompt}",
                    "videoPrompt": f"slow push-in on the {beat} moment",
                    "voiceText": scene.narration,
                    "voiceMood": moods[position % len(moods)],
                    "animationName": _ANIMATIONS[position % len(_ANIMATIONS)],
                }
            )
        return board
