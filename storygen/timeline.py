"""Timeline assembly: per-scene media onto render tracks.

Audio is authoritative for timing. A scene's clip lasts as long as its
generated audio (or its planned duration when it has none), and video clips
are sped up or slowed down to fit instead of trimming narration.
"""

from __future__ import annotations

import logging
import math
import random
from typing import Dict, List, Optional, Sequence

from .captions import caption_asset
from .errors import RenderError
from .types import (
    Clip,
    GenerationSettings,
    MediaMode,
    Mood,
    OutputSettings,
    Pacing,
    Scene,
    Soundtrack,
    Timeline,
    Track,
)

logger = logging.getLogger(__name__)

SPEED_TOLERANCE = 0.05
MIN_SPEED = 0.3
MAX_SPEED = 3.0
DEFAULT_END_PAD = 1.0

TRANSITION_EFFECTS: Dict[str, str] = {
    "fade": "fade",
    "cross-dissolve": "fade",
    "crossfade": "fade",
    "dissolve": "fade",
    "wipe-left": "wipeLeft",
    "wipe-right": "wipeRight",
    "wipe-up": "wipeUp",
    "wipe-down": "wipeDown",
    "slide-left": "slideLeft",
    "slide-right": "slideRight",
    "slide-up": "slideUp",
    "slide-down": "slideDown",
    "zoom": "zoom",
    "carousel-left": "carouselLeft",
    "carousel-right": "carouselRight",
    "reveal": "reveal",
}

KEN_BURNS_EFFECTS: Dict[str, Optional[str]] = {
    "ken-burns": "zoomIn",
    "ken-burns-in": "zoomIn",
    "ken-burns-out": "zoomOut",
    "zoom-in": "zoomIn",
    "zoom-out": "zoomOut",
    "pan-left": "slideLeft",
    "pan-right": "slideRight",
    "pan-up": "slideUp",
    "pan-down": "slideDown",
    "slide-left": "slideLeft",
    "slide-right": "slideRight",
    "none": None,
}

# Ranked best match first.
MOOD_TRANSITIONS: Dict[Mood, List[str]] = {
    Mood.HAPPY: ["reveal", "slide-up", "zoom", "carousel-left", "wipe-right", "fade"],
    Mood.EXCITED: ["zoom", "slide-left", "carousel-right", "wipe-left", "slide-up", "reveal"],
    Mood.SAD: ["fade", "cross-dissolve", "wipe-down", "slide-down", "reveal"],
    Mood.ANGRY: ["zoom", "wipe-left", "slide-left", "carousel-left", "fade"],
    Mood.NERVOUS: ["wipe-up", "slide-up", "zoom", "carousel-right", "fade"],
    Mood.DRAMATIC: ["zoom", "reveal", "wipe-down", "carousel-left", "fade"],
    Mood.SURPRISED: ["zoom", "reveal", "slide-up", "carousel-right", "wipe-right"],
    Mood.THOUGHTFUL: ["cross-dissolve", "fade", "slide-right", "wipe-right", "reveal"],
    Mood.CURIOUS: ["reveal", "slide-right", "zoom", "wipe-right", "cross-dissolve"],
    Mood.WHISPER: ["fade", "cross-dissolve", "slide-down", "wipe-down"],
    Mood.SARCASTIC: ["slide-left", "carousel-left", "zoom", "wipe-left", "fade"],
    Mood.NEUTRAL: ["cross-dissolve", "fade", "wipe-right", "slide-left", "reveal"],
}

POSITION_TRANSITIONS: Dict[str, List[str]] = {
    "opening": ["reveal", "fade", "slide-up", "cross-dissolve"],
    "climax": ["zoom", "reveal", "carousel-left", "wipe-left"],
    "closing": ["fade", "cross-dissolve", "wipe-down", "slide-down"],
}

PACING_AVOID: Dict[Pacing, List[str]] = {
    Pacing.SLOW: ["zoom", "carousel-left", "carousel-right"],
    Pacing.MEDIUM: [],
    Pacing.FAST: ["fade", "cross-dissolve"],
}

MOOD_SHIFT_TRANSITIONS = ["zoom", "reveal", "carousel-left", "carousel-right"]
FALLBACK_TRANSITIONS = ["cross-dissolve", "fade"]


def compute_speed(video_duration: float | None, audio_duration: float | None) -> Optional[float]:
    """Playback speed that stretches the video to the audio length.

    Returns None when either duration is unknown or the two already agree
    within five percent.
    """
    if not video_duration or not audio_duration or video_duration <= 0 or audio_duration <= 0:
        return None
    ratio = video_duration / audio_duration
    if abs(ratio - 1.0) <= SPEED_TOLERANCE:
        return None
    return round(max(MIN_SPEED, min(MAX_SPEED, ratio)), 3)


def map_transition(name: str | None) -> Optional[str]:
    """Render effect for a transition name; ``none``/``cut`` mean a hard cut."""
    if not name:
        return None
    key = name.strip().lower()
    if key in {"none", "cut"}:
        return None
    return TRANSITION_EFFECTS.get(key, "fade")


def map_ken_burns(animation: str | None) -> Optional[str]:
    if not animation:
        return "zoomIn"
    key = animation.strip().lower()
    if key in KEN_BURNS_EFFECTS:
        return KEN_BURNS_EFFECTS[key]
    return "zoomIn"


def scene_position(position: int, count: int) -> Optional[str]:
    """Content position hint for the scene at ``position`` (0-based)."""
    if position == 0:
        return "opening"
    if position == count - 1:
        return "closing"
    if count >= 4 and position == math.floor(count * 2 / 3):
        return "climax"
    return None


def select_transition(
    mood: Mood,
    *,
    position: Optional[str] = None,
    next_mood: Optional[Mood] = None,
    pacing: Pacing = Pacing.MEDIUM,
    rng: random.Random | None = None,
) -> str:
    """Pick a transition name for a scene with a skewed random draw.

    Candidates come from the mood's ranked list, filtered by pacing, and
    are narrowed to the position hints (70% of the time) or to high-impact
    transitions on a mood change (40% of the time). Earlier candidates are
    favoured.
    """
    rng = rng or random.Random()
    avoid = set(PACING_AVOID.get(pacing, []))
    candidates = [name for name in MOOD_TRANSITIONS.get(mood, MOOD_TRANSITIONS[Mood.NEUTRAL]) if name not in avoid]

    if position in POSITION_TRANSITIONS:
        preferred = [name for name in candidates if name in POSITION_TRANSITIONS[position]]
        if preferred and rng.random() < 0.7:
            candidates = preferred

    if next_mood is not None and next_mood != mood:
        impact = [name for name in candidates if name in MOOD_SHIFT_TRANSITIONS]
        if impact and rng.random() < 0.4:
            candidates = impact

    if not candidates:
        candidates = list(FALLBACK_TRANSITIONS)

    index = int(math.floor(rng.random() ** 1.5 * len(candidates)))
    return candidates[min(index, len(candidates) - 1)]


class TimelineAssembler:
    """Builds the render timeline from reconciled scenes."""

    def __init__(self, *, end_pad: float = DEFAULT_END_PAD, rng: random.Random | None = None) -> None:
        self._end_pad = end_pad
        self._rng = rng or random.Random()

    def usable_scenes(self, scenes: Sequence[Scene], settings: GenerationSettings) -> List[Scene]:
        """Scenes that carry media the renderer can show."""
        if settings.media_mode == MediaMode.ANIMATED:
            return [scene for scene in scenes if scene.media.video_url or scene.media.image_url]
        return [scene for scene in scenes if scene.media.image_url]

    def clip_lengths(self, scenes: Sequence[Scene]) -> List[float]:
        """Clip length per scene, with the final clip padded."""
        lengths = [float(scene.clip_duration) for scene in scenes]
        if lengths:
            lengths[-1] += self._end_pad
        return lengths

    def assemble(
        self,
        scenes: Sequence[Scene],
        settings: GenerationSettings,
        *,
        music_url: str | None = None,
        captions_url: str | None = None,
        native_audio: bool = False,
    ) -> Timeline:
        """Lay scenes end to end on captions, visual and audio tracks."""
        valid = self.usable_scenes(scenes, settings)
        if not valid:
            raise RenderError("No scenes have valid media (video or image); cannot export")

        lengths = self.clip_lengths(valid)
        visual: List[Clip] = []
        audio: List[Clip] = []
        cursor = 0.0

        for position, (scene, length) in enumerate(zip(valid, lengths)):
            effect_name = self._transition_for(valid, position, settings)
            if settings.media_mode == MediaMode.ANIMATED and scene.media.video_url:
                asset = {"type": "video", "src": scene.media.video_url, "volume": 1 if native_audio else 0}
                if not native_audio and scene.media.audio_url:
                    speed = compute_speed(scene.target_duration, scene.actual_duration)
                    if speed is not None:
                        asset["speed"] = speed
                clip = Clip(asset=asset, start=cursor, length=length, fit="cover")
            else:
                clip = Clip(
                    asset={"type": "image", "src": scene.media.image_url},
                    start=cursor,
                    length=length,
                    fit="cover",
                    effect=map_ken_burns(scene.animation),
                )
            clip.transition_in = effect_name
            clip.transition_out = effect_name
            visual.append(clip)

            if scene.media.audio_url and not native_audio:
                audio.append(
                    Clip(
                        asset={
                            "type": "audio",
                            "src": scene.media.audio_url,
                            "volume": settings.voice_volume / 100,
                        },
                        start=cursor,
                        length=length,
                    )
                )
            cursor += length

        total = round(cursor, 3)
        tracks: List[Track] = []
        if captions_url:
            tracks.append(
                Track(
                    name="captions",
                    clips=[
                        Clip(
                            asset=caption_asset(captions_url, settings.language, settings.text_overlay_style),
                            start=0.0,
                            length=total,
                        )
                    ],
                )
            )
        tracks.append(Track(name="visual", clips=visual))
        if audio:
            tracks.append(Track(name="audio", clips=audio))

        soundtrack = None
        if music_url:
            soundtrack = Soundtrack(src=music_url, effect="fadeInFadeOut", volume=settings.music_volume / 100)

        logger.info(
            "Timeline assembled: %d visual clips, %d audio clips, %.1fs%s",
            len(visual), len(audio), total, " with captions" if captions_url else "",
        )
        return Timeline(
            tracks=tracks,
            total_duration=total,
            output=OutputSettings(aspect_ratio=settings.aspect_ratio),
            soundtrack=soundtrack,
        )

    def _transition_for(self, scenes: Sequence[Scene], position: int, settings: GenerationSettings) -> Optional[str]:
        count = len(scenes)
        if position == count - 1:
            return None
        scene = scenes[position]
        if scene.transition:
            return map_transition(scene.transition)
        name = select_transition(
            scene.mood,
            position=scene_position(position, count),
            next_mood=scenes[position + 1].mood,
            pacing=settings.pacing,
            rng=self._rng,
        )
        return map_transition(name)
