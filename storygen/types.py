"""Core data models used across the storygen pipeline."""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional, Tuple

from .errors import ValidationError


class Stage(IntEnum):
    """Ordered pipeline stages."""

    SCRIPT = 1
    SCENE_SPLIT = 2
    STORYBOARD = 3
    IMAGES = 4
    VIDEO = 5
    VOICE = 6
    MUSIC = 7
    EXPORT = 8
    PUBLISH = 9

    @property
    def label(self) -> str:
        return STAGE_LABELS[self]


STAGE_LABELS: Dict[Stage, str] = {
    Stage.SCRIPT: "Generating story script",
    Stage.SCENE_SPLIT: "Breaking into scenes",
    Stage.STORYBOARD: "Enhancing storyboard",
    Stage.IMAGES: "Generating images",
    Stage.VIDEO: "Generating videos",
    Stage.VOICE: "Generating voiceover",
    Stage.MUSIC: "Generating music",
    Stage.EXPORT: "Exporting final video",
    Stage.PUBLISH: "Publishing to social media",
}

STAGE_PROGRESS: Dict[Stage, int] = {
    Stage.SCRIPT: 12,
    Stage.SCENE_SPLIT: 25,
    Stage.STORYBOARD: 37,
    Stage.IMAGES: 50,
    Stage.VIDEO: 62,
    Stage.VOICE: 75,
    Stage.MUSIC: 87,
    Stage.EXPORT: 100,
    Stage.PUBLISH: 100,
}


class MediaMode(str, Enum):
    STATIC = "static"
    ANIMATED = "animated"


class StoryMode(str, Enum):
    PROBLEM_SOLUTION = "problem-solution"
    BEFORE_AFTER = "before-after"
    MYTH_BUSTING = "myth-busting"
    TEASE_REVEAL = "tease-reveal"
    AUTO_ASMR = "auto-asmr"


class Mood(str, Enum):
    NEUTRAL = "neutral"
    HAPPY = "happy"
    SAD = "sad"
    EXCITED = "excited"
    ANGRY = "angry"
    WHISPER = "whisper"
    DRAMATIC = "dramatic"
    CURIOUS = "curious"
    THOUGHTFUL = "thoughtful"
    SURPRISED = "surprised"
    SARCASTIC = "sarcastic"
    NERVOUS = "nervous"

    @classmethod
    def coerce(cls, value: Any) -> "Mood":
        """Return the matching mood, falling back to neutral for unknown tags."""
        if isinstance(value, Mood):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            return cls.NEUTRAL


class Pacing(str, Enum):
    SLOW = "slow"
    MEDIUM = "medium"
    FAST = "fast"


class TaskStatus(str, Enum):
    GENERATED = "generated"
    FAILED = "failed"


class RenderStatus(str, Enum):
    QUEUED = "queued"
    FETCHING = "fetching"
    RENDERING = "rendering"
    SAVING = "saving"
    DONE = "done"
    FAILED = "failed"


MIN_TOTAL_DURATION = 10
MAX_TOTAL_DURATION = 120


@dataclass(slots=True)
class GenerationSettings:
    """Per-request options controlling every stage."""

    duration: int = 30
    aspect_ratio: str = "9:16"
    language: str = "en"
    pacing: Pacing = Pacing.MEDIUM
    story_mode: StoryMode = StoryMode.PROBLEM_SOLUTION
    media_mode: MediaMode = MediaMode.STATIC
    image_style: str = "photorealistic"
    image_model: str = "nano-banana"
    image_resolution: str = "1k"
    video_model: Optional[str] = None
    video_resolution: str = "720p"
    has_voiceover: bool = True
    voice_id: str = "EXAVITQu4vr4xnSDxMaL"
    voice_volume: int = 80
    background_music: str = "none"
    music_volume: int = 30
    text_overlay: bool = False
    text_overlay_style: str = "modern"
    transition_style: Optional[str] = None
    publish: bool = False
    platforms: List[str] = field(default_factory=list)
    schedule_mode: str = "immediate"
    scheduled_for: Optional[str] = None

    @property
    def is_animated(self) -> bool:
        return self.media_mode == MediaMode.ANIMATED and bool(self.video_model)

    @property
    def is_arabic(self) -> bool:
        return (self.language or "en").lower().startswith("ar")

    def validate(self) -> None:
        """Raise ValidationError when the settings cannot drive a run."""
        errors: List[str] = []
        if not MIN_TOTAL_DURATION <= self.duration <= MAX_TOTAL_DURATION:
            errors.append(
                f"duration must be between {MIN_TOTAL_DURATION} and {MAX_TOTAL_DURATION} seconds"
            )
        if not 0 <= self.voice_volume <= 100:
            errors.append("voice_volume must be between 0 and 100")
        if not 0 <= self.music_volume <= 100:
            errors.append("music_volume must be between 0 and 100")
        if self.schedule_mode not in {"immediate", "scheduled", "continuous"}:
            errors.append(f"unknown schedule_mode: {self.schedule_mode}")
        if self.schedule_mode == "scheduled" and not self.scheduled_for:
            errors.append("scheduled_for is required when schedule_mode is 'scheduled'")
        if errors:
            raise ValidationError("Invalid generation settings: " + "; ".join(errors))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "duration": self.duration,
            "aspectRatio": self.aspect_ratio,
            "language": self.language,
            "pacing": self.pacing.value,
            "storyMode": self.story_mode.value,
            "mediaMode": self.media_mode.value,
            "imageStyle": self.image_style,
            "imageModel": self.image_model,
            "imageResolution": self.image_resolution,
            "videoModel": self.video_model,
            "videoResolution": self.video_resolution,
            "hasVoiceover": self.has_voiceover,
            "voiceId": self.voice_id,
            "voiceVolume": self.voice_volume,
            "backgroundMusic": self.background_music,
            "musicVolume": self.music_volume,
            "textOverlay": self.text_overlay,
            "textOverlayStyle": self.text_overlay_style,
            "transitionStyle": self.transition_style,
            "publish": self.publish,
            "platforms": list(self.platforms),
            "scheduleMode": self.schedule_mode,
            "scheduledFor": self.scheduled_for,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GenerationSettings":
        defaults = cls()
        try:
            return cls(
                duration=int(data.get("duration", defaults.duration)),
                aspect_ratio=data.get("aspectRatio", defaults.aspect_ratio),
                language=data.get("language", defaults.language),
                pacing=Pacing(data.get("pacing", defaults.pacing.value)),
                story_mode=StoryMode(data.get("storyMode", defaults.story_mode.value)),
                media_mode=MediaMode(data.get("mediaMode", defaults.media_mode.value)),
                image_style=data.get("imageStyle", defaults.image_style),
                image_model=data.get("imageModel", defaults.image_model),
                image_resolution=data.get("imageResolution", defaults.image_resolution),
                video_model=data.get("videoModel"),
                video_resolution=data.get("videoResolution", defaults.video_resolution),
                has_voiceover=bool(data.get("hasVoiceover", defaults.has_voiceover)),
                voice_id=data.get("voiceId", defaults.voice_id),
                voice_volume=int(data.get("voiceVolume", defaults.voice_volume)),
                background_music=data.get("backgroundMusic", defaults.background_music),
                music_volume=int(data.get("musicVolume", defaults.music_volume)),
                text_overlay=bool(data.get("textOverlay", defaults.text_overlay)),
                text_overlay_style=data.get("textOverlayStyle", defaults.text_overlay_style),
                transition_style=data.get("transitionStyle"),
                publish=bool(data.get("publish", defaults.publish)),
                platforms=list(data.get("platforms", [])),
                schedule_mode=data.get("scheduleMode", defaults.schedule_mode),
                scheduled_for=data.get("scheduledFor"),
            )
        except ValueError as exc:
            raise ValidationError(f"Invalid generation settings: {exc}") from exc


@dataclass(slots=True)
class WordTimestamp:
    """A spoken word with its start and end offsets inside a scene's audio."""

    word: str
    start: float
    end: float


@dataclass(slots=True)
class MediaRefs:
    """URLs of the media generated for one scene."""

    image_url: Optional[str] = None
    video_url: Optional[str] = None
    audio_url: Optional[str] = None


@dataclass(slots=True)
class Scene:
    """One timed segment of the output video."""

    index: int
    target_duration: float
    narration: str = ""
    visual_prompt: str = ""
    video_prompt: str = ""
    mood: Mood = Mood.NEUTRAL
    transition: Optional[str] = None
    transition_duration: Optional[float] = None
    animation: Optional[str] = None
    actual_duration: Optional[float] = None
    media: MediaRefs = field(default_factory=MediaRefs)
    word_timestamps: List[WordTimestamp] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def clip_duration(self) -> float:
        """Audio length once known, otherwise the planned visual length."""
        return self.actual_duration or self.target_duration

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "targetDuration": self.target_duration,
            "narration": self.narration,
            "visualPrompt": self.visual_prompt,
            "videoPrompt": self.video_prompt,
            "mood": self.mood.value,
            "transition": self.transition,
            "transitionDuration": self.transition_duration,
            "animation": self.animation,
            "actualDuration": self.actual_duration,
            "media": {
                "imageUrl": self.media.image_url,
                "videoUrl": self.media.video_url,
                "audioUrl": self.media.audio_url,
            },
            "wordTimestamps": [
                {"word": item.word, "start": item.start, "end": item.end}
                for item in self.word_timestamps
            ],
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Scene":
        media = data.get("media") or {}
        return cls(
            index=int(data["index"]),
            target_duration=float(data["targetDuration"]),
            narration=data.get("narration", ""),
            visual_prompt=data.get("visualPrompt", ""),
            video_prompt=data.get("videoPrompt", ""),
            mood=Mood.coerce(data.get("mood")),
            transition=data.get("transition"),
            transition_duration=data.get("transitionDuration"),
            animation=data.get("animation"),
            actual_duration=data.get("actualDuration"),
            media=MediaRefs(
                image_url=media.get("imageUrl"),
                video_url=media.get("videoUrl"),
                audio_url=media.get("audioUrl"),
            ),
            word_timestamps=[
                WordTimestamp(word=item["word"], start=float(item["start"]), end=float(item["end"]))
                for item in data.get("wordTimestamps", [])
            ],
            error=data.get("error"),
        )


@dataclass(slots=True)
class PipelineRun:
    """Mutable state threaded through every stage of one request."""

    run_id: str
    topic: str
    settings: GenerationSettings
    current_stage: int = 1
    total_cost: float = 0.0
    script_text: Optional[str] = None
    scenes: List[Scene] = field(default_factory=list)
    music_url: Optional[str] = None
    final_video_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    publish_result: Optional[Dict[str, Any]] = None
    stage_costs: Dict[int, float] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    def record_cost(self, stage: Stage, cost: float) -> None:
        """Add a stage's reported cost to the running total."""
        if cost <= 0:
            return
        self.stage_costs[int(stage)] = round(self.stage_costs.get(int(stage), 0.0) + cost, 6)
        self.total_cost = round(self.total_cost + cost, 6)

    def restore(self, snapshot: "IntermediateSnapshot") -> None:
        """Seed the run with the outputs captured in a snapshot."""
        self.current_stage = snapshot.completed_stage + 1
        self.script_text = snapshot.script_text
        self.scenes = [copy.deepcopy(scene) for scene in snapshot.scenes]
        self.music_url = snapshot.music_url
        self.total_cost = snapshot.total_cost


@dataclass(frozen=True, slots=True)
class IntermediateSnapshot:
    """Resumable state captured after the last fully completed stage."""

    completed_stage: int
    script_text: Optional[str] = None
    scenes: Tuple[Scene, ...] = ()
    music_url: Optional[str] = None
    total_cost: float = 0.0

    @classmethod
    def capture(cls, run: PipelineRun, completed_stage: int) -> "IntermediateSnapshot":
        return cls(
            completed_stage=completed_stage,
            script_text=run.script_text,
            scenes=tuple(copy.deepcopy(scene) for scene in run.scenes),
            music_url=run.music_url,
            total_cost=run.total_cost,
        )

    @property
    def resume_stage(self) -> int:
        return self.completed_stage + 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "completedStage": self.completed_stage,
            "scriptText": self.script_text,
            "scenes": [scene.to_dict() for scene in self.scenes],
            "musicUrl": self.music_url,
            "totalCost": self.total_cost,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IntermediateSnapshot":
        try:
            completed = int(data["completedStage"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ValidationError(f"Snapshot is missing completedStage: {data!r}") from exc
        if not 0 <= completed <= len(Stage):
            raise ValidationError(f"Snapshot completedStage out of range: {completed}")
        return cls(
            completed_stage=completed,
            script_text=data.get("scriptText"),
            scenes=tuple(Scene.from_dict(item) for item in data.get("scenes", [])),
            music_url=data.get("musicUrl"),
            total_cost=float(data.get("totalCost", 0.0)),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=2)

    @classmethod
    def from_json(cls, text: str) -> "IntermediateSnapshot":
        return cls.from_dict(json.loads(text))


@dataclass(slots=True)
class BatchTask:
    """One request submitted to a batch provider."""

    token: str
    scene_index: int
    payload: Dict[str, Any]


@dataclass(slots=True)
class BatchResult:
    """Outcome of one batch item, aligned with the submitted item order."""

    scene_index: int
    token: str
    status: TaskStatus
    url: Optional[str] = None
    cost: float = 0.0
    error: Optional[str] = None
    retryable: bool = False

    @property
    def ok(self) -> bool:
        return self.status == TaskStatus.GENERATED


@dataclass(slots=True)
class Clip:
    """A timed asset placed on a track."""

    asset: Dict[str, Any]
    start: float
    length: float
    fit: Optional[str] = None
    effect: Optional[str] = None
    transition_in: Optional[str] = None
    transition_out: Optional[str] = None

    @property
    def speed(self) -> Optional[float]:
        return self.asset.get("speed")

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "asset": dict(self.asset),
            "start": round(self.start, 3),
            "length": round(self.length, 3),
        }
        if self.fit:
            payload["fit"] = self.fit
        if self.effect:
            payload["effect"] = self.effect
        transition: Dict[str, str] = {}
        if self.transition_in:
            transition["in"] = self.transition_in
        if self.transition_out:
            transition["out"] = self.transition_out
        if transition:
            payload["transition"] = transition
        return payload


@dataclass(slots=True)
class Track:
    name: str
    clips: List[Clip] = field(default_factory=list)


@dataclass(slots=True)
class Soundtrack:
    src: str
    effect: str = "fadeInFadeOut"
    volume: float = 0.3


@dataclass(slots=True)
class OutputSettings:
    aspect_ratio: str
    format: str = "mp4"
    resolution: str = "1080"
    fps: int = 30
    thumbnail_capture: float = 1.0
    thumbnail_scale: float = 0.5

    def to_dict(self) -> Dict[str, Any]:
        return {
            "format": self.format,
            "resolution": self.resolution,
            "aspectRatio": self.aspect_ratio,
            "fps": self.fps,
            "thumbnail": {"capture": self.thumbnail_capture, "scale": self.thumbnail_scale},
        }


@dataclass(slots=True)
class Timeline:
    """Declarative multi-track description handed to the renderer."""

    tracks: List[Track]
    total_duration: float
    output: OutputSettings
    soundtrack: Optional[Soundtrack] = None
    background: str = "#000000"
    cache: bool = True

    def track(self, name: str) -> Optional[Track]:
        for track in self.tracks:
            if track.name == name:
                return track
        return None

    def to_edit(self) -> Dict[str, Any]:
        """Return the render document: timeline plus output settings."""
        timeline: Dict[str, Any] = {
            "background": self.background,
            "cache": self.cache,
            "tracks": [{"clips": [clip.to_dict() for clip in track.clips]} for track in self.tracks],
        }
        if self.soundtrack is not None:
            timeline["soundtrack"] = {
                "src": self.soundtrack.src,
                "effect": self.soundtrack.effect,
                "volume": self.soundtrack.volume,
            }
        return {"timeline": timeline, "output": self.output.to_dict()}


@dataclass(slots=True)
class ProgressEvent:
    stage: int
    label: str
    percent: int


@dataclass(slots=True)
class StageEvent:
    """Structured record emitted to observers for every stage transition."""

    run_id: str
    stage: int
    label: str
    status: str
    elapsed: float = 0.0
    cost: float = 0.0
    error: Optional[str] = None


@dataclass(slots=True)
class RunResult:
    """Terminal outcome of a pipeline run."""

    success: bool
    run: PipelineRun
    final_video_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    error: Optional[str] = None
    failed_stage: Optional[str] = None
    snapshot: Optional[IntermediateSnapshot] = None
    elapsed: float = 0.0

    @property
    def total_cost(self) -> float:
        return self.run.total_cost

    def summary(self) -> str:
        if self.success:
            return (
                f"Completed in {self.elapsed:.1f}s, cost ${self.total_cost:.4f}: {self.final_video_url}"
            )
        completed = self.snapshot.completed_stage if self.snapshot else 0
        return (
            f"Failed at '{self.failed_stage}' after {self.elapsed:.1f}s "
            f"(cost so far ${self.total_cost:.4f}, resumable from stage {completed + 1}): {self.error}"
        )
