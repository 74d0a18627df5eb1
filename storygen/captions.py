"""SRT caption generation from scene narration and word timestamps."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Tuple

from .types import Scene, WordTimestamp

WORDS_PER_CUE = 4
MIN_CUE_DURATION = 0.5
SHORT_SCENE_SECONDS = 3.0

_AUDIO_TAG_PATTERN = re.compile(r"\[[^\]]+\]")
_ARABIC_DIACRITICS_PATTERN = re.compile(r"[\u064B-\u065F\u0670\u0653-\u0655]")
_WHITESPACE_PATTERN = re.compile(r"\s+")


@dataclass(slots=True)
class Cue:
    text: str
    start: float
    end: float


def clean_caption_text(text: str) -> str:
    """Strip voice audio tags and Arabic diacritics for on-screen display."""
    cleaned = _AUDIO_TAG_PATTERN.sub("", text or "")
    cleaned = _ARABIC_DIACRITICS_PATTERN.sub("", cleaned)
    return _WHITESPACE_PATTERN.sub(" ", cleaned).strip()


def cues_from_timestamps(words: Sequence[WordTimestamp]) -> List[Cue]:
    """Group timed words into short cues, four words at a time."""
    cleaned = [
        WordTimestamp(word=clean_caption_text(item.word), start=item.start, end=item.end)
        for item in words
    ]
    cleaned = [item for item in cleaned if item.word]

    cues: List[Cue] = []
    for start in range(0, len(cleaned), WORDS_PER_CUE):
        group = cleaned[start : start + WORDS_PER_CUE]
        begin = group[0].start
        end = max(group[-1].end, begin + MIN_CUE_DURATION)
        cues.append(Cue(text=" ".join(item.word for item in group), start=begin, end=end))
    return cues


def cues_from_text(text: str, duration: float) -> List[Cue]:
    """Split narration evenly across ``duration`` when no timestamps exist."""
    cleaned = clean_caption_text(text)
    if not cleaned:
        return []
    if duration <= SHORT_SCENE_SECONDS:
        return [Cue(text=cleaned, start=0.0, end=duration)]

    words = cleaned.split(" ")
    count = math.ceil(len(words) / WORDS_PER_CUE)
    per_cue = duration / count
    cues: List[Cue] = []
    for number in range(count):
        chunk = words[number * WORDS_PER_CUE : (number + 1) * WORDS_PER_CUE]
        begin = number * per_cue
        cues.append(Cue(text=" ".join(chunk), start=begin, end=min(begin + per_cue, duration)))
    return cues


def format_srt_time(seconds: float) -> str:
    millis = int(round(seconds * 1000))
    hours, millis = divmod(millis, 3_600_000)
    minutes, millis = divmod(millis, 60_000)
    secs, millis = divmod(millis, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{millis:03d}"


def build_srt(entries: Sequence[Tuple[Scene, float]]) -> str:
    """Render an SRT document for ``(scene, clip_length)`` pairs laid end to end."""
    blocks: List[str] = []
    offset = 0.0
    number = 1
    for scene, length in entries:
        if scene.word_timestamps:
            cues = cues_from_timestamps(scene.word_timestamps)
        else:
            cues = cues_from_text(scene.narration, length)
        for cue in cues:
            blocks.append(
                f"{number}\n{format_srt_time(offset + cue.start)} --> "
                f"{format_srt_time(offset + cue.end)}\n{cue.text}\n"
            )
            number += 1
        offset += length
    return "\n".join(blocks)


def caption_asset(src: str, language: str, style: str) -> Dict[str, Any]:
    """Caption asset definition with the font and backdrop used on every render."""
    arabic = (language or "en").lower().startswith("ar")
    size = {"bold": 20, "cinematic": 16}.get(style, 18)
    return {
        "type": "caption",
        "src": src,
        "font": {
            "family": "Cairo" if arabic else "Montserrat",
            "color": "#ffffff",
            "size": size,
            "stroke": "#000000",
            "strokeWidth": 0.8,
        },
        "background": {"color": "#000000", "opacity": 0.4, "padding": 20, "borderRadius": 12},
    }
