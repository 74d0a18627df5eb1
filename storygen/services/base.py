"""Collaborator protocols and shared response helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence

from ..types import BatchTask, WordTimestamp


@dataclass(slots=True)
class TextResult:
    """Parsed text-model output and its cost."""

    payload: Any
    cost: float = 0.0


@dataclass(slots=True)
class AudioResult:
    """One generated audio file."""

    audio_url: str
    duration: float
    cost: float = 0.0
    word_timestamps: List[WordTimestamp] = field(default_factory=list)


@dataclass(slots=True)
class RenderResult:
    render_id: str
    url: str
    thumbnail_url: Optional[str] = None
    cost: float = 0.0


@dataclass(slots=True)
class PublishResult:
    platforms: Dict[str, str]
    schedule_mode: str = "immediate"
    scheduled_for: Optional[str] = None
    skipped: List[str] = field(default_factory=list)


class BatchSubmitter(Protocol):
    """Submits one chunk of tasks and returns the provider's raw result items."""

    def submit(self, tasks: Sequence[BatchTask], timeout: float) -> List[Dict[str, Any]]:
        ...


def clean_json_text(text: str) -> str:
    """Strip markdown fences and surrounding prose from a JSON answer."""
    s = text.strip()
    if s.startswith("```") and s.endswith("```"):
        lines = s.splitlines()
        if len(lines) >= 3:
            s = "\n".join(lines[1:-1]).strip()
    a_start = s.find("[")
    a_end = s.rfind("]")
    o_start = s.find("{")
    o_end = s.rfind("}")
    if a_start != -1 and a_end > a_start and (o_start == -1 or a_start < o_start):
        return s[a_start : a_end + 1]
    if o_start != -1 and o_end > o_start:
        return s[o_start : o_end + 1]
    return s
