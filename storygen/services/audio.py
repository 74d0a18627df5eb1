"""Speech, sound-effect and music generation clients.

Audio calls are issued one at a time; the provider enforces a hard cap on
concurrent requests, so callers must not batch or parallelise them.
"""

from __future__ import annotations

import hashlib
import logging
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests

from ..errors import ProviderFatalError, ValidationError, from_requests_error
from ..types import Mood, WordTimestamp
from .base import AudioResult

logger = logging.getLogger(__name__)

MOCK_WORDS_PER_SECOND = 2.5

# Audio-tag prefix and stability per narrator mood.
MOOD_VOICE_SETTINGS: Dict[Mood, Tuple[str, float]] = {
    Mood.NEUTRAL: ("", 0.5),
    Mood.HAPPY: ("[happy] ", 0.0),
    Mood.SAD: ("[sad] ", 0.5),
    Mood.EXCITED: ("[excited] ", 0.0),
    Mood.ANGRY: ("[angry] ", 0.0),
    Mood.WHISPER: ("[whispers] ", 1.0),
    Mood.DRAMATIC: ("[dramatically] ", 0.0),
    Mood.CURIOUS: ("[curious] ", 0.5),
    Mood.THOUGHTFUL: ("[thoughtful] ", 0.5),
    Mood.SURPRISED: ("[surprised] ", 0.0),
    Mood.SARCASTIC: ("[sarcastic] ", 0.5),
    Mood.NERVOUS: ("[nervously] ", 0.0),
}

_PAUSE_MOODS = {Mood.THOUGHTFUL, Mood.SAD, Mood.NERVOUS}
_COMMA_PATTERN = re.compile(r"([,،])\s*")


def enhance_text_with_mood(text: str, mood: Mood) -> Tuple[str, float]:
    """Prefix narration with the mood's audio tag and return its stability."""
    prefix, stability = MOOD_VOICE_SETTINGS.get(mood, MOOD_VOICE_SETTINGS[Mood.NEUTRAL])
    enhanced = prefix + text
    if mood in _PAUSE_MOODS:
        enhanced = _COMMA_PATTERN.sub(r"\1 ... ", enhanced)
    if mood == Mood.SAD:
        enhanced += " [sighs]"
    if mood == Mood.HAPPY and "!" in text:
        enhanced = enhanced.replace("!", "! [chuckles]", 1)
    return enhanced, stability


def words_from_alignment(alignment: Dict[str, Sequence[Any]] | None) -> List[WordTimestamp]:
    """Collapse character-level alignment into word timestamps."""
    if not alignment:
        return []
    characters = alignment.get("characters") or []
    starts = alignment.get("character_start_times_seconds") or []
    ends = alignment.get("character_end_times_seconds") or []

    words: List[WordTimestamp] = []
    current = ""
    word_start: Optional[float] = None
    word_end = 0.0
    for char, start, end in zip(characters, starts, ends):
        if char in (" ", "\n", "\r"):
            if current.strip() and word_start is not None:
                words.append(WordTimestamp(word=current.strip(), start=word_start, end=word_end))
            current, word_start = "", None
            continue
        if word_start is None:
            word_start = float(start)
        current += char
        word_end = float(end)
    if current.strip() and word_start is not None:
        words.append(WordTimestamp(word=current.strip(), start=word_start, end=word_end))
    return words


class _AudioHttpClient:
    def __init__(
        self,
        api_key: Optional[str],
        api_url: Optional[str],
        use_mock: bool,
        timeout: float,
    ) -> None:
        self._api_key = api_key
        self._api_url = api_url
        self._use_mock = use_mock
        self._timeout = timeout

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self._api_key or not self._api_url:
            raise ValueError("Audio API key or URL is missing; cannot call real service.")
        url = f"{self._api_url.rstrip('/')}/{path.lstrip('/')}"
        headers = {"Authorization": f"Bearer {self._api_key}", "Content-Type": "application/json"}
        try:
            response = requests.post(url, json=payload, headers=headers, timeout=self._timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as exc:
            raise from_requests_error(exc) from exc
        except ValueError as exc:
            raise ProviderFatalError(f"Audio response is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ProviderFatalError(f"Unexpected audio response: {data!r}", body=data)
        return data

    @staticmethod
    def _result_from_response(data: Dict[str, Any], fallback_duration: float) -> AudioResult:
        audio_url = data.get("audio_url") or data.get("audioUrl") or data.get("url")
        if not audio_url:
            raise ProviderFatalError(f"Audio response missing URL: {data}", body=data)
        try:
            return AudioResult(
                audio_url=audio_url,
                duration=float(data.get("duration") or fallback_duration),
                cost=float(data.get("cost") or 0.0),
                word_timestamps=words_from_alignment(data.get("alignment")),
            )
        except (TypeError, ValueError) as exc:
            raise ProviderFatalError(f"Malformed audio response: {exc}", body=data) from exc

    @staticmethod
    def _mock_id(*parts: object) -> str:
        return hashlib.sha256("|".join(str(part) for part in parts).encode("utf-8")).hexdigest()[:16]


class SpeechClient(_AudioHttpClient):
    """Text-to-speech with word timestamps for caption sync."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        use_mock: bool = True,
        timeout: float = 120.0,
        model: str = "eleven_v3",
    ) -> None:
        super().__init__(api_key, api_url, use_mock, timeout)
        self._model = model

    def synthesize(self, text: str, voice_id: str, mood: Mood = Mood.NEUTRAL, expected_duration: float = 0.0) -> AudioResult:
        """Generate narration audio for one scene."""
        if not text or not text.strip():
            raise ValidationError("Empty narration text")
        enhanced, stability = enhance_text_with_mood(text.strip(), mood)
        if self._use_mock:
            return self._mock_speech(text.strip(), voice_id, mood)

        data = self._post(
            "text-to-speech",
            {
                "text": enhanced,
                "voice_id": voice_id,
                "model_id": self._model,
                "with_timestamps": True,
                "voice_settings": {
                    "stability": stability,
                    "similarity_boost": 0.75,
                    "style": 0.3 if mood == Mood.DRAMATIC else 0,
                    "use_speaker_boost": True,
                },
            },
        )
        return self._result_from_response(data, expected_duration)

    def _mock_speech(self, text: str, voice_id: str, mood: Mood) -> AudioResult:
        words = text.split()
        per_word = 1 / MOCK_WORDS_PER_SECOND
        timestamps = [
            WordTimestamp(word=word, start=round(i * per_word, 3), end=round((i + 1) * per_word - 0.05, 3))
            for i, word in enumerate(words)
        ]
        return AudioResult(
            audio_url=f"https://mock.storygen.local/voice/{self._mock_id(text, voice_id, mood.value)}.mp3",
            duration=round(len(words) * per_word, 3),
            cost=round(len(text) * 0.00003, 6),
            word_timestamps=timestamps,
        )


class SoundEffectsClient(_AudioHttpClient):
    """Short ambient sound effects for scenes without narration."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        use_mock: bool = True,
        timeout: float = 120.0,
    ) -> None:
        super().__init__(api_key, api_url, use_mock, timeout)

    def generate(self, prompt: str, duration: float) -> AudioResult:
        if not prompt or not prompt.strip():
            raise ValidationError("Empty sound effect prompt")
        if self._use_mock:
            return AudioResult(
                audio_url=f"https://mock.storygen.local/sfx/{self._mock_id(prompt, duration)}.mp3",
                duration=float(duration),
                cost=0.01,
            )
        data = self._post(
            "sound-generation",
            {"text": prompt, "duration_seconds": duration, "prompt_influence": 0.5},
        )
        return self._result_from_response(data, duration)


class MusicClient(_AudioHttpClient):
    """Background music sized to the full video."""

    MIN_DURATION_MS = 10_000

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        use_mock: bool = True,
        timeout: float = 300.0,
    ) -> None:
        super().__init__(api_key, api_url, use_mock, timeout)

    @classmethod
    def duration_ms_for(cls, total_seconds: float) -> int:
        return max(int(round(total_seconds * 1000)), cls.MIN_DURATION_MS)

    def compose(self, prompt: str, duration_ms: int) -> AudioResult:
        if self._use_mock:
            return AudioResult(
                audio_url=f"https://mock.storygen.local/music/{self._mock_id(prompt, duration_ms)}.mp3",
                duration=duration_ms / 1000,
                cost=0.05,
            )
        data = self._post("music", {"prompt": prompt, "music_length_ms": duration_ms})
        return self._result_from_response(data, duration_ms / 1000)
