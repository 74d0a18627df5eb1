"""Social publishing client and per-platform metadata."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Sequence

import requests

from ..errors import PublishError, from_requests_error
from .base import PublishResult

logger = logging.getLogger(__name__)

SUPPORTED_PLATFORMS = ("tiktok", "instagram", "youtube", "facebook", "x", "linkedin")

_TITLE_LIMITS = {"youtube": 100, "tiktok": 150, "instagram": 125, "facebook": 255, "x": 100, "linkedin": 200}
_CAPTION_LIMITS = {"youtube": 5000, "tiktok": 2200, "instagram": 2200, "facebook": 63206, "x": 280, "linkedin": 3000}
_HASHTAG_COUNTS = {"youtube": 3, "tiktok": 5, "instagram": 10, "facebook": 3, "x": 2, "linkedin": 3}
_STOPWORDS = {
    "the", "and", "for", "with", "that", "this", "your", "you", "are", "how", "why",
    "what", "from", "into", "about", "most", "every", "more", "here", "then",
}
_WORD = re.compile(r"[^\W\d_]{3,}", re.UNICODE)


def _truncate(text: str, limit: int) -> str:
    text = text.strip()
    if len(text) <= limit:
        return text
    return text[: max(0, limit - 3)].rstrip() + "..."


def hashtags_for(topic: str, script: str, count: int) -> List[str]:
    """Pick hashtags from the most frequent meaningful words."""
    counts: Dict[str, int] = {}
    for word in _WORD.findall(f"{topic} {topic} {script}".lower()):
        if word in _STOPWORDS:
            continue
        counts[word] = counts.get(word, 0) + 1
    ranked = sorted(counts, key=lambda w: (-counts[w], w))
    return ["#" + word for word in ranked[:count]]


def build_platform_metadata(topic: str, script: str, platforms: Sequence[str]) -> Dict[str, Dict[str, Any]]:
    """Title, caption and hashtags for each requested platform."""
    first_sentence = re.split(r"(?<=[.!?])\s+", script.strip(), maxsplit=1)[0] if script else topic
    metadata: Dict[str, Dict[str, Any]] = {}
    for platform in platforms:
        tags = hashtags_for(topic, script or "", _HASHTAG_COUNTS.get(platform, 3))
        caption_body = first_sentence if platform == "x" else (script or topic)
        caption = f"{caption_body}\n\n{' '.join(tags)}".strip()
        metadata[platform] = {
            "title": _truncate(topic.strip().capitalize(), _TITLE_LIMITS.get(platform, 100)),
            "caption": _truncate(caption, _CAPTION_LIMITS.get(platform, 2200)),
            "hashtags": tags,
        }
    return metadata


class PublishClient:
    """Publishes a rendered video to the accounts connected for this API key."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        use_mock: bool = True,
        timeout: float = 60.0,
        mock_connected: Sequence[str] = SUPPORTED_PLATFORMS,
    ) -> None:
        self._api_key = api_key
        self._api_url = api_url
        self._use_mock = use_mock
        self._timeout = timeout
        self._mock_connected = tuple(mock_connected)

    def connected_platforms(self) -> List[str]:
        if self._use_mock:
            return list(self._mock_connected)
        data = self._request("get", "accounts")
        accounts = data.get("accounts") or data.get("data") or []
        return [str(item.get("platform")).lower() for item in accounts if item.get("platform")]

    def publish(
        self,
        video_url: str,
        metadata: Dict[str, Dict[str, Any]],
        schedule_mode: str = "immediate",
        scheduled_for: Optional[str] = None,
    ) -> PublishResult:
        """Post to every platform in ``metadata`` that has a connected account."""
        if not video_url:
            raise PublishError("Cannot publish without a video URL")
        connected = set(self.connected_platforms())
        targets = [platform for platform in metadata if platform in connected]
        skipped = [platform for platform in metadata if platform not in connected]
        if skipped:
            logger.info("Skipping platforms without a connected account: %s", ", ".join(skipped))
        if not targets:
            raise PublishError("None of the requested platforms has a connected account")

        if self._use_mock:
            posts = {platform: f"https://mock.storygen.local/posts/{platform}" for platform in targets}
            return PublishResult(
                platforms=posts, schedule_mode=schedule_mode, scheduled_for=scheduled_for, skipped=skipped
            )

        body: Dict[str, Any] = {
            "mediaUrls": [video_url],
            "platforms": targets,
            "platformOptions": {platform: metadata[platform] for platform in targets},
            "scheduleMode": schedule_mode,
        }
        if schedule_mode == "scheduled":
            body["scheduleDate"] = scheduled_for
        data = self._request("post", "post", json=body)
        posts = {
            str(item.get("platform")).lower(): item.get("postUrl") or item.get("id") or ""
            for item in data.get("postIds") or data.get("posts") or []
            if item.get("platform")
        }
        return PublishResult(platforms=posts, schedule_mode=schedule_mode, scheduled_for=scheduled_for, skipped=skipped)

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        if not self._api_key or not self._api_url:
            raise ValueError("Publish API key or URL is missing; cannot call real service.")
        url = f"{self._api_url.rstrip('/')}/{path}"
        headers = {"Authorization": f"Bearer {self._api_key}", "Content-Type": "application/json"}
        try:
            response = requests.request(method, url, headers=headers, timeout=self._timeout, **kwargs)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as exc:
            raise PublishError(str(from_requests_error(exc))) from exc
        except ValueError as exc:
            raise PublishError(f"Publish response is not valid JSON: {exc}") from exc
