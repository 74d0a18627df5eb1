"""Batch image and video generation client."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import requests

from ..durations import MODELS_WITH_NATIVE_AUDIO
from ..errors import ProviderFatalError, from_requests_error
from ..types import BatchTask, GenerationSettings, Scene

logger = logging.getLogger(__name__)

IMAGE_MEDIA_FIELDS = ("imageURL", "imageUrl")
VIDEO_MEDIA_FIELDS = ("videoURL", "videoUrl")

_ASPECT_DIMENSIONS = {
    "9:16": (768, 1344),
    "16:9": (1344, 768),
    "1:1": (1024, 1024),
    "4:5": (896, 1120),
}


class MediaBatchClient:
    """Posts task arrays to a batch inference endpoint.

    Each task carries its ``taskUUID``; the provider echoes it back on every
    result item. With ``use_mock`` the client answers locally with
    deterministic URLs.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        use_mock: bool = True,
        image_cost: float = 0.004,
        video_cost: float = 0.08,
    ) -> None:
        self._api_key = api_key
        self._api_url = api_url
        self._use_mock = use_mock
        self._image_cost = image_cost
        self._video_cost = video_cost

    def submit(self, tasks: Sequence[BatchTask], timeout: float) -> List[Dict[str, Any]]:
        """Send one chunk and return the raw result items in provider order."""
        if self._use_mock:
            return [self._mock_result(task) for task in tasks]
        if not self._api_key or not self._api_url:
            raise ValueError("Media API key or URL is missing; cannot call real service.")

        body = [dict(task.payload, taskUUID=task.token) for task in tasks]
        logger.debug("Posting %d task(s) to %s with timeout %.0fs", len(body), self._api_url, timeout)
        headers = {"Authorization": f"Bearer {self._api_key}", "Content-Type": "application/json"}
        try:
            response = requests.post(self._api_url, json=body, headers=headers, timeout=timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as exc:
            raise from_requests_error(exc) from exc
        except ValueError as exc:
            raise ProviderFatalError(f"Media response is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ProviderFatalError(f"Unexpected media response: {data!r}", body=data)
        items: List[Dict[str, Any]] = list(data.get("data") or [])
        # Per-task failures come back in a separate list keyed by the same token.
        for error in data.get("errors") or []:
            if isinstance(error, dict) and error.get("taskUUID"):
                items.append(
                    {
                        "taskUUID": error["taskUUID"],
                        "status": "error",
                        "error": error.get("message") or error.get("code") or "Task failed",
                    }
                )
        return items

    def image_payload(self, scene: Scene, settings: GenerationSettings) -> Dict[str, Any]:
        width, height = _ASPECT_DIMENSIONS.get(settings.aspect_ratio, (1024, 1024))
        return {
            "taskType": "imageInference",
            "model": settings.image_model,
            "positivePrompt": scene.visual_prompt or scene.narration,
            "width": width,
            "height": height,
            "resolution": settings.image_resolution,
            "outputType": "URL",
            "outputFormat": "PNG",
            "numberResults": 1,
            "includeCost": True,
        }

    def video_payload(
        self, scene: Scene, settings: GenerationSettings, *, generate_audio: bool = False
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "taskType": "videoInference",
            "model": settings.video_model,
            "positivePrompt": scene.video_prompt or scene.visual_prompt,
            "duration": scene.target_duration,
            "resolution": settings.video_resolution,
            "aspectRatio": settings.aspect_ratio,
            "outputType": "URL",
            "outputFormat": "MP4",
            "numberResults": 1,
            "includeCost": True,
        }
        if scene.media.image_url:
            payload["frameImages"] = [{"inputImage": scene.media.image_url, "frame": "first"}]
        if generate_audio and settings.video_model in MODELS_WITH_NATIVE_AUDIO:
            payload["generateAudio"] = True
        return payload

    def _mock_result(self, task: BatchTask) -> Dict[str, Any]:
        if task.payload.get("taskType") == "videoInference":
            return {
                "taskUUID": task.token,
                "videoURL": f"https://mock.storygen.local/videos/{task.token}.mp4",
                "cost": self._video_cost,
            }
        return {
            "taskUUID": task.token,
            "imageURL": f"https://mock.storygen.local/images/{task.token}.png",
            "cost": self._image_cost,
        }
