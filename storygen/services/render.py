"""Cloud video render client: caption upload plus submit-then-poll rendering."""

from __future__ import annotations

import hashlib
import json
import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import requests

from ..errors import RenderError, RenderTimeoutError, from_requests_error
from ..types import RenderStatus
from ..utils.files import ensure_dir, write_text
from .base import RenderResult

logger = logging.getLogger(__name__)

_PENDING_STATUSES = {
    RenderStatus.QUEUED,
    RenderStatus.FETCHING,
    RenderStatus.RENDERING,
    RenderStatus.SAVING,
}


class RenderClient:
    """Submits one edit document and polls the job until it settles.

    A render is submitted exactly once; a failed or timed-out job surfaces
    as :class:`RenderError` and is never resubmitted.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        use_mock: bool = True,
        *,
        captions_dir: str | Path = "runs",
        poll_interval: float = 5.0,
        max_poll_attempts: int = 120,
        timeout: float = 60.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._api_key = api_key
        self._api_url = api_url
        self._use_mock = use_mock
        self._captions_dir = Path(captions_dir)
        self._poll_interval = poll_interval
        self._max_poll_attempts = max_poll_attempts
        self._timeout = timeout
        self._sleep = sleep

    def upload_captions(self, run_id: str, srt: str) -> str:
        """Store an SRT file where the renderer can fetch it and return its URL."""
        if self._use_mock:
            path = ensure_dir(self._captions_dir / run_id) / "captions.srt"
            write_text(path, srt)
            return path.resolve().as_uri()

        data = self._request(
            "post",
            "assets/captions",
            json={"filename": f"{run_id}.srt", "content": srt, "contentType": "application/x-subrip"},
        )
        url = data.get("url") or (data.get("data") or {}).get("url")
        if not url:
            raise RenderError(f"Caption upload response missing URL: {data}", body=data)
        return url

    def render(self, edit: Dict[str, Any]) -> RenderResult:
        """Submit the edit and wait for the final video URL."""
        if self._use_mock:
            digest = hashlib.sha256(json.dumps(edit, sort_keys=True, default=str).encode("utf-8")).hexdigest()[:16]
            return RenderResult(
                render_id=f"mock-{digest}",
                url=f"https://mock.storygen.local/renders/{digest}.mp4",
                thumbnail_url=f"https://mock.storygen.local/renders/{digest}.jpg",
            )

        submitted = self._request("post", "render", json=edit)
        render_id = submitted.get("id") or (submitted.get("response") or {}).get("id")
        if not render_id:
            raise RenderError(f"Render submit response missing id: {submitted}", body=submitted)
        logger.info("Render %s submitted", render_id)
        return self._wait_for_render(render_id)

    def _wait_for_render(self, render_id: str) -> RenderResult:
        for attempt in range(1, self._max_poll_attempts + 1):
            data = self._request("get", f"render/{render_id}")
            body = data.get("response") or data
            raw_status = str(body.get("status") or "").lower()
            try:
                status = RenderStatus(raw_status)
            except ValueError:
                status = None
            logger.debug("Render %s poll %d status: %s", render_id, attempt, raw_status)

            if status == RenderStatus.DONE:
                url = body.get("url")
                if not url:
                    raise RenderError(f"Render {render_id} finished without a URL", body=body)
                return RenderResult(
                    render_id=render_id,
                    url=url,
                    thumbnail_url=body.get("thumbnail") or body.get("poster"),
                    cost=float(body.get("cost") or 0.0),
                )
            if status == RenderStatus.FAILED:
                message = body.get("error") or body.get("message") or "unknown error"
                raise RenderError(f"Render {render_id} failed: {message}", body=body)
            if status not in _PENDING_STATUSES:
                logger.warning("Render %s returned unknown status %r", render_id, raw_status)
            if attempt < self._max_poll_attempts:
                self._sleep(self._poll_interval)

        raise RenderTimeoutError(
            f"Render {render_id} not finished after {self._max_poll_attempts} polls"
        )

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        if not self._api_key or not self._api_url:
            raise ValueError("Render API key or URL is missing; cannot call real service.")
        url = f"{self._api_url.rstrip('/')}/{path}"
        headers = {"x-api-key": self._api_key, "Content-Type": "application/json"}
        try:
            response = requests.request(method, url, headers=headers, timeout=self._timeout, **kwargs)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as exc:
            raise RenderError(str(from_requests_error(exc))) from exc
        except ValueError as exc:
            raise RenderError(f"Render response is not valid JSON: {exc}") from exc
