"""Exception hierarchy shared by every stage and provider client."""

from __future__ import annotations

from typing import Any

import openai
import requests

NON_TRANSIENT_MARKERS = ("insufficient credits", "content policy", "empty")


class StoryPipelineError(Exception):
    """Base class for pipeline failures."""

    def __init__(self, message: str, status_code: int | None = None, body: Any = None):
        self.message = message
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class ValidationError(StoryPipelineError):
    """Bad request input; never retried."""


class ProviderError(StoryPipelineError):
    """Raised when an external generation provider rejects or fails a call."""

    transient = False


class ProviderTransientError(ProviderError):
    """Rate limits, timeouts and server errors."""

    transient = True


class ProviderFatalError(ProviderError):
    """Provider errors that will not succeed on resubmission."""


class InsufficientCreditsError(ProviderFatalError):
    pass


class ContentPolicyError(ProviderFatalError):
    pass


class ReconciliationError(StoryPipelineError):
    """Generated scene durations cannot be brought to the requested total."""


class RenderError(StoryPipelineError):
    """The render job failed or never produced a usable artifact."""


class RenderTimeoutError(RenderError, TimeoutError):
    pass


class PublishError(StoryPipelineError):
    """Publishing failed; callers treat this as a warning."""


def classify_http_error(status_code: int, body: Any = None) -> ProviderError:
    """Map an HTTP status and body to the matching provider error."""
    text = str(body or "")
    lowered = text.lower()
    message = f"HTTP {status_code}: {text}".strip()
    if status_code == 402 or "insufficient credits" in lowered:
        return InsufficientCreditsError(message, status_code=status_code, body=body)
    if status_code == 429 or status_code >= 500 or status_code == 408:
        return ProviderTransientError(message, status_code=status_code, body=body)
    if "policy" in lowered or "safety" in lowered or "moderation" in lowered:
        return ContentPolicyError(message, status_code=status_code, body=body)
    return ProviderFatalError(message, status_code=status_code, body=body)


def from_requests_error(exc: requests.RequestException) -> ProviderError:
    """Convert a ``requests`` exception into the provider error taxonomy."""
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        return classify_http_error(exc.response.status_code, exc.response.text)
    if isinstance(exc, (requests.Timeout, requests.ConnectionError)):
        return ProviderTransientError(f"{type(exc).__name__}: {exc}")
    return ProviderFatalError(f"{type(exc).__name__}: {exc}")


def from_openai_error(exc: openai.OpenAIError) -> ProviderError:
    """Convert an ``openai`` SDK exception into the provider error taxonomy."""
    if isinstance(exc, (openai.APITimeoutError, openai.APIConnectionError, openai.RateLimitError)):
        return ProviderTransientError(f"{type(exc).__name__}: {exc}")
    if isinstance(exc, openai.APIStatusError):
        return classify_http_error(exc.status_code, exc.message)
    return ProviderFatalError(f"{type(exc).__name__}: {exc}")


def is_retryable(error: BaseException | str | None) -> bool:
    """Return True when a failure is worth resubmitting."""
    if error is None:
        return False
    if isinstance(error, ProviderError):
        return error.transient
    if isinstance(error, StoryPipelineError):
        return False
    text = str(error).lower()
    return not any(marker in text for marker in NON_TRANSIENT_MARKERS)
