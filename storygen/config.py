"""Configuration containers for the storygen pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import ClassVar


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value not in (None, "") else default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value not in (None, "") else default


@dataclass(slots=True)
class PipelineConfig:
    """Static configuration applied to every pipeline run."""

    env_prefix: ClassVar[str] = "STORYGEN_"

    runs_dir: str = "runs"
    enable_mock_generation: bool = True

    text_api_key: str | None = None
    text_api_url: str | None = None
    text_model: str = "gpt-4o-mini"
    text_cost_per_1k_tokens: float = 0.0006
    media_api_key: str | None = None
    media_api_url: str | None = None
    audio_api_key: str | None = None
    audio_api_url: str | None = None
    render_api_key: str | None = None
    render_api_url: str | None = None
    publish_api_key: str | None = None
    publish_api_url: str | None = None

    max_batch_size: int = 10
    image_timeout_base_sec: float = 120.0
    image_timeout_per_item_sec: float = 0.0
    video_timeout_base_sec: float = 120.0
    video_timeout_per_item_sec: float = 120.0
    timeout_buffer_sec: float = 60.0
    inter_chunk_delay_sec: float = 1.0
    max_retries: int = 2
    retry_base_delay_sec: float = 1.0
    request_timeout_sec: float = 60.0
    render_poll_interval_sec: float = 5.0
    render_max_poll_attempts: int = 120
    end_pad_sec: float = 1.0

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """Create a config object populated from environment variables."""
        prefix = cls.env_prefix
        return cls(
            runs_dir=os.getenv(f"{prefix}RUNS_DIR", "runs"),
            enable_mock_generation=os.getenv(f"{prefix}ENABLE_MOCKS", "true").lower() == "true",
            text_api_key=os.getenv("OPENAI_API_KEY"),
            text_api_url=os.getenv("OPENAI_BASE_URL"),
            text_model=os.getenv(f"{prefix}TEXT_MODEL", "gpt-4o-mini"),
            media_api_key=os.getenv("MEDIA_API_KEY"),
            media_api_url=os.getenv("MEDIA_API_URL"),
            audio_api_key=os.getenv("AUDIO_API_KEY"),
            audio_api_url=os.getenv("AUDIO_API_URL"),
            render_api_key=os.getenv("RENDER_API_KEY"),
            render_api_url=os.getenv("RENDER_API_URL"),
            publish_api_key=os.getenv("PUBLISH_API_KEY"),
            publish_api_url=os.getenv("PUBLISH_API_URL"),
            max_batch_size=_env_int(f"{prefix}MAX_BATCH_SIZE", 10),
            inter_chunk_delay_sec=_env_float(f"{prefix}INTER_CHUNK_DELAY", 1.0),
            max_retries=_env_int(f"{prefix}MAX_RETRIES", 2),
            render_poll_interval_sec=_env_float(f"{prefix}RENDER_POLL_INTERVAL", 5.0),
            render_max_poll_attempts=_env_int(f"{prefix}RENDER_MAX_POLLS", 120),
        )
