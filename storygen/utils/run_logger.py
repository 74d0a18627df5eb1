"""Utilities for keeping per-run prompt, response, snapshot and event logs."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .files import append_jsonl, atomic_write_text, ensure_dir, write_json, write_text


@dataclass(slots=True)
class StepLogPaths:
    """Convenience container with derived log file paths."""

    prompt_path: Path
    response_path: Path


class RunLogger:
    """Persists prompts, responses and resumable state under ``runs/<run_id>``."""

    def __init__(self, base_dir: str | Path = "runs") -> None:
        self._base_dir = ensure_dir(base_dir)

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def run_dir(self, run_id: str) -> Path:
        return ensure_dir(self._base_dir / run_id)

    def step_paths(self, run_id: str, step_name: str) -> StepLogPaths:
        """Return the paths used for logging a specific step."""
        run_root = self.run_dir(run_id)
        prompt_path = run_root / f"{step_name}-prompt.txt"
        response_path = run_root / f"{step_name}-response.json"
        return StepLogPaths(prompt_path=prompt_path, response_path=response_path)

    def log_prompt(self, run_id: str, step_name: str, prompt: str) -> None:
        """Persist the raw prompt text."""
        paths = self.step_paths(run_id, step_name)
        write_text(paths.prompt_path, prompt)

    def log_response(self, run_id: str, step_name: str, response: Any) -> None:
        """Persist the structured response."""
        paths = self.step_paths(run_id, step_name)
        write_json(paths.response_path, response)

    def snapshot_path(self, run_id: str) -> Path:
        return self.run_dir(run_id) / "snapshot.json"

    def save_snapshot(self, run_id: str, snapshot_json: str) -> Path:
        """Replace the run's snapshot with the latest completed state."""
        return atomic_write_text(self.snapshot_path(run_id), snapshot_json)

    def log_event(self, run_id: str, event: Any) -> None:
        """Append a structured stage event to ``events.jsonl``."""
        append_jsonl(self.run_dir(run_id) / "events.jsonl", event)
