"""Observers receiving structured stage events."""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Protocol

from ..types import StageEvent
from .run_logger import RunLogger

logger = logging.getLogger("storygen.events")


class PipelineObserver(Protocol):
    """Receives one event per stage transition."""

    def on_event(self, event: StageEvent) -> None:
        ...


class LoggingObserver:
    """Writes stage events through the standard logging module."""

    def on_event(self, event: StageEvent) -> None:
        if event.status == "failed":
            logger.error(
                "[%s] stage %d '%s' failed after %.2fs: %s",
                event.run_id, event.stage, event.label, event.elapsed, event.error,
            )
        elif event.status == "warning":
            logger.warning(
                "[%s] stage %d '%s' finished with a warning: %s",
                event.run_id, event.stage, event.label, event.error,
            )
        else:
            logger.info(
                "[%s] stage %d '%s' %s in %.2fs (cost %.4f)",
                event.run_id, event.stage, event.label, event.status, event.elapsed, event.cost,
            )


class RunLogObserver:
    """Appends stage events to the run's ``events.jsonl``."""

    def __init__(self, run_logger: RunLogger) -> None:
        self._run_logger = run_logger

    def on_event(self, event: StageEvent) -> None:
        self._run_logger.log_event(event.run_id, asdict(event))
