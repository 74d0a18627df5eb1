"""Batch dispatch with token-based result correlation.

Providers that accept many generation tasks in one request return results in
whatever order they finish, and may drop or duplicate entries. Every submitted
item therefore carries a locally generated token, and results are matched back
to their item by that token only.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .errors import is_retryable
from .retry import backoff_delay
from .types import BatchResult, BatchTask, TaskStatus

logger = logging.getLogger(__name__)

SubmitFn = Callable[[List[BatchTask], float], List[Dict[str, Any]]]

TOKEN_FIELD = "taskUUID"
MISSING_RESULT_ERROR = "No result returned for task"


def _new_token() -> str:
    return str(uuid.uuid4())


class BatchTaskCorrelator:
    """Submits items in bounded chunks and reassembles results in input order."""

    def __init__(
        self,
        submit: SubmitFn,
        *,
        media_fields: Sequence[str],
        kind: str = "media",
        max_batch_size: int = 10,
        base_timeout: float = 120.0,
        per_item_timeout: float = 0.0,
        buffer: float = 0.0,
        inter_chunk_delay: float = 1.0,
        max_retries: int = 0,
        retry_base_delay: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        token_factory: Callable[[], str] = _new_token,
    ) -> None:
        if max_batch_size < 1:
            raise ValueError("max_batch_size must be at least 1")
        self._submit = submit
        self._media_fields = tuple(media_fields)
        self._kind = kind
        self._max_batch_size = max_batch_size
        self._base_timeout = base_timeout
        self._per_item_timeout = per_item_timeout
        self._buffer = buffer
        self._inter_chunk_delay = inter_chunk_delay
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._sleep = sleep
        self._token_factory = token_factory
        self._issued: set[str] = set()

    def chunk_timeout(self, chunk_size: int, per_item_timeout: Optional[float] = None) -> float:
        """Timeout for one provider call carrying ``chunk_size`` items."""
        per_item = self._per_item_timeout if per_item_timeout is None else per_item_timeout
        return self._base_timeout + per_item * chunk_size + self._buffer

    def dispatch(
        self,
        items: Sequence[Tuple[int, Dict[str, Any]]],
        max_batch_size: Optional[int] = None,
        per_item_timeout: Optional[float] = None,
    ) -> List[BatchResult]:
        """Run every ``(scene_index, payload)`` item and return one result per item.

        The returned list is aligned with ``items``. Partial failures are
        reported per item; this method does not raise for them. Each result's
        ``cost`` covers every attempt made for that item.
        """
        size = max_batch_size or self._max_batch_size
        results: List[Optional[BatchResult]] = [None] * len(items)
        pending = list(range(len(items)))
        spent = 0.0

        for attempt in range(self._max_retries + 1):
            if not pending:
                break
            if attempt:
                wait = backoff_delay(attempt, self._retry_base_delay)
                logger.info(
                    "Retrying %d failed %s task(s) in %.1fs (attempt %d/%d)",
                    len(pending), self._kind, wait, attempt, self._max_retries,
                )
                self._sleep(wait)

            round_results = self._dispatch_round([items[i] for i in pending], size, per_item_timeout)
            for position, result in zip(pending, round_results):
                spent += result.cost
                previous = results[position]
                if previous is not None:
                    # Earlier attempts were billed too.
                    result.cost = round(result.cost + previous.cost, 6)
                results[position] = result
            pending = [i for i in pending if not results[i].ok and results[i].retryable]

        final = [result for result in results if result is not None]
        succeeded = sum(1 for result in final if result.ok)
        logger.info(
            "%s batch finished: %d/%d generated, cost %.4f",
            self._kind.capitalize(), succeeded, len(final), spent,
        )
        return final

    def _dispatch_round(
        self,
        items: Sequence[Tuple[int, Dict[str, Any]]],
        size: int,
        per_item_timeout: Optional[float],
    ) -> List[BatchResult]:
        tasks = [BatchTask(token=self._issue_token(), scene_index=index, payload=payload) for index, payload in items]
        token_to_position = {task.token: position for position, task in enumerate(tasks)}
        results: List[BatchResult] = []

        chunks = [tasks[start : start + size] for start in range(0, len(tasks), size)]
        for number, chunk in enumerate(chunks):
            if number:
                self._sleep(self._inter_chunk_delay)
            timeout = self.chunk_timeout(len(chunk), per_item_timeout)
            logger.debug(
                "Submitting %s chunk %d/%d (%d tasks, timeout %.0fs)",
                self._kind, number + 1, len(chunks), len(chunk), timeout,
            )
            try:
                raw_items = self._submit(chunk, timeout)
            except Exception as exc:
                logger.error("%s chunk %d/%d failed: %s", self._kind.capitalize(), number + 1, len(chunks), exc)
                error = str(exc) or type(exc).__name__
                retryable = is_retryable(exc)
                results.extend(
                    BatchResult(
                        scene_index=task.scene_index,
                        token=task.token,
                        status=TaskStatus.FAILED,
                        error=error,
                        retryable=retryable,
                    )
                    for task in chunk
                )
                continue
            results.extend(self._correlate(chunk, raw_items or []))

        results.sort(key=lambda result: token_to_position[result.token])
        return results

    def _correlate(self, chunk: Sequence[BatchTask], raw_items: Sequence[Dict[str, Any]]) -> List[BatchResult]:
        by_token: Dict[str, Dict[str, Any]] = {}
        for raw in raw_items:
            token = raw.get(TOKEN_FIELD) if isinstance(raw, dict) else None
            if not token:
                logger.warning("Ignoring %s result without %s: %s", self._kind, TOKEN_FIELD, raw)
                continue
            if token in by_token:
                logger.warning("Ignoring duplicate %s result for token %s", self._kind, token)
                continue
            by_token[token] = raw

        correlated: List[BatchResult] = []
        for task in chunk:
            raw = by_token.get(task.token)
            if raw is None:
                correlated.append(
                    BatchResult(
                        scene_index=task.scene_index,
                        token=task.token,
                        status=TaskStatus.FAILED,
                        error=MISSING_RESULT_ERROR,
                        retryable=True,
                    )
                )
                continue
            cost = float(raw.get("cost") or 0.0)
            url = next((raw[name] for name in self._media_fields if raw.get(name)), None)
            if url:
                correlated.append(
                    BatchResult(
                        scene_index=task.scene_index,
                        token=task.token,
                        status=TaskStatus.GENERATED,
                        url=url,
                        cost=cost,
                    )
                )
                continue
            error = raw.get("error") or raw.get("status") or f"No {self._kind} URL in response"
            correlated.append(
                BatchResult(
                    scene_index=task.scene_index,
                    token=task.token,
                    status=TaskStatus.FAILED,
                    cost=cost,
                    error=str(error),
                    retryable=is_retryable(str(error)),
                )
            )
        return correlated

    def _issue_token(self) -> str:
        token = self._token_factory()
        if token in self._issued:
            raise RuntimeError(f"Token factory reused token {token}")
        self._issued.add(token)
        return token
