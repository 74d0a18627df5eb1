"""Scene duration reconciliation.

Generated scene lists rarely add up to the requested length exactly, and video
providers only accept a handful of clip lengths. The helpers here bring a list
of durations onto the requested total, optionally restricted to one of those
discrete sets, without reordering scenes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .errors import ReconciliationError
from .types import Scene

logger = logging.getLogger(__name__)

EXACT_TOLERANCE = 0.5
LENIENT_TOLERANCE = 2.0
MAX_DRIFT = 10.0
MAX_FREE_STEP = 2.0
MIN_SCENE_DURATION = 3.0

WORDS_PER_SECOND = 2.5
WORDS_PER_SECOND_ARABIC = 2.0
PACING_TOLERANCE = 0.2

VIDEO_MODEL_DURATIONS: Dict[str, List[int]] = {
    "seedance-1.0-pro": [2, 4, 5, 6, 8, 10, 12],
    "klingai-2.5-turbo-pro": [5, 10],
    "veo-3.0": [4, 6, 8],
    "veo-3.1": [4, 6, 8],
    "pixverse-v5.5": [5, 8],
    "hailuo-2.3": [6, 10],
    "sora-2-pro": [4, 8, 12],
}

MODELS_WITH_NATIVE_AUDIO = frozenset({"veo-3.0", "veo-3.1", "pixverse-v5.5"})


@dataclass(slots=True)
class ReconcileOutcome:
    """Result of a reconciliation pass.

    ``ok`` means the total landed within half a second of the target.
    ``accepted`` additionally admits totals up to two seconds away, which the
    pipeline tolerates rather than failing the run.
    """

    durations: List[float]
    ok: bool
    accepted: bool
    residual: float

    @property
    def total(self) -> float:
        return round(sum(self.durations), 3)


def supported_durations(video_model: Optional[str]) -> Optional[List[int]]:
    """Return the clip lengths a video model accepts, or None when unconstrained."""
    if not video_model:
        return None
    return VIDEO_MODEL_DURATIONS.get(video_model)


def find_closest_duration(value: float, allowed: Sequence[float]) -> float:
    """Return the allowed value nearest to ``value``; ties go to the lower value."""
    if not allowed:
        raise ValueError("allowed durations must not be empty")
    return min(sorted(allowed), key=lambda option: (abs(option - value), option))


def reconcile_durations(
    durations: Sequence[float],
    target: float,
    allowed: Optional[Sequence[float]] = None,
    *,
    min_duration: float = MIN_SCENE_DURATION,
) -> ReconcileOutcome:
    """Adjust ``durations`` so they sum to ``target``.

    Raises ReconciliationError when the generated total drifts more than ten
    seconds from the target. Otherwise returns the adjusted list; the input is
    never modified.
    """
    if not durations:
        raise ReconciliationError("Cannot reconcile an empty scene list")

    drift = target - sum(durations)
    if abs(drift) > MAX_DRIFT:
        raise ReconciliationError(
            f"Scene durations total {sum(durations):.1f}s, {abs(drift):.1f}s away from "
            f"the requested {target:.1f}s"
        )

    options = sorted(set(allowed)) if allowed else None
    if options:
        values = [float(find_closest_duration(value, options)) for value in durations]
    else:
        values = [float(value) for value in durations]

    diff = _round(target - sum(values))
    if abs(diff) >= EXACT_TOLERANCE:
        if options:
            _step_discrete(values, diff, options)
        else:
            _spread_free(values, diff, min_duration)

    residual = _round(target - sum(values))
    ok = abs(residual) < EXACT_TOLERANCE
    accepted = ok or abs(residual) <= LENIENT_TOLERANCE
    if accepted and not ok:
        logger.warning(
            "Accepting scene durations %.1fs away from the %.1fs target", abs(residual), target
        )
    return ReconcileOutcome(durations=[_round(v) for v in values], ok=ok, accepted=accepted, residual=residual)


def reconcile_scenes(
    scenes: List[Scene],
    target: float,
    allowed: Optional[Sequence[float]] = None,
    *,
    min_duration: float = MIN_SCENE_DURATION,
) -> ReconcileOutcome:
    """Reconcile scene target durations in place and return the outcome."""
    outcome = reconcile_durations(
        [scene.target_duration for scene in scenes], target, allowed, min_duration=min_duration
    )
    for scene, duration in zip(scenes, outcome.durations):
        scene.target_duration = duration
    return outcome


def check_narration_pacing(scenes: Sequence[Scene], language: str = "en") -> List[str]:
    """Return warnings for scenes whose narration will not fit their duration."""
    rate = WORDS_PER_SECOND_ARABIC if (language or "").lower().startswith("ar") else WORDS_PER_SECOND
    warnings: List[str] = []
    for scene in scenes:
        words = len(scene.narration.split())
        if not words:
            continue
        expected = scene.target_duration * rate
        low, high = expected * (1 - PACING_TOLERANCE), expected * (1 + PACING_TOLERANCE)
        if words < low or words > high:
            warnings.append(
                f"Scene {scene.index}: {words} words for {scene.target_duration:g}s "
                f"(expected about {expected:.0f})"
            )
    return warnings


def _spread_free(values: List[float], diff: float, min_duration: float) -> None:
    """Move each scene by at most two seconds, longest scenes first."""
    remaining = diff
    for idx in sorted(range(len(values)), key=lambda i: (-values[i], i)):
        if abs(remaining) < 1e-9:
            break
        if remaining > 0:
            step = min(remaining, MAX_FREE_STEP)
        else:
            step = -min(-remaining, MAX_FREE_STEP, max(values[idx] - min_duration, 0.0))
        values[idx] = _round(values[idx] + step)
        remaining = _round(remaining - step)


def _step_discrete(values: List[float], diff: float, options: List[float]) -> None:
    """Step scenes between adjacent supported durations until the total fits."""
    growing = diff > 0
    remaining = abs(diff)
    floor = options[0]

    while remaining >= EXACT_TOLERANCE:
        best_idx = None
        best_key = None
        for idx, value in enumerate(values):
            nxt = _adjacent(value, options, growing)
            if nxt is None or (not growing and nxt < floor):
                continue
            step = abs(nxt - value)
            if step > remaining + 1e-9:
                continue
            # Largest step first; ties by scene order when growing, longest scene when shrinking.
            key = (step, 0.0 if growing else value, -idx)
            if best_key is None or key > best_key:
                best_idx, best_key = idx, key
        if best_idx is None:
            break
        nxt = _adjacent(values[best_idx], options, growing)
        remaining = _round(remaining - abs(nxt - values[best_idx]))
        values[best_idx] = float(nxt)


def _adjacent(value: float, options: List[float], growing: bool) -> Optional[float]:
    if growing:
        greater = [option for option in options if option > value]
        return greater[0] if greater else None
    lower = [option for option in options if option < value]
    return lower[-1] if lower else None


def _round(value: float) -> float:
    return round(value, 3)
