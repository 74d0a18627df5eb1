"""Prompt templates shipped under ``storygen/prompts``."""

from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path
from typing import Mapping

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"
_PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*(\w+)\s*\}\}")


@lru_cache(maxsize=None)
def _template(name: str) -> str:
    return (PROMPTS_DIR / f"{name}.txt").read_text(encoding="utf-8")


def load_prompt(name: str, variables: Mapping[str, object] | None = None) -> str:
    """Render template ``name``; every ``{{placeholder}}`` must have a value."""
    values = variables or {}
    missing = sorted(set(_PLACEHOLDER_PATTERN.findall(_template(name))) - set(values))
    if missing:
        raise KeyError(f"Prompt {name!r} is missing values for: {', '.join(missing)}")
    return _PLACEHOLDER_PATTERN.sub(
        lambda match: "" if values[match.group(1)] is None else str(values[match.group(1)]),
        _template(name),
    )
