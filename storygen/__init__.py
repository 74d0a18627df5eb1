"""storygen package.

This package turns a short text idea into a rendered short-form video by
driving an ordered, resumable pipeline of generation stages.
"""

from .pipeline import StoryVideoGenerator  # noqa: F401

__all__ = ["StoryVideoGenerator"]
