"""Utilities for generating consistent, length-limited slugs."""

from __future__ import annotations

import re
from typing import Pattern

_NON_ALNUM_PATTERN: Pattern[str] = re.compile(r"[^a-z0-9]+")

DEFAULT_MAX_LENGTH = 40


def slugify(value: str | None, *, max_length: int = DEFAULT_MAX_LENGTH) -> str:
    """Normalize ``value`` into a lowercase, hyphen-separated slug.

    Runs of characters outside ``[a-z0-9]`` collapse into a single hyphen,
    leading and trailing hyphens are trimmed and the result is cut to
    ``max_length`` characters.  An empty string is returned when nothing
    survives normalisation; callers choose their own fallback.
    """
    source = (value or "").lower()
    slug = _NON_ALNUM_PATTERN.sub("-", source).strip("-")
    return slug[:max_length]


__all__ = ["DEFAULT_MAX_LENGTH", "slugify"]
