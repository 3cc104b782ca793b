"""Typed payload describing the change proposed by the model."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class GeneratedChange:
    """Structured result returned by the model for one attempt.

    Every field is optional in the raw response; missing or null values
    arrive here as empty strings and the reporter supplies fallbacks.
    """

    patch: str = ""
    pr_title: str = ""
    pr_body: str = ""
    commit_message: str = ""
    branch_suffix: str = ""


__all__ = ["GeneratedChange"]
