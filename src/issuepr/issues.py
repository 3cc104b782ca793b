"""Issue metadata and the shape checks applied before any model call."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping

_TASK_LIST_ISSUE_RE = re.compile(r"(^|\n)\s*-\s*\[[ xX]\]\s*#\d+\b")
_TASK_LIST_URL_RE = re.compile(
    r"(^|\n)\s*-\s*\[[ xX]\]\s*https://github\.com/[^/\s]+/[^/\s]+/issues/\d+\b",
    re.IGNORECASE,
)
_SUB_ISSUE_WORD_RE = re.compile(r"\bsub-issues?\b", re.IGNORECASE)

SUB_ISSUE_REASON = (
    "Sub-issues are not allowed. Please submit one standalone change request per issue."
)


class IssueShapeError(RuntimeError):
    """Raised when the referenced issue cannot be handled (e.g. it is a pull request)."""


@dataclass(frozen=True, slots=True)
class Issue:
    """Read-only view of a GitHub issue."""

    number: int
    title: str = ""
    body: str = ""
    labels: tuple[str, ...] = ()
    is_pull_request: bool = False

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], *, number: int | None = None) -> "Issue":
        labels: list[str] = []
        for label in payload.get("labels") or []:
            if isinstance(label, str):
                labels.append(label)
            elif isinstance(label, Mapping) and isinstance(label.get("name"), str):
                labels.append(label["name"])
        raw_number = payload.get("number", number)
        return cls(
            number=int(raw_number if raw_number is not None else 0),
            title=str(payload.get("title") or ""),
            body=str(payload.get("body") or ""),
            labels=tuple(labels),
            is_pull_request=bool(payload.get("pull_request")),
        )


def has_sub_issue_syntax(text: str | None) -> bool:
    """Return ``True`` when ``text`` references other issues as task-list entries."""
    if not text:
        return False
    if _TASK_LIST_ISSUE_RE.search(text):
        return True
    if _TASK_LIST_URL_RE.search(text):
        return True
    return bool(_SUB_ISSUE_WORD_RE.search(text))


def ensure_not_pull_request(issue: Issue) -> None:
    """Raise :class:`IssueShapeError` when ``issue`` is actually a pull request."""
    if issue.is_pull_request:
        raise IssueShapeError(f"Issue #{issue.number} is a pull request")


__all__ = [
    "Issue",
    "IssueShapeError",
    "SUB_ISSUE_REASON",
    "ensure_not_pull_request",
    "has_sub_issue_syntax",
]
