"""Derive and emit the named outputs consumed by the PR-creation workflow step."""

from __future__ import annotations

import re
import sys
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Iterator, Optional, Protocol

from .issues import Issue
from .structured import GeneratedChange
from .utils.slug import slugify

BRANCH_PREFIX = "codex/issue-"
MAX_TITLE_CHARS = 240
MAX_COMMIT_CHARS = 240
OUTPUT_DELIMITER = "__OUT__"

_WHITESPACE_RE = re.compile(r"\s+")


def _closing_reference_re(number: int) -> re.Pattern[str]:
    return re.compile(rf"\b(?:closes|fixes|resolves)\s+#{number}\b", re.IGNORECASE)


def derive_branch_name(change: GeneratedChange, issue: Issue) -> str:
    """``codex/issue-<n>-<slug>`` from the suggested suffix, the issue title or ``update``."""
    source = change.branch_suffix or issue.title or "update"
    return f"{BRANCH_PREFIX}{issue.number}-{slugify(source) or 'update'}"


def derive_pr_title(change: GeneratedChange, issue: Issue) -> str:
    fallback = f"AI: Resolve #{issue.number}"
    title = (change.pr_title or fallback)[:MAX_TITLE_CHARS].strip()
    return title or fallback


def derive_pr_body(change: GeneratedChange, issue: Issue) -> str:
    """Model body with a ``Closes #<n>`` line unless it already closes the issue."""
    closing_line = f"Closes #{issue.number}"
    body = (change.pr_body or "").strip()
    if not _closing_reference_re(issue.number).search(body):
        body = f"{body}\n\n{closing_line}".strip()
    return body or closing_line


def derive_commit_message(change: GeneratedChange, issue: Issue) -> str:
    fallback = f"feat: address issue #{issue.number}"
    message = _WHITESPACE_RE.sub(" ", change.commit_message or fallback).strip()[:MAX_COMMIT_CHARS]
    return message or fallback


@dataclass(frozen=True, slots=True)
class RunOutputs:
    """Terminal outcome of a run: either a change with PR metadata or a no-change reason."""

    changed: bool
    no_change_reason: str = ""
    branch_name: str = ""
    pr_title: str = ""
    pr_body: str = ""
    commit_message: str = ""

    @classmethod
    def no_change(cls, reason: str) -> "RunOutputs":
        return cls(changed=False, no_change_reason=reason)

    @classmethod
    def from_change(cls, change: GeneratedChange, issue: Issue) -> "RunOutputs":
        return cls(
            changed=True,
            branch_name=derive_branch_name(change, issue),
            pr_title=derive_pr_title(change, issue),
            pr_body=derive_pr_body(change, issue),
            commit_message=derive_commit_message(change, issue),
        )

    def items(self) -> Iterator[tuple[str, str]]:
        """Yield ``(name, value)`` pairs in emission order."""
        yield "changed", "true" if self.changed else "false"
        if self.changed:
            yield "branch_name", self.branch_name
            yield "pr_title", self.pr_title
            yield "pr_body", self.pr_body
            yield "commit_message", self.commit_message
        else:
            yield "no_change_reason", self.no_change_reason


def heredoc_delimiter(value: str) -> str:
    """Return ``__OUT__`` unless a line of ``value`` equals it, else a random delimiter."""
    delimiter = OUTPUT_DELIMITER
    while delimiter in value.splitlines():
        delimiter = f"ghadelimiter_{uuid.uuid4().hex}"
    return delimiter


def escape_stream_value(value: str) -> str:
    # Keeps one output per line; same encoding as workflow commands.
    return value.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


class OutputWriter(Protocol):
    def write(self, name: str, value: str) -> None: ...


class GitHubOutputWriter:
    """Append outputs to the ``GITHUB_OUTPUT`` file using heredoc delimiters."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    def write(self, name: str, value: str) -> None:
        delimiter = heredoc_delimiter(value)
        with self._path.open("a", encoding="utf-8") as handle:
            handle.write(f"{name}<<{delimiter}\n{value}\n{delimiter}\n")


class StreamOutputWriter:
    """Write ``name=value`` lines, used when no output file is configured.

    Newlines, carriage returns and ``%`` in values are percent-encoded so each
    output stays on a single line.
    """

    def __init__(self, stream: Optional[IO[str]] = None) -> None:
        self._stream = stream

    def write(self, name: str, value: str) -> None:
        stream = self._stream or sys.stdout
        stream.write(f"{name}={escape_stream_value(value)}\n")
        stream.flush()


def writer_for(output_path: Optional[Path]) -> OutputWriter:
    return GitHubOutputWriter(output_path) if output_path else StreamOutputWriter()


def emit_outputs(outputs: RunOutputs, writer: OutputWriter) -> None:
    for name, value in outputs.items():
        writer.write(name, value)


__all__ = [
    "GitHubOutputWriter",
    "OutputWriter",
    "RunOutputs",
    "StreamOutputWriter",
    "derive_branch_name",
    "derive_commit_message",
    "derive_pr_body",
    "derive_pr_title",
    "emit_outputs",
    "escape_stream_value",
    "heredoc_delimiter",
    "writer_for",
]
