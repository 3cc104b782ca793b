"""Unified diff helpers for applying model-generated patches with ``git apply``."""

from __future__ import annotations

import json
import logging
import os
import re
import subprocess
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Mapping, Sequence, Tuple


class PatchApplyError(RuntimeError):
    """Raised when a patch fails validation or application."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = dict(details or {})


@dataclass(slots=True)
class PatchResult:
    """Outcome of applying a patch to the repository."""

    check_command: Tuple[str, ...]
    apply_command: Tuple[str, ...]
    stdout: str
    stderr: str
    patch_bytes: int


TELEMETRY_LOGGER = logging.getLogger("issuepr.telemetry")

CHECK_ARGS: Tuple[str, ...] = ("apply", "--check", "--3way")
APPLY_ARGS: Tuple[str, ...] = ("apply", "--3way", "--whitespace=fix")

_DIFF_FENCE_RE = re.compile(r"```(?:diff)?\n(.*?)\n```", re.IGNORECASE | re.DOTALL)
_PATCH_FAILED_RE = re.compile(r"error: patch failed: (?P<path>.+?)(?::(?P<line>\d+))?$")
_PATCH_DOES_NOT_APPLY_RE = re.compile(r"error: (?P<path>.+?): patch does not apply")
_HUNK_FAILED_RE = re.compile(r"error: (?P<path>.+?): hunk #(?P<hunk>\d+) failed at (?P<line>-?\d+)")


def strip_fences(text: str | None) -> str:
    """Return the interior of a ```` ```diff ```` (or untagged) fence, else the trimmed text."""
    trimmed = (text or "").strip()
    match = _DIFF_FENCE_RE.fullmatch(trimmed)
    return match.group(1) if match else trimmed


def _serialise_event_value(value: Any) -> Any:
    """Convert telemetry payload values into JSON-friendly representations."""
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, (list, tuple, set)):
        return [_serialise_event_value(item) for item in value]
    if isinstance(value, Mapping):
        return {str(key): _serialise_event_value(child) for key, child in value.items()}
    return str(value)


def _emit_patch_event(event: str, **fields: Any) -> None:
    """Log structured telemetry events when applying patches."""
    payload = {"event": event, "timestamp": datetime.now(timezone.utc).isoformat()}
    for key, value in fields.items():
        payload[key] = _serialise_event_value(value)
    TELEMETRY_LOGGER.info(json.dumps(payload, separators=(",", ":"), ensure_ascii=True))


def parse_git_apply_failures(output: str) -> Tuple[Mapping[str, Any], ...]:
    """Parse ``git apply`` stderr for failing hunk metadata."""
    if not output:
        return ()
    entries: list[dict[str, Any]] = []
    for raw_line in output.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        match = _HUNK_FAILED_RE.match(line)
        if match:
            entries.append(
                {
                    "path": match.group("path"),
                    "hunk": int(match.group("hunk")),
                    "line": int(match.group("line")),
                    "reason": "hunk_failed",
                }
            )
            continue
        match = _PATCH_FAILED_RE.match(line)
        if match:
            line_text = match.group("line")
            entries.append(
                {
                    "path": match.group("path"),
                    "line": int(line_text) if line_text is not None else None,
                    "reason": "patch_failed",
                }
            )
            continue
        match = _PATCH_DOES_NOT_APPLY_RE.match(line)
        if match:
            entries.append({"path": match.group("path"), "reason": "does_not_apply"})
    return tuple(entries)


@contextmanager
def staged_patch(patch: str) -> Iterator[Path]:
    """Write ``patch`` to a temporary file that is removed on every exit path."""
    content = patch if patch.endswith("\n") else f"{patch}\n"
    handle = tempfile.NamedTemporaryFile(
        "w", encoding="utf-8", prefix="issuepr-", suffix=".patch", delete=False
    )
    temp_path = Path(handle.name)
    try:
        with handle:
            handle.write(content)
        yield temp_path
    finally:
        try:
            os.unlink(temp_path)
        except FileNotFoundError:
            pass


def _run_git(args: Sequence[str], *, cwd: Path) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=False,
    )


def apply_patch(patch: str, *, repo_root: Path | str = ".") -> PatchResult:
    """Validate ``patch`` with a dry run, then apply it with a three-way merge."""
    repo_root_path = Path(repo_root).resolve()
    patch_bytes = len(patch.encode("utf-8"))

    with staged_patch(patch) as temp_path:
        check_command = ("git", *CHECK_ARGS, str(temp_path))
        dry_run = _run_git([*CHECK_ARGS, str(temp_path)], cwd=repo_root_path)
        if dry_run.returncode != 0:
            message = dry_run.stderr.strip() or dry_run.stdout.strip() or "unknown error"
            details = {
                "stage": "check",
                "returncode": dry_run.returncode,
                "patch_bytes": patch_bytes,
                "failing_hunks": parse_git_apply_failures(dry_run.stderr),
            }
            _emit_patch_event("patch_validation_failed", error=message, **details)
            raise PatchApplyError(message, details=details)

        _emit_patch_event("patch_validation_passed", patch_bytes=patch_bytes)

        apply_command = ("git", *APPLY_ARGS, str(temp_path))
        result = _run_git([*APPLY_ARGS, str(temp_path)], cwd=repo_root_path)
        if result.returncode != 0:
            message = result.stderr.strip() or result.stdout.strip() or "unknown error"
            details = {
                "stage": "apply",
                "returncode": result.returncode,
                "patch_bytes": patch_bytes,
                "failing_hunks": parse_git_apply_failures(result.stderr),
            }
            _emit_patch_event("patch_apply_failed", error=message, **details)
            raise PatchApplyError(message, details=details)

    _emit_patch_event("patch_applied", patch_bytes=patch_bytes)
    return PatchResult(
        check_command=check_command,
        apply_command=apply_command,
        stdout=result.stdout,
        stderr=result.stderr,
        patch_bytes=patch_bytes,
    )


__all__ = [
    "APPLY_ARGS",
    "CHECK_ARGS",
    "PatchApplyError",
    "PatchResult",
    "apply_patch",
    "parse_git_apply_failures",
    "staged_patch",
    "strip_fences",
]
