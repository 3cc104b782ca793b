"""Minimal git helpers.

Just enough structure to list tracked files, run ``git apply`` and inspect
the porcelain status of the working tree.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Sequence, Set

import subprocess


class GitError(RuntimeError):
    """Raised when a git command fails or the repository cannot be used."""


class GitRepository:
    """Lightweight wrapper around ``git`` commands."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).resolve()
        if not (self.root / ".git").exists():
            raise GitError(f"Not a git repository: {self.root}")

    @classmethod
    def discover(cls, start: Path | str | None = None) -> "GitRepository":
        """Locate the nearest git repository starting from ``start``."""

        path = Path(start or Path.cwd()).resolve()
        for candidate in (path, *path.parents):
            if (candidate / ".git").exists():
                return cls(candidate)
        raise GitError(f"Unable to locate a git repository from {path}")

    # ------------------------------------------------------------------ git IO
    def _run_git(self, args: Sequence[str], *, check: bool = True) -> subprocess.CompletedProcess[str]:
        command = ["git", *args]
        process = subprocess.run(
            command,
            cwd=self.root,
            capture_output=True,
            text=False,
            check=False,
        )
        stdout = process.stdout.decode("utf-8", errors="replace") if process.stdout else ""
        stderr = process.stderr.decode("utf-8", errors="replace") if process.stderr else ""
        result = subprocess.CompletedProcess(process.args, process.returncode, stdout, stderr)
        if check and result.returncode != 0:
            message = result.stderr.strip() or result.stdout.strip() or "unknown git error"
            raise GitError(f"git {' '.join(args)} failed: {message}")
        return result

    def git(self, *args: str, check: bool = True) -> subprocess.CompletedProcess[str]:
        """Execute ``git`` with ``args`` relative to the repository root."""

        return self._run_git(list(args), check=check)

    def list_tracked_paths(self, *patterns: str) -> List[Path]:
        """Return tracked paths in ``git ls-files`` order.

        When no patterns are supplied the entire tracked file list is returned.
        Paths are reported relative to the repository root.
        """

        args: List[str] = ["ls-files", "-z"]
        if patterns:
            args.extend(["--", *patterns])

        result = self._run_git(args, check=False)
        if result.returncode != 0:
            message = result.stderr.strip() or result.stdout.strip() or "unable to list tracked paths"
            raise GitError(f"git ls-files failed: {message}")

        payload = result.stdout
        if not payload:
            return []

        entries = [entry for entry in payload.split("\0") if entry.strip()]
        return [Path(entry) for entry in entries]

    # ------------------------------------------------------------- repo status
    def _status_entries(self) -> List[tuple[str, Path]]:
        result = self._run_git(["status", "--porcelain"], check=True)
        entries: List[tuple[str, Path]] = []
        for line in result.stdout.splitlines():
            if not line:
                continue
            status = line[:2]
            raw_path = line[3:]
            if status[0] in {"R", "C"} and " -> " in raw_path:
                raw_path = raw_path.split(" -> ", 1)[1]
            status_clean = status.strip() or status
            entries.append((status_clean, Path(raw_path.strip())))
        return entries

    def working_tree_changes(self, *, include_untracked: bool = True) -> List[Path]:
        """Return the set of paths with pending modifications."""

        paths: Set[Path] = set()
        for status, path in self._status_entries():
            if status == "??" and not include_untracked:
                continue
            paths.add(path)
        return sorted(paths, key=lambda item: item.as_posix())

    def has_changes(self, *, include_untracked: bool = True) -> bool:
        """Return ``True`` when there are working tree changes."""

        return bool(self.working_tree_changes(include_untracked=include_untracked))


__all__ = ["GitError", "GitRepository"]
