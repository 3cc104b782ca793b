"""Pack a bounded snapshot of the repository into prompt-ready text blocks."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Sequence

from .config import ContextLimits
from .tools.vcs import GitError, GitRepository

LOGGER = logging.getLogger(__name__)

BLOCK_SEPARATOR = "\n\n---\n\n"


@dataclass(frozen=True, slots=True)
class RepositoryFile:
    """Tracked file path plus its truncated text content."""

    path: str
    content: str

    @property
    def block(self) -> str:
        return f"FILE: {self.path}\n{self.content}"


@dataclass(frozen=True, slots=True)
class RepositoryContext:
    """Repository snapshot handed to the model."""

    file_list: tuple[str, ...] = ()
    files: tuple[RepositoryFile, ...] = ()
    guidance: str = ""

    @property
    def blocks(self) -> list[str]:
        return [item.block for item in self.files]

    @property
    def excerpt(self) -> str:
        return BLOCK_SEPARATOR.join(self.blocks)


def extension_of(path: str) -> str:
    """Return the lowercase extension of ``path`` including the dot, or ``""``."""
    index = path.rfind(".")
    return path[index:].lower() if index >= 0 else ""


def include_file(path: str, limits: ContextLimits) -> bool:
    """Return ``True`` when ``path`` passes the prefix denylist and extension allowlist."""
    if any(path.startswith(prefix) for prefix in limits.excluded_prefixes):
        return False
    return extension_of(path) in limits.include_extensions


def read_text_file(path: Path, *, max_bytes: int) -> str:
    """Read ``path`` as UTF-8 text; oversized or unreadable files read as empty."""
    try:
        if path.stat().st_size > max_bytes:
            return ""
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return ""


def pack_blocks(files: Iterable[RepositoryFile], budget: int) -> tuple[RepositoryFile, ...]:
    """Greedily keep ``files`` in order until the next block would overflow ``budget``."""
    remaining = budget
    packed: list[RepositoryFile] = []
    for item in files:
        size = len(item.block)
        if size > remaining:
            break
        packed.append(item)
        remaining -= size
    return tuple(packed)


class ContextBuilder:
    """Collects allowlisted repository files under per-file and total character budgets."""

    def __init__(self, repo: GitRepository, limits: ContextLimits | None = None) -> None:
        self._repo = repo
        self._limits = limits or ContextLimits()

    @property
    def limits(self) -> ContextLimits:
        return self._limits

    def list_files(self) -> list[str]:
        """Return allowlisted tracked paths in repository listing order."""
        try:
            tracked = self._repo.list_tracked_paths()
        except GitError as error:
            LOGGER.warning("Unable to list tracked files: %s", error)
            return []
        paths = (path.as_posix().strip() for path in tracked)
        return [path for path in paths if path and include_file(path, self._limits)]

    def _iter_files(self, paths: Sequence[str]) -> Iterable[RepositoryFile]:
        for relative in paths:
            content = read_text_file(self._repo.root / relative, max_bytes=self._limits.max_file_bytes)
            if not content:
                continue
            yield RepositoryFile(path=relative, content=content[: self._limits.max_file_chars])

    def read_guidance(self) -> str:
        """Return the leading excerpt of the project guidance file, if any."""
        guidance_path = self._repo.root / self._limits.guidance_file
        if not guidance_path.is_file():
            return ""
        text = read_text_file(guidance_path, max_bytes=self._limits.max_file_bytes)
        return text[: self._limits.guidance_chars]

    def build(self) -> RepositoryContext:
        """Assemble the repository context for one run."""
        file_list = self.list_files()
        packed = pack_blocks(self._iter_files(file_list), self._limits.max_context_chars)
        LOGGER.info(
            "Packed %d of %d candidate file(s) into the prompt context.",
            len(packed),
            len(file_list),
        )
        return RepositoryContext(
            file_list=tuple(file_list),
            files=packed,
            guidance=self.read_guidance(),
        )


__all__ = [
    "BLOCK_SEPARATOR",
    "ContextBuilder",
    "RepositoryContext",
    "RepositoryFile",
    "extension_of",
    "include_file",
    "pack_blocks",
    "read_text_file",
]
