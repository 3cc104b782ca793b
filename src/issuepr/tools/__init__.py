"""Tool integrations used by the automation commands."""

from .github import GitHubClient, GitHubError
from .patch import PatchApplyError, PatchResult, apply_patch, staged_patch, strip_fences
from .vcs import GitError, GitRepository

__all__ = [
    "GitError",
    "GitHubClient",
    "GitHubError",
    "GitRepository",
    "PatchApplyError",
    "PatchResult",
    "apply_patch",
    "staged_patch",
    "strip_fences",
]
