from __future__ import annotations

import json
import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from issuepr.config import ContextLimits, GitHubConfig, ProviderConfig, RunSettings  # noqa: E402
from issuepr.tools.vcs import GitRepository  # noqa: E402


def _run_git(repo_root: Path, *cmd: str) -> str:
    result = subprocess.run(
        ["git", *cmd],
        cwd=repo_root,
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout


@pytest.fixture()
def git_repo(tmp_path: Path) -> GitRepository:
    """Create a small committed site repository."""

    repo_root = tmp_path / "site"
    repo_root.mkdir()
    _run_git(repo_root, "init")
    _run_git(repo_root, "config", "user.email", "bot@example.com")
    _run_git(repo_root, "config", "user.name", "Issue Bot")

    (repo_root / "README.md").write_text("# Site\n\nHello world.\n", encoding="utf-8")
    (repo_root / "src").mkdir()
    (repo_root / "src" / "index.astro").write_text("<h1>Home</h1>\n", encoding="utf-8")
    (repo_root / "AGENTS.md").write_text("Keep edits small.\n", encoding="utf-8")

    _run_git(repo_root, "add", ".")
    _run_git(repo_root, "commit", "-m", "init")
    return GitRepository(repo_root)


@pytest.fixture()
def make_settings() -> Callable[..., RunSettings]:
    def factory(repo_root: Path, *, issue_number: int = 17, **context: Any) -> RunSettings:
        return RunSettings(
            issue_number=issue_number,
            github=GitHubConfig(token="gh-token", repository="octo/site"),
            provider=ProviderConfig(api_key="sk-test"),
            context=ContextLimits(**context),
            repo_root=repo_root,
        )

    return factory


@dataclass
class FakeGitHubTransport:
    """Serve canned payloads keyed by ``(method, path-without-query)``.

    List payloads are returned for the first page only so pagination stops.
    """

    routes: Dict[Tuple[str, str], Any] = field(default_factory=dict)
    statuses: Dict[Tuple[str, str], int] = field(default_factory=dict)
    calls: List[Tuple[str, str, Optional[bytes]]] = field(default_factory=list)

    def __call__(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: Optional[bytes],
    ) -> Tuple[int, str]:
        path = url.split("/repos/octo/site", 1)[1]
        self.calls.append((method, path, body))
        bare, _, query = path.partition("?")
        key = (method, bare)
        payload = self.routes.get(key, [])
        params = query.split("&") if query else []
        if isinstance(payload, list) and any(p.startswith("page=") for p in params) and "page=1" not in params:
            payload = []
        return self.statuses.get(key, 200), json.dumps(payload)


@pytest.fixture()
def github_transport() -> FakeGitHubTransport:
    return FakeGitHubTransport()


@pytest.fixture()
def chat_response() -> Callable[[Any], str]:
    """Wrap ``content`` in a chat-completion envelope."""

    def render(content: Any) -> str:
        return json.dumps({"choices": [{"message": {"role": "assistant", "content": content}}]})

    return render
