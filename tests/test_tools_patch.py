from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from issuepr.tools.patch import (
    PatchApplyError,
    apply_patch,
    parse_git_apply_failures,
    staged_patch,
    strip_fences,
)
from issuepr.tools.vcs import GitRepository

README_PATCH = (
    "diff --git a/README.md b/README.md\n"
    "--- a/README.md\n"
    "+++ b/README.md\n"
    "@@ -1,3 +1,3 @@\n"
    " # Site\n"
    " \n"
    "-Hello world.\n"
    "+Hello there.\n"
)

STALE_PATCH = (
    "diff --git a/README.md b/README.md\n"
    "--- a/README.md\n"
    "+++ b/README.md\n"
    "@@ -1,3 +1,3 @@\n"
    " # Site\n"
    " \n"
    "-Goodbye world.\n"
    "+Hello there.\n"
)


@pytest.mark.parametrize("opening", ["```diff", "```", "```DIFF"])
def test_strip_fences_returns_exact_interior(opening: str) -> None:
    interior = "--- a/x\n+++ b/x\n@@ -1 +1 @@\n-a \n+b\t"

    assert strip_fences(f"{opening}\n{interior}\n```") == interior


def test_strip_fences_trims_unfenced_text() -> None:
    assert strip_fences("\n\n  --- a/x\n+++ b/x  \n") == "--- a/x\n+++ b/x"
    assert strip_fences(None) == ""
    assert strip_fences("```\n\n```") == ""


def test_strip_fences_leaves_other_languages_alone() -> None:
    fenced = "```python\nprint('hi')\n```"

    assert strip_fences(fenced) == fenced


def test_staged_patch_appends_newline_and_cleans_up_on_error() -> None:
    captured: list[Path] = []
    with pytest.raises(RuntimeError):
        with staged_patch("--- a/x") as path:
            captured.append(path)
            assert path.read_text(encoding="utf-8") == "--- a/x\n"
            raise RuntimeError("boom")

    assert captured and not captured[0].exists()


def test_apply_patch_updates_working_tree(git_repo: GitRepository) -> None:
    result = apply_patch(README_PATCH, repo_root=git_repo.root)

    assert (git_repo.root / "README.md").read_text(encoding="utf-8") == "# Site\n\nHello there.\n"
    assert result.check_command[:4] == ("git", "apply", "--check", "--3way")
    assert "--whitespace=fix" in result.apply_command
    assert Path("README.md") in git_repo.working_tree_changes()
    assert not Path(result.apply_command[-1]).exists()


def test_apply_patch_rejects_stale_preimage(git_repo: GitRepository) -> None:
    with pytest.raises(PatchApplyError) as excinfo:
        apply_patch(STALE_PATCH, repo_root=git_repo.root)

    assert "README.md" in str(excinfo.value)
    assert excinfo.value.details["stage"] == "check"
    assert (git_repo.root / "README.md").read_text(encoding="utf-8") == "# Site\n\nHello world.\n"
    assert not git_repo.has_changes()


def test_apply_patch_logs_telemetry_events(
    git_repo: GitRepository, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.INFO, logger="issuepr.telemetry")

    apply_patch(README_PATCH, repo_root=git_repo.root)

    events = [
        json.loads(record.getMessage())
        for record in caplog.records
        if record.name == "issuepr.telemetry"
    ]
    assert [event["event"] for event in events] == ["patch_validation_passed", "patch_applied"]
    assert events[-1]["patch_bytes"] > 0


def test_parse_git_apply_failures_extracts_paths() -> None:
    output = "error: patch failed: README.md:1\nerror: README.md: patch does not apply\n"

    entries = parse_git_apply_failures(output)

    assert entries[0] == {"path": "README.md", "line": 1, "reason": "patch_failed"}
    assert entries[1] == {"path": "README.md", "reason": "does_not_apply"}
