from __future__ import annotations

from pathlib import Path

from issuepr.config import ContextLimits
from issuepr.context_builder import (
    BLOCK_SEPARATOR,
    ContextBuilder,
    RepositoryFile,
    include_file,
    pack_blocks,
    read_text_file,
)
from issuepr.tools.vcs import GitRepository


def _track(repo: GitRepository, files: dict[str, str]) -> None:
    for relative, content in files.items():
        target = repo.root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    repo.git("add", ".")


def test_include_file_applies_allowlist_and_excluded_prefixes() -> None:
    limits = ContextLimits()

    assert include_file("README.md", limits)
    assert include_file("src/pages/index.ASTRO", limits)
    assert include_file("src/data/recordings.ts", limits)
    assert not include_file("dist/index.html", limits)
    assert not include_file("node_modules/pkg/index.js", limits)
    assert not include_file("public/images/logo.svg", limits)
    assert not include_file("public/images/notes.md", limits)
    assert not include_file("scripts/build.py", limits)
    assert not include_file("Makefile", limits)


def test_pack_blocks_never_exceeds_budget_and_drops_overflowing_block() -> None:
    files = [
        RepositoryFile("a.md", "x" * 20),
        RepositoryFile("b.md", "y" * 20),
        RepositoryFile("c.md", "z" * 500),
        RepositoryFile("d.md", "w"),
    ]
    budget = len(files[0].block) + len(files[1].block) + 10

    packed = pack_blocks(files, budget)

    assert [item.path for item in packed] == ["a.md", "b.md"]
    assert sum(len(item.block) for item in packed) <= budget


def test_pack_blocks_keeps_exact_fit() -> None:
    files = [RepositoryFile("a.md", "abc"), RepositoryFile("b.md", "def")]
    budget = sum(len(item.block) for item in files)

    assert len(pack_blocks(files, budget)) == 2
    assert len(pack_blocks(files, budget - 1)) == 1


def test_read_text_file_skips_oversized_and_missing(tmp_path: Path) -> None:
    large = tmp_path / "large.md"
    large.write_text("a" * 50, encoding="utf-8")

    assert read_text_file(large, max_bytes=49) == ""
    assert read_text_file(large, max_bytes=50) == "a" * 50
    assert read_text_file(tmp_path / "missing.md", max_bytes=100) == ""


def test_build_truncates_files_and_lists_all_candidates(git_repo: GitRepository) -> None:
    _track(
        git_repo,
        {
            "docs/long.md": "L" * 300,
            "styles/site.css": "body { color: red; }\n",
            "assets/photo.png": "not really an image",
        },
    )
    limits = ContextLimits(max_file_chars=100, max_context_chars=10_000)

    context = ContextBuilder(git_repo, limits).build()

    assert "assets/photo.png" not in context.file_list
    assert "docs/long.md" in context.file_list
    long_file = next(item for item in context.files if item.path == "docs/long.md")
    assert long_file.content == "L" * 100
    assert context.guidance == "Keep edits small.\n"
    assert context.excerpt == BLOCK_SEPARATOR.join(context.blocks)
    assert all(block.startswith("FILE: ") for block in context.blocks)


def test_build_stops_packing_at_budget_but_keeps_full_file_list(git_repo: GitRepository) -> None:
    _track(git_repo, {"notes/zz.md": "n" * 400})
    listed = ContextBuilder(git_repo).list_files()
    first_block = RepositoryFile(listed[0], (git_repo.root / listed[0]).read_text(encoding="utf-8")).block
    limits = ContextLimits(max_context_chars=len(first_block))

    context = ContextBuilder(git_repo, limits).build()

    assert [item.path for item in context.files] == [listed[0]]
    assert list(context.file_list) == listed
    assert sum(len(block) for block in context.blocks) <= limits.max_context_chars


def test_build_skips_empty_files(git_repo: GitRepository) -> None:
    _track(git_repo, {"empty.md": ""})

    context = ContextBuilder(git_repo).build()

    assert "empty.md" in context.file_list
    assert all(item.path != "empty.md" for item in context.files)


def test_missing_guidance_file_reads_empty(git_repo: GitRepository) -> None:
    limits = ContextLimits(guidance_file="CONTRIBUTING.md")

    assert ContextBuilder(git_repo, limits).build().guidance == ""
