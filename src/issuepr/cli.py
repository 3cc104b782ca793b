"""CLI commands run by the CI workflows."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer

from .automerge import StaleMerger
from .config import ConfigurationError, load_automerge_settings, load_run_settings
from .issues import IssueShapeError
from .models import LLMClientError
from .orchestrator import IssueOrchestrator
from .reporter import emit_outputs, writer_for
from .tools.github import GitHubError
from .tools.patch import PatchApplyError
from .tools.vcs import GitError

APP_HELP = "Turn GitHub issues into proposed patches and merge stale AI pull requests."
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

LOGGER = logging.getLogger("issuepr")

FATAL_ERRORS = (
    ConfigurationError,
    IssueShapeError,
    LLMClientError,
    PatchApplyError,
    GitError,
    GitHubError,
)

app = typer.Typer(help=APP_HELP)


def _configure_logging(verbose: bool) -> None:
    """Send log records to stderr so stdout stays free for outputs."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        force=True,
    )


def _fail(error: Exception) -> None:
    LOGGER.error("Run failed: %s", error, exc_info=error)
    typer.echo(f"Error: {error}", err=True)
    raise typer.Exit(code=1) from error


@app.command()
def generate(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Optional YAML file overriding the context limits.",
    ),
    repo_root: Path = typer.Option(
        Path("."),
        "--repo-root",
        help="Repository the patch is applied to.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Propose a patch for the issue named by ISSUE_NUMBER and emit workflow outputs."""
    _configure_logging(verbose)
    try:
        settings = load_run_settings(config_path=config, repo_root=repo_root)
        outputs = IssueOrchestrator.from_settings(settings).run()
    except FATAL_ERRORS as error:
        _fail(error)
        return

    emit_outputs(outputs, writer_for(settings.output_path))
    if outputs.changed:
        LOGGER.info("Change ready on branch %s.", outputs.branch_name)
    else:
        LOGGER.info("No change: %s", outputs.no_change_reason)


@app.command()
def automerge(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Merge labelled AI pull requests without recent human activity."""
    _configure_logging(verbose)
    try:
        settings = load_automerge_settings()
        decisions = StaleMerger.from_settings(settings).run()
    except FATAL_ERRORS as error:
        _fail(error)
        return

    merged = sum(1 for decision in decisions if decision.action in {"merged", "dry-run"})
    typer.echo(f"Processed {len(decisions)} candidate PR(s); merged {merged}.")


if __name__ == "__main__":
    app()
