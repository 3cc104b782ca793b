"""Run configuration assembled once from the process environment.

Every component receives the pieces of :class:`RunSettings` it needs by
parameter; nothing below reads ``os.environ`` after :func:`load_run_settings`
returns.
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_COMPLETIONS_PATH = "/chat/completions"
DEFAULT_MODEL = "minimax/minimax-m2.5"
DEFAULT_MAX_TOKENS = 4000
DEFAULT_LLM_TIMEOUT = 120.0
DEFAULT_GITHUB_API_URL = "https://api.github.com"

DEFAULT_INCLUDE_EXTENSIONS: tuple[str, ...] = (
    ".md",
    ".txt",
    ".json",
    ".yml",
    ".yaml",
    ".js",
    ".mjs",
    ".cjs",
    ".ts",
    ".tsx",
    ".jsx",
    ".astro",
    ".css",
    ".html",
)
DEFAULT_EXCLUDED_PREFIXES: tuple[str, ...] = ("public/images/", "dist/", "node_modules/")


class ConfigurationError(RuntimeError):
    """Raised when a required setting is missing or unusable."""


@dataclass(frozen=True, slots=True)
class ProviderConfig:
    """Connection details for the chat-completion endpoint."""

    api_key: str
    base_url: str = DEFAULT_BASE_URL
    endpoint: str = DEFAULT_COMPLETIONS_PATH
    model: str = DEFAULT_MODEL
    max_tokens: int = DEFAULT_MAX_TOKENS
    timeout: float = DEFAULT_LLM_TIMEOUT
    referer: str = "https://github.com"
    title: str = "ai issue bot"

    @property
    def url(self) -> str:
        return f"{self.base_url}{self.endpoint}"


@dataclass(frozen=True, slots=True)
class GitHubConfig:
    """Credentials and target repository for the GitHub REST API."""

    token: str
    repository: str
    api_url: str = DEFAULT_GITHUB_API_URL
    timeout: float = 30.0


@dataclass(frozen=True, slots=True)
class ContextLimits:
    """Budgets and allowlists used when packing repository content."""

    max_file_chars: int = 4000
    max_context_chars: int = 120_000
    max_file_bytes: int = 100_000
    include_extensions: tuple[str, ...] = DEFAULT_INCLUDE_EXTENSIONS
    excluded_prefixes: tuple[str, ...] = DEFAULT_EXCLUDED_PREFIXES
    guidance_file: str = "AGENTS.md"
    guidance_chars: int = 5000


@dataclass(frozen=True, slots=True)
class RunSettings:
    """Everything a single issue-to-patch run needs."""

    issue_number: int
    github: GitHubConfig
    provider: ProviderConfig
    context: ContextLimits = field(default_factory=ContextLimits)
    repo_root: Path = Path(".")
    output_path: Optional[Path] = None


@dataclass(frozen=True, slots=True)
class AutomergeSettings:
    """Settings for the stale AI pull request merger."""

    github: GitHubConfig
    required_label: str = "ai-automerge-candidate"
    inactivity_days: float = 7.0
    merge_method: str = "squash"
    dry_run: bool = False


def require_env(environ: Mapping[str, str], name: str) -> str:
    """Return ``environ[name]`` or raise :class:`ConfigurationError`."""
    value = environ.get(name)
    if not value:
        raise ConfigurationError(f"Missing required environment variable: {name}")
    return value


def _positive_int(raw: Optional[str], default: int) -> int:
    """Parse a positive integer override, falling back to ``default``."""
    if raw is None or not str(raw).strip():
        return default
    try:
        parsed = float(raw)
    except ValueError:
        return default
    if not math.isfinite(parsed) or parsed <= 0:
        return default
    value = math.floor(parsed)
    return value if value > 0 else default


def _positive_float(raw: Optional[str], default: float) -> float:
    if raw is None or not str(raw).strip():
        return default
    try:
        parsed = float(raw)
    except ValueError:
        return default
    if not math.isfinite(parsed) or parsed <= 0:
        return default
    return parsed


def _github_config(environ: Mapping[str, str]) -> GitHubConfig:
    token = require_env(environ, "GITHUB_TOKEN")
    repository = require_env(environ, "GITHUB_REPOSITORY")
    if "/" not in repository:
        raise ConfigurationError(f"Invalid GITHUB_REPOSITORY: {repository!r}")
    api_url = (environ.get("GITHUB_API_URL") or DEFAULT_GITHUB_API_URL).rstrip("/")
    return GitHubConfig(token=token, repository=repository, api_url=api_url)


def load_provider_config(environ: Mapping[str, str]) -> ProviderConfig:
    """Resolve the chat-completion endpoint settings from ``environ``."""
    api_key = require_env(environ, "OPENROUTER_API_KEY")
    base_url = (environ.get("LLM_API_BASE_URL") or DEFAULT_BASE_URL).rstrip("/")
    endpoint = environ.get("LLM_CHAT_COMPLETIONS_PATH") or DEFAULT_COMPLETIONS_PATH
    if not endpoint.startswith("/"):
        endpoint = f"/{endpoint}"
    model = environ.get("LLM_MODEL") or environ.get("OPENROUTER_MODEL") or DEFAULT_MODEL

    repository = environ.get("GITHUB_REPOSITORY") or ""
    referer = environ.get("OPENROUTER_HTTP_REFERER") or (
        f"https://github.com/{repository}" if repository else "https://github.com"
    )
    title = environ.get("OPENROUTER_X_TITLE") or (
        f"{repository} ai issue bot" if repository else "ai issue bot"
    )

    return ProviderConfig(
        api_key=api_key,
        base_url=base_url,
        endpoint=endpoint,
        model=model,
        max_tokens=_positive_int(environ.get("LLM_MAX_TOKENS"), DEFAULT_MAX_TOKENS),
        timeout=_positive_float(environ.get("LLM_TIMEOUT"), DEFAULT_LLM_TIMEOUT),
        referer=referer,
        title=title,
    )


def load_config_file(config_path: Path) -> Dict[str, Any]:
    """Load an optional YAML configuration file."""
    if not config_path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}")
    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        raise ConfigurationError(f"Failed to parse config {config_path}: {error}") from error
    if not isinstance(data, dict):
        raise ConfigurationError("Configuration must be a mapping at the top level.")
    return data


def context_limits_from_config(config: Mapping[str, Any]) -> ContextLimits:
    """Apply the ``context:`` section of a YAML config to the default limits."""
    section = config.get("context") or {}
    if not isinstance(section, Mapping):
        raise ConfigurationError("The 'context' section must be a mapping.")

    limits = ContextLimits()
    overrides: Dict[str, Any] = {}
    for key in ("max_file_chars", "max_context_chars", "max_file_bytes", "guidance_chars"):
        value = section.get(key)
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ConfigurationError(f"context.{key} must be a positive integer.")
        overrides[key] = value
    for key in ("include_extensions", "excluded_prefixes"):
        value = section.get(key)
        if value is None:
            continue
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise ConfigurationError(f"context.{key} must be a list of strings.")
        if key == "include_extensions":
            value = [item.lower() if item.startswith(".") else f".{item.lower()}" for item in value]
        overrides[key] = tuple(value)
    guidance_file = section.get("guidance_file")
    if guidance_file is not None:
        if not isinstance(guidance_file, str) or not guidance_file.strip():
            raise ConfigurationError("context.guidance_file must be a non-empty string.")
        overrides["guidance_file"] = guidance_file.strip()
    return replace(limits, **overrides) if overrides else limits


def load_run_settings(
    environ: Optional[Mapping[str, str]] = None,
    *,
    config_path: Optional[Path] = None,
    repo_root: Optional[Path] = None,
) -> RunSettings:
    """Build the immutable settings for one ``generate`` run."""
    env = os.environ if environ is None else environ

    raw_issue = require_env(env, "ISSUE_NUMBER")
    try:
        issue_number = int(raw_issue.strip())
    except ValueError as error:
        raise ConfigurationError(f"ISSUE_NUMBER must be an integer, got {raw_issue!r}") from error
    if issue_number <= 0:
        raise ConfigurationError(f"ISSUE_NUMBER must be positive, got {issue_number}")

    github = _github_config(env)
    provider = load_provider_config(env)

    context = ContextLimits()
    if config_path is not None:
        context = context_limits_from_config(load_config_file(config_path))

    output_value = env.get("GITHUB_OUTPUT")
    return RunSettings(
        issue_number=issue_number,
        github=github,
        provider=provider,
        context=context,
        repo_root=Path(repo_root or Path.cwd()).resolve(),
        output_path=Path(output_value) if output_value else None,
    )


def load_automerge_settings(environ: Optional[Mapping[str, str]] = None) -> AutomergeSettings:
    """Build the settings for the stale pull request merger."""
    env = os.environ if environ is None else environ
    github = _github_config(env)

    raw_days = env.get("INACTIVITY_DAYS")
    try:
        inactivity_days = float(raw_days) if raw_days else 7.0
    except ValueError as error:
        raise ConfigurationError(f"INACTIVITY_DAYS must be a number, got {raw_days!r}") from error
    if not math.isfinite(inactivity_days) or inactivity_days < 0:
        raise ConfigurationError(f"INACTIVITY_DAYS must be a non-negative number, got {raw_days!r}")

    return AutomergeSettings(
        github=github,
        required_label=env.get("REQUIRED_LABEL") or "ai-automerge-candidate",
        inactivity_days=inactivity_days,
        merge_method=env.get("MERGE_METHOD") or "squash",
        dry_run=(env.get("DRY_RUN") or "false").strip().lower() == "true",
    )


__all__ = [
    "AutomergeSettings",
    "ConfigurationError",
    "ContextLimits",
    "GitHubConfig",
    "ProviderConfig",
    "RunSettings",
    "context_limits_from_config",
    "load_automerge_settings",
    "load_config_file",
    "load_provider_config",
    "load_run_settings",
    "require_env",
]
