from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from issuepr.config import (
    ConfigurationError,
    ContextLimits,
    load_automerge_settings,
    load_provider_config,
    load_run_settings,
)

BASE_ENV = {
    "ISSUE_NUMBER": "17",
    "GITHUB_TOKEN": "gh-token",
    "GITHUB_REPOSITORY": "octo/site",
    "OPENROUTER_API_KEY": "sk-test",
}


def test_defaults_are_applied(tmp_path: Path) -> None:
    settings = load_run_settings(BASE_ENV, repo_root=tmp_path)

    assert settings.issue_number == 17
    assert settings.provider.url == "https://openrouter.ai/api/v1/chat/completions"
    assert settings.provider.model == "minimax/minimax-m2.5"
    assert settings.provider.max_tokens == 4000
    assert settings.provider.referer == "https://github.com/octo/site"
    assert settings.provider.title == "octo/site ai issue bot"
    assert settings.context == ContextLimits()
    assert settings.output_path is None
    assert settings.repo_root == tmp_path.resolve()


@pytest.mark.parametrize("missing", sorted(BASE_ENV))
def test_missing_required_value_raises(missing: str) -> None:
    env = {key: value for key, value in BASE_ENV.items() if key != missing}

    with pytest.raises(ConfigurationError, match=missing):
        load_run_settings(env)


def test_non_numeric_issue_number_raises() -> None:
    with pytest.raises(ConfigurationError, match="ISSUE_NUMBER"):
        load_run_settings({**BASE_ENV, "ISSUE_NUMBER": "abc"})


def test_provider_overrides_are_normalised() -> None:
    config = load_provider_config(
        {
            "OPENROUTER_API_KEY": "sk",
            "LLM_API_BASE_URL": "https://llm.example.com/v1///",
            "LLM_CHAT_COMPLETIONS_PATH": "chat",
            "OPENROUTER_MODEL": "fallback/model",
            "LLM_MAX_TOKENS": "2500.9",
            "OPENROUTER_X_TITLE": "bot",
        }
    )

    assert config.url == "https://llm.example.com/v1/chat"
    assert config.model == "fallback/model"
    assert config.max_tokens == 2500
    assert config.title == "bot"
    assert config.referer == "https://github.com"


@pytest.mark.parametrize("raw", ["abc", "-5", "0", "inf", ""])
def test_invalid_max_tokens_falls_back_to_default(raw: str) -> None:
    config = load_provider_config({"OPENROUTER_API_KEY": "sk", "LLM_MAX_TOKENS": raw})

    assert config.max_tokens == 4000


def test_llm_model_takes_precedence() -> None:
    config = load_provider_config(
        {"OPENROUTER_API_KEY": "sk", "LLM_MODEL": "primary/model", "OPENROUTER_MODEL": "other"}
    )

    assert config.model == "primary/model"


def test_yaml_context_overrides(tmp_path: Path) -> None:
    config_path = tmp_path / "issuepr.yaml"
    config_path.write_text(
        yaml.safe_dump(
            {
                "context": {
                    "max_file_chars": 100,
                    "include_extensions": ["md", ".PY"],
                    "guidance_file": "CONTRIBUTING.md",
                }
            }
        ),
        encoding="utf-8",
    )

    settings = load_run_settings(BASE_ENV, config_path=config_path, repo_root=tmp_path)

    assert settings.context.max_file_chars == 100
    assert settings.context.include_extensions == (".md", ".py")
    assert settings.context.guidance_file == "CONTRIBUTING.md"
    assert settings.context.max_context_chars == 120_000


def test_invalid_yaml_context_raises(tmp_path: Path) -> None:
    config_path = tmp_path / "issuepr.yaml"
    config_path.write_text("context:\n  max_file_chars: -1\n", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="max_file_chars"):
        load_run_settings(BASE_ENV, config_path=config_path)


def test_output_path_comes_from_github_output(tmp_path: Path) -> None:
    target = tmp_path / "out"

    settings = load_run_settings({**BASE_ENV, "GITHUB_OUTPUT": str(target)})

    assert settings.output_path == target


def test_automerge_settings() -> None:
    settings = load_automerge_settings(
        {
            "GITHUB_TOKEN": "gh",
            "GITHUB_REPOSITORY": "octo/site",
            "INACTIVITY_DAYS": "3",
            "DRY_RUN": "TRUE",
        }
    )

    assert settings.inactivity_days == 3
    assert settings.dry_run
    assert settings.required_label == "ai-automerge-candidate"
    assert settings.merge_method == "squash"


def test_automerge_rejects_invalid_repository() -> None:
    with pytest.raises(ConfigurationError, match="GITHUB_REPOSITORY"):
        load_automerge_settings({"GITHUB_TOKEN": "gh", "GITHUB_REPOSITORY": "no-slash"})
