"""Issue-to-patch orchestration: context, model call, patch apply with one retry, outputs."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .config import RunSettings
from .context_builder import ContextBuilder, RepositoryContext
from .issues import SUB_ISSUE_REASON, Issue, ensure_not_pull_request, has_sub_issue_syntax
from .models.chat_completions import ChatCompletionsClient
from .models.llm_client import LLMClient, LLMRequest
from .prompts import SYSTEM_PROMPT, render_retry_notice, render_user_prompt
from .reporter import RunOutputs
from .structured import GeneratedChange
from .tools.github import GitHubClient
from .tools.patch import PatchApplyError, apply_patch, strip_fences
from .tools.vcs import GitRepository

LOGGER = logging.getLogger(__name__)

MAX_PATCH_ATTEMPTS = 2
EMPTY_PATCH_REASON = "Model returned an empty patch."
NO_FILE_CHANGES_REASON = "Patch applied but produced no file changes."


@dataclass(frozen=True, slots=True)
class AttemptRecord:
    """Attempt number plus the apply error that triggered it (empty on the first attempt)."""

    number: int = 1
    previous_error: str = ""

    @property
    def retry_notice(self) -> str:
        return render_retry_notice(self.previous_error)

    def next(self, error: str) -> "AttemptRecord":
        return AttemptRecord(number=self.number + 1, previous_error=error)


def prompt_for_attempt(base_prompt: str, attempt: AttemptRecord) -> str:
    """Return the user prompt for ``attempt``."""
    return f"{base_prompt}{attempt.retry_notice}"


class IssueOrchestrator:
    """Runs one issue through the context, model, patch and reporting stages."""

    def __init__(
        self,
        settings: RunSettings,
        *,
        github: GitHubClient,
        client: LLMClient,
        repo: GitRepository,
        max_attempts: int = MAX_PATCH_ATTEMPTS,
    ) -> None:
        self._settings = settings
        self._github = github
        self._client = client
        self._repo = repo
        self._max_attempts = max_attempts

    @classmethod
    def from_settings(cls, settings: RunSettings) -> "IssueOrchestrator":
        return cls(
            settings,
            github=GitHubClient(settings.github),
            client=ChatCompletionsClient(settings.provider),
            repo=GitRepository.discover(settings.repo_root),
        )

    def fetch_issue(self) -> Issue:
        number = self._settings.issue_number
        issue = Issue.from_payload(self._github.get_issue(number), number=number)
        ensure_not_pull_request(issue)
        return issue

    def run(self) -> RunOutputs:
        """Execute the run and return its single terminal outcome."""
        issue = self.fetch_issue()
        LOGGER.info("Processing issue #%d: %s", issue.number, issue.title)

        if has_sub_issue_syntax(issue.body):
            LOGGER.info("Issue #%d uses sub-issue markup; skipping model call.", issue.number)
            return RunOutputs.no_change(SUB_ISSUE_REASON)

        context = ContextBuilder(self._repo, self._settings.context).build()
        return self.propose_change(issue, context)

    def propose_change(self, issue: Issue, context: RepositoryContext) -> RunOutputs:
        base_prompt = render_user_prompt(issue, context)
        attempt = AttemptRecord()
        while True:
            change = self._request_change(prompt_for_attempt(base_prompt, attempt))
            patch = strip_fences(change.patch)
            if not patch.strip():
                LOGGER.info("Model returned an empty patch on attempt %d.", attempt.number)
                return RunOutputs.no_change(change.pr_body or EMPTY_PATCH_REASON)

            error = self._try_apply(patch, attempt)
            if error is None:
                break
            if attempt.number >= self._max_attempts:
                raise PatchApplyError(
                    f"Patch apply failed after {self._max_attempts} attempts: {error}"
                )
            attempt = attempt.next(error)

        if not self._repo.has_changes():
            return RunOutputs.no_change(NO_FILE_CHANGES_REASON)

        outputs = RunOutputs.from_change(change, issue)
        LOGGER.info("Prepared branch %s for issue #%d.", outputs.branch_name, issue.number)
        return outputs

    def _request_change(self, prompt: str) -> GeneratedChange:
        request = LLMRequest(
            prompt=prompt,
            system_prompt=SYSTEM_PROMPT,
            response_model=GeneratedChange,
        )
        return self._client.invoke(request)

    def _try_apply(self, patch: str, attempt: AttemptRecord) -> Optional[str]:
        """Apply ``patch``; return the git error text on failure, ``None`` on success."""
        try:
            apply_patch(patch, repo_root=self._repo.root)
        except PatchApplyError as error:
            LOGGER.warning(
                "Patch attempt %d/%d failed to apply: %s",
                attempt.number,
                self._max_attempts,
                error,
            )
            return str(error)
        LOGGER.info("Patch attempt %d applied cleanly.", attempt.number)
        return None


__all__ = [
    "AttemptRecord",
    "EMPTY_PATCH_REASON",
    "IssueOrchestrator",
    "MAX_PATCH_ATTEMPTS",
    "NO_FILE_CHANGES_REASON",
    "prompt_for_attempt",
]
