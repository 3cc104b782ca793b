"""Prompt templates for the issue-to-patch request."""

from __future__ import annotations

from .context_builder import RepositoryContext
from .issues import Issue

SYSTEM_PROMPT = " ".join(
    [
        "You are a senior engineer creating minimal, correct git patches.",
        "Return ONLY JSON with keys: patch, pr_title, pr_body, commit_message, branch_suffix.",
        "patch must be a valid unified diff that applies to the provided repository snapshot.",
        "Do not include markdown fences.",
        "Prefer small, targeted edits and preserve existing style.",
        "If no code/content change is possible, return an empty patch and explain in pr_body.",
    ]
)


def render_user_prompt(issue: Issue, context: RepositoryContext) -> str:
    """Render the attempt-independent part of the user prompt."""
    return "\n".join(
        [
            f"Issue #{issue.number}: {issue.title}",
            "",
            "Issue body:",
            issue.body or "(empty)",
            "",
            "Project guidance (AGENTS.md excerpt):",
            context.guidance or "(none)",
            "",
            "Repository files:",
            "\n".join(context.file_list),
            "",
            "Repository content excerpt:",
            context.excerpt,
            "",
            "Generate the patch now.",
        ]
    )


def render_retry_notice(previous_error: str) -> str:
    """Suffix appended to the user prompt after a patch failed to apply."""
    if not previous_error:
        return ""
    return "\n".join(
        [
            "",
            f"Previous patch failed to apply: {previous_error}",
            "Generate a corrected unified diff with proper file headers and hunk markers.",
            "Do not include explanations or prose.",
        ]
    )


__all__ = ["SYSTEM_PROMPT", "render_retry_notice", "render_user_prompt"]
