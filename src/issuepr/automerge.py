"""Merge labelled AI pull requests once humans have stopped interacting with them."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, List, Mapping, Optional

from .config import AutomergeSettings
from .tools.github import GitHubClient, GitHubError

LOGGER = logging.getLogger(__name__)

MAX_COMMIT_TITLE_CHARS = 240


@dataclass(frozen=True, slots=True)
class MergeDecision:
    """What happened to one candidate pull request."""

    number: int
    title: str
    action: str  # "merged", "dry-run", "skipped-recent", "failed"
    detail: str = ""


def is_human_user(user: Any) -> bool:
    if not isinstance(user, Mapping) or not user.get("login"):
        return False
    if user.get("type") == "Bot":
        return False
    return not str(user["login"]).endswith("[bot]")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a GitHub ISO-8601 timestamp; unparsable values yield ``None``."""
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def latest_human_activity(
    created_at: datetime,
    issue_comments: Iterable[Any],
    reviews: Iterable[Any],
    review_comments: Iterable[Any],
) -> datetime:
    """Return the newest human comment/review time, never earlier than ``created_at``."""
    latest = created_at

    def consider(item: Any, *keys: str) -> None:
        nonlocal latest
        if not isinstance(item, Mapping) or not is_human_user(item.get("user")):
            return
        # First non-empty key wins even when it does not parse.
        raw = next((item.get(key) for key in keys if item.get(key)), None)
        stamp = parse_timestamp(raw)
        if stamp is not None and stamp > latest:
            latest = stamp

    for comment in issue_comments:
        consider(comment, "created_at")
    for review in reviews:
        consider(review, "submitted_at", "created_at")
    for comment in review_comments:
        consider(comment, "created_at")
    return latest


def has_label(issue: Mapping[str, Any], required: str) -> bool:
    labels: List[str] = []
    for label in issue.get("labels") or []:
        if isinstance(label, str):
            labels.append(label)
        elif isinstance(label, Mapping) and isinstance(label.get("name"), str):
            labels.append(label["name"])
    return required in labels


class StaleMerger:
    """Scans open pull requests and merges the stale, labelled ones."""

    def __init__(self, settings: AutomergeSettings, *, github: GitHubClient) -> None:
        self._settings = settings
        self._github = github

    @classmethod
    def from_settings(cls, settings: AutomergeSettings) -> "StaleMerger":
        return cls(settings, github=GitHubClient(settings.github))

    def run(self, *, now: Optional[datetime] = None) -> List[MergeDecision]:
        settings = self._settings
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=settings.inactivity_days)
        LOGGER.info(
            "Scanning open PRs in %s for label '%s' with %g days inactivity.",
            self._github.repository,
            settings.required_label,
            settings.inactivity_days,
        )

        decisions: List[MergeDecision] = []
        for pull in self._github.list_open_pulls():
            if not isinstance(pull, Mapping) or pull.get("draft"):
                continue
            number = int(pull["number"])
            title = str(pull.get("title") or "")

            if not has_label(self._github.get_issue(number), settings.required_label):
                continue

            created_at = parse_timestamp(pull.get("created_at")) or datetime.min.replace(
                tzinfo=timezone.utc
            )
            latest = latest_human_activity(
                created_at,
                self._github.issue_comments(number),
                self._github.pull_reviews(number),
                self._github.review_comments(number),
            )
            if latest > cutoff:
                LOGGER.info(
                    "Skipping PR #%d; recent human comment/review at %s.", number, latest.isoformat()
                )
                decisions.append(MergeDecision(number, title, "skipped-recent", latest.isoformat()))
                continue

            decisions.append(self._merge(number, title))
        return decisions

    def _merge(self, number: int, title: str) -> MergeDecision:
        if self._settings.dry_run:
            LOGGER.info("[dry-run] Would merge PR #%d (%s)", number, title)
            return MergeDecision(number, title, "dry-run")
        commit_title = f"Auto-merge: #{number} {title}"[:MAX_COMMIT_TITLE_CHARS]
        try:
            self._github.merge_pull(
                number,
                merge_method=self._settings.merge_method,
                commit_title=commit_title,
            )
        except GitHubError as error:
            LOGGER.warning("Could not merge PR #%d: %s", number, error)
            return MergeDecision(number, title, "failed", str(error))
        LOGGER.info("Merged PR #%d (%s)", number, title)
        return MergeDecision(number, title, "merged")


__all__ = [
    "MergeDecision",
    "StaleMerger",
    "has_label",
    "is_human_user",
    "latest_human_activity",
    "parse_timestamp",
]
