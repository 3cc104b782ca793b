"""CI automation for issue-driven patches and stale AI pull request merging."""

__version__ = "0.1.0"
