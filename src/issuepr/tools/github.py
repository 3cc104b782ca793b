"""Small GitHub REST helper covering the endpoints the automation needs."""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from ..config import GitHubConfig

LOGGER = logging.getLogger(__name__)

API_VERSION = "2022-11-28"
PAGE_SIZE = 100

# (method, url, headers, body) -> (status, raw_response_text)
Transport = Callable[[str, str, Mapping[str, str], Optional[bytes]], Tuple[int, str]]


class GitHubError(RuntimeError):
    """Raised when the GitHub API returns a non-success status."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class GitHubClient:
    """Repository-scoped wrapper around ``https://api.github.com/repos/<owner>/<repo>``."""

    def __init__(self, config: GitHubConfig, *, transport: Optional[Transport] = None) -> None:
        self._config = config
        self._transport = transport or self._http_transport

    @property
    def repository(self) -> str:
        return self._config.repository

    def request(
        self,
        path: str,
        *,
        method: str = "GET",
        body: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """Call ``path`` relative to the repository and return the decoded JSON payload."""
        url = f"{self._config.api_url}/repos/{self._config.repository}{path}"
        headers: Dict[str, str] = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {self._config.token}",
            "X-GitHub-Api-Version": API_VERSION,
        }
        data: Optional[bytes] = None
        if body is not None:
            headers["Content-Type"] = "application/json"
            data = json.dumps(body).encode("utf-8")

        LOGGER.debug("GitHub %s %s", method, path)
        status, raw = self._transport(method, url, headers, data)

        payload: Any = None
        if raw:
            try:
                payload = json.loads(raw)
            except json.JSONDecodeError:
                payload = raw

        if not 200 <= status < 300:
            raise GitHubError(f"GitHub API {status} {path}: {json.dumps(payload)}", status=status)
        return payload

    def paginate(self, path: str) -> List[Any]:
        """Collect every page of a list endpoint."""
        results: List[Any] = []
        page = 1
        separator = "&" if "?" in path else "?"
        while True:
            chunk = self.request(f"{path}{separator}per_page={PAGE_SIZE}&page={page}")
            if not isinstance(chunk, list) or not chunk:
                break
            results.extend(chunk)
            if len(chunk) < PAGE_SIZE:
                break
            page += 1
        return results

    # ---------------------------------------------------------------- issues
    def get_issue(self, number: int) -> Dict[str, Any]:
        return self.request(f"/issues/{number}")

    def issue_comments(self, number: int) -> List[Any]:
        return self.paginate(f"/issues/{number}/comments")

    # ----------------------------------------------------------------- pulls
    def list_open_pulls(self) -> List[Any]:
        return self.paginate("/pulls?state=open")

    def pull_reviews(self, number: int) -> List[Any]:
        return self.paginate(f"/pulls/{number}/reviews")

    def review_comments(self, number: int) -> List[Any]:
        return self.paginate(f"/pulls/{number}/comments")

    def merge_pull(self, number: int, *, merge_method: str, commit_title: str) -> Any:
        return self.request(
            f"/pulls/{number}/merge",
            method="PUT",
            body={"merge_method": merge_method, "commit_title": commit_title},
        )

    # ------------------------------------------------------------- transport
    def _http_transport(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: Optional[bytes],
    ) -> Tuple[int, str]:
        request = urllib.request.Request(url, data=body, headers=dict(headers), method=method)
        try:
            with urllib.request.urlopen(request, timeout=self._config.timeout) as response:
                raw = response.read().decode("utf-8", errors="replace")
                status = getattr(response, "status", 200)
        except urllib.error.HTTPError as error:  # pragma: no cover - network-dependent
            return error.code, error.read().decode("utf-8", errors="replace")
        except TimeoutError as error:  # pragma: no cover - network-dependent
            raise GitHubError(f"GitHub API request timed out: {url}") from error
        except urllib.error.URLError as error:  # pragma: no cover - network-dependent
            raise GitHubError(f"Failed to reach GitHub API: {error.reason}") from error
        return status, raw


__all__ = ["API_VERSION", "GitHubClient", "GitHubError", "Transport"]
