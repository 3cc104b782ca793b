"""Production client for OpenAI-compatible chat-completion endpoints (OpenRouter by default)."""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from typing import Any, Callable, Dict, Optional, Tuple

from ..config import ProviderConfig
from .llm_client import LLMClient, ProviderError, extract_message_content, truncate_payload

__all__ = ["ChatCompletionsClient", "Transport"]

LOGGER = logging.getLogger(__name__)

# Receives the JSON body, returns ``(status, raw_response_text)``.
Transport = Callable[[Dict[str, Any]], Tuple[int, str]]


class ChatCompletionsClient(LLMClient):
    """Thin adapter around a ``/chat/completions`` endpoint."""

    def __init__(self, config: ProviderConfig, *, transport: Optional[Transport] = None) -> None:
        super().__init__(model=config.model, max_tokens=config.max_tokens)
        self._config = config
        self._transport = transport or self._http_transport

    def _raw_invoke(self, payload: Dict[str, Any]) -> str:
        """Send the request and return the first choice's message content."""
        LOGGER.info(
            "Requesting completion from %s (model=%s, max_tokens=%s)",
            self._config.url,
            payload.get("model"),
            payload.get("max_tokens"),
        )
        status, raw = self._transport(payload)

        try:
            data = json.loads(raw) if raw else None
        except json.JSONDecodeError:
            data = None

        if not 200 <= status < 300:
            raise ProviderError(f"LLM API {status}: {truncate_payload(raw)}")
        if data is None:
            raise ProviderError(f"LLM API returned a non-JSON payload: {truncate_payload(raw)}")

        content = extract_message_content(data)
        if not content:
            raise ProviderError(f"LLM API returned no content: {truncate_payload(raw)}")
        return content

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._config.api_key}",
            "HTTP-Referer": self._config.referer,
            "X-Title": self._config.title,
        }

    def _http_transport(self, payload: Dict[str, Any]) -> Tuple[int, str]:
        """Default HTTP transport built on ``urllib``."""
        request = urllib.request.Request(
            self._config.url,
            data=json.dumps(payload).encode("utf-8"),
            headers=self._headers(),
            method="POST",
        )
        try:
            with urllib.request.urlopen(request, timeout=self._config.timeout) as response:
                raw = response.read().decode("utf-8", errors="replace")
                status = getattr(response, "status", 200)
        except urllib.error.HTTPError as error:  # pragma: no cover - network-dependent
            body = error.read().decode("utf-8", errors="replace")
            return error.code, body
        except TimeoutError as error:  # pragma: no cover - network-dependent
            raise ProviderError(
                f"LLM API timed out after {self._config.timeout:g}s"
            ) from error
        except urllib.error.URLError as error:  # pragma: no cover - network-dependent
            raise ProviderError(f"Failed to reach LLM endpoint: {error.reason}") from error
        return status, raw
