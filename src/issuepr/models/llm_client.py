"""Typed client base class shared by chat-completion integrations."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from dataclasses import MISSING, dataclass, fields, is_dataclass
from functools import lru_cache
from typing import Any, Callable, Dict, Generic, Optional, Sequence, Type, TypeVar

from pydantic import ValidationError
from pydantic.type_adapter import TypeAdapter

__all__ = [
    "JsonParseResult",
    "LLMClient",
    "LLMClientError",
    "LLMRequest",
    "MalformedOutputError",
    "ProviderError",
    "extract_message_content",
    "parse_json_loose",
    "truncate_payload",
]

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

_JSON_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.IGNORECASE | re.DOTALL)
_ERROR_PAYLOAD_LIMIT = 1000


class LLMClientError(RuntimeError):
    """Base error raised for chat-completion client failures."""


class ProviderError(LLMClientError):
    """Raised when the endpoint fails or returns no usable content."""


class MalformedOutputError(LLMClientError):
    """Raised when the model output cannot be interpreted as the expected JSON object."""


@dataclass(slots=True)
class LLMRequest(Generic[T]):
    """Typed request payload sent to a chat-completion endpoint."""

    prompt: str
    response_model: Type[T]
    system_prompt: Optional[str] = None
    model: Optional[str] = None
    temperature: float = 0.2
    max_tokens: Optional[int] = None

    def to_payload(self, default_model: str, default_max_tokens: int) -> Dict[str, Any]:
        """Render the JSON body for an OpenAI-compatible chat completion."""
        messages: list[Dict[str, str]] = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        messages.append({"role": "user", "content": self.prompt})
        return {
            "model": self.model or default_model,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens or default_max_tokens,
            "include_reasoning": False,
            "reasoning": {"effort": "none", "exclude": True},
            "messages": messages,
        }


@dataclass(frozen=True, slots=True)
class JsonParseResult:
    """Outcome of a single loose JSON parsing strategy."""

    strategy: str
    ok: bool
    value: Any = None
    error: Optional[str] = None


def _parse_direct(text: str) -> JsonParseResult:
    try:
        return JsonParseResult("direct", True, json.loads(text))
    except json.JSONDecodeError as error:
        return JsonParseResult("direct", False, error=str(error))


def _strip_json_fence(text: str) -> str:
    """Remove a Markdown code fence (optionally tagged ``json``) around ``text``."""
    match = _JSON_FENCE_RE.match(text)
    return match.group(1) if match else text


def _parse_unfenced(text: str) -> JsonParseResult:
    unfenced = _strip_json_fence(text)
    if unfenced == text:
        return JsonParseResult("unfenced", False, error="no code fence")
    try:
        return JsonParseResult("unfenced", True, json.loads(unfenced))
    except json.JSONDecodeError as error:
        return JsonParseResult("unfenced", False, error=str(error))


def _parse_brace_substring(text: str) -> JsonParseResult:
    # Known limitation: an unrelated balanced {...} in surrounding prose widens the slice.
    unfenced = _strip_json_fence(text)
    first = unfenced.find("{")
    last = unfenced.rfind("}")
    if first < 0 or last <= first:
        return JsonParseResult("brace", False, error="no JSON object found")
    try:
        return JsonParseResult("brace", True, json.loads(unfenced[first : last + 1]))
    except json.JSONDecodeError as error:
        return JsonParseResult("brace", False, error=str(error))


_PARSE_STRATEGIES: tuple[Callable[[str], JsonParseResult], ...] = (
    _parse_direct,
    _parse_unfenced,
    _parse_brace_substring,
)


def parse_json_loose(raw: Optional[str]) -> Any:
    """Decode model output that should be JSON but may be fenced or wrapped in prose.

    Strategies run in order (direct, de-fenced, first-``{``-to-last-``}``)
    and the first success wins.
    """
    text = str(raw or "").strip()
    failures: list[str] = []
    for strategy in _PARSE_STRATEGIES:
        result = strategy(text)
        if result.ok:
            return result.value
        failures.append(f"{result.strategy}: {result.error}")
    LOGGER.debug("Loose JSON parsing failed: %s", "; ".join(failures))
    raise MalformedOutputError(f"No JSON object found in model output: {text[:200]}")


def extract_message_content(payload: Any) -> str:
    """Return the text of the first completion choice in ``payload``."""
    if not isinstance(payload, Mapping):
        return ""
    choices = payload.get("choices")
    if not isinstance(choices, Sequence) or isinstance(choices, (str, bytes)) or not choices:
        return ""
    first = choices[0]
    if not isinstance(first, Mapping):
        return ""

    message = first.get("message")
    content: Any = None
    if isinstance(message, Mapping):
        content = message.get("content")
    if content is None:
        content = first.get("text")

    if isinstance(content, str):
        return content

    if isinstance(content, list):
        parts: list[str] = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, Mapping) and isinstance(part.get("text"), str):
                parts.append(part["text"])
            elif isinstance(part, Mapping) and isinstance(part.get("content"), str):
                parts.append(part["content"])
            else:
                parts.append("")
        return "\n".join(parts).strip()

    return ""


def truncate_payload(raw: str, limit: int = _ERROR_PAYLOAD_LIMIT) -> str:
    """Shorten raw provider payloads before embedding them in error messages."""
    return raw if len(raw) <= limit else raw[:limit]


class LLMClient:
    """High-level helper that enforces JSON responses and schema validation."""

    def __init__(self, model: str, *, max_tokens: int = 4000) -> None:
        self._model = model
        self._max_tokens = max_tokens

    @property
    def model(self) -> str:
        """Return the default model name configured for this client."""
        return self._model

    def invoke(self, request: LLMRequest[T]) -> T:
        """Send ``request`` once and return the validated response model."""
        payload = request.to_payload(self._model, self._max_tokens)
        content = self._raw_invoke(payload)
        data = parse_json_loose(content)
        if not isinstance(data, Mapping):
            raise MalformedOutputError(
                f"Model output decoded to {type(data).__name__}, expected a JSON object."
            )
        data = _coerce_to_model_schema(request.response_model, data)
        try:
            return _cached_type_adapter(request.response_model).validate_python(data)
        except ValidationError as error:
            raise MalformedOutputError(f"Model output failed validation: {error}") from error

    def _raw_invoke(self, payload: Dict[str, Any]) -> str:
        """Perform the transport call and return message content. Subclasses must implement."""
        raise NotImplementedError("Subclasses must implement _raw_invoke().")


def _coerce_to_model_schema(model: Type[Any], value: Mapping[str, Any]) -> Any:
    """Keep known dataclass fields, filling nulls with defaults and stringifying scalars."""
    if not is_dataclass(model):
        return dict(value)
    cleaned: dict[str, Any] = {}
    for field_info in fields(model):
        name = field_info.name
        raw = value.get(name)
        if raw is None:
            if field_info.default is not MISSING:
                cleaned[name] = field_info.default
            continue
        cleaned[name] = _coerce_scalar(raw)
    return cleaned


def _coerce_scalar(value: Any) -> Any:
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value)
    except (TypeError, ValueError):
        return str(value)


@lru_cache(maxsize=None)
def _cached_type_adapter(annotation: Any) -> TypeAdapter:
    """Reuse `TypeAdapter` instances across invocations."""
    return TypeAdapter(annotation)
