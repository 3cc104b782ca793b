"""Convenience exports for the chat-completion client implementations."""

from .chat_completions import ChatCompletionsClient
from .llm_client import (
    LLMClient,
    LLMClientError,
    LLMRequest,
    MalformedOutputError,
    ProviderError,
    extract_message_content,
    parse_json_loose,
)

__all__ = [
    "ChatCompletionsClient",
    "LLMClient",
    "LLMClientError",
    "LLMRequest",
    "MalformedOutputError",
    "ProviderError",
    "extract_message_content",
    "parse_json_loose",
]
