"""Anthropic (Claude) provider adapter."""

from __future__ import annotations

import contextlib
import logging
from typing import TYPE_CHECKING, Any, assert_never

import anthropic

from brutus.core.errors import (
    ModelNotFoundError,
    ProviderAuthError,
    ProviderError,
    ProviderOverloadedError,
    ProviderRateLimitError,
    ProviderTimeoutError,
)
from brutus.core.retry import RetryConfig, retry_with_backoff
from brutus.providers.base import (
    ContentBlock,
    Message,
    Role,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from brutus.tools.base import ToolDefinition

logger = logging.getLogger(__name__)

PROVIDER_ID = "anthropic"
DEFAULT_MODEL = "claude-sonnet-4-5-20250929"


def _map_error(e: anthropic.APIError) -> ProviderError:
    """Map Anthropic SDK errors to the brutus error hierarchy."""
    if isinstance(e, anthropic.AuthenticationError):
        return ProviderAuthError(PROVIDER_ID, str(e))
    if isinstance(e, anthropic.RateLimitError):
        retry_after = None
        if getattr(e, "response", None) is not None:
            raw = e.response.headers.get("retry-after")
            if raw is not None:
                with contextlib.suppress(ValueError):
                    retry_after = float(raw)
        return ProviderRateLimitError(PROVIDER_ID, retry_after=retry_after)
    if isinstance(e, anthropic.APITimeoutError):
        return ProviderTimeoutError(PROVIDER_ID, str(e))
    if isinstance(e, anthropic.InternalServerError):
        return ProviderOverloadedError(PROVIDER_ID, str(e))
    if isinstance(e, anthropic.NotFoundError):
        return ModelNotFoundError(PROVIDER_ID, str(e))
    return ProviderError(PROVIDER_ID, str(e))


def _block_to_api(block: ContentBlock) -> dict[str, Any]:
    match block:
        case TextBlock():
            return {"type": "text", "text": block.text}
        case ToolUseBlock():
            return {
                "type": "tool_use",
                "id": block.id,
                "name": block.name,
                "input": block.input,
            }
        case ToolResultBlock():
            return {
                "type": "tool_result",
                "tool_use_id": block.tool_use_id,
                "content": block.content,
                "is_error": block.is_error,
            }
        case _:
            assert_never(block)


def build_messages(messages: Sequence[Message]) -> list[dict[str, Any]]:
    """Convert conversation history to the Messages API format.

    Tool-result messages travel as ``user`` turns, which is how the API
    expects them.
    """
    api_messages: list[dict[str, Any]] = []
    for msg in messages:
        role = "assistant" if msg.role is Role.ASSISTANT else "user"
        api_messages.append(
            {"role": role, "content": [_block_to_api(b) for b in msg.content]}
        )
    return api_messages


def build_tools(tools: Sequence[ToolDefinition]) -> list[dict[str, Any]]:
    return [
        {
            "name": td.name,
            "description": td.description,
            "input_schema": td.parameters_schema,
        }
        for td in tools
    ]


def parse_response(response: Any) -> Message:
    """Turn an SDK ``Message`` into an assistant :class:`Message`."""
    blocks: list[TextBlock | ToolUseBlock] = []
    for block in response.content:
        block_type = getattr(block, "type", None)
        if block_type == "text":
            blocks.append(TextBlock(block.text))
        elif block_type == "tool_use":
            blocks.append(ToolUseBlock(id=block.id, name=block.name, input=block.input))
        else:
            logger.debug("Ignoring %s block in Anthropic response", block_type)
    return Message.assistant(*blocks)


class AnthropicProvider:
    """Provider adapter for Anthropic's Claude models."""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 4096,
        retry: RetryConfig | None = None,
        client: anthropic.AsyncAnthropic | None = None,
    ) -> None:
        self._client = client or anthropic.AsyncAnthropic(api_key=api_key)
        self._model = model
        self._max_tokens = max_tokens
        self._retry = retry or RetryConfig()

    @property
    def provider_id(self) -> str:
        return PROVIDER_ID

    @property
    def model(self) -> str:
        return self._model

    async def complete(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
        *,
        system: str | None = None,
    ) -> Message:
        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "messages": build_messages(messages),
        }
        if system:
            kwargs["system"] = system
        if tools:
            kwargs["tools"] = build_tools(tools)

        async def _call() -> Any:
            try:
                return await self._client.messages.create(**kwargs)
            except anthropic.APIError as e:
                raise _map_error(e) from e

        response = await retry_with_backoff(_call, self._retry)
        return parse_response(response)
