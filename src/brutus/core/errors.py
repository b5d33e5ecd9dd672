"""Exception hierarchy for brutus.

Every module imports from here. The hierarchy is:

    BrutusError
    ├── ProviderError(provider_id)
    │   ├── ProviderAuthError
    │   ├── ProviderRateLimitError(retry_after)
    │   ├── ProviderTimeoutError
    │   ├── ProviderOverloadedError
    │   └── ModelNotFoundError
    ├── ToolError
    │   ├── ToolNotFoundError(tool_name)
    │   ├── ToolExecutionError(tool_name, cause)
    │   └── ApprovalDeniedError(tool_name, reason)
    ├── ConversationError
    │   ├── ConversationStateError
    │   └── ToolRoundLimitError(max_rounds)
    ├── CoordinationError
    │   ├── TransportError(transport)
    │   └── MalformedRecordError(source)
    └── ConfigError

Only ``ProviderError`` ends a turn. Tool errors are turned into error
tool results, transport errors trigger the file fallback, and malformed
records are skipped by queries.
"""

from __future__ import annotations


class BrutusError(Exception):
    """Base exception for all brutus errors."""


# ─── Provider Errors ──────────────────────────────────────────


class ProviderError(BrutusError):
    """Base for provider-related errors."""

    def __init__(self, provider_id: str, message: str) -> None:
        self.provider_id = provider_id
        super().__init__(f"[{provider_id}] {message}")


class ProviderAuthError(ProviderError):
    """Invalid or missing API key."""


class ProviderRateLimitError(ProviderError):
    """Rate limit exceeded. Includes retry_after if available."""

    def __init__(self, provider_id: str, retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        msg = "Rate limited"
        if retry_after is not None:
            msg += f" (retry after {retry_after}s)"
        super().__init__(provider_id, msg)


class ProviderTimeoutError(ProviderError):
    """Model call timed out."""


class ProviderOverloadedError(ProviderError):
    """Provider is overloaded (529, 503)."""


class ModelNotFoundError(ProviderError):
    """Requested model not available from this provider."""


# ─── Tool Errors ──────────────────────────────────────────────


class ToolError(BrutusError):
    """Base for failures reported back to the model as tool results."""


class ToolNotFoundError(ToolError):
    """The model asked for a tool that is not registered."""

    def __init__(self, tool_name: str) -> None:
        self.tool_name = tool_name
        super().__init__(f"Tool not found: {tool_name}")


class ToolExecutionError(ToolError):
    """A tool raised while executing."""

    def __init__(self, tool_name: str, cause: BaseException) -> None:
        self.tool_name = tool_name
        self.cause = cause
        super().__init__(f"Tool execution error: {cause}")


class ApprovalDeniedError(ToolError):
    """The operator (or a timeout) refused a tool call."""

    def __init__(self, tool_name: str, reason: str) -> None:
        self.tool_name = tool_name
        self.reason = reason
        super().__init__(reason)


# ─── Conversation Errors ──────────────────────────────────────


class ConversationError(BrutusError):
    """Base for agent loop errors."""


class ConversationStateError(ConversationError):
    """Illegal state transition in the turn state machine."""


class ToolRoundLimitError(ConversationError):
    """A single turn requested tools more times than allowed."""

    def __init__(self, max_rounds: int) -> None:
        self.max_rounds = max_rounds
        super().__init__(f"Tool round limit exceeded ({max_rounds} rounds)")


# ─── Coordination Errors ──────────────────────────────────────


class CoordinationError(BrutusError):
    """Base for peer coordination errors."""


class TransportError(CoordinationError):
    """Network registration or browsing failed."""

    def __init__(self, transport: str, message: str) -> None:
        self.transport = transport
        super().__init__(f"[{transport}] {message}")


class MalformedRecordError(CoordinationError):
    """A status document or service entry could not be decoded."""

    def __init__(self, source: str, message: str) -> None:
        self.source = source
        super().__init__(f"{source}: {message}")


# ─── Configuration Errors ─────────────────────────────────────


class ConfigError(BrutusError):
    """Invalid configuration."""
