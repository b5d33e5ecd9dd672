"""Core errors and shared utilities."""

from brutus.core.errors import (
    ApprovalDeniedError,
    BrutusError,
    ConfigError,
    ConversationError,
    ConversationStateError,
    CoordinationError,
    MalformedRecordError,
    ModelNotFoundError,
    ProviderAuthError,
    ProviderError,
    ProviderOverloadedError,
    ProviderRateLimitError,
    ProviderTimeoutError,
    ToolError,
    ToolExecutionError,
    ToolNotFoundError,
    ToolRoundLimitError,
    TransportError,
)
from brutus.core.retry import RetryConfig, is_retryable, retry_with_backoff

__all__ = [
    "ApprovalDeniedError",
    "BrutusError",
    "ConfigError",
    "ConversationError",
    "ConversationStateError",
    "CoordinationError",
    "MalformedRecordError",
    "ModelNotFoundError",
    "ProviderAuthError",
    "ProviderError",
    "ProviderOverloadedError",
    "ProviderRateLimitError",
    "ProviderTimeoutError",
    "RetryConfig",
    "ToolError",
    "ToolExecutionError",
    "ToolNotFoundError",
    "ToolRoundLimitError",
    "TransportError",
    "is_retryable",
    "retry_with_backoff",
]
