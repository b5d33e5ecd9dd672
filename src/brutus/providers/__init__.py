"""Conversation model and provider adapters."""

from brutus.providers.base import (
    ContentBlock,
    Message,
    ModelProvider,
    Role,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)

__all__ = [
    "ContentBlock",
    "Message",
    "ModelProvider",
    "Role",
    "TextBlock",
    "ToolResultBlock",
    "ToolUseBlock",
]
