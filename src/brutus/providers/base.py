"""Conversation data model and the provider interface.

A reply from the model is a :class:`Message` whose content is an ordered
tuple of blocks drawn from a closed union (:data:`ContentBlock`). The
agent loop dispatches on that union with ``match`` so an unhandled block
type is a type-checker error rather than a silent skip.

Data classes are immutable (frozen dataclasses with slots): once a
message is appended to a conversation it never changes.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence

    from brutus.tools.base import ToolDefinition


class Role(enum.StrEnum):
    """Author of a message."""

    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True, slots=True)
class TextBlock:
    """Plain text shown to the user."""

    text: str


@dataclass(frozen=True, slots=True)
class ToolUseBlock:
    """A tool invocation requested by the model.

    ``id`` is assigned by the provider and must come back verbatim on the
    matching :class:`ToolResultBlock`.
    """

    id: str
    name: str
    input: Any = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ToolResultBlock:
    """Outcome of one tool invocation."""

    tool_use_id: str
    content: str
    is_error: bool = False


ContentBlock = TextBlock | ToolUseBlock | ToolResultBlock


@dataclass(frozen=True, slots=True)
class Message:
    """A single conversation message."""

    role: Role
    content: tuple[ContentBlock, ...] = ()

    @classmethod
    def user(cls, text: str) -> Message:
        return cls(role=Role.USER, content=(TextBlock(text),))

    @classmethod
    def assistant(cls, *blocks: ContentBlock) -> Message:
        return cls(role=Role.ASSISTANT, content=tuple(blocks))

    @classmethod
    def tool_results(cls, results: Sequence[ToolResultBlock]) -> Message:
        return cls(role=Role.TOOL, content=tuple(results))

    @property
    def text(self) -> str:
        """Concatenated text of all text blocks."""
        return "".join(b.text for b in self.content if isinstance(b, TextBlock))

    @property
    def tool_uses(self) -> list[ToolUseBlock]:
        """Tool-use blocks in the order they appear."""
        return [b for b in self.content if isinstance(b, ToolUseBlock)]


@runtime_checkable
class ModelProvider(Protocol):
    """Protocol that all provider adapters must satisfy.

    Implementations are stateless: they hold connection config but no
    conversation state. The agent loop owns the history.
    """

    @property
    def provider_id(self) -> str:
        """Unique identifier for this provider (e.g. 'anthropic')."""
        ...

    async def complete(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
        *,
        system: str | None = None,
    ) -> Message:
        """Send the full history and return the assistant reply.

        The reply's content must decompose into :class:`TextBlock` and
        :class:`ToolUseBlock` items.

        Raises ProviderError on failure.
        """
        ...
