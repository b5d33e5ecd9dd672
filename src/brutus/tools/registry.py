"""Tool registry: manages available tools.

Provides registration, lookup, listing, and execution of tools that
implement the :class:`Tool` protocol. A registry is filled once at
startup and then frozen; the agent loop only reads from it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from brutus.core.errors import ToolExecutionError, ToolNotFoundError
from brutus.tools.base import ToolDefinition

if TYPE_CHECKING:
    from brutus.tools.base import Tool

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Registry for managing available tools.

    Supports registration, lookup by name, listing definitions (for
    passing to provider APIs), and invoking a tool with model input.
    """

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}
        self._frozen = False

    def register(self, tool: Tool) -> None:
        """Register a tool.

        Raises:
            ValueError: If a tool with the same name is already registered.
            RuntimeError: If the registry has been frozen.
        """
        if self._frozen:
            msg = f"Registry is frozen; cannot register {tool.name}"
            raise RuntimeError(msg)
        if tool.name in self._tools:
            msg = f"Tool already registered: {tool.name}"
            raise ValueError(msg)
        self._tools[tool.name] = tool

    def freeze(self) -> None:
        """Disallow further registration."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, name: str) -> Tool:
        """Get a tool by name.

        Raises:
            ToolNotFoundError: If the tool is not registered.
        """
        try:
            return self._tools[name]
        except KeyError:
            raise ToolNotFoundError(name) from None

    def list_definitions(self) -> list[ToolDefinition]:
        """Return tool definitions for all registered tools.

        Suitable for passing to provider APIs as available tools.
        """
        return [
            ToolDefinition(
                name=t.name,
                description=t.description,
                parameters_schema=t.parameters_schema,
            )
            for t in self._tools.values()
        ]

    async def invoke(self, tool: Tool, arguments: Any) -> str:
        """Run ``tool`` with the model-provided ``arguments``.

        Raises:
            ToolExecutionError: If the input is not a JSON object or the
                tool raises.
        """
        if not isinstance(arguments, dict):
            cause = ValueError(
                f"input must be a JSON object, got {type(arguments).__name__}"
            )
            raise ToolExecutionError(tool.name, cause)
        try:
            return await tool.execute(**arguments)
        except Exception as exc:
            logger.debug("Tool %s failed: %s", tool.name, exc)
            raise ToolExecutionError(tool.name, exc) from exc

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def list_names(self) -> list[str]:
        """Return names of all registered tools."""
        return list(self._tools.keys())
