"""Tool protocol and data types.

Defines the ``Tool`` protocol that all tool implementations must
satisfy, plus :class:`ToolDefinition` (the schema advertised to the
provider) and :func:`parse_input`, which tools use to validate the
model's JSON arguments against a pydantic input model.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, TypeVar, runtime_checkable

from pydantic import BaseModel, ValidationError

InputT = TypeVar("InputT", bound=BaseModel)


@dataclass(frozen=True, slots=True)
class ToolDefinition:
    """Schema definition for a tool, suitable for passing to providers."""

    name: str
    description: str
    parameters_schema: dict[str, Any]


@runtime_checkable
class Tool(Protocol):
    """Protocol that all tool implementations must satisfy."""

    @property
    def name(self) -> str:
        """Unique name for this tool."""
        ...

    @property
    def description(self) -> str:
        """Human-readable description of what the tool does."""
        ...

    @property
    def parameters_schema(self) -> dict[str, Any]:
        """JSON Schema for the tool's parameters."""
        ...

    async def execute(self, **kwargs: Any) -> str:
        """Execute the tool with the given arguments.

        Must be safe to call repeatedly. Malformed arguments are reported
        by raising, never by crashing the caller.

        Raises:
            Exception: On execution failure.
        """
        ...


def input_schema(model: type[BaseModel]) -> dict[str, Any]:
    """JSON Schema for a pydantic input model, without pydantic's title noise."""
    schema = model.model_json_schema()
    schema.pop("title", None)
    for prop in schema.get("properties", {}).values():
        prop.pop("title", None)
    schema["additionalProperties"] = False
    return schema


def parse_input(model: type[InputT], arguments: dict[str, Any]) -> InputT:
    """Validate tool arguments.

    Raises:
        ValueError: With a short, model-readable description of what is wrong.
    """
    try:
        return model.model_validate(arguments)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'input'}: {err['msg']}"
            for err in e.errors()
        )
        msg = f"invalid input: {problems}"
        raise ValueError(msg) from e
