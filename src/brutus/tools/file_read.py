"""File read tool: reads file contents safely.

Paths are resolved against the agent's working directory. Binary files
and files above the size limit are rejected instead of being dumped
into the conversation.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from brutus.tools.base import input_schema, parse_input

MAX_FILE_SIZE = 100 * 1024  # 100KB


class ReadFileInput(BaseModel):
    path: str = Field(
        min_length=1,
        description="The relative or absolute path to the file to read.",
    )


def resolve_path(root: Path, path_str: str) -> Path:
    """Resolve ``path_str`` relative to ``root`` unless it is absolute."""
    path = Path(path_str).expanduser()
    if not path.is_absolute():
        path = root / path
    return path.resolve()


class FileReadTool:
    """Implements the :class:`Tool` protocol as ``read_file``."""

    def __init__(
        self,
        *,
        working_dir: str | Path = ".",
        max_file_size: int = MAX_FILE_SIZE,
    ) -> None:
        self._root = Path(working_dir).resolve()
        self._max_file_size = max_file_size

    @property
    def name(self) -> str:
        return "read_file"

    @property
    def description(self) -> str:
        return (
            "Read the contents of a file at the given path. Use this to examine "
            "source code, configuration files, or any text file."
        )

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return input_schema(ReadFileInput)

    async def execute(self, **kwargs: Any) -> str:
        """Read a file's contents.

        Raises:
            ValueError: If 'path' is missing, not a file, binary, or too large.
            FileNotFoundError: If the file does not exist.
        """
        args = parse_input(ReadFileInput, kwargs)
        resolved = resolve_path(self._root, args.path)

        if not resolved.exists():
            msg = f"File not found: {args.path}"
            raise FileNotFoundError(msg)
        if not resolved.is_file():
            msg = f"Not a regular file: {args.path}"
            raise ValueError(msg)

        size = resolved.stat().st_size
        if size > self._max_file_size:
            msg = f"File too large: {size} bytes (max {self._max_file_size} bytes)"
            raise ValueError(msg)

        data = resolved.read_bytes()
        if b"\x00" in data[:8192]:
            msg = f"Binary file cannot be read as text: {args.path}"
            raise ValueError(msg)
        return data.decode("utf-8", errors="replace")
