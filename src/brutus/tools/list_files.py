"""Directory listing tool."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from brutus.tools.base import input_schema, parse_input
from brutus.tools.file_read import resolve_path

SKIP_DIRS = frozenset(
    {".git", ".devenv", "node_modules", "vendor", "__pycache__", ".venv"}
)


class ListFilesInput(BaseModel):
    path: str = Field(
        default="",
        description=(
            "The directory path to list. Defaults to the working directory "
            "if not provided."
        ),
    )


class ListFilesTool:
    """Implements the :class:`Tool` protocol as ``list_files``.

    Returns a JSON array of relative paths; directories end in ``/``.
    """

    def __init__(self, *, working_dir: str | Path = ".", max_entries: int = 2000) -> None:
        self._root = Path(working_dir).resolve()
        self._max_entries = max_entries

    @property
    def name(self) -> str:
        return "list_files"

    @property
    def description(self) -> str:
        return (
            "List files and directories at a given path. Use this to explore "
            "project structure and find relevant files."
        )

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return input_schema(ListFilesInput)

    async def execute(self, **kwargs: Any) -> str:
        args = parse_input(ListFilesInput, kwargs)
        base = resolve_path(self._root, args.path or ".")
        if not base.is_dir():
            msg = f"Not a directory: {args.path or '.'}"
            raise ValueError(msg)

        entries: list[str] = []
        for dirpath, dirnames, filenames in os.walk(base):
            dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRS)
            rel_dir = Path(dirpath).relative_to(base)
            for d in dirnames:
                entries.append(f"{(rel_dir / d).as_posix()}/")
            for f in sorted(filenames):
                entries.append((rel_dir / f).as_posix())
            if len(entries) >= self._max_entries:
                entries = entries[: self._max_entries]
                break

        return json.dumps(entries)
