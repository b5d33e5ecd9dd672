"""Text-replacement edit tool.

Behaviour:

- missing file and empty ``old_str``: create the file with ``new_str``
- existing file and empty ``old_str``: append ``new_str``
- otherwise ``old_str`` must occur exactly once and is replaced
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from brutus.tools.base import input_schema, parse_input
from brutus.tools.file_read import resolve_path


class EditFileInput(BaseModel):
    path: str = Field(min_length=1, description="The path to the file to edit or create.")
    old_str: str = Field(
        default="",
        description=(
            "The exact text to find and replace. Must be unique in the file. "
            "Use empty string to create new file or append."
        ),
    )
    new_str: str = Field(description="The replacement text.")


class FileEditTool:
    """Implements the :class:`Tool` protocol as ``edit_file``."""

    def __init__(self, *, working_dir: str | Path = ".") -> None:
        self._root = Path(working_dir).resolve()

    @property
    def name(self) -> str:
        return "edit_file"

    @property
    def description(self) -> str:
        return (
            "Edit a file by replacing text. Provide the file path, the exact text "
            "to find (old_str), and the replacement text (new_str). If the file "
            "doesn't exist and old_str is empty, a new file will be created with "
            "new_str as content. The old_str must match exactly one location."
        )

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return input_schema(EditFileInput)

    async def execute(self, **kwargs: Any) -> str:
        args = parse_input(EditFileInput, kwargs)
        if args.old_str == args.new_str:
            msg = "old_str and new_str must be different"
            raise ValueError(msg)

        target = resolve_path(self._root, args.path)
        if not target.exists():
            if args.old_str:
                msg = f"File not found: {args.path}"
                raise FileNotFoundError(msg)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(args.new_str, encoding="utf-8")
            return f"Created file {args.path}"

        content = target.read_text(encoding="utf-8")
        if not args.old_str:
            target.write_text(content + args.new_str, encoding="utf-8")
            return "OK"

        count = content.count(args.old_str)
        if count == 0:
            msg = "old_str not found in file"
            raise ValueError(msg)
        if count > 1:
            msg = f"old_str found {count} times, must be unique"
            raise ValueError(msg)

        target.write_text(content.replace(args.old_str, args.new_str, 1), encoding="utf-8")
        return "OK"
