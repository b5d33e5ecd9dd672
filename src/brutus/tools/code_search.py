"""Code search tool backed by ripgrep, with grep or findstr as fallback."""

from __future__ import annotations

import asyncio
import shutil
import sys
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from brutus.tools.base import input_schema, parse_input
from brutus.tools.file_read import resolve_path

NO_MATCHES = "No matches found"


class CodeSearchInput(BaseModel):
    pattern: str = Field(
        min_length=1, description="The search pattern (regex supported with ripgrep)."
    )
    path: str = Field(
        default="",
        description="Directory or file to search in. Defaults to the working directory.",
    )
    file_type: str = Field(
        default="",
        pattern=r"^[A-Za-z0-9_+-]*$",
        description="File type or extension to filter by (e.g. 'go', 'js', 'py').",
    )
    case_sensitive: bool = Field(
        default=False, description="Whether the search is case sensitive."
    )


class CodeSearchTool:
    """Implements the :class:`Tool` protocol as ``code_search``.

    Output is ``path:line:text`` per match, paths relative to the working
    directory, cut off after ``max_results`` lines.
    """

    def __init__(
        self,
        *,
        working_dir: str | Path = ".",
        max_results: int = 50,
        timeout: float = 30.0,
    ) -> None:
        self._root = Path(working_dir).resolve()
        self._max_results = max_results
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "code_search"

    @property
    def description(self) -> str:
        return (
            "Search for patterns in code using ripgrep. Use this to find function "
            "definitions, variable usage, imports, or any text pattern across the "
            "codebase. Falls back to grep (findstr on Windows) if ripgrep is not "
            "available."
        )

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return input_schema(CodeSearchInput)

    async def execute(self, **kwargs: Any) -> str:
        """Run the search.

        Raises:
            ValueError: If the input is invalid or the path escapes the
                working directory.
            RuntimeError: If the search command fails or times out.
        """
        args = parse_input(CodeSearchInput, kwargs)
        target = resolve_path(self._root, args.path or ".")
        if not target.is_relative_to(self._root):
            msg = f"Path is outside the working directory: {args.path}"
            raise ValueError(msg)
        if not target.exists():
            msg = f"Path not found: {args.path}"
            raise ValueError(msg)
        rel = target.relative_to(self._root).as_posix()
        return await self._run(self.command(args, rel))

    def command(self, args: CodeSearchInput, path: str) -> list[str]:
        """argv for the best search program on this machine."""
        rg = shutil.which("rg")
        if rg is not None:
            argv = [rg, "--line-number", "--with-filename", "--color=never"]
            if not args.case_sensitive:
                argv.append("--ignore-case")
            if args.file_type:
                argv += ["--type", args.file_type]
            return [*argv, "--", args.pattern, path]

        if sys.platform == "win32":
            argv = ["findstr", "/S", "/N"]
            if not args.case_sensitive:
                argv.append("/I")
            mask = f"*.{args.file_type}" if args.file_type else "*"
            return [*argv, f"/C:{args.pattern}", str(Path(path) / mask)]

        argv = ["grep", "-r", "-n", "-E"]
        if not args.case_sensitive:
            argv.append("-i")
        if args.file_type:
            argv.append(f"--include=*.{args.file_type}")
        return [*argv, "--", args.pattern, path]

    async def _run(self, argv: list[str]) -> str:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=self._root,
        )
        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(), timeout=self._timeout
            )
        except TimeoutError:
            proc.kill()
            await proc.communicate()
            msg = f"Search timed out after {self._timeout:g} seconds"
            raise RuntimeError(msg) from None

        # grep-style exit codes: 1 means the search ran and found nothing
        if proc.returncode == 1:
            return NO_MATCHES
        if proc.returncode:
            detail = stderr.decode(errors="replace").strip()
            msg = f"search failed: exit status {proc.returncode}: {detail}"
            raise RuntimeError(msg)
        return self._limit(stdout.decode(errors="replace"))

    def _limit(self, output: str) -> str:
        lines = output.strip().splitlines()
        if not lines:
            return NO_MATCHES
        if len(lines) <= self._max_results:
            return "\n".join(lines)
        shown = "\n".join(lines[: self._max_results])
        return f"{shown}\n... (showing {self._max_results} of {len(lines)} matches)"
