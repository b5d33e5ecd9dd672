"""Shell tool: runs a command in a subprocess.

Timeouts and output truncation keep a runaway command from stalling the
agent loop or flooding the conversation.
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from brutus.tools.base import input_schema, parse_input

if TYPE_CHECKING:
    from brutus.config.schema import BashConfig


class BashInput(BaseModel):
    command: str = Field(min_length=1, description="The shell command to execute.")


class BashTool:
    """Implements the :class:`Tool` protocol as ``bash``."""

    def __init__(
        self,
        config: BashConfig | None = None,
        *,
        working_dir: str | Path = ".",
    ) -> None:
        from brutus.config.schema import BashConfig as _BashConfig

        self._config = config or _BashConfig()
        self._cwd = Path(working_dir).resolve()

    @property
    def name(self) -> str:
        return "bash"

    @property
    def description(self) -> str:
        return (
            "Execute a shell command and return its output. Use this for running "
            "builds, tests, git commands, or any other shell operations."
        )

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return input_schema(BashInput)

    async def execute(self, **kwargs: Any) -> str:
        """Run the command; a non-zero exit is reported in the output, not raised.

        Raises:
            ValueError: If 'command' is missing.
            RuntimeError: If the shell tool is disabled.
        """
        if not self._config.enabled:
            msg = "Shell execution is disabled. Set tools.bash.enabled=true in config."
            raise RuntimeError(msg)
        args = parse_input(BashInput, kwargs)
        return await self._run(args.command)

    def _argv(self, command: str) -> list[str]:
        if sys.platform == "win32":
            return ["cmd", "/C", command]
        return ["bash", "-c", command]

    async def _run(self, command: str) -> str:
        proc = await asyncio.create_subprocess_exec(
            *self._argv(command),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            cwd=self._cwd,
        )
        try:
            stdout, _ = await asyncio.wait_for(
                proc.communicate(), timeout=self._config.timeout
            )
        except TimeoutError:
            proc.kill()
            await proc.communicate()
            return f"Command timed out after {self._config.timeout} seconds."

        output = stdout.decode(errors="replace").strip()
        if proc.returncode:
            return self._truncate(
                f"Command failed: exit status {proc.returncode}\nOutput: {output}"
            )
        return self._truncate(output)

    def _truncate(self, text: str) -> str:
        limit = self._config.max_output
        if len(text) <= limit:
            return text
        half = limit // 2
        return (
            text[:half]
            + f"\n\n... [truncated {len(text) - limit} chars] ...\n\n"
            + text[-half:]
        )
