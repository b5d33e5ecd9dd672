"""Terminal prompts for the chat session.

Standard input has exactly one reader, :class:`TerminalPrompter`. The chat
prompt and tool approval questions both go through it, one at a time. A
line is read by a background thread and handed to whichever prompt is
waiting. A prompt that is abandoned before its line arrives leaves the
read in place, so the operator's next line goes to the next prompt and
is never taken as an answer to a question that was already withdrawn.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import TYPE_CHECKING

import click

if TYPE_CHECKING:
    from collections.abc import Callable

    from brutus.agent.approval import ApprovalGate, ApprovalRequest

logger = logging.getLogger(__name__)

YES_ANSWERS = frozenset({"y", "yes"})


def _stdin_readline() -> str | None:
    line = click.get_text_stream("stdin").readline()
    if not line:
        return None
    return line.rstrip("\r\n")


class TerminalPrompter:
    """Shared line reader for every terminal prompt."""

    def __init__(self, readline: Callable[[], str | None] = _stdin_readline) -> None:
        self._readline = readline
        self._read: asyncio.Future[str | None] | None = None
        self._lock = asyncio.Lock()

    async def ask(self, prompt: str) -> str | None:
        """Show ``prompt`` and return the next line; None at end of input."""
        async with self._lock:
            click.echo(f"{prompt}: ", nl=False)
            if self._read is None:
                self._read = self._start_read()
            read = self._read
            try:
                return await asyncio.shield(read)
            finally:
                # a cancelled ask leaves an unfinished read for the next prompt
                if read.done():
                    self._read = None

    def _start_read(self) -> asyncio.Future[str | None]:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[str | None] = loop.create_future()

        def deliver(line: str | None, error: BaseException | None) -> None:
            if future.done():
                return
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(line)

        def worker() -> None:
            line: str | None = None
            error: BaseException | None = None
            try:
                line = self._readline()
            except Exception as e:
                error = e
            try:
                loop.call_soon_threadsafe(deliver, line, error)
            except RuntimeError:
                logger.debug("Event loop closed before a terminal line arrived")

        threading.Thread(target=worker, name="brutus-stdin", daemon=True).start()
        return future


class ConsoleApprover:
    """Asks the operator to approve tool calls on the terminal.

    Each question is withdrawn as soon as the gate stops waiting for its
    request, for example when the approval times out.
    """

    def __init__(self, gate: ApprovalGate, prompter: TerminalPrompter) -> None:
        self._gate = gate
        self._prompter = prompter
        self._asks: dict[str, asyncio.Task[None]] = {}

    def attach(self) -> None:
        self._gate.set_listener(self._on_request, on_resolved=self._on_resolved)

    def _on_request(self, req: ApprovalRequest) -> None:
        task = asyncio.get_running_loop().create_task(self._ask(req))
        self._asks[req.id] = task

    def _on_resolved(self, request_id: str) -> None:
        task = self._asks.pop(request_id, None)
        if task is not None and not task.done():
            task.cancel()

    async def _ask(self, req: ApprovalRequest) -> None:
        answer = await self._prompter.ask(
            f"[{req.agent_id}] run {req.tool_name} {req.arguments}? [y/N]"
        )
        approved = (answer or "").strip().lower() in YES_ANSWERS
        self._gate.respond(req.id, approved)
