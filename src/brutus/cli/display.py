"""Rich display for agent sessions.

Renders assistant text, tool calls and results, peer tables, and
transport fallbacks. Accepts an optional
:class:`~rich.console.Console` for dependency injection in tests.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from brutus.coordination.records import StatusNote

if TYPE_CHECKING:
    from collections.abc import Sequence

    from brutus.coordination.discovery import FallbackEvent
    from brutus.coordination.file_transport import PublishResult
    from brutus.coordination.records import PeerRecord
    from brutus.core.errors import BrutusError
    from brutus.providers.base import ToolResultBlock, ToolUseBlock
    from brutus.tools.base import ToolDefinition

_TRUNCATE_LEN = 500


def _truncate(text: str, limit: int = _TRUNCATE_LEN) -> str:
    """Truncate text to *limit* characters with an ellipsis."""
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + " ..."


class AgentDisplay:
    """Terminal rendering for one interactive session."""

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console()

    @property
    def console(self) -> Console:
        return self._console

    def banner(self, agent_id: str, working_dir: str) -> None:
        self._console.print(
            Panel(
                f"Agent [bold]{agent_id}[/bold]\n"
                f"[dim]Working in: {working_dir}\n"
                "Type 'quit' or 'exit' to end session[/dim]",
                title="[bold magenta]BRUTUS[/bold magenta]",
                border_style="magenta",
            )
        )

    def assistant_text(self, text: str) -> None:
        self._console.print(f"[bold yellow]BRUTUS[/bold yellow]: {escape(text)}")

    def tool_call(self, use: ToolUseBlock) -> None:
        self._console.print(f"[cyan]\\[tool][/cyan] {use.name}")

    def tool_result(self, use: ToolUseBlock, result: ToolResultBlock) -> None:
        if result.is_error:
            self._console.print(
                f"[red]\\[error][/red] {escape(_truncate(result.content))}"
            )
        else:
            self._console.print(
                f"[green]\\[result][/green] {escape(_truncate(result.content))}"
            )

    def error(self, err: BrutusError) -> None:
        self._console.print(f"[bold red]Error:[/bold red] {escape(str(err))}")

    def fallback(self, event: FallbackEvent) -> None:
        self._console.print(
            f"[yellow]Network discovery unavailable for {event.operation}; "
            f"using status files ({escape(event.reason)})[/yellow]"
        )

    def published(self, result: PublishResult) -> None:
        self._console.print(result.summary(), markup=False)

    def peers(self, peers: Sequence[PeerRecord | StatusNote], *, as_json: bool) -> None:
        if as_json:
            self._console.print_json(json.dumps([p.to_dict() for p in peers]))
            return
        if not peers:
            self._console.print("No agent broadcasts found")
            return

        table = Table(title="Agents")
        for col in ("Agent", "Status", "Task", "Action", "Updated", "Source"):
            table.add_column(col)
        notes: list[StatusNote] = []
        for peer in peers:
            if isinstance(peer, StatusNote):
                notes.append(peer)
                continue
            rec = peer.record
            source = (
                f"{peer.host}:{peer.port}" if peer.service_name is not None else "file"
            )
            table.add_row(
                rec.agent_id,
                rec.status.value,
                escape(rec.current_task),
                escape(rec.last_action),
                rec.updated_at.isoformat(),
                source,
            )
        self._console.print(table)
        for note in notes:
            self._console.print(
                Panel(escape(_truncate(note.content)), title=escape(note.file))
            )

    def tools(self, definitions: Sequence[ToolDefinition]) -> None:
        table = Table(title="Tools")
        table.add_column("Name", style="bold")
        table.add_column("Description")
        for td in definitions:
            table.add_row(td.name, td.description)
        self._console.print(table)
