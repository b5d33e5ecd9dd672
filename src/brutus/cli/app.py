"""Main CLI application.

Click commands for brutus: chat, broadcast, peers, tools.
"""

from __future__ import annotations

import asyncio
import functools
import sys
from typing import TYPE_CHECKING

import click

from brutus import __version__
from brutus.config.loader import load_config
from brutus.core.errors import BrutusError, ConfigError

if TYPE_CHECKING:
    from brutus.cli.display import AgentDisplay
    from brutus.cli.prompts import TerminalPrompter
    from brutus.config.schema import BrutusConfig
    from brutus.coordination.records import PeerRecord, StatusNote


# ── Helpers ──────────────────────────────────────────────────────


def _error(msg: str) -> None:
    """Print an error message to stderr and exit."""
    click.echo(f"Error: {msg}", err=True)
    sys.exit(1)


def _load_config(config_path: str | None) -> BrutusConfig:
    """Load config and install logging, with user-friendly error handling."""
    from brutus.cli.logs import configure_logging

    try:
        config = load_config(path=config_path)
        configure_logging(config.logging)
    except ConfigError as e:
        _error(str(e))
        raise  # unreachable
    return config


async def _read_line(prompter: TerminalPrompter) -> str | None:
    """Prompt for the next user message; None when input ends."""
    return await prompter.ask("You")


# ── CLI group ────────────────────────────────────────────────────


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="brutus")
@click.option(
    "--config",
    "config_path",
    type=click.Path(),
    default=None,
    help="Path to config file.",
)
@click.pass_context
def cli(ctx: click.Context, config_path: str | None) -> None:
    """Tool-using coding agent with peer coordination."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# ── chat ─────────────────────────────────────────────────────────


@cli.command()
@click.option("--agent-id", default=None, help="Identifier broadcast to peers.")
@click.option("--model", default=None, help="Override the provider's model.")
@click.option("--yes", "approve_all", is_flag=True, help="Approve every tool call.")
@click.option(
    "--network/--no-network",
    default=None,
    help="Broadcast status over mDNS instead of status files.",
)
@click.pass_context
def chat(
    ctx: click.Context,
    agent_id: str | None,
    model: str | None,
    approve_all: bool,
    network: bool | None,
) -> None:
    """Start an interactive agent session."""
    config = _load_config(ctx.obj["config_path"])
    if approve_all:
        config.approval.approve_all = True
    if network is not None:
        config.coordination.use_network = network

    try:
        asyncio.run(_chat_async(config, agent_id=agent_id, model=model))
    except BrutusError as e:
        _error(str(e))


async def _chat_async(
    config: BrutusConfig, *, agent_id: str | None, model: str | None
) -> None:
    from brutus.agent.approval import ApprovalGate
    from brutus.agent.session import create_agent, create_provider
    from brutus.cli.display import AgentDisplay
    from brutus.cli.prompts import ConsoleApprover, TerminalPrompter
    from brutus.coordination.broadcaster import build_coordination

    display = AgentDisplay()
    provider = create_provider(config, model=model)
    broadcaster, observer = build_coordination(
        config.coordination, on_fallback=display.fallback
    )
    gate = ApprovalGate(
        auto_approve=config.approval.auto_approve,
        approve_all=config.approval.approve_all,
    )
    prompter = TerminalPrompter()
    ConsoleApprover(gate, prompter).attach()

    agent = create_agent(
        config,
        provider,
        gate,
        agent_id=agent_id,
        broadcaster=broadcaster,
        observer=observer,
        on_text=display.assistant_text,
        on_tool_call=display.tool_call,
        on_tool_result=display.tool_result,
        on_error=display.error,
    )
    display.banner(agent.agent_id, config.general.working_dir)
    try:
        await agent.run(functools.partial(_read_line, prompter))
    finally:
        await agent.stop()
        await broadcaster.close()


# ── broadcast ────────────────────────────────────────────────────


@cli.command()
@click.argument("agent_id")
@click.argument(
    "status", type=click.Choice(["idle", "working", "done", "stopped"])
)
@click.option("--task", default="", help="Current task description.")
@click.option("--action", default="", help="Last action taken.")
@click.option("--message", default="", help="Message for other agents.")
@click.option("--network", is_flag=True, help="Advertise over mDNS.")
@click.option(
    "--hold",
    type=float,
    default=0.0,
    help="Seconds to keep a network advertisement alive before exiting.",
)
@click.pass_context
def broadcast(
    ctx: click.Context,
    agent_id: str,
    status: str,
    task: str,
    action: str,
    message: str,
    network: bool,
    hold: float,
) -> None:
    """Publish a status record for AGENT_ID."""
    from brutus.cli.display import AgentDisplay

    config = _load_config(ctx.obj["config_path"])
    display = AgentDisplay()
    try:
        asyncio.run(
            _broadcast_async(
                config,
                display,
                {
                    "agent_id": agent_id,
                    "status": status,
                    "task": task,
                    "action": action,
                    "message": message or None,
                },
                network=network,
                hold=hold,
            )
        )
    except (BrutusError, ValueError, OSError) as e:
        _error(str(e))


async def _broadcast_async(
    config: BrutusConfig,
    display: AgentDisplay,
    fields: dict[str, str | None],
    *,
    network: bool,
    hold: float,
) -> None:
    from brutus.coordination.broadcaster import build_coordination
    from brutus.coordination.records import CoordinationRecord

    record = CoordinationRecord.model_validate(fields)
    broadcaster, _ = build_coordination(
        config.coordination, on_fallback=display.fallback
    )
    try:
        result = await broadcaster.publish(record, use_network=network)
        display.published(result)
        if result.transport == "discovery" and hold > 0:
            await asyncio.sleep(hold)
    finally:
        await broadcaster.close()


# ── peers ────────────────────────────────────────────────────────


@cli.command()
@click.option("--dir", "status_dir", default=None, help="Status directory to read.")
@click.option("--network", is_flag=True, help="Discover peers over mDNS.")
@click.option("--timeout", type=float, default=None, help="Discovery window (s).")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON.")
@click.pass_context
def peers(
    ctx: click.Context,
    status_dir: str | None,
    network: bool,
    timeout: float | None,
    as_json: bool,
) -> None:
    """Show the status of other agents."""
    from brutus.cli.display import AgentDisplay

    config = _load_config(ctx.obj["config_path"])
    display = AgentDisplay()
    try:
        found = asyncio.run(
            _peers_async(
                config, display, status_dir=status_dir, network=network, timeout=timeout
            )
        )
    except (BrutusError, OSError) as e:
        _error(str(e))
        return
    display.peers(found, as_json=as_json)


async def _peers_async(
    config: BrutusConfig,
    display: AgentDisplay,
    *,
    status_dir: str | None,
    network: bool,
    timeout: float | None,
) -> list[PeerRecord | StatusNote]:
    from brutus.coordination.broadcaster import build_coordination

    broadcaster, observer = build_coordination(
        config.coordination, on_fallback=display.fallback
    )
    try:
        return await observer.query(status_dir, use_network=network, timeout=timeout)
    finally:
        await broadcaster.close()


# ── tools ────────────────────────────────────────────────────────


@cli.command(name="tools")
@click.pass_context
def tools_cmd(ctx: click.Context) -> None:
    """List the tools an agent session registers."""
    from brutus.agent.session import default_registry
    from brutus.cli.display import AgentDisplay
    from brutus.coordination.broadcaster import build_coordination

    config = _load_config(ctx.obj["config_path"])
    broadcaster, observer = build_coordination(config.coordination)
    registry = default_registry(config, broadcaster=broadcaster, observer=observer)
    AgentDisplay().tools(registry.list_definitions())
