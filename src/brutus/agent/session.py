"""Wiring: build providers, registries and controllers from config.

Also runs several agents side by side. Agents share nothing but the
coordination status store; each one's turns stay strictly sequential.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from brutus.agent.controller import ConversationController, TurnResult
from brutus.core.errors import BrutusError, ConfigError
from brutus.tools.bash import BashTool
from brutus.tools.code_search import CodeSearchTool
from brutus.tools.coordination import BroadcastTool, ObserveAgentsTool
from brutus.tools.file_edit import FileEditTool
from brutus.tools.file_read import FileReadTool
from brutus.tools.list_files import ListFilesTool
from brutus.tools.registry import ToolRegistry

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from brutus.agent.approval import ApprovalGate
    from brutus.config.schema import BrutusConfig
    from brutus.coordination.broadcaster import (
        CoordinationBroadcaster,
        CoordinationObserver,
    )
    from brutus.providers.base import ModelProvider

logger = logging.getLogger(__name__)


def default_registry(
    config: BrutusConfig,
    *,
    broadcaster: CoordinationBroadcaster | None = None,
    observer: CoordinationObserver | None = None,
) -> ToolRegistry:
    """Registry with the built-in tools, rooted at the configured working dir."""
    root = config.general.working_dir
    registry = ToolRegistry()
    registry.register(
        FileReadTool(working_dir=root, max_file_size=config.tools.max_file_size)
    )
    registry.register(ListFilesTool(working_dir=root))
    registry.register(FileEditTool(working_dir=root))
    if config.tools.bash.enabled:
        registry.register(BashTool(config.tools.bash, working_dir=root))
    registry.register(CodeSearchTool(working_dir=root))
    if broadcaster is not None:
        registry.register(BroadcastTool(broadcaster))
    if observer is not None:
        registry.register(ObserveAgentsTool(observer))
    return registry


def load_system_prompt(config: BrutusConfig) -> str:
    """Contents of ``system_prompt_file`` if present, else ``system_prompt``."""
    path = Path(config.general.working_dir) / config.general.system_prompt_file
    try:
        return path.read_text(encoding="utf-8")
    except OSError:
        return config.general.system_prompt


def create_provider(config: BrutusConfig, *, model: str | None = None) -> ModelProvider:
    """Instantiate the configured provider.

    Raises:
        ConfigError: If the provider is unknown, disabled, or has no API key.
    """
    name = config.general.provider
    prov_config = config.providers.get(name)
    if prov_config is None or not prov_config.enabled:
        msg = f"Provider not configured or disabled: {name}"
        raise ConfigError(msg)

    if name == "anthropic":
        from brutus.core.retry import RetryConfig
        from brutus.providers.anthropic import DEFAULT_MODEL, AnthropicProvider

        if prov_config.api_key is None:
            msg = f"No API key for {name}; set {prov_config.api_key_env or 'api_key'}"
            raise ConfigError(msg)
        return AnthropicProvider(
            prov_config.api_key,
            model=model or prov_config.default_model or DEFAULT_MODEL,
            max_tokens=prov_config.max_tokens,
            retry=RetryConfig(max_retries=prov_config.max_retries),
        )

    msg = f"Unsupported provider: {name}"
    raise ConfigError(msg)


def create_agent(
    config: BrutusConfig,
    provider: ModelProvider,
    gate: ApprovalGate,
    *,
    agent_id: str | None = None,
    broadcaster: CoordinationBroadcaster | None = None,
    observer: CoordinationObserver | None = None,
    registry: ToolRegistry | None = None,
    **callbacks: Any,
) -> ConversationController:
    """Controller configured from ``config``.

    ``callbacks`` are passed through (``on_text``, ``on_tool_call``,
    ``on_tool_result``, ``on_error``).
    """
    if registry is None:
        registry = default_registry(config, broadcaster=broadcaster, observer=observer)
    return ConversationController(
        provider,
        registry,
        gate,
        agent_id=agent_id or config.general.agent_id,
        system_prompt=load_system_prompt(config),
        request_timeout=config.agent.request_timeout,
        approval_timeout=config.approval.timeout,
        max_tool_rounds=config.agent.max_tool_rounds,
        broadcaster=broadcaster if config.agent.broadcast_status else None,
        **callbacks,
    )


@dataclass
class AgentRunResult:
    """What one agent did during :func:`run_agents`."""

    agent_id: str
    turns: list[TurnResult] = field(default_factory=list)
    error: BrutusError | None = None
    duration: float = 0.0

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def final_text(self) -> str:
        return self.turns[-1].text if self.turns else ""


async def _drive(agent: ConversationController, messages: Sequence[str]) -> AgentRunResult:
    result = AgentRunResult(agent_id=agent.agent_id)
    start = time.monotonic()
    try:
        for msg in messages:
            result.turns.append(await agent.run_turn(msg))
    except BrutusError as e:
        logger.warning("Agent %s stopped early: %s", agent.agent_id, e)
        result.error = e
    result.duration = time.monotonic() - start
    return result


async def run_agents(
    plan: Mapping[ConversationController, Sequence[str]],
    *,
    concurrent: bool = True,
) -> list[AgentRunResult]:
    """Feed each agent its messages; agents run concurrently by default.

    A failing agent records its error and stops; the others carry on.
    Results come back in the plan's order.
    """
    if not concurrent:
        return [await _drive(agent, msgs) for agent, msgs in plan.items()]
    async with asyncio.TaskGroup() as tg:
        tasks = [tg.create_task(_drive(agent, msgs)) for agent, msgs in plan.items()]
    return [t.result() for t in tasks]
