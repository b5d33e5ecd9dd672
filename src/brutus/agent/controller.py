"""The agent loop.

One :class:`ConversationController` drives one agent session:

1. wait for user input and append it as a ``user`` message
2. send the full history plus tool schemas to the provider
3. emit the reply's text; if it asks for tools, resolve every tool use
   in order (lookup, approval, execution), append one ``tool`` message
   holding exactly one result per tool use, and go back to 2
4. when a reply asks for no tools, the turn is done

Only provider failures end a turn early. An unknown tool, a denied
approval, or a failing tool becomes an error result the model can react
to.

History is append-only and is only extended after a step has fully
completed, so a cancelled turn never leaves a tool use without its
result.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, assert_never

from brutus.agent.approval import ApprovalDecision, ApprovalRequest
from brutus.agent.machine import ConversationState, TurnStateMachine
from brutus.coordination.records import AgentStatus, CoordinationRecord
from brutus.core.errors import (
    ApprovalDeniedError,
    BrutusError,
    ConversationError,
    ConversationStateError,
    ProviderError,
    ProviderTimeoutError,
    ToolError,
    ToolRoundLimitError,
)
from brutus.providers.base import (
    Message,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from brutus.agent.approval import ApprovalGate
    from brutus.coordination.broadcaster import CoordinationBroadcaster
    from brutus.providers.base import ModelProvider
    from brutus.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

CANCELLED_RESULT = "Tool call cancelled"
EXIT_COMMANDS = frozenset({"quit", "exit"})


@dataclass(frozen=True, slots=True)
class TurnResult:
    """Outcome of one completed turn."""

    text: str
    completions: int
    tool_results: tuple[ToolResultBlock, ...] = ()


class ConversationController:
    """Owns the conversation history of one agent and runs its turns."""

    def __init__(
        self,
        provider: ModelProvider,
        registry: ToolRegistry,
        gate: ApprovalGate,
        *,
        agent_id: str = "brutus",
        system_prompt: str | None = None,
        request_timeout: float = 120.0,
        approval_timeout: float = 300.0,
        max_tool_rounds: int = 25,
        broadcaster: CoordinationBroadcaster | None = None,
        on_text: Callable[[str], None] | None = None,
        on_tool_call: Callable[[ToolUseBlock], None] | None = None,
        on_tool_result: Callable[[ToolUseBlock, ToolResultBlock], None] | None = None,
        on_error: Callable[[BrutusError], None] | None = None,
    ) -> None:
        self._provider = provider
        self._registry = registry
        self._registry.freeze()
        self._gate = gate
        self._agent_id = agent_id
        self._system_prompt = system_prompt
        self._request_timeout = request_timeout
        self._approval_timeout = approval_timeout
        self._max_tool_rounds = max_tool_rounds
        self._broadcaster = broadcaster
        self._on_text = on_text
        self._on_tool_call = on_tool_call
        self._on_tool_result = on_tool_result
        self._on_error = on_error

        self._history: list[Message] = []
        self._machine = TurnStateMachine()

    @property
    def agent_id(self) -> str:
        return self._agent_id

    @property
    def state(self) -> ConversationState:
        return self._machine.state

    @property
    def history(self) -> tuple[Message, ...]:
        """Read-only snapshot of the conversation so far."""
        return tuple(self._history)

    # ── Session loop ──────────────────────────────────────────

    async def run(self, get_input: Callable[[], Awaitable[str | None]]) -> None:
        """Run turns until input ends, the user types quit/exit, or cancellation.

        Provider failures and tool-round limits are reported through
        ``on_error`` and the session keeps waiting for input.
        """
        while True:
            line = await get_input()
            if line is None:
                logger.debug("Input stream ended")
                break
            text = line.strip()
            if not text:
                continue
            if text.lower() in EXIT_COMMANDS:
                break
            try:
                await self.run_turn(text)
            except (ProviderError, ConversationError) as e:
                logger.error("Turn failed for %s: %s", self._agent_id, e)
                if self._on_error is not None:
                    self._on_error(e)

    async def stop(self) -> None:
        """Announce that this agent has stopped."""
        await self._publish_status(AgentStatus.STOPPED, "", "Agent stopped")

    # ── Turn ──────────────────────────────────────────────────

    async def run_turn(self, user_text: str) -> TurnResult:
        """Process one user message to a final, tool-free reply.

        Raises:
            ProviderError: If a completion request fails or times out.
            ToolRoundLimitError: If the model keeps requesting tools past
                ``max_tool_rounds``.
            ConversationStateError: If another turn is in progress.
        """
        if self._machine.state is not ConversationState.AWAITING_USER_INPUT:
            msg = f"Turn already in progress ({self._machine.state.value})"
            raise ConversationStateError(msg)

        self._history.append(Message.user(user_text))
        await self._publish_status(
            AgentStatus.WORKING, "Processing request", "Starting inference"
        )

        completions = 0
        results: list[ToolResultBlock] = []
        try:
            while True:
                self._machine.transition(ConversationState.REQUESTING_COMPLETION)
                reply = await self._request_completion()
                completions += 1
                self._history.append(reply)

                self._machine.transition(ConversationState.INSPECTING_RESPONSE)
                tool_uses = self._inspect(reply)
                if not tool_uses:
                    self._machine.transition(ConversationState.DONE)
                    return TurnResult(
                        text=reply.text,
                        completions=completions,
                        tool_results=tuple(results),
                    )

                self._machine.transition(ConversationState.DISPATCHING_TOOLS)
                round_results = await self._dispatch(tool_uses)
                self._history.append(Message.tool_results(round_results))
                results.extend(round_results)

                if completions > self._max_tool_rounds:
                    raise ToolRoundLimitError(self._max_tool_rounds)
        finally:
            self._machine.reset()
            await self._publish_status(AgentStatus.IDLE, "", "Inference complete")

    async def _request_completion(self) -> Message:
        try:
            return await asyncio.wait_for(
                self._provider.complete(
                    self.history,
                    self._registry.list_definitions(),
                    system=self._system_prompt,
                ),
                timeout=self._request_timeout,
            )
        except TimeoutError as e:
            raise ProviderTimeoutError(
                self._provider.provider_id,
                f"no response within {self._request_timeout:g}s",
            ) from e

    def _inspect(self, reply: Message) -> list[ToolUseBlock]:
        """Emit text blocks as they appear and collect tool uses in order."""
        tool_uses: list[ToolUseBlock] = []
        for block in reply.content:
            match block:
                case TextBlock():
                    if block.text and self._on_text is not None:
                        self._on_text(block.text)
                case ToolUseBlock():
                    tool_uses.append(block)
                case ToolResultBlock():
                    logger.warning(
                        "Ignoring tool result %s inside an assistant reply",
                        block.tool_use_id,
                    )
                case _:
                    assert_never(block)
        return tool_uses

    # ── Tool dispatch ─────────────────────────────────────────

    async def _dispatch(self, tool_uses: list[ToolUseBlock]) -> list[ToolResultBlock]:
        """Resolve every tool use sequentially, one result each, same order."""
        results: list[ToolResultBlock] = []
        try:
            for use in tool_uses:
                results.append(await self._resolve(use))
        except asyncio.CancelledError:
            results.extend(
                ToolResultBlock(use.id, CANCELLED_RESULT, is_error=True)
                for use in tool_uses[len(results) :]
            )
            self._history.append(Message.tool_results(results))
            raise
        return results

    async def _resolve(self, use: ToolUseBlock) -> ToolResultBlock:
        if self._on_tool_call is not None:
            self._on_tool_call(use)
        await self._publish_status(AgentStatus.WORKING, f"Executing {use.name}", use.name)

        try:
            tool = self._registry.get(use.name)
            decision = await self._approve(use)
            if not decision.approved:
                raise ApprovalDeniedError(use.name, decision.reason)
            output = await self._registry.invoke(tool, use.input)
        except ToolError as e:
            logger.info("Tool %s (%s) failed: %s", use.name, use.id, e)
            result = ToolResultBlock(use.id, str(e), is_error=True)
        else:
            result = ToolResultBlock(use.id, output)

        if self._on_tool_result is not None:
            self._on_tool_result(use, result)
        return result

    async def _approve(self, use: ToolUseBlock) -> ApprovalDecision:
        req = ApprovalRequest(
            id=f"{self._agent_id}-{use.id}",
            agent_id=self._agent_id,
            tool_name=use.name,
            arguments=json.dumps(use.input),
        )
        return await self._gate.request(req, timeout=self._approval_timeout)

    # ── Status broadcasting ───────────────────────────────────

    async def _publish_status(self, status: AgentStatus, task: str, action: str) -> None:
        if self._broadcaster is None:
            return
        try:
            record = CoordinationRecord(
                agent_id=self._agent_id,
                status=status,
                current_task=task,
                last_action=action,
            )
            await self._broadcaster.publish(record)
        except (BrutusError, OSError, ValueError) as e:
            logger.warning("Could not publish status for %s: %s", self._agent_id, e)
