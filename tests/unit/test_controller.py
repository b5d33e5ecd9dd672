"""Tests for ConversationController: the turn loop and its invariants."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import pytest

from brutus.agent.approval import ApprovalGate
from brutus.agent.controller import CANCELLED_RESULT, ConversationController
from brutus.agent.machine import ConversationState
from brutus.coordination.broadcaster import CoordinationBroadcaster
from brutus.coordination.discovery import DiscoveryTransport
from brutus.coordination.records import AgentStatus
from brutus.core.errors import (
    ConversationStateError,
    ProviderAuthError,
    ProviderTimeoutError,
    ToolRoundLimitError,
)
from brutus.providers.base import Message, Role, ToolResultBlock, ToolUseBlock
from tests.fixtures.providers import ScriptedProvider, text_reply, tool_reply

if TYPE_CHECKING:
    from brutus.coordination.file_transport import FileTransport
    from brutus.tools.registry import ToolRegistry


def _controller(
    provider: ScriptedProvider,
    registry: ToolRegistry,
    gate: ApprovalGate,
    **kwargs: Any,
) -> ConversationController:
    return ConversationController(provider, registry, gate, agent_id="tester", **kwargs)


def _assert_paired(history: tuple[Message, ...]) -> None:
    """Every tool-use message is followed by one result per use, same order."""
    for i, msg in enumerate(history):
        uses = msg.tool_uses if msg.role is Role.ASSISTANT else []
        if not uses:
            continue
        follow = history[i + 1]
        assert follow.role is Role.TOOL
        results = [b for b in follow.content if isinstance(b, ToolResultBlock)]
        assert [r.tool_use_id for r in results] == [u.id for u in uses]


class TestPlainTurn:
    async def test_text_only_reply(self, registry: ToolRegistry, open_gate: ApprovalGate):
        provider = ScriptedProvider([text_reply("Hello there")])
        texts: list[str] = []
        ctrl = _controller(provider, registry, open_gate, on_text=texts.append)

        result = await ctrl.run_turn("hi")
        assert result.text == "Hello there"
        assert result.completions == 1
        assert texts == ["Hello there"]
        assert [m.role for m in ctrl.history] == [Role.USER, Role.ASSISTANT]
        assert ctrl.state is ConversationState.AWAITING_USER_INPUT

    async def test_history_and_tools_sent(self, registry: ToolRegistry, open_gate: ApprovalGate):
        provider = ScriptedProvider([text_reply("one"), text_reply("two")])
        ctrl = _controller(provider, registry, open_gate, system_prompt="be brief")
        await ctrl.run_turn("first")
        await ctrl.run_turn("second")
        second_call = provider.call_log[1]
        assert [m.text for m in second_call["messages"]] == ["first", "one", "second"]
        assert second_call["tools"] == ["echo", "explode"]
        assert second_call["system"] == "be brief"

    async def test_registry_frozen(self, registry: ToolRegistry, open_gate: ApprovalGate):
        _controller(ScriptedProvider(), registry, open_gate)
        assert registry.frozen is True


class TestToolRounds:
    async def test_single_tool_round(
        self, registry: ToolRegistry, open_gate: ApprovalGate, echo_tool: Any
    ):
        provider = ScriptedProvider(
            [
                tool_reply(("t1", "echo", {"text": "ping"}), text="Let me check"),
                text_reply("Done"),
            ]
        )
        calls: list[str] = []
        ctrl = _controller(
            provider,
            registry,
            open_gate,
            on_tool_call=lambda use: calls.append(use.name),
        )
        result = await ctrl.run_turn("go")

        assert result.text == "Done"
        assert result.completions == 2
        assert result.tool_results == (ToolResultBlock("t1", "ping"),)
        assert echo_tool.calls == [{"text": "ping"}]
        assert calls == ["echo"]
        assert [m.role for m in ctrl.history] == [
            Role.USER,
            Role.ASSISTANT,
            Role.TOOL,
            Role.ASSISTANT,
        ]
        _assert_paired(ctrl.history)

    async def test_multiple_uses_resolved_in_order(
        self, registry: ToolRegistry, open_gate: ApprovalGate, echo_tool: Any
    ):
        provider = ScriptedProvider(
            [
                tool_reply(
                    ("a", "echo", {"text": "1"}),
                    ("b", "echo", {"text": "2"}),
                    ("c", "echo", {"text": "3"}),
                ),
                text_reply("ok"),
            ]
        )
        ctrl = _controller(provider, registry, open_gate)
        result = await ctrl.run_turn("go")
        assert [r.content for r in result.tool_results] == ["1", "2", "3"]
        assert [c["text"] for c in echo_tool.calls] == ["1", "2", "3"]
        _assert_paired(ctrl.history)

    async def test_unknown_tool_becomes_error_result(
        self, registry: ToolRegistry, open_gate: ApprovalGate
    ):
        provider = ScriptedProvider(
            [tool_reply(("t1", "web_search", {"q": "x"})), text_reply("sorry")]
        )
        ctrl = _controller(provider, registry, open_gate)
        result = await ctrl.run_turn("go")
        (res,) = result.tool_results
        assert res.is_error is True
        assert res.content == "Tool not found: web_search"
        assert result.text == "sorry"

    async def test_tool_failure_becomes_error_result(
        self, registry: ToolRegistry, open_gate: ApprovalGate
    ):
        provider = ScriptedProvider([tool_reply(("t1", "explode", {})), text_reply("hm")])
        ctrl = _controller(provider, registry, open_gate)
        (res,) = (await ctrl.run_turn("go")).tool_results
        assert res == ToolResultBlock("t1", "Tool execution error: boom", is_error=True)

    async def test_non_object_input_becomes_error_result(
        self, registry: ToolRegistry, open_gate: ApprovalGate, echo_tool: Any
    ):
        provider = ScriptedProvider([tool_reply(("t1", "echo", "raw")), text_reply("hm")])
        ctrl = _controller(provider, registry, open_gate)
        (res,) = (await ctrl.run_turn("go")).tool_results
        assert res.is_error is True
        assert echo_tool.calls == []

    async def test_round_limit(self, registry: ToolRegistry, open_gate: ApprovalGate):
        provider = ScriptedProvider(
            [tool_reply((f"t{i}", "echo", {"text": str(i)})) for i in range(5)]
        )
        ctrl = _controller(provider, registry, open_gate, max_tool_rounds=2)
        with pytest.raises(ToolRoundLimitError):
            await ctrl.run_turn("loop forever")
        assert len(provider.call_log) == 3
        assert ctrl.state is ConversationState.AWAITING_USER_INPUT
        _assert_paired(ctrl.history)

    async def test_last_allowed_round_result_reaches_model(
        self, registry: ToolRegistry, open_gate: ApprovalGate
    ):
        provider = ScriptedProvider(
            [tool_reply(("t1", "echo", {"text": "once"})), text_reply("used it")]
        )
        ctrl = _controller(provider, registry, open_gate, max_tool_rounds=1)
        result = await ctrl.run_turn("one tool call")
        assert result.text == "used it"
        assert result.completions == 2
        assert provider.call_log[1]["messages"][-1].role is Role.TOOL


class TestApproval:
    async def test_denied_tool_is_not_invoked(self, registry: ToolRegistry, echo_tool: Any):
        gate = ApprovalGate()
        gate.set_listener(lambda req: gate.respond(req.id, False))
        provider = ScriptedProvider([tool_reply(("t1", "echo", {"text": "x"})), text_reply("ok")])
        ctrl = _controller(provider, registry, gate)

        (res,) = (await ctrl.run_turn("go")).tool_results
        assert res == ToolResultBlock(
            "t1", "Tool execution was denied by user.", is_error=True
        )
        assert echo_tool.calls == []

    async def test_auto_approved_tool_skips_prompt(
        self, registry: ToolRegistry, echo_tool: Any
    ):
        asked: list[str] = []
        gate = ApprovalGate(auto_approve=["echo"], on_request=lambda r: asked.append(r.id))
        provider = ScriptedProvider([tool_reply(("t1", "echo", {"text": "x"})), text_reply("ok")])
        await _controller(provider, registry, gate).run_turn("go")
        assert asked == []
        assert echo_tool.calls == [{"text": "x"}]

    async def test_request_carries_agent_and_arguments(self, registry: ToolRegistry):
        seen: list[Any] = []
        gate = ApprovalGate()

        def _listener(req: Any) -> None:
            seen.append(req)
            gate.respond(req.id, True)

        gate.set_listener(_listener)
        provider = ScriptedProvider([tool_reply(("t9", "echo", {"text": "x"})), text_reply("ok")])
        await _controller(provider, registry, gate).run_turn("go")
        (req,) = seen
        assert req.id == "tester-t9"
        assert req.agent_id == "tester"
        assert req.tool_name == "echo"
        assert req.arguments == '{"text": "x"}'

    async def test_approval_timeout_denies(self, registry: ToolRegistry, echo_tool: Any):
        provider = ScriptedProvider([tool_reply(("t1", "echo", {"text": "x"})), text_reply("ok")])
        ctrl = _controller(provider, registry, ApprovalGate(), approval_timeout=0.01)
        (res,) = (await ctrl.run_turn("go")).tool_results
        assert res.is_error is True
        assert "timed out" in res.content
        assert echo_tool.calls == []


class TestFailures:
    async def test_provider_error_ends_turn(
        self, registry: ToolRegistry, open_gate: ApprovalGate
    ):
        provider = ScriptedProvider([ProviderAuthError("scripted", "bad key"), text_reply("ok")])
        ctrl = _controller(provider, registry, open_gate)
        with pytest.raises(ProviderAuthError):
            await ctrl.run_turn("hi")
        assert ctrl.state is ConversationState.AWAITING_USER_INPUT
        assert [m.role for m in ctrl.history] == [Role.USER]

        # the session is still usable
        assert (await ctrl.run_turn("again")).text == "ok"

    async def test_request_timeout(self, registry: ToolRegistry, open_gate: ApprovalGate):
        provider = ScriptedProvider([text_reply("late")], delay=1.0)
        ctrl = _controller(provider, registry, open_gate, request_timeout=0.01)
        with pytest.raises(ProviderTimeoutError, match="no response within 0.01s"):
            await ctrl.run_turn("hi")
        assert ctrl.state is ConversationState.AWAITING_USER_INPUT

    async def test_concurrent_turn_rejected(
        self, registry: ToolRegistry, open_gate: ApprovalGate
    ):
        provider = ScriptedProvider([text_reply("slow")], delay=0.05)
        ctrl = _controller(provider, registry, open_gate)
        first = asyncio.create_task(ctrl.run_turn("one"))
        await asyncio.sleep(0.01)
        with pytest.raises(ConversationStateError):
            await ctrl.run_turn("two")
        assert (await first).text == "slow"


class _BlockingTool:
    def __init__(self) -> None:
        self.started = asyncio.Event()

    @property
    def name(self) -> str:
        return "block"

    @property
    def description(self) -> str:
        return "Never finishes"

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {"type": "object", "properties": {}}

    async def execute(self, **kwargs: Any) -> str:
        self.started.set()
        await asyncio.Event().wait()
        return "unreachable"


class TestCancellation:
    async def test_cancel_during_dispatch_keeps_pairing(self, open_gate: ApprovalGate):
        from brutus.tools.registry import ToolRegistry

        blocker = _BlockingTool()
        reg = ToolRegistry()
        reg.register(blocker)
        provider = ScriptedProvider(
            [tool_reply(("t1", "block", {}), ("t2", "block", {}))]
        )
        ctrl = _controller(provider, reg, open_gate)

        task = asyncio.create_task(ctrl.run_turn("go"))
        await blocker.started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert ctrl.state is ConversationState.AWAITING_USER_INPUT
        last = ctrl.history[-1]
        assert last.role is Role.TOOL
        assert [b.content for b in last.content] == [CANCELLED_RESULT, CANCELLED_RESULT]  # type: ignore[union-attr]
        _assert_paired(ctrl.history)

    async def test_cancel_during_completion_leaves_no_dangling_use(
        self, registry: ToolRegistry, open_gate: ApprovalGate
    ):
        provider = ScriptedProvider([text_reply("never")], delay=5)
        ctrl = _controller(provider, registry, open_gate)
        task = asyncio.create_task(ctrl.run_turn("go"))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert [m.role for m in ctrl.history] == [Role.USER]


class TestStatusBroadcast:
    async def test_publishes_working_then_idle(
        self,
        registry: ToolRegistry,
        open_gate: ApprovalGate,
        file_transport: FileTransport,
    ):
        published: list[tuple[AgentStatus, str]] = []
        broadcaster = CoordinationBroadcaster(
            file_transport, DiscoveryTransport(file_transport)
        )
        original = broadcaster.publish

        async def _spy(record: Any, **kwargs: Any) -> Any:
            published.append((record.status, record.last_action))
            return await original(record, **kwargs)

        broadcaster.publish = _spy  # type: ignore[method-assign]
        provider = ScriptedProvider([tool_reply(("t1", "echo", {"text": "x"})), text_reply("ok")])
        ctrl = _controller(provider, registry, open_gate, broadcaster=broadcaster)

        await ctrl.run_turn("go")
        await ctrl.stop()
        assert published == [
            (AgentStatus.WORKING, "Starting inference"),
            (AgentStatus.WORKING, "echo"),
            (AgentStatus.IDLE, "Inference complete"),
            (AgentStatus.STOPPED, "Agent stopped"),
        ]
        peers = await file_transport.query()
        assert peers[0].record.status is AgentStatus.STOPPED  # type: ignore[union-attr]

    async def test_publish_failure_does_not_break_turn(
        self, registry: ToolRegistry, open_gate: ApprovalGate, caplog: Any
    ):
        class _Broken:
            async def publish(self, record: Any, **kwargs: Any) -> Any:
                msg = "read-only file system"
                raise OSError(msg)

        provider = ScriptedProvider([text_reply("fine")])
        ctrl = _controller(provider, registry, open_gate, broadcaster=_Broken())
        assert (await ctrl.run_turn("go")).text == "fine"
        assert "Could not publish status" in caplog.text


class TestSessionLoop:
    async def test_run_until_exit(self, registry: ToolRegistry, open_gate: ApprovalGate):
        provider = ScriptedProvider([text_reply("a"), text_reply("b")])
        lines = iter(["hello", "   ", "again", "quit", "never read"])

        async def _input() -> str | None:
            return next(lines)

        ctrl = _controller(provider, registry, open_gate)
        await ctrl.run(_input)
        assert len(provider.call_log) == 2
        assert next(lines) == "never read"

    async def test_run_reports_errors_and_continues(
        self, registry: ToolRegistry, open_gate: ApprovalGate
    ):
        provider = ScriptedProvider([ProviderAuthError("scripted", "nope"), text_reply("ok")])
        lines = iter(["one", "two", None])
        errors: list[Exception] = []

        async def _input() -> str | None:
            return next(lines)

        ctrl = _controller(provider, registry, open_gate, on_error=errors.append)
        await ctrl.run(_input)
        assert len(errors) == 1
        assert isinstance(errors[0], ProviderAuthError)
        assert ctrl.history[-1].text == "ok"

    async def test_tool_use_block_input_preserved(
        self, registry: ToolRegistry, open_gate: ApprovalGate
    ):
        provider = ScriptedProvider([tool_reply(("t1", "echo", {"text": "x"})), text_reply("ok")])
        ctrl = _controller(provider, registry, open_gate)
        await ctrl.run_turn("go")
        assert ctrl.history[1].tool_uses == [ToolUseBlock("t1", "echo", {"text": "x"})]
