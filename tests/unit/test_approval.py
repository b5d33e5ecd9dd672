"""Tests for the approval gate."""

from __future__ import annotations

import asyncio

import pytest

from brutus.agent.approval import (
    DENIED_BY_USER,
    ApprovalDecision,
    ApprovalGate,
    ApprovalRequest,
)


def _req(id: str = "r1", agent_id: str = "a", tool_name: str = "bash") -> ApprovalRequest:
    return ApprovalRequest(id=id, agent_id=agent_id, tool_name=tool_name, arguments="{}")


class TestDecision:
    def test_deny_defaults_to_user_message(self):
        assert ApprovalDecision.deny().reason == DENIED_BY_USER
        assert ApprovalDecision.deny("").reason == DENIED_BY_USER

    def test_approve(self):
        assert ApprovalDecision.approve().approved is True


class TestAutoApprove:
    async def test_listed_tool_skips_operator(self):
        seen: list[ApprovalRequest] = []
        gate = ApprovalGate(auto_approve=["read_file"], on_request=seen.append)
        decision = await gate.request(_req(tool_name="read_file"), timeout=1)
        assert decision.approved is True
        assert seen == []

    async def test_approve_all(self):
        gate = ApprovalGate(approve_all=True)
        assert gate.needs_approval("bash") is False
        assert (await gate.request(_req(), timeout=1)).approved is True


class TestOperatorDecisions:
    async def test_approved_by_operator(self):
        gate = ApprovalGate()
        gate.set_listener(lambda req: gate.respond(req.id, True))
        assert (await gate.request(_req(), timeout=1)).approved is True
        assert gate.pending() == []

    async def test_denied_by_operator(self):
        gate = ApprovalGate()
        gate.set_listener(lambda req: gate.respond(req.id, False))
        decision = await gate.request(_req(), timeout=1)
        assert decision.approved is False
        assert decision.reason == DENIED_BY_USER

    async def test_timeout_denies(self):
        gate = ApprovalGate()
        decision = await gate.request(_req(), timeout=0.01)
        assert decision.approved is False
        assert decision.reason == "Approval timed out after 0.01s"
        assert gate.pending() == []

    async def test_pending_visible_until_resolved(self):
        gate = ApprovalGate()
        task = asyncio.create_task(gate.request(_req(), timeout=5))
        await asyncio.sleep(0)
        assert [r.id for r in gate.pending()] == ["r1"]
        assert gate.respond("r1", True) is True
        assert (await task).approved is True

    async def test_respond_unknown_id(self):
        assert ApprovalGate().respond("missing", True) is False

    async def test_respond_twice(self):
        gate = ApprovalGate()
        task = asyncio.create_task(gate.request(_req(), timeout=5))
        await asyncio.sleep(0)
        assert gate.respond("r1", False) is True
        assert gate.respond("r1", True) is False
        assert (await task).approved is False

    async def test_cancelled_request_is_discarded(self):
        gate = ApprovalGate()
        task = asyncio.create_task(gate.request(_req(), timeout=5))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert gate.pending() == []


class TestOrdering:
    async def test_same_agent_resolved_in_order(self):
        gate = ApprovalGate()
        first = asyncio.create_task(gate.request(_req("r1"), timeout=5))
        second = asyncio.create_task(gate.request(_req("r2"), timeout=5))
        await asyncio.sleep(0)
        # second waits behind first for the same agent
        assert [r.id for r in gate.pending()] == ["r1"]
        gate.respond("r1", True)
        await first
        await asyncio.sleep(0)
        assert [r.id for r in gate.pending()] == ["r2"]
        gate.respond("r2", False)
        assert (await second).approved is False

    async def test_different_agents_independent(self):
        gate = ApprovalGate()
        a = asyncio.create_task(gate.request(_req("a-1", agent_id="a"), timeout=5))
        b = asyncio.create_task(gate.request(_req("b-1", agent_id="b"), timeout=5))
        await asyncio.sleep(0)
        assert {r.id for r in gate.pending()} == {"a-1", "b-1"}
        gate.respond("b-1", True)
        assert (await b).approved is True
        assert not a.done()
        gate.respond("a-1", True)
        await a

    async def test_duplicate_pending_id_rejected(self):
        gate = ApprovalGate()
        first = asyncio.create_task(gate.request(_req("dup", agent_id="a"), timeout=5))
        await asyncio.sleep(0)
        with pytest.raises(ValueError, match="already pending"):
            await gate.request(_req("dup", agent_id="b"), timeout=5)
        gate.respond("dup", True)
        await first



class TestResolvedCallback:
    async def test_called_after_decision(self):
        resolved: list[str] = []
        gate = ApprovalGate()
        gate.set_listener(lambda req: gate.respond(req.id, True), on_resolved=resolved.append)
        await gate.request(_req(), timeout=1)
        assert resolved == ["r1"]

    async def test_called_after_timeout(self):
        resolved: list[str] = []
        gate = ApprovalGate(on_resolved=resolved.append)
        await gate.request(_req(), timeout=0.01)
        assert resolved == ["r1"]

    async def test_called_after_cancel(self):
        resolved: list[str] = []
        gate = ApprovalGate(on_resolved=resolved.append)
        task = asyncio.create_task(gate.request(_req(), timeout=5))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert resolved == ["r1"]

    async def test_not_called_for_auto_approved(self):
        resolved: list[str] = []
        gate = ApprovalGate(auto_approve=["read_file"], on_resolved=resolved.append)
        await gate.request(_req(tool_name="read_file"), timeout=1)
        assert resolved == []


class TestAgentLocks:
    async def test_released_once_agent_is_idle(self):
        gate = ApprovalGate()
        gate.set_listener(lambda req: gate.respond(req.id, True))
        for i in range(20):
            await gate.request(_req(f"r{i}", agent_id=f"agent-{i}"), timeout=1)
        assert gate.waiting_agents() == []

    async def test_kept_while_requests_queue(self):
        gate = ApprovalGate()
        first = asyncio.create_task(gate.request(_req("r1"), timeout=5))
        second = asyncio.create_task(gate.request(_req("r2"), timeout=5))
        await asyncio.sleep(0)
        gate.respond("r1", True)
        await first
        assert gate.waiting_agents() == ["a"]
        while not gate.pending():
            await asyncio.sleep(0)
        gate.respond("r2", True)
        await second
        assert gate.waiting_agents() == []

    async def test_released_after_timeout(self):
        gate = ApprovalGate()
        await gate.request(_req(), timeout=0.01)
        assert gate.waiting_agents() == []
