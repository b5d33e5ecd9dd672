"""Human approval of tool calls.

:class:`ApprovalGate` holds one pending decision per request id. The
operator surface (a console prompt, a UI event) is notified through
``on_request`` and answers with :meth:`ApprovalGate.respond`. A request
that gets no answer within its timeout resolves as denied.

Requests for the same agent are resolved strictly in submission order;
requests for different agents never wait on each other.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

logger = logging.getLogger(__name__)

DENIED_BY_USER = "Tool execution was denied by user."


@dataclass(frozen=True, slots=True)
class ApprovalRequest:
    """A gated tool call waiting for a decision."""

    id: str
    agent_id: str
    tool_name: str
    arguments: str  # JSON-encoded tool input


@dataclass(frozen=True, slots=True)
class ApprovalDecision:
    approved: bool
    reason: str = ""

    @classmethod
    def approve(cls, reason: str = "") -> ApprovalDecision:
        return cls(approved=True, reason=reason)

    @classmethod
    def deny(cls, reason: str = DENIED_BY_USER) -> ApprovalDecision:
        return cls(approved=False, reason=reason or DENIED_BY_USER)


class _AgentQueue:
    """Serializes one agent's requests; counts callers holding or awaiting it."""

    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class ApprovalGate:
    """Mediates approve/deny decisions for pending tool calls."""

    def __init__(
        self,
        *,
        auto_approve: Iterable[str] = (),
        approve_all: bool = False,
        on_request: Callable[[ApprovalRequest], None] | None = None,
        on_resolved: Callable[[str], None] | None = None,
    ) -> None:
        self._auto_approve = frozenset(auto_approve)
        self._approve_all = approve_all
        self._on_request = on_request
        self._on_resolved = on_resolved
        self._pending: dict[str, tuple[ApprovalRequest, asyncio.Future[ApprovalDecision]]] = {}
        self._queues: dict[str, _AgentQueue] = {}

    def set_listener(
        self,
        on_request: Callable[[ApprovalRequest], None] | None,
        on_resolved: Callable[[str], None] | None = None,
    ) -> None:
        """Set the operator surface.

        ``on_resolved`` receives the id of every request that stops waiting,
        whether it was decided, timed out or cancelled.
        """
        self._on_request = on_request
        self._on_resolved = on_resolved

    def needs_approval(self, tool_name: str) -> bool:
        return not (self._approve_all or tool_name in self._auto_approve)

    def pending(self) -> list[ApprovalRequest]:
        """Snapshot of requests still waiting for a decision."""
        return [req for req, _ in self._pending.values()]

    def waiting_agents(self) -> list[str]:
        """Agents with a request pending or queued."""
        return sorted(self._queues)

    async def request(self, req: ApprovalRequest, timeout: float) -> ApprovalDecision:
        """Wait for a decision on ``req``.

        Returns a denial if nothing arrives within ``timeout`` seconds.
        Cancelling the caller discards the pending request.

        Raises:
            ValueError: If a request with the same id is already pending.
        """
        if not self.needs_approval(req.tool_name):
            return ApprovalDecision.approve("auto-approved")

        queue = self._queues.setdefault(req.agent_id, _AgentQueue())
        queue.users += 1
        try:
            async with queue.lock:
                return await self._wait(req, timeout)
        finally:
            queue.users -= 1
            if queue.users == 0:
                del self._queues[req.agent_id]

    async def _wait(self, req: ApprovalRequest, timeout: float) -> ApprovalDecision:
        if req.id in self._pending:
            msg = f"Approval request already pending: {req.id}"
            raise ValueError(msg)
        future: asyncio.Future[ApprovalDecision] = asyncio.get_running_loop().create_future()
        self._pending[req.id] = (req, future)
        try:
            if self._on_request is not None:
                self._on_request(req)
            return await asyncio.wait_for(future, timeout=timeout)
        except TimeoutError:
            logger.info("Approval %s timed out after %ss", req.id, timeout)
            return ApprovalDecision.deny(f"Approval timed out after {timeout:g}s")
        finally:
            self._pending.pop(req.id, None)
            if self._on_resolved is not None:
                self._on_resolved(req.id)

    def respond(self, request_id: str, approved: bool, reason: str = "") -> bool:
        """Resolve a pending request.

        Returns False if the id is unknown or was already resolved.
        """
        entry = self._pending.get(request_id)
        if entry is None:
            return False
        _, future = entry
        if future.done():
            return False
        decision = (
            ApprovalDecision.approve(reason) if approved else ApprovalDecision.deny(reason)
        )
        future.set_result(decision)
        return True
