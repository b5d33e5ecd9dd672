"""Coordination tools: ``agent_broadcast`` and ``observe_agents``.

These let the model publish its own status and read its peers' status
from inside the normal tool loop, without a dedicated control channel.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from brutus.coordination.records import AgentStatus, CoordinationRecord, PeerRecord
from brutus.tools.base import input_schema, parse_input

if TYPE_CHECKING:
    from brutus.coordination.broadcaster import (
        CoordinationBroadcaster,
        CoordinationObserver,
    )


class BroadcastInput(BaseModel):
    agent_id: str = Field(description="Your agent identifier")
    status: AgentStatus = Field(description="Current status (idle/working/done/stopped)")
    task: str = Field(default="", description="Current task description")
    action: str = Field(default="", description="Last action taken")
    message: str = Field(default="", description="Optional message to other agents")
    use_txt: bool = Field(
        default=False,
        description=(
            "Use mDNS TXT records for real-time broadcast (requires network)"
        ),
    )


class ObserveInput(BaseModel):
    status_dir: str = Field(
        default="", description="Directory containing agent status files"
    )
    use_txt: bool = Field(
        default=False,
        description="Use mDNS TXT records to discover agents on the network",
    )
    timeout: float = Field(
        default=0, ge=0, description="Discovery timeout in seconds (default 2)"
    )


class BroadcastTool:
    """Implements the :class:`Tool` protocol as ``agent_broadcast``."""

    def __init__(self, broadcaster: CoordinationBroadcaster) -> None:
        self._broadcaster = broadcaster

    @property
    def name(self) -> str:
        return "agent_broadcast"

    @property
    def description(self) -> str:
        return (
            "Broadcast your agent status to other agents in the multi-agent "
            "system. Set use_txt=true for real-time network broadcast via mDNS "
            "TXT records, or use_txt=false (default) for file-based broadcast."
        )

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return input_schema(BroadcastInput)

    async def execute(self, **kwargs: Any) -> str:
        args = parse_input(BroadcastInput, kwargs)
        record = CoordinationRecord(
            agent_id=args.agent_id,
            status=args.status,
            current_task=args.task,
            last_action=args.action,
            message=args.message or None,
        )
        result = await self._broadcaster.publish(record, use_network=args.use_txt)
        return result.summary()


class ObserveAgentsTool:
    """Implements the :class:`Tool` protocol as ``observe_agents``."""

    def __init__(self, observer: CoordinationObserver) -> None:
        self._observer = observer

    @property
    def name(self) -> str:
        return "observe_agents"

    @property
    def description(self) -> str:
        return (
            "Observe the status of other agents in the multi-agent system. Set "
            "use_txt=true to discover agents via mDNS TXT records on the network, "
            "or use_txt=false (default) to read from status files."
        )

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return input_schema(ObserveInput)

    async def execute(self, **kwargs: Any) -> str:
        args = parse_input(ObserveInput, kwargs)
        peers = await self._observer.query(
            args.status_dir or None,
            use_network=args.use_txt,
            timeout=args.timeout or None,
        )
        if not peers:
            return "No agent broadcasts found"
        discovered = sum(
            1 for p in peers if isinstance(p, PeerRecord) and p.service_name is not None
        )
        body = json.dumps([p.to_dict() for p in peers], indent=2)
        if discovered:
            return f"Discovered {discovered} agents via TXT records:\n{body}"
        return body
