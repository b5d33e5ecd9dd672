"""The agent loop: turn state machine, approval gate, controller."""

from brutus.agent.approval import (
    ApprovalDecision,
    ApprovalGate,
    ApprovalRequest,
)
from brutus.agent.controller import ConversationController, TurnResult
from brutus.agent.machine import ConversationState, TurnStateMachine

__all__ = [
    "ApprovalDecision",
    "ApprovalGate",
    "ApprovalRequest",
    "ConversationController",
    "ConversationState",
    "TurnResult",
    "TurnStateMachine",
]
