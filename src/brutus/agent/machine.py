"""Turn state machine: states and legal transitions.

Pure logic module. No IO. The controller performs the work of each
state; this module only validates that the order of states is legal.
"""

from __future__ import annotations

import enum
import logging

from brutus.core.errors import ConversationStateError

logger = logging.getLogger(__name__)


class ConversationState(enum.Enum):
    """States of one agent session."""

    AWAITING_USER_INPUT = "awaiting_user_input"
    REQUESTING_COMPLETION = "requesting_completion"
    INSPECTING_RESPONSE = "inspecting_response"
    DISPATCHING_TOOLS = "dispatching_tools"
    DONE = "done"


_VALID_TRANSITIONS: dict[ConversationState, frozenset[ConversationState]] = {
    ConversationState.AWAITING_USER_INPUT: frozenset(
        {ConversationState.REQUESTING_COMPLETION}
    ),
    ConversationState.REQUESTING_COMPLETION: frozenset(
        {ConversationState.INSPECTING_RESPONSE}
    ),
    ConversationState.INSPECTING_RESPONSE: frozenset(
        {ConversationState.DONE, ConversationState.DISPATCHING_TOOLS}
    ),
    ConversationState.DISPATCHING_TOOLS: frozenset(
        {ConversationState.REQUESTING_COMPLETION}
    ),
    ConversationState.DONE: frozenset({ConversationState.AWAITING_USER_INPUT}),
}


class TurnStateMachine:
    """Tracks the current state and rejects illegal transitions."""

    def __init__(self) -> None:
        self._state = ConversationState.AWAITING_USER_INPUT

    @property
    def state(self) -> ConversationState:
        return self._state

    def can_transition(self, to: ConversationState) -> bool:
        return to in _VALID_TRANSITIONS[self._state]

    def transition(self, to: ConversationState) -> None:
        """Move to ``to``.

        Raises:
            ConversationStateError: If the transition is not allowed.
        """
        if not self.can_transition(to):
            msg = f"Invalid transition: {self._state.value} -> {to.value}"
            raise ConversationStateError(msg)
        logger.debug("State %s -> %s", self._state.value, to.value)
        self._state = to

    def reset(self) -> None:
        """Return to awaiting input after a failed or cancelled turn."""
        if self._state is not ConversationState.AWAITING_USER_INPUT:
            logger.debug("State %s reset to awaiting input", self._state.value)
        self._state = ConversationState.AWAITING_USER_INPUT
