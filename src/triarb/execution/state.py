"""
Execution state machine.

VALIDATING -> EXECUTING_LEG[0..N-1] -> SUCCEEDED, or
EXECUTING_LEG[i] -> ROLLING_BACK -> FAILED. Validation failures go straight
to FAILED since no order has been placed.
"""

from typing import Final

from triarb.core.errors import InvalidTransitionError
from triarb.core.types import ExecutionState


TRANSITIONS: Final[dict[ExecutionState, frozenset[ExecutionState]]] = {
    ExecutionState.VALIDATING: frozenset(
        {ExecutionState.EXECUTING_LEG, ExecutionState.FAILED}
    ),
    ExecutionState.EXECUTING_LEG: frozenset(
        {ExecutionState.EXECUTING_LEG, ExecutionState.SUCCEEDED, ExecutionState.ROLLING_BACK}
    ),
    ExecutionState.ROLLING_BACK: frozenset({ExecutionState.FAILED}),
    ExecutionState.SUCCEEDED: frozenset(),
    ExecutionState.FAILED: frozenset(),
}


class ExecutionStateMachine:
    """
    Tracks one execution attempt through its states.

    Features:
    - Transition table checked on every move
    - Leg index carried with EXECUTING_LEG, strictly increasing by one
    - Human-readable history, e.g. "EXECUTING_LEG[1]"
    """

    __slots__ = ("_state", "_leg_index", "_leg_count", "_history")

    def __init__(self, leg_count: int) -> None:
        """
        Initialize in VALIDATING.

        Args:
            leg_count: Number of legs in the path.
        """
        self._state = ExecutionState.VALIDATING
        self._leg_index = -1
        self._leg_count = leg_count
        self._history: list[str] = [ExecutionState.VALIDATING.value]

    def transition(self, target: ExecutionState, leg_index: int | None = None) -> str:
        """
        Move to target state.

        Args:
            target: Next state.
            leg_index: Required for EXECUTING_LEG; must be the next leg.

        Returns:
            History label of the new state.

        Raises:
            InvalidTransitionError: On a move the table does not allow.
        """
        if target not in TRANSITIONS[self._state]:
            raise InvalidTransitionError(f"{self._state.value} -> {target.value} not allowed")

        if target is ExecutionState.EXECUTING_LEG:
            if leg_index != self._leg_index + 1 or leg_index >= self._leg_count:
                raise InvalidTransitionError(
                    f"Leg {leg_index} cannot follow leg {self._leg_index} "
                    f"of {self._leg_count}"
                )
            self._leg_index = leg_index
            label = f"{target.value}[{leg_index}]"
        else:
            if target is ExecutionState.SUCCEEDED and self._leg_index != self._leg_count - 1:
                raise InvalidTransitionError(
                    f"Cannot succeed after leg {self._leg_index} of {self._leg_count}"
                )
            label = target.value

        self._state = target
        self._history.append(label)
        return label

    @property
    def state(self) -> ExecutionState:
        """Current state."""
        return self._state

    @property
    def leg_index(self) -> int:
        """Index of the current or last leg, -1 before the first."""
        return self._leg_index

    @property
    def history(self) -> list[str]:
        """Labels of every state visited, in order."""
        return list(self._history)
