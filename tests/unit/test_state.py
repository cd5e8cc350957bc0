"""
Unit tests for the execution state machine.
"""

import pytest

from triarb.core.errors import InvalidTransitionError
from triarb.core.types import ExecutionState
from triarb.execution.state import TRANSITIONS, ExecutionStateMachine


class TestExecutionStateMachine:
    """Tests for ExecutionStateMachine."""

    def test_success_path(self) -> None:
        """Test VALIDATING -> each leg -> SUCCEEDED."""
        machine = ExecutionStateMachine(3)

        for i in range(3):
            machine.transition(ExecutionState.EXECUTING_LEG, i)
        machine.transition(ExecutionState.SUCCEEDED)

        assert machine.state is ExecutionState.SUCCEEDED
        assert machine.history == [
            "VALIDATING",
            "EXECUTING_LEG[0]",
            "EXECUTING_LEG[1]",
            "EXECUTING_LEG[2]",
            "SUCCEEDED",
        ]

    def test_rollback_path(self) -> None:
        """Test a failure mid-path goes through ROLLING_BACK."""
        machine = ExecutionStateMachine(3)
        machine.transition(ExecutionState.EXECUTING_LEG, 0)
        machine.transition(ExecutionState.EXECUTING_LEG, 1)
        machine.transition(ExecutionState.ROLLING_BACK)
        label = machine.transition(ExecutionState.FAILED)

        assert label == "FAILED"
        assert machine.state.is_final
        assert machine.leg_index == 1

    def test_validation_failure(self) -> None:
        """Test VALIDATING may fail directly."""
        machine = ExecutionStateMachine(3)
        machine.transition(ExecutionState.FAILED)

        assert machine.history == ["VALIDATING", "FAILED"]

    def test_legs_must_be_sequential(self) -> None:
        """Test that legs cannot be skipped or repeated."""
        machine = ExecutionStateMachine(3)

        with pytest.raises(InvalidTransitionError):
            machine.transition(ExecutionState.EXECUTING_LEG, 1)

        machine.transition(ExecutionState.EXECUTING_LEG, 0)
        with pytest.raises(InvalidTransitionError):
            machine.transition(ExecutionState.EXECUTING_LEG, 0)

    def test_leg_beyond_path(self) -> None:
        """Test that a leg index past the path is refused."""
        machine = ExecutionStateMachine(3)
        for i in range(3):
            machine.transition(ExecutionState.EXECUTING_LEG, i)

        with pytest.raises(InvalidTransitionError):
            machine.transition(ExecutionState.EXECUTING_LEG, 3)

    def test_cannot_succeed_early(self) -> None:
        """Test SUCCEEDED requires every leg."""
        machine = ExecutionStateMachine(4)
        machine.transition(ExecutionState.EXECUTING_LEG, 0)

        with pytest.raises(InvalidTransitionError):
            machine.transition(ExecutionState.SUCCEEDED)

    @pytest.mark.parametrize(
        ("source", "target"),
        [
            (ExecutionState.VALIDATING, ExecutionState.SUCCEEDED),
            (ExecutionState.VALIDATING, ExecutionState.ROLLING_BACK),
            (ExecutionState.ROLLING_BACK, ExecutionState.SUCCEEDED),
            (ExecutionState.ROLLING_BACK, ExecutionState.EXECUTING_LEG),
        ],
    )
    def test_illegal_moves(self, source: ExecutionState, target: ExecutionState) -> None:
        """Test moves absent from the transition table."""
        assert target not in TRANSITIONS[source]

    def test_final_states_are_terminal(self) -> None:
        """Test nothing leaves SUCCEEDED or FAILED."""
        machine = ExecutionStateMachine(3)
        machine.transition(ExecutionState.FAILED)

        for target in ExecutionState:
            with pytest.raises(InvalidTransitionError):
                machine.transition(target, 0)
