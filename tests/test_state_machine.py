#tests\test_state_machine.py

"""Test domain status transitions."""

import pytest

from orchestration_engine.core.errors import InvalidStateTransition
from orchestration_engine.core.models import DomainState, DomainStatus
from orchestration_engine.core.state_machine import DomainStateMachine


class TestDomainStateMachine:
    """Test forward-only progression."""

    def test_forward_progression(self):
        """Test the normal path sets timestamps."""
        state = DomainState(domain="a.example.com")

        for status in (DomainStatus.VALIDATING, DomainStatus.DEPLOYING,
                       DomainStatus.MIGRATING, DomainStatus.COMPLETED):
            DomainStateMachine.transition(state, status)

        assert state.status == DomainStatus.COMPLETED
        assert state.started_at is not None
        assert state.finished_at is not None

    def test_cannot_move_backwards(self):
        """Test going back raises."""
        state = DomainState(domain="a.example.com", status=DomainStatus.MIGRATING)

        with pytest.raises(InvalidStateTransition):
            DomainStateMachine.transition(state, DomainStatus.DEPLOYING)

    def test_failed_to_rolledback_only(self):
        """Test failed may only move to rolledback."""
        assert DomainStateMachine.can_transition(DomainStatus.FAILED, DomainStatus.ROLLED_BACK)
        assert not DomainStateMachine.can_transition(DomainStatus.FAILED, DomainStatus.COMPLETED)
        assert not DomainStateMachine.can_transition(DomainStatus.COMPLETED, DomainStatus.ROLLED_BACK)

    def test_completed_is_terminal(self):
        """Test completed cannot fail afterwards."""
        assert not DomainStateMachine.can_transition(DomainStatus.COMPLETED, DomainStatus.FAILED)

    def test_same_status_is_noop(self):
        """Test repeating the current status changes nothing."""
        state = DomainState(domain="a.example.com")
        DomainStateMachine.transition(state, DomainStatus.PENDING)
        assert state.started_at is None

    def test_finished_statuses(self):
        """Test only pending and in-flight domains may start a deployment."""
        finished = {s for s in DomainStatus if DomainStateMachine.is_finished(s)}

        assert finished == {DomainStatus.COMPLETED, DomainStatus.FAILED, DomainStatus.ROLLED_BACK}
