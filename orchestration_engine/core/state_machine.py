#orchestration_engine\core\state_machine.py

from datetime import datetime
from orchestration_engine.core.errors import InvalidStateTransition
from orchestration_engine.core.models import DomainState, DomainStatus, utcnow


# Forward-only progression; a domain may skip ahead but never move back.
FORWARD_ORDER = [
    DomainStatus.PENDING,
    DomainStatus.VALIDATING,
    DomainStatus.DEPLOYING,
    DomainStatus.MIGRATING,
    DomainStatus.COMPLETED,
]

TERMINAL_STATES = {
    DomainStatus.COMPLETED,
    DomainStatus.ROLLED_BACK,
}

ALLOWED_TRANSITIONS = {
    status: set(FORWARD_ORDER[index + 1:]) | {DomainStatus.FAILED}
    for index, status in enumerate(FORWARD_ORDER[:-1])
}
ALLOWED_TRANSITIONS[DomainStatus.FAILED] = {DomainStatus.ROLLED_BACK}


class DomainStateMachine:
    @staticmethod
    def is_finished(status: DomainStatus) -> bool:
        """A finished domain has already run; it cannot be deployed again."""
        return status in TERMINAL_STATES or status == DomainStatus.FAILED

    @staticmethod
    def can_transition(current: DomainStatus, new_status: DomainStatus) -> bool:
        if current == new_status:
            return True
        return new_status in ALLOWED_TRANSITIONS.get(current, set())

    @staticmethod
    def transition(
        state: DomainState,
        new_status: DomainStatus,
        *,
        now: datetime | None = None,
    ) -> DomainState:
        now = now or utcnow()

        current = state.status

        if current == new_status:
            return state

        if not DomainStateMachine.can_transition(current, new_status):
            raise InvalidStateTransition(
                f"Cannot transition {state.domain} from {current.value} to {new_status.value}"
            )

        # Timestamp semantics
        if current == DomainStatus.PENDING and state.started_at is None:
            state.started_at = now

        if new_status in (
            DomainStatus.COMPLETED,
            DomainStatus.FAILED,
            DomainStatus.ROLLED_BACK,
        ):
            state.finished_at = now

        state.status = new_status
        state.updated_at = now
        return state
