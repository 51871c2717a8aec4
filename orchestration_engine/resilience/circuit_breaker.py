# orchestration_engine/resilience/circuit_breaker.py
"""
Circuit breaker for external calls made during orchestration.

Three states per key:
- CLOSED: normal operation, failures are counted
- OPEN: calls are refused until the recovery timeout elapses
- HALF_OPEN: probing recovery, successes are counted
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


@dataclass
class CircuitRecord:
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    success_count: int = 0
    last_failure_time: Optional[float] = None
    next_attempt_time: Optional[float] = None


@dataclass(frozen=True)
class CircuitStatus:
    """Read-only snapshot of one circuit."""
    key: str
    state: CircuitState
    failure_count: int
    success_count: int
    last_failure_time: Optional[float]
    next_attempt_time: Optional[float]
    can_execute: bool

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "last_failure_time": self.last_failure_time,
            "next_attempt_time": self.next_attempt_time,
            "can_execute": self.can_execute,
        }


@dataclass
class CircuitBreaker:
    """
    Per-key failure/success state machine.

    Never raises: callers check can_execute() and decide to skip or fail
    fast. State lives for the lifetime of this instance only.

    All mutation happens from the orchestration event loop; there are no
    concurrent writers to the same key.
    """
    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    required_half_open_successes: int = 3
    monitoring_period: float = 100.0
    clock: Callable[[], float] = time.monotonic
    _circuits: Dict[str, CircuitRecord] = field(default_factory=dict, init=False, repr=False)

    # -------------------------
    # QUERIES
    # -------------------------

    def can_execute(self, key: str) -> bool:
        record = self._circuits.get(key)
        if record is None:
            return True

        if record.state == CircuitState.OPEN:
            if record.next_attempt_time is not None and self.clock() >= record.next_attempt_time:
                self._set_state(key, record, CircuitState.HALF_OPEN)
                return True
            return False

        return True

    def get_status(self, key: str) -> CircuitStatus:
        record = self._circuits.get(key) or CircuitRecord()
        return self._snapshot(key, record)

    def get_all_statuses(self) -> Dict[str, CircuitStatus]:
        return {key: self._snapshot(key, record) for key, record in self._circuits.items()}

    # -------------------------
    # RECORDING
    # -------------------------

    def record_success(self, key: str) -> None:
        record = self._record(key)

        if record.state == CircuitState.HALF_OPEN:
            record.success_count += 1
            if record.success_count >= self.required_half_open_successes:
                self._set_state(key, record, CircuitState.CLOSED)
        elif record.state == CircuitState.CLOSED:
            record.failure_count = 0

    def record_failure(self, key: str) -> None:
        record = self._record(key)

        record.failure_count += 1
        record.last_failure_time = self.clock()

        if record.state == CircuitState.HALF_OPEN:
            self._set_state(key, record, CircuitState.OPEN)
        elif record.failure_count >= self.failure_threshold:
            self._set_state(key, record, CircuitState.OPEN)

    # -------------------------
    # MANUAL CONTROL
    # -------------------------

    def reset(self, key: str) -> None:
        self._set_state(key, self._record(key), CircuitState.CLOSED)

    def trip(self, key: str) -> None:
        self._set_state(key, self._record(key), CircuitState.OPEN)

    def cleanup(self) -> int:
        """Drop closed circuits with no recent failures. Returns count removed."""
        now = self.clock()
        stale = [
            key for key, record in self._circuits.items()
            if record.state == CircuitState.CLOSED
            and (
                record.last_failure_time is None
                or now - record.last_failure_time > self.monitoring_period
            )
        ]
        for key in stale:
            del self._circuits[key]

        if stale:
            logger.debug(f"[circuit] cleaned up {len(stale)} idle circuit(s)")
        return len(stale)

    # -------------------------
    # INTERNALS
    # -------------------------

    def _record(self, key: str) -> CircuitRecord:
        record = self._circuits.get(key)
        if record is None:
            record = CircuitRecord()
            self._circuits[key] = record
        return record

    def _set_state(self, key: str, record: CircuitRecord, state: CircuitState) -> None:
        previous = record.state
        record.state = state

        if state == CircuitState.OPEN:
            record.next_attempt_time = self.clock() + self.recovery_timeout
            record.success_count = 0
        elif state == CircuitState.HALF_OPEN:
            record.success_count = 0
        elif state == CircuitState.CLOSED:
            record.failure_count = 0
            record.success_count = 0
            record.last_failure_time = None
            record.next_attempt_time = None

        if previous != state:
            logger.info(f"[circuit] {key}: {previous.value} -> {state.value}")

    def _snapshot(self, key: str, record: CircuitRecord) -> CircuitStatus:
        if record.state == CircuitState.OPEN:
            allowed = (
                record.next_attempt_time is not None
                and self.clock() >= record.next_attempt_time
            )
        else:
            allowed = True

        return CircuitStatus(
            key=key,
            state=record.state,
            failure_count=record.failure_count,
            success_count=record.success_count,
            last_failure_time=record.last_failure_time,
            next_attempt_time=record.next_attempt_time,
            can_execute=allowed,
        )
