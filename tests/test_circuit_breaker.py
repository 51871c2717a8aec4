#tests\test_circuit_breaker.py

"""Test circuit breaker state transitions."""

import pytest

from orchestration_engine.resilience.circuit_breaker import CircuitBreaker, CircuitState


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def breaker(clock):
    return CircuitBreaker(
        failure_threshold=3,
        recovery_timeout=60.0,
        required_half_open_successes=2,
        monitoring_period=100.0,
        clock=clock,
    )


class TestClosedCircuit:
    """Test behaviour while closed."""

    def test_unknown_key_can_execute(self, breaker):
        """Test unknown keys behave as closed."""
        assert breaker.can_execute("deploy:new.example.com")
        assert breaker.get_status("deploy:new.example.com").state == CircuitState.CLOSED

    def test_status_queries_do_not_create_entries(self, breaker):
        """Test get_status never creates a circuit."""
        breaker.get_status("deploy:a.example.com")
        assert breaker.get_all_statuses() == {}

    def test_opens_at_threshold(self, breaker):
        """Test circuit opens once failures reach the threshold."""
        for _ in range(2):
            breaker.record_failure("svc")
        assert breaker.can_execute("svc")

        breaker.record_failure("svc")

        status = breaker.get_status("svc")
        assert status.state == CircuitState.OPEN
        assert status.failure_count == 3
        assert not breaker.can_execute("svc")

    def test_success_resets_failures(self, breaker):
        """Test a success in closed state clears the failure count."""
        breaker.record_failure("svc")
        breaker.record_failure("svc")
        breaker.record_success("svc")

        assert breaker.get_status("svc").failure_count == 0
        breaker.record_failure("svc")
        assert breaker.get_status("svc").state == CircuitState.CLOSED


class TestRecovery:
    """Test open -> half-open -> closed."""

    def _open(self, breaker):
        for _ in range(3):
            breaker.record_failure("svc")

    def test_half_open_after_recovery_timeout(self, breaker, clock):
        """Test can_execute moves an expired open circuit to half-open."""
        self._open(breaker)

        clock.advance(59)
        assert not breaker.can_execute("svc")

        clock.advance(1)
        assert breaker.can_execute("svc")
        assert breaker.get_status("svc").state == CircuitState.HALF_OPEN

    def test_closes_after_required_successes(self, breaker, clock):
        """Test enough half-open successes close the circuit and zero counters."""
        self._open(breaker)
        clock.advance(60)
        breaker.can_execute("svc")

        breaker.record_success("svc")
        assert breaker.get_status("svc").state == CircuitState.HALF_OPEN

        breaker.record_success("svc")
        status = breaker.get_status("svc")
        assert status.state == CircuitState.CLOSED
        assert status.failure_count == 0
        assert status.success_count == 0
        assert status.last_failure_time is None
        assert status.next_attempt_time is None

    def test_half_open_failure_reopens(self, breaker, clock):
        """Test a failure while half-open reopens from now."""
        self._open(breaker)
        clock.advance(60)
        breaker.can_execute("svc")

        breaker.record_failure("svc")

        status = breaker.get_status("svc")
        assert status.state == CircuitState.OPEN
        assert status.next_attempt_time == clock.now + 60
        assert not breaker.can_execute("svc")


class TestManualControl:
    """Test reset, trip and cleanup."""

    def test_reset_is_idempotent(self, breaker):
        """Test reset closes the circuit, twice in a row."""
        breaker.trip("svc")
        breaker.reset("svc")
        breaker.reset("svc")

        status = breaker.get_status("svc")
        assert status.state == CircuitState.CLOSED
        assert status.can_execute

    def test_trip_opens(self, breaker):
        """Test trip forces the circuit open."""
        breaker.trip("svc")
        assert not breaker.can_execute("svc")

    def test_cleanup_removes_idle_closed_circuits(self, breaker, clock):
        """Test cleanup drops closed circuits without recent failures."""
        breaker.record_success("idle")
        breaker.record_failure("recent")
        breaker.trip("open")

        assert breaker.cleanup() == 1
        assert set(breaker.get_all_statuses()) == {"recent", "open"}

        clock.advance(101)
        assert breaker.cleanup() == 1
        assert set(breaker.get_all_statuses()) == {"open"}
