#tests\test_state_manager.py

"""Test portfolio state and audit log."""

import json

import pytest

from orchestration_engine.core.errors import DomainStateNotFound, OrchestrationValidationError
from orchestration_engine.core.models import DomainStatus, RollbackAction
from orchestration_engine.state.state_manager import StateManager


@pytest.fixture
def manager(tmp_path):
    return StateManager(
        environment="production",
        enable_persistence=True,
        logs_dir=tmp_path / "logs",
        user="tester",
    )


class TestDomainState:
    """Test domain state lifecycle."""

    def test_initialize_sets_every_domain_pending(self, manager):
        """Test all domains are pending before any work."""
        manager.initialize_domain_states(["a.example.com", "b.example.com"])

        states = manager.get_state().domain_states
        assert set(states) == {"a.example.com", "b.example.com"}
        assert all(s.status == DomainStatus.PENDING for s in states.values())
        assert states["a.example.com"].deployment_id.startswith("deploy-a.example.com-")

        events = manager.get_audit_log(event="PORTFOLIO_INITIALIZED")
        assert len(events) == 1
        assert events[0].scope == "ALL"
        assert events[0].details["total_domains"] == 2

    def test_update_merges_result(self, manager):
        """Test result details are merged, not replaced."""
        manager.initialize_domain_states(["a.example.com"])

        manager.update_domain_state("a.example.com", result={"url": "https://a.example.com"})
        manager.update_domain_state("a.example.com", status=DomainStatus.VALIDATING, result={"db": "a-db"})

        state = manager.get_domain_state("a.example.com")
        assert state.status == DomainStatus.VALIDATING
        assert state.result == {"url": "https://a.example.com", "db": "a-db"}

    def test_update_unknown_domain_raises(self, manager):
        """Test updating a domain outside the portfolio raises."""
        with pytest.raises(DomainStateNotFound):
            manager.update_domain_state("missing.example.com", error="boom")

    def test_update_unknown_field_raises(self, manager):
        """Test unknown fields are rejected."""
        manager.initialize_domain_states(["a.example.com"])

        with pytest.raises(OrchestrationValidationError):
            manager.update_domain_state("a.example.com", colour="blue")

    def test_portfolio_summary_counts(self, manager):
        """Test the summary counts statuses."""
        manager.initialize_domain_states(["a.example.com", "b.example.com"])
        manager.update_domain_state("a.example.com", status=DomainStatus.COMPLETED)
        manager.update_domain_state("b.example.com", status=DomainStatus.FAILED, error="boom")

        summary = manager.get_portfolio_summary()
        assert summary["total_domains"] == 2
        assert summary["completed"] == 1
        assert summary["failed"] == 1
        assert summary["pending"] == 0


class TestRollbackPlan:
    """Test rollback plan bookkeeping."""

    def test_plan_grows_and_filters_by_domain(self, manager):
        """Test actions are appended in order and filterable."""
        manager.add_rollback_action(RollbackAction("a.example.com", "rollback-worker", ["x"]))
        manager.add_rollback_action(RollbackAction("b.example.com", "rollback-worker", ["y"]))
        manager.add_rollback_action(RollbackAction("a.example.com", "delete-database", ["z"]))

        assert len(manager.get_rollback_plan()) == 3
        assert [a.kind for a in manager.get_rollback_plan("a.example.com")] == [
            "rollback-worker", "delete-database",
        ]


class TestAuditLog:
    """Test audit persistence."""

    def test_events_written_as_json_lines(self, manager):
        """Test each event is one JSON line in audit.log."""
        manager.log_audit_event("FIRST", "SYSTEM", {"n": 1})
        manager.log_audit_event("SECOND", "production", {"n": 2})

        lines = manager.audit_file.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 2
        first = json.loads(lines[0])
        assert first["event"] == "FIRST"
        assert first["user"] == "tester"
        assert first["sequence"] == 1
        assert first["orchestration_id"] == manager.get_state().orchestration_id

    def test_dry_run_never_writes(self, tmp_path):
        """Test dry runs keep the audit log in memory only."""
        manager = StateManager(dry_run=True, enable_persistence=True, logs_dir=tmp_path / "logs")
        manager.log_audit_event("EVENT", "SYSTEM")

        assert len(manager.get_audit_log()) == 1
        assert not (tmp_path / "logs").exists()

    def test_persistence_disabled_never_writes(self, tmp_path):
        """Test disabled persistence keeps the audit log in memory only."""
        manager = StateManager(enable_persistence=False, logs_dir=tmp_path / "logs")
        manager.log_audit_event("EVENT", "SYSTEM")

        assert not (tmp_path / "logs").exists()

    def test_write_failure_does_not_raise(self, tmp_path):
        """Test an unwritable log location only warns."""
        blocker = tmp_path / "logs"
        blocker.write_text("not a directory", encoding="utf-8")
        manager = StateManager(enable_persistence=True, logs_dir=blocker)

        event = manager.log_audit_event("EVENT", "SYSTEM")

        assert event.event == "EVENT"
        assert len(manager.get_audit_log()) == 1

    def test_filter_by_scope(self, manager):
        """Test audit log filtering."""
        manager.log_audit_event("A", "production")
        manager.log_audit_event("B", "staging")

        assert [e.event for e in manager.get_audit_log(scope="staging")] == ["B"]
