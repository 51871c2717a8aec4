# orchestration_engine/state/state_manager.py
"""State manager - portfolio state, rollback plan and audit log."""

import json
import logging
import secrets
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from orchestration_engine.core.errors import DomainStateNotFound, OrchestrationValidationError
from orchestration_engine.core.models import (
    AuditEvent,
    DomainState,
    DomainStatus,
    PortfolioState,
    RollbackAction,
    compact_timestamp,
    utcnow,
)
from orchestration_engine.core.state_machine import DomainStateMachine

logger = logging.getLogger(__name__)


UPDATABLE_FIELDS = {"status", "deployment_id", "error", "started_at", "finished_at", "result"}


class StateManager:
    """
    Single source of truth for what is happening and what happened in a run.

    The audit log is always kept in memory. When persistence is enabled each
    event is also appended as one JSON line to ``<logs_dir>/audit.log``.
    Persistence failures are logged and swallowed so auditing never aborts
    an orchestration.
    """

    AUDIT_FILE_NAME = "audit.log"

    def __init__(
        self,
        *,
        environment: str = "production",
        dry_run: bool = False,
        enable_persistence: bool = False,
        logs_dir: Optional[Path] = None,
        user: str = "system",
    ):
        """
        Args:
            environment: Target environment of the run
            dry_run: Dry runs never write the audit file
            enable_persistence: Already-resolved persistence flag
            logs_dir: Directory holding audit.log; None disables file writes
            user: Acting user recorded on every audit event
        """
        self.environment = environment
        self.dry_run = dry_run
        self.enable_persistence = enable_persistence and logs_dir is not None
        self.logs_dir = Path(logs_dir) if logs_dir is not None else None
        self.user = user

        self._audit_log: List[AuditEvent] = []
        self._state = self._new_portfolio_state()

        if enable_persistence and logs_dir is None:
            logger.info("[state] No writable project root - audit file logging disabled")

    # -------------------------
    # IDS
    # -------------------------

    @staticmethod
    def generate_orchestration_id() -> str:
        return f"orchestration-{compact_timestamp()}-{secrets.token_hex(6)}"

    @staticmethod
    def generate_deployment_id(domain: str) -> str:
        return f"deploy-{domain}-{compact_timestamp()}-{secrets.token_hex(4)}"

    def _new_portfolio_state(self) -> PortfolioState:
        return PortfolioState(
            orchestration_id=self.generate_orchestration_id(),
            environment=self.environment,
            dry_run=self.dry_run,
        )

    @property
    def audit_file(self) -> Optional[Path]:
        if self.logs_dir is None:
            return None
        return self.logs_dir / self.AUDIT_FILE_NAME

    # -------------------------
    # DOMAIN STATE
    # -------------------------

    def initialize_domain_states(self, domains: Iterable[str]) -> None:
        """Pre-populate every requested domain as pending."""
        names = list(dict.fromkeys(domains))
        for name in names:
            self._state.domain_states[name] = DomainState(
                domain=name,
                deployment_id=self.generate_deployment_id(name),
                status=DomainStatus.PENDING,
            )

        self.log_audit_event("PORTFOLIO_INITIALIZED", "ALL", {
            "total_domains": len(names),
            "domains": names,
            "environment": self.environment,
        })

    def update_domain_state(self, domain: str, **patch: Any) -> DomainState:
        """Merge allowed fields into the domain's record."""
        state = self.get_domain_state(domain)
        if state is None:
            raise DomainStateNotFound(f"Domain state not found: {domain}")

        unknown = set(patch) - UPDATABLE_FIELDS
        if unknown:
            raise OrchestrationValidationError(
                f"Cannot update domain state field(s): {', '.join(sorted(unknown))}"
            )

        status = patch.pop("status", None)
        if status is not None:
            DomainStateMachine.transition(state, DomainStatus(status))

        result = patch.pop("result", None)
        if result:
            state.result.update(result)

        for key, value in patch.items():
            setattr(state, key, value)

        state.updated_at = utcnow()
        return state

    def get_state(self) -> PortfolioState:
        return self._state

    def get_domain_state(self, domain: str) -> Optional[DomainState]:
        return self._state.domain_states.get(domain)

    def mark_portfolio_completed(self) -> None:
        self._state.finished_at = utcnow()

    def get_portfolio_summary(self) -> Dict[str, Any]:
        states = list(self._state.domain_states.values())

        def count(status: DomainStatus) -> int:
            return sum(1 for s in states if s.status == status)

        end = self._state.finished_at or utcnow()
        return {
            "orchestration_id": self._state.orchestration_id,
            "environment": self.environment,
            "dry_run": self.dry_run,
            "total_domains": len(states),
            "pending": count(DomainStatus.PENDING),
            "in_progress": sum(
                1 for s in states
                if s.status in (DomainStatus.VALIDATING, DomainStatus.DEPLOYING, DomainStatus.MIGRATING)
            ),
            "completed": count(DomainStatus.COMPLETED),
            "failed": count(DomainStatus.FAILED),
            "rolled_back": count(DomainStatus.ROLLED_BACK),
            "started_at": self._state.started_at.isoformat(),
            "finished_at": self._state.finished_at.isoformat() if self._state.finished_at else None,
            "duration": (end - self._state.started_at).total_seconds(),
            "audit_log_size": len(self._audit_log),
            "rollback_actions": len(self._state.rollback_plan),
        }

    # -------------------------
    # ROLLBACK PLAN
    # -------------------------

    def add_rollback_action(self, action: RollbackAction) -> None:
        """Append to the portfolio rollback plan. The plan never shrinks."""
        self._state.rollback_plan.append(action)
        logger.debug(f"[state] rollback action recorded for {action.domain}: {action.kind}")

    def get_rollback_plan(self, domain: Optional[str] = None) -> List[RollbackAction]:
        if domain is None:
            return list(self._state.rollback_plan)
        return [a for a in self._state.rollback_plan if a.domain == domain]

    # -------------------------
    # AUDIT
    # -------------------------

    def log_audit_event(
        self,
        event: str,
        scope: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditEvent:
        """Record an audit event in memory and, if enabled, in audit.log."""
        entry = AuditEvent(
            timestamp=utcnow(),
            event=event,
            scope=scope,
            details=dict(details or {}),
            user=self.user,
            orchestration_id=self._state.orchestration_id,
            sequence=len(self._audit_log) + 1,
        )
        self._audit_log.append(entry)
        logger.debug(f"[audit] {event} ({scope})")

        if self.enable_persistence and not self.dry_run:
            self._append_to_file(entry)

        return entry

    def get_audit_log(
        self,
        *,
        event: Optional[str] = None,
        scope: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> List[AuditEvent]:
        entries = self._audit_log
        if event:
            entries = [e for e in entries if e.event == event]
        if scope:
            entries = [e for e in entries if e.scope == scope]
        if since:
            entries = [e for e in entries if e.timestamp >= since]
        return list(entries)

    def _append_to_file(self, entry: AuditEvent) -> None:
        try:
            self.logs_dir.mkdir(parents=True, exist_ok=True)
            with open(self.audit_file, "a", encoding="utf-8") as fh:
                fh.write(json.dumps(entry.to_dict(), default=str) + "\n")
        except OSError as e:
            logger.warning(f"[audit] ⚠️ Failed to persist audit event {entry.event}: {e}")
