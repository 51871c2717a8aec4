"""Core domain models for portfolio orchestration."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple
from uuid import uuid4


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def compact_timestamp(moment: Optional[datetime] = None) -> str:
    """ISO timestamp safe for ids and file names."""
    moment = moment or utcnow()
    return moment.isoformat(timespec="milliseconds").replace(":", "-").replace(".", "-").replace("+00-00", "Z")


# ============================================
# ENUMS
# ============================================

class DomainStatus(Enum):
    """Per-domain deployment status."""
    PENDING = "pending"
    VALIDATING = "validating"
    DEPLOYING = "deploying"
    MIGRATING = "migrating"
    COMPLETED = "completed"
    FAILED = "failed"
    ROLLED_BACK = "rolledback"


class OperationStatus(Enum):
    """Outcome of a single unit of database work."""
    COMPLETED = "completed"
    FAILED = "failed"
    DRY_RUN = "dry-run"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"


# ============================================
# DOMAIN
# ============================================

@dataclass(frozen=True)
class DatabaseDescriptor:
    """Database backing a domain in one environment."""
    name: str
    binding: str = "DB"
    database_id: Optional[str] = None


@dataclass(frozen=True)
class Domain:
    """Resolved, immutable domain descriptor."""
    name: str
    account_id: str
    zone_id: str
    databases: Mapping[str, DatabaseDescriptor] = field(default_factory=dict)
    services: Tuple[str, ...] = ()
    features: Mapping[str, bool] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "databases", MappingProxyType(dict(self.databases)))
        object.__setattr__(self, "features", MappingProxyType(dict(self.features)))
        object.__setattr__(self, "services", tuple(self.services))

    def database_for(self, environment: str) -> Optional[DatabaseDescriptor]:
        return self.databases.get(environment)


@dataclass
class ValidationReport:
    """Result of a prerequisite check. Expected problems land in issues."""
    domain: str
    valid: bool = True
    issues: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add_issue(self, issue: str) -> None:
        self.valid = False
        self.issues.append(issue)


# ============================================
# PORTFOLIO STATE
# ============================================

@dataclass
class DomainState:
    """Mutable per-domain state within one run."""
    domain: str
    deployment_id: Optional[str] = None
    status: DomainStatus = DomainStatus.PENDING
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    updated_at: datetime = field(default_factory=utcnow)
    result: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "domain": self.domain,
            "deployment_id": self.deployment_id,
            "status": self.status.value,
            "error": self.error,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "updated_at": self.updated_at.isoformat(),
            "result": dict(self.result),
        }


@dataclass
class RollbackAction:
    """Undo step recorded while a domain deploys."""
    domain: str
    kind: str
    command: List[str]
    description: str = ""
    action_id: str = field(default_factory=lambda: uuid4().hex[:8])
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action_id": self.action_id,
            "domain": self.domain,
            "kind": self.kind,
            "command": list(self.command),
            "description": self.description,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class PortfolioState:
    """Everything known about one orchestration run."""
    orchestration_id: str
    environment: str
    dry_run: bool = False
    domain_states: Dict[str, DomainState] = field(default_factory=dict)
    rollback_plan: List[RollbackAction] = field(default_factory=list)
    started_at: datetime = field(default_factory=utcnow)
    finished_at: Optional[datetime] = None


@dataclass(frozen=True)
class AuditEvent:
    """Append-only audit record."""
    timestamp: datetime
    event: str
    scope: str
    details: Dict[str, Any]
    user: str
    orchestration_id: str
    sequence: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "orchestration_id": self.orchestration_id,
            "sequence": self.sequence,
            "event": self.event,
            "scope": self.scope,
            "details": self.details,
            "user": self.user,
        }


# ============================================
# DATABASE RESULTS
# ============================================

@dataclass
class MigrationResult:
    database_name: str
    binding_name: str
    environment: str
    status: OperationStatus
    migrations_applied: int = 0
    output: str = ""
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "database_name": self.database_name,
            "binding_name": self.binding_name,
            "environment": self.environment,
            "status": self.status.value,
            "migrations_applied": self.migrations_applied,
            "output": self.output,
            "error": self.error,
        }


@dataclass
class BackupRecord:
    backup_id: str
    database_name: str
    environment: str
    status: OperationStatus
    backup_file: Optional[str] = None
    size_bytes: Optional[int] = None
    timestamp: datetime = field(default_factory=utcnow)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "backup_id": self.backup_id,
            "database_name": self.database_name,
            "environment": self.environment,
            "status": self.status.value,
            "backup_file": self.backup_file,
            "size_bytes": self.size_bytes,
            "timestamp": self.timestamp.isoformat(),
            "error": self.error,
        }


@dataclass
class EnvironmentBackup:
    backup_id: str
    environment: str
    backup_dir: Optional[str]
    databases: Dict[str, BackupRecord] = field(default_factory=dict)
    started_at: datetime = field(default_factory=utcnow)
    finished_at: Optional[datetime] = None

    @property
    def duration(self) -> float:
        end = self.finished_at or utcnow()
        return (end - self.started_at).total_seconds()

    @property
    def failed_databases(self) -> List[str]:
        return [
            name for name, record in self.databases.items()
            if record.status == OperationStatus.FAILED
        ]

    def to_manifest(self) -> Dict[str, Any]:
        return {
            "backup_id": self.backup_id,
            "environment": self.environment,
            "backup_dir": self.backup_dir,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration": self.duration,
            "databases": {name: record.to_dict() for name, record in self.databases.items()},
        }


# ============================================
# DEPLOYMENT RESULTS
# ============================================

@dataclass
class DomainDeploymentResult:
    domain: str
    success: bool
    status: DomainStatus
    deployment_id: Optional[str] = None
    duration: float = 0.0
    url: Optional[str] = None
    worker_url: Optional[str] = None
    database: Dict[str, Any] = field(default_factory=dict)
    migration: Optional[MigrationResult] = None
    error: Optional[str] = None
    rolled_back: bool = False
    dry_run: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "domain": self.domain,
            "success": self.success,
            "status": self.status.value,
            "deployment_id": self.deployment_id,
            "duration": self.duration,
            "url": self.url,
            "worker_url": self.worker_url,
            "database": dict(self.database),
            "migration": self.migration.to_dict() if self.migration else None,
            "error": self.error,
            "rolled_back": self.rolled_back,
            "dry_run": self.dry_run,
        }


@dataclass
class PortfolioDeploymentResult:
    orchestration_id: str
    successful: List[DomainDeploymentResult] = field(default_factory=list)
    failed: List[DomainDeploymentResult] = field(default_factory=list)
    not_started: List[str] = field(default_factory=list)
    duration: float = 0.0
    summary: Dict[str, Any] = field(default_factory=dict)

    @property
    def results(self) -> List[DomainDeploymentResult]:
        return [*self.successful, *self.failed]
