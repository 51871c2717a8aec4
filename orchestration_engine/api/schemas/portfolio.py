from typing import Any, Dict, List, Optional
from pydantic import BaseModel


class DomainStateResponse(BaseModel):
    domain: str
    deployment_id: Optional[str] = None
    status: str
    error: Optional[str] = None
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    updated_at: str
    result: Dict[str, Any] = {}


class PortfolioSummaryResponse(BaseModel):
    orchestration_id: str
    environment: str
    dry_run: bool
    total_domains: int
    pending: int
    in_progress: int
    completed: int
    failed: int
    rolled_back: int
    started_at: str
    finished_at: Optional[str] = None
    duration: float
    audit_log_size: int
    rollback_actions: int
    domains: Dict[str, DomainStateResponse] = {}


class AuditEventResponse(BaseModel):
    timestamp: str
    orchestration_id: str
    sequence: int
    event: str
    scope: str
    details: Dict[str, Any]
    user: str


class AuditLogResponse(BaseModel):
    count: int
    events: List[AuditEventResponse]


class CircuitStatusResponse(BaseModel):
    key: str
    state: str
    failure_count: int
    success_count: int
    last_failure_time: Optional[float] = None
    next_attempt_time: Optional[float] = None
    can_execute: bool
