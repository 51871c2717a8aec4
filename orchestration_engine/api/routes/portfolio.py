from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from orchestration_engine.api.dependencies import get_orchestrator
from orchestration_engine.api.schemas.portfolio import (
    AuditEventResponse,
    AuditLogResponse,
    DomainStateResponse,
    PortfolioSummaryResponse,
)

router = APIRouter(prefix="/portfolio", tags=["portfolio"])


@router.get("", response_model=PortfolioSummaryResponse)
def get_portfolio(orchestrator=Depends(get_orchestrator)):
    summary = orchestrator.state_manager.get_portfolio_summary()
    domains = {
        name: DomainStateResponse(**state.to_dict())
        for name, state in orchestrator.state_manager.get_state().domain_states.items()
    }
    return PortfolioSummaryResponse(**summary, domains=domains)


@router.get("/domains/{name}", response_model=DomainStateResponse)
def get_domain(name: str, orchestrator=Depends(get_orchestrator)):
    state = orchestrator.state_manager.get_domain_state(name.lower())

    if not state:
        raise HTTPException(status_code=404, detail="Domain not found")

    return DomainStateResponse(**state.to_dict())


@router.get("/audit", response_model=AuditLogResponse)
def get_audit_log(
    event: Optional[str] = None,
    scope: Optional[str] = None,
    since: Optional[datetime] = None,
    orchestrator=Depends(get_orchestrator),
):
    entries = orchestrator.state_manager.get_audit_log(event=event, scope=scope, since=since)
    return AuditLogResponse(
        count=len(entries),
        events=[AuditEventResponse(**entry.to_dict()) for entry in entries],
    )
