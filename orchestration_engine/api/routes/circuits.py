from typing import List

from fastapi import APIRouter, Depends

from orchestration_engine.api.dependencies import get_orchestrator
from orchestration_engine.api.schemas.portfolio import CircuitStatusResponse

router = APIRouter(prefix="/circuits", tags=["circuits"])


@router.get("", response_model=List[CircuitStatusResponse])
def list_circuits(orchestrator=Depends(get_orchestrator)):
    statuses = orchestrator.context.circuit_breaker.get_all_statuses()
    return [CircuitStatusResponse(**status.to_dict()) for status in statuses.values()]


@router.post("/{key}/reset", response_model=CircuitStatusResponse)
def reset_circuit(key: str, orchestrator=Depends(get_orchestrator)):
    breaker = orchestrator.context.circuit_breaker
    breaker.reset(key)
    orchestrator.state_manager.log_audit_event("CIRCUIT_RESET", "SYSTEM", {"key": key})
    return CircuitStatusResponse(**breaker.get_status(key).to_dict())
