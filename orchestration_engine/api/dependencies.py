#orchestration_engine\api\dependencies.py
from fastapi import Request

from orchestration_engine.orchestrator.multi_domain_orchestrator import MultiDomainOrchestrator


def get_orchestrator(request: Request) -> MultiDomainOrchestrator:
    return request.app.state.orchestrator
