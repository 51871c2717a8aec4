from fastapi import FastAPI

from orchestration_engine.api.routes.circuits import router as circuits_router
from orchestration_engine.api.routes.portfolio import router as portfolio_router
from orchestration_engine.orchestrator.multi_domain_orchestrator import MultiDomainOrchestrator


def create_app(orchestrator: MultiDomainOrchestrator) -> FastAPI:
    app = FastAPI(title="Orchestration Engine API")
    app.state.orchestrator = orchestrator

    @app.get("/health")
    def health():
        return {"status": "ok"}

    app.include_router(portfolio_router)
    app.include_router(circuits_router)
    return app
