# orchestration_engine/run_api.py
"""Serve the status API while a portfolio deploys: python -m orchestration_engine.run_api <domain> [...]"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager

import uvicorn

from orchestration_engine.api.main import create_app
from orchestration_engine.core.errors import OrchestrationError
from orchestration_engine.orchestrator.multi_domain_orchestrator import MultiDomainOrchestrator

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


async def _deploy(orchestrator: MultiDomainOrchestrator) -> None:
    try:
        await orchestrator.initialize()
        await orchestrator.deploy_portfolio()
    except OrchestrationError as e:
        logger.error(f"❌ Portfolio deployment failed: {e}")


async def _stop(task: asyncio.Task) -> None:
    if not task.done():
        task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        logger.info("Portfolio deployment cancelled on shutdown")
    except Exception:
        logger.exception("❌ Portfolio deployment crashed")


def build_app(orchestrator: MultiDomainOrchestrator):
    app = create_app(orchestrator)

    @asynccontextmanager
    async def lifespan(_app):
        task = asyncio.create_task(_deploy(orchestrator))
        yield
        await _stop(task)

    app.router.lifespan_context = lifespan
    return app


def main():
    """Main entry point."""
    domains = sys.argv[1:]
    if not domains:
        print("usage: python -m orchestration_engine.run_api <domain> [<domain> ...]")
        sys.exit(2)

    orchestrator = MultiDomainOrchestrator(domains)
    uvicorn.run(
        build_app(orchestrator),
        host=orchestrator.settings.api_host,
        port=orchestrator.settings.api_port,
    )


if __name__ == "__main__":
    main()
