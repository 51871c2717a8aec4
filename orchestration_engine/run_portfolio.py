# orchestration_engine/run_portfolio.py
"""Deploy a portfolio of domains: python -m orchestration_engine.run_portfolio <domain> [...]"""

import asyncio
import logging
import sys

from orchestration_engine.core.config import OrchestratorSettings
from orchestration_engine.core.errors import OrchestrationError
from orchestration_engine.orchestrator.multi_domain_orchestrator import MultiDomainOrchestrator

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


async def run(domains) -> int:
    settings = OrchestratorSettings()
    orchestrator = MultiDomainOrchestrator(domains, settings=settings)

    logger.info("=" * 80)
    logger.info("🚀 PORTFOLIO DEPLOYMENT")
    logger.info("=" * 80)
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Domains: {', '.join(domains)}")
    logger.info(f"Parallel: {settings.parallel_deployments}")
    logger.info(f"Dry run: {settings.dry_run}")
    logger.info("=" * 80)

    try:
        await orchestrator.initialize()
        result = await orchestrator.deploy_portfolio()
    except OrchestrationError as e:
        logger.error(f"❌ {e}")
        return 1

    return 0 if not result.failed else 1


def main():
    """Main entry point."""
    domains = sys.argv[1:]
    if not domains:
        print("usage: python -m orchestration_engine.run_portfolio <domain> [<domain> ...]")
        sys.exit(2)

    sys.exit(asyncio.run(run(domains)))


if __name__ == "__main__":
    main()
