# orchestration_engine/orchestrator/multi_domain_orchestrator.py
"""Multi-domain orchestrator - the entry point for portfolio deployments."""

import asyncio
import logging
import time
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from orchestration_engine.core.config import OrchestratorSettings
from orchestration_engine.core.errors import (
    OrchestrationError,
    OrchestrationValidationError,
    PortfolioDeploymentError,
)
from orchestration_engine.core.models import (
    Domain,
    DomainDeploymentResult,
    DomainStatus,
    PortfolioDeploymentResult,
    ValidationReport,
)
from orchestration_engine.orchestrator.context import OrchestrationContext
from orchestration_engine.orchestrator.deployment_coordinator import DeploymentCoordinator

logger = logging.getLogger(__name__)


DomainRequest = Union[str, Mapping[str, Any]]


class MultiDomainOrchestrator:
    """
    Deploys a portfolio of domains into one environment.

    Usage:
        orchestrator = MultiDomainOrchestrator(["a.example.com", "b.example.com"])
        await orchestrator.initialize()
        result = await orchestrator.deploy_portfolio()
    """

    def __init__(
        self,
        domains: Iterable[DomainRequest],
        *,
        context: Optional[OrchestrationContext] = None,
        settings: Optional[OrchestratorSettings] = None,
        **overrides: Any,
    ):
        """
        Args:
            domains: Domain names known to the catalog, or inline configs
            context: Pre-built context; built from settings when omitted
            settings: Base settings; ignored when a context is given
            **overrides: Settings fields to override (environment, dry_run,
                parallel_deployments, continue_on_error, ...)
        """
        if context is None:
            base = settings or OrchestratorSettings()
            if overrides:
                base = OrchestratorSettings.model_validate({**base.model_dump(), **overrides})
            context = OrchestrationContext.create(base)
        elif overrides:
            raise OrchestrationValidationError("Settings overrides cannot be combined with a pre-built context")

        self.context = context
        self.settings = context.settings
        self.environment = context.settings.environment
        self.dry_run = context.settings.dry_run

        self.state_manager = context.state_manager
        self.coordinator = DeploymentCoordinator(context)

        self._requests: List[DomainRequest] = list(domains)
        self._domains: Dict[str, Domain] = {}
        self._resolution_errors: Dict[str, str] = {}
        self._initialized = False

    @property
    def domain_names(self) -> List[str]:
        names = []
        for request in self._requests:
            if isinstance(request, Mapping):
                names.append(str(request.get("name", "")).strip().lower())
            else:
                names.append(str(request).strip().lower())
        return list(dict.fromkeys(names))

    # -------------------------
    # INITIALIZATION
    # -------------------------

    async def initialize(self) -> None:
        """Pre-populate pending state for every domain, then resolve them."""
        if self._initialized:
            return

        if not self._requests:
            raise OrchestrationValidationError("No domains requested")

        config_check = self.coordinator.validate_configuration()
        if not config_check["valid"]:
            raise OrchestrationValidationError(
                f"Invalid orchestration configuration: {'; '.join(config_check['issues'])}"
            )

        names = self.domain_names
        if "" in names:
            raise OrchestrationValidationError("Inline domain configuration is missing a name")

        self.state_manager.initialize_domain_states(names)

        for resolution in self.context.resolver.resolve_multiple_domains(self._requests):
            if resolution.ok:
                self._domains[resolution.name] = resolution.domain
            else:
                self._resolution_errors[resolution.name] = resolution.error
                self.state_manager.update_domain_state(
                    resolution.name, status=DomainStatus.FAILED, error=resolution.error,
                )
                self.state_manager.log_audit_event("DOMAIN_RESOLUTION_FAILED", resolution.name, {
                    "error": resolution.error,
                })

        self.state_manager.log_audit_event("ORCHESTRATOR_INITIALIZED", "SYSTEM", {
            "environment": self.environment,
            "dry_run": self.dry_run,
            "domains": names,
            "resolved": len(self._domains),
            "unresolved": len(self._resolution_errors),
        })
        self._initialized = True

        logger.info(
            f"[orchestrator] Initialized {len(names)} domain(s) for {self.environment} "
            f"({len(self._resolution_errors)} unresolved)"
        )

    # -------------------------
    # DEPLOYMENT
    # -------------------------

    async def deploy_single_domain(self, name: str) -> DomainDeploymentResult:
        await self.initialize()
        name = name.strip().lower()

        if self.state_manager.get_domain_state(name) is None:
            raise OrchestrationValidationError(f"Domain {name} is not part of this portfolio")

        if name in self._resolution_errors:
            state = self.state_manager.get_domain_state(name)
            return DomainDeploymentResult(
                domain=name,
                success=False,
                status=state.status,
                deployment_id=state.deployment_id,
                error=self._resolution_errors[name],
                dry_run=self.dry_run,
            )

        return await self.coordinator.deploy_domain(self._domains[name])

    async def deploy_portfolio(self) -> PortfolioDeploymentResult:
        """
        Deploy every domain with at most parallel_deployments in flight.

        Raises:
            PortfolioDeploymentError: a domain failed and continue_on_error is
                off; in-flight domains finish first, no new domain starts
        """
        await self.initialize()

        names = self.domain_names
        started = time.monotonic()
        result = PortfolioDeploymentResult(
            orchestration_id=self.state_manager.get_state().orchestration_id,
        )
        stop = asyncio.Event()

        logger.info(
            f"[orchestrator] 🌐 Deploying {len(names)} domain(s) to {self.environment}, "
            f"parallel limit {self.settings.parallel_deployments}"
        )
        self.state_manager.log_audit_event("PORTFOLIO_DEPLOYMENT_STARTED", "ALL", {
            "domains": names,
            "parallel_deployments": self.settings.parallel_deployments,
            "dry_run": self.dry_run,
        })

        queue: asyncio.Queue = asyncio.Queue()
        for name in names:
            queue.put_nowait(name)

        async def worker() -> None:
            while True:
                try:
                    name = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                try:
                    if stop.is_set():
                        result.not_started.append(name)
                        continue

                    outcome = await self.deploy_single_domain(name)
                    if outcome.success:
                        result.successful.append(outcome)
                    else:
                        result.failed.append(outcome)
                        if not self.settings.continue_on_error:
                            stop.set()
                finally:
                    queue.task_done()

        workers = min(self.settings.parallel_deployments, len(names))
        await asyncio.gather(*(worker() for _ in range(workers)))

        self.state_manager.mark_portfolio_completed()
        result.duration = time.monotonic() - started
        result.summary = {
            **self.coordinator.generate_deployment_summary(len(names), result.successful, result.failed),
            "duration": result.duration,
            "dry_run": self.dry_run,
        }

        event = "PORTFOLIO_DEPLOYMENT_COMPLETED" if not result.failed else "PORTFOLIO_DEPLOYMENT_FAILED"
        self.state_manager.log_audit_event(event, "ALL", {
            **result.summary,
            "failed_domains": [r.domain for r in result.failed],
            "not_started": list(result.not_started),
        })

        self._log_complete(result)

        if result.failed and not self.settings.continue_on_error:
            first = result.failed[0]
            raise PortfolioDeploymentError(
                f"Portfolio deployment stopped after {first.domain} failed: {first.error}",
                result=result,
            )

        return result

    # -------------------------
    # QUERIES
    # -------------------------

    async def validate_domain_prerequisites(self, name: str, *, check_reachability: bool = True) -> ValidationReport:
        try:
            domain = self._domains.get(name.lower()) or self.context.resolver.resolve_domain(name)
        except OrchestrationError as e:
            report = ValidationReport(domain=name.lower())
            report.add_issue(str(e))
            return report

        return await self.context.resolver.validate_domain_prerequisites(
            domain, self.environment, check_reachability=check_reachability,
        )

    def get_portfolio_summary(self) -> Dict[str, Any]:
        summary = self.state_manager.get_portfolio_summary()
        summary["domains"] = {
            name: state.to_dict()
            for name, state in self.state_manager.get_state().domain_states.items()
        }
        summary["circuits"] = {
            key: status.to_dict()
            for key, status in self.context.circuit_breaker.get_all_statuses().items()
        }
        return summary

    def _log_complete(self, result: PortfolioDeploymentResult) -> None:
        summary = result.summary
        logger.info(
            f"[orchestrator] 🎉 Portfolio deployment finished: "
            f"{summary['successful']}/{summary['total']} succeeded, "
            f"{summary['failed']} failed, {summary['not_started']} not started "
            f"({summary['success_rate']}% in {result.duration:.1f}s)"
        )
        for failure in result.failed:
            logger.info(f"[orchestrator]    - {failure.domain}: {failure.error}")
