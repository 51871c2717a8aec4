# orchestration_engine/orchestrator/deployment_coordinator.py
"""Deployment coordinator - runs the deployment phases for one domain."""

import asyncio
import logging
import re
import time
from typing import Any, Dict, List, Optional

from orchestration_engine.collaborators.health import is_healthy
from orchestration_engine.core.environments import get_environment
from orchestration_engine.core.errors import (
    OrchestrationValidationError,
    TransientExecutionError,
)
from orchestration_engine.core.hooks import HookEvent
from orchestration_engine.core.models import (
    Domain,
    DomainDeploymentResult,
    DomainStatus,
    MigrationResult,
    RollbackAction,
)
from orchestration_engine.core.state_machine import DomainStateMachine
from orchestration_engine.executor.retry import retry_async
from orchestration_engine.orchestrator.context import OrchestrationContext

logger = logging.getLogger(__name__)


WORKER_URL_PATTERN = re.compile(r"https://[^\s]+")


def circuit_key(domain: str) -> str:
    return f"deploy:{domain}"


def custom_url(domain: str, environment: str) -> str:
    if environment == "production":
        return f"https://{domain}"
    return f"https://{environment}.{domain}"


class DeploymentCoordinator:
    """
    Coordinates the deployment of a single domain.

    Flow:
    1. Validate prerequisites
    2. Check the domain's circuit
    3. Run pre-deploy hooks
    4. Ensure the database exists (create it if missing)
    5. Push the worker and upload secrets
    6. Apply migrations
    7. Validate health
    8. Mark completed, or failed and roll back
    """

    def __init__(self, context: OrchestrationContext):
        self.context = context
        self.settings = context.settings
        self.environment = get_environment(context.settings.environment)
        self.dry_run = context.settings.dry_run

        self._state = context.state_manager
        self._circuits = context.circuit_breaker
        self._hooks = context.hooks
        self._executor = context.executor

    @property
    def parallel_deployments(self) -> int:
        return self.settings.parallel_deployments

    # -------------------------
    # DEPLOY
    # -------------------------

    async def deploy_domain(self, domain: Domain) -> DomainDeploymentResult:
        """Run every phase for the domain. Domain-level failures land in the result."""
        name = domain.name
        started = time.monotonic()
        key = circuit_key(name)
        state = self._state.get_domain_state(name)
        deployment_id = state.deployment_id if state else None

        result = DomainDeploymentResult(
            domain=name,
            success=False,
            status=DomainStatus.PENDING,
            deployment_id=deployment_id,
            dry_run=self.dry_run,
        )

        if state is not None and DomainStateMachine.is_finished(state.status):
            result.status = state.status
            result.success = state.status == DomainStatus.COMPLETED
            if not result.success:
                result.error = f"Domain {name} already {state.status.value}; start a new orchestration to redeploy"
            logger.warning(f"[coordinator] {name} already {state.status.value}, not redeploying")
            self._state.log_audit_event("DOMAIN_DEPLOYMENT_SKIPPED", name, {
                "deployment_id": deployment_id,
                "status": state.status.value,
            })
            return result

        logger.info(f"[coordinator] 🚀 Deploying {name} ({deployment_id}) to {self.environment.name}")
        external_calls = False

        try:
            self._set_status(name, DomainStatus.VALIDATING)
            report = await self.context.resolver.validate_domain_prerequisites(domain, self.environment.name)
            if not report.valid:
                raise OrchestrationValidationError(
                    f"Prerequisites not met for {name}: {'; '.join(report.issues)}"
                )
            for warning in report.warnings:
                logger.warning(f"[coordinator] {name}: {warning}")

            if not self._circuits.can_execute(key):
                raise OrchestrationValidationError(f"Circuit open for {key}; deployment skipped")

            external_calls = True
            payload = self._hook_payload(domain)
            await self._hooks.run_required(HookEvent.PRE_DEPLOY, payload)

            self._set_status(name, DomainStatus.DEPLOYING)
            result.database = await self._ensure_database(domain)
            deployment = await self._deploy_worker(domain)
            result.url = deployment["url"]
            result.worker_url = deployment.get("worker_url")
            self._state.update_domain_state(name, result={
                "url": result.url,
                "worker_url": result.worker_url,
                "database": dict(result.database),
            })

            await self._apply_secrets(domain)

            self._set_status(name, DomainStatus.MIGRATING)
            result.migration = await self._apply_migrations(domain)

            await self._validate_deployment(name, result.worker_url or result.url)

            self._set_status(name, DomainStatus.COMPLETED)
            self._circuits.record_success(key)

            result.success = True
            result.status = DomainStatus.COMPLETED
            result.duration = time.monotonic() - started

            self._state.log_audit_event("DOMAIN_DEPLOYMENT_COMPLETED", name, {
                "deployment_id": deployment_id,
                "url": result.url,
                "duration": result.duration,
                "dry_run": self.dry_run,
            })
            await self._hooks.run(HookEvent.POST_DEPLOY, {**payload, "result": result.to_dict()})

            logger.info(f"[coordinator] ✅ {name} deployed in {result.duration:.1f}s")
            return result

        except Exception as e:
            result.error = str(e)
            result.duration = time.monotonic() - started
            logger.error(f"[coordinator] ❌ {name} deployment failed: {e}")

            self._state.update_domain_state(name, status=DomainStatus.FAILED, error=str(e))
            result.status = DomainStatus.FAILED

            if external_calls:
                self._circuits.record_failure(key)

            self._state.log_audit_event("DOMAIN_DEPLOYMENT_FAILED", name, {
                "deployment_id": deployment_id,
                "error": str(e),
                "error_type": type(e).__name__,
            })

            if external_calls:
                await self._hooks.run(HookEvent.DEPLOY_FAILED, {
                    **self._hook_payload(domain), "error": str(e),
                })

            if external_calls and self.settings.rollback_enabled and not self.dry_run:
                await self.rollback_domain(name)
                result.rolled_back = True
                result.status = DomainStatus.ROLLED_BACK

            return result

    # -------------------------
    # PHASES
    # -------------------------

    async def _ensure_database(self, domain: Domain) -> Dict[str, Any]:
        descriptor = domain.database_for(self.environment.name)
        info: Dict[str, Any] = {
            "name": descriptor.name,
            "binding": descriptor.binding,
            "database_id": descriptor.database_id,
            "created": False,
        }

        if self.dry_run:
            logger.info(f"[coordinator] [dry-run] would ensure database {descriptor.name}")
            return info

        gateway = self.context.gateway
        if await gateway.database_exists(descriptor.name):
            logger.info(f"[coordinator] Database already exists: {descriptor.name}")
        else:
            logger.info(f"[coordinator] 📦 Creating database: {descriptor.name}")
            info["database_id"] = await gateway.create_database(descriptor.name)
            info["created"] = True
            self._state.add_rollback_action(RollbackAction(
                domain=domain.name,
                kind="delete-database",
                command=[
                    *self.settings.cli, self.settings.database_resource,
                    "delete", descriptor.name, "--skip-confirmation",
                ],
                description=f"Delete database {descriptor.name} created during deployment",
            ))

        self._state.log_audit_event(
            "DATABASE_CREATED" if info["created"] else "DATABASE_FOUND",
            domain.name,
            {**info, "environment": self.environment.name},
        )
        return info

    async def _deploy_worker(self, domain: Domain) -> Dict[str, Any]:
        url = custom_url(domain.name, self.environment.name)

        if self.dry_run:
            logger.info(f"[coordinator] [dry-run] would deploy worker for {domain.name}")
            return {"url": url, "worker_url": None, "deployed": False}

        command = [*self.settings.cli, "deploy", "--env", self.environment.name]
        stdout = await self._executor.execute(command, timeout=self.settings.deploy_timeout)

        self._state.add_rollback_action(RollbackAction(
            domain=domain.name,
            kind="rollback-worker",
            command=[*self.settings.cli, "rollback", "--env", self.environment.name],
            description=f"Roll back worker deployment for {domain.name}",
        ))

        match = WORKER_URL_PATTERN.search(stdout or "")
        worker_url = match.group(0) if match else None
        if worker_url:
            logger.info(f"[coordinator] 🔗 Worker URL: {worker_url}")
        else:
            logger.info(f"[coordinator] Deployment completed (URL not detected in output)")

        return {"url": url, "worker_url": worker_url, "deployed": True}

    async def _apply_secrets(self, domain: Domain) -> List[str]:
        secrets = await self.context.secrets.secrets_for(domain.name, self.environment.name)
        if not secrets:
            return []

        if self.dry_run:
            logger.info(f"[coordinator] [dry-run] would upload {len(secrets)} secret(s) for {domain.name}")
            return sorted(secrets)

        for secret_name, value in secrets.items():
            await self._executor.execute(
                [*self.settings.cli, "secret", "put", secret_name, "--env", self.environment.name],
                input=value,
            )

        names = sorted(secrets)
        self._state.log_audit_event("SECRETS_APPLIED", domain.name, {
            "count": len(names),
            "names": names,
            "environment": self.environment.name,
        })
        return names

    async def _apply_migrations(self, domain: Domain) -> MigrationResult:
        descriptor = domain.database_for(self.environment.name)

        # Backup must be completed or recorded failed before migrating
        if self.environment.requires_backup:
            backup = await self.context.database.create_environment_backup(
                self.environment.name, [domain], dry_run=self.dry_run,
            )
            self._state.update_domain_state(domain.name, result={
                "backup": {
                    "backup_id": backup.backup_id,
                    "backup_dir": backup.backup_dir,
                    "failed_databases": backup.failed_databases,
                },
            })

        return await self.context.database.apply_database_migrations(
            descriptor.name,
            descriptor.binding,
            self.environment.name,
            self.environment.is_remote,
            dry_run=self.dry_run,
        )

    async def _validate_deployment(self, domain: str, url: Optional[str]) -> Optional[Dict[str, Any]]:
        if self.dry_run or self.settings.skip_tests:
            logger.info(f"[coordinator] Skipping health check for {domain} ({'dry run' if self.dry_run else 'tests disabled'})")
            return None
        if not url:
            logger.info(f"[coordinator] Skipping health check for {domain} (no URL known)")
            return None

        attempts = self.settings.health_check_attempts
        last_problem = "unknown"

        for attempt in range(1, attempts + 1):
            try:
                report = await self.context.health_checker.check(url)
                if is_healthy(report):
                    logger.info(f"[coordinator] 💚 {domain} healthy (attempt {attempt}/{attempts})")
                    self._state.update_domain_state(domain, result={"health": report})
                    return report
                last_problem = f"status {report.get('status')!r}"
            except Exception as e:
                last_problem = str(e)

            logger.warning(f"[coordinator] Health check {attempt}/{attempts} for {domain} failed: {last_problem}")
            if attempt < attempts:
                await asyncio.sleep(self.settings.health_check_delay)

        raise TransientExecutionError(
            f"Health check failed for {url} after {attempts} attempt(s): {last_problem}"
        )

    # -------------------------
    # ROLLBACK
    # -------------------------

    async def rollback_domain(self, domain: str) -> bool:
        """
        Replay the domain's rollback actions in reverse, best-effort.

        The domain's original error is kept. Returns True when every step
        succeeded.
        """
        actions = list(reversed(self._state.get_rollback_plan(domain)))
        payload = {"domain": domain, "environment": self.environment.name, "actions": len(actions)}
        await self._hooks.run(HookEvent.PRE_ROLLBACK, payload)

        logger.info(f"[coordinator] ↩️ Rolling back {domain} ({len(actions)} action(s))")
        all_ok = True

        for action in actions:
            try:
                await retry_async(
                    lambda action=action: self._executor.run_once(action.command),
                    self._executor.policy,
                    description=f"rollback {action.kind} ({domain})",
                )
            except Exception as e:
                all_ok = False
                logger.error(f"[coordinator] Rollback step {action.kind} failed for {domain}: {e}")
                self._state.log_audit_event("ROLLBACK_STEP_FAILED", domain, {
                    "action_id": action.action_id,
                    "kind": action.kind,
                    "error": str(e),
                })

        self._state.update_domain_state(domain, status=DomainStatus.ROLLED_BACK)
        self._state.log_audit_event("DOMAIN_ROLLED_BACK", domain, {
            "actions": len(actions),
            "clean": all_ok,
        })
        await self._hooks.run(HookEvent.POST_ROLLBACK, {**payload, "clean": all_ok})
        return all_ok

    # -------------------------
    # REPORTING
    # -------------------------

    def validate_configuration(self) -> Dict[str, Any]:
        issues = []
        warnings = []
        parallel = self.parallel_deployments

        if parallel < 1:
            issues.append("parallel_deployments must be at least 1")
        if parallel > 10:
            issues.append("parallel_deployments exceeds recommended maximum of 10")
        if parallel > 5:
            warnings.append("High parallelism may cause rate limiting")
        if self.settings.health_check_delay < 0:
            issues.append("health_check_delay cannot be negative")

        return {"valid": not issues, "issues": issues, "warnings": warnings}

    @staticmethod
    def generate_deployment_summary(
        total: int,
        successful: List[DomainDeploymentResult],
        failed: List[DomainDeploymentResult],
    ) -> Dict[str, Any]:
        success_rate = round(len(successful) / total * 100, 1) if total else 0.0
        average = (
            round(sum(r.duration for r in successful) / len(successful), 1)
            if successful else 0.0
        )
        return {
            "total": total,
            "successful": len(successful),
            "failed": len(failed),
            "not_started": total - len(successful) - len(failed),
            "success_rate": success_rate,
            "average_duration": average,
        }

    # -------------------------
    # HELPERS
    # -------------------------

    def _set_status(self, domain: str, status: DomainStatus) -> None:
        self._state.update_domain_state(domain, status=status)

    def _hook_payload(self, domain: Domain) -> Dict[str, Any]:
        state = self._state.get_domain_state(domain.name)
        return {
            "domain": domain.name,
            "environment": self.environment.name,
            "deployment_id": state.deployment_id if state else None,
            "dry_run": self.dry_run,
        }
