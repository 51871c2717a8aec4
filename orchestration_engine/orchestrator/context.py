#orchestration_engine\orchestrator\context.py

"""Orchestration context - wires all components for one run."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

from orchestration_engine.collaborators.gateway import CliDatabaseGateway, DatabaseGateway
from orchestration_engine.collaborators.health import HealthChecker, HttpHealthChecker
from orchestration_engine.collaborators.secrets import SecretProvider, StaticSecretProvider
from orchestration_engine.core.config import (
    OrchestratorSettings,
    resolve_persistence,
    resolve_project_root,
)
from orchestration_engine.core.hooks import HookRegistry
from orchestration_engine.database.orchestrator import ConfirmCallback, DatabaseOrchestrator
from orchestration_engine.domains.resolver import DomainResolver, load_catalog
from orchestration_engine.executor.command_runner import CommandRunner, SubprocessCommandRunner
from orchestration_engine.executor.retry import CommandExecutor, RetryPolicy
from orchestration_engine.resilience.circuit_breaker import CircuitBreaker
from orchestration_engine.state.state_manager import StateManager

logger = logging.getLogger(__name__)


@dataclass
class OrchestrationContext:
    """
    Every collaborator of one orchestration run.

    Built once from OrchestratorSettings and passed to each component;
    nothing reads the environment after construction.
    """
    settings: OrchestratorSettings
    project_root: Optional[Path]
    enable_persistence: bool
    executor: CommandExecutor
    gateway: DatabaseGateway
    health_checker: HealthChecker
    secrets: SecretProvider
    circuit_breaker: CircuitBreaker
    state_manager: StateManager
    resolver: DomainResolver
    database: DatabaseOrchestrator
    hooks: HookRegistry

    @classmethod
    def create(
        cls,
        settings: Optional[OrchestratorSettings] = None,
        *,
        enable_persistence: Optional[bool] = None,
        catalog: Optional[Mapping[str, Mapping[str, Any]]] = None,
        runner: Optional[CommandRunner] = None,
        gateway: Optional[DatabaseGateway] = None,
        health_checker: Optional[HealthChecker] = None,
        secrets: Optional[SecretProvider] = None,
        confirm_cleanup: Optional[ConfirmCallback] = None,
    ) -> "OrchestrationContext":
        """
        Build a context. Explicit arguments win over settings.

        Args:
            settings: Defaults to OrchestratorSettings() (environment + .env)
            enable_persistence: Explicit persistence toggle
            catalog: Known domain configurations; merged over domains_file
            runner: Command runner; defaults to asyncio subprocesses
            gateway: Database gateway; defaults to the CLI gateway
            health_checker: Defaults to the HTTP checker
            secrets: Defaults to an empty static provider
            confirm_cleanup: Confirmation for cleanups that need one
        """
        settings = settings or OrchestratorSettings()
        project_root = resolve_project_root(settings)
        persistence = resolve_persistence(enable_persistence, settings) and project_root is not None

        policy = RetryPolicy(max_attempts=settings.retry_attempts, delay_seconds=settings.retry_delay)
        executor = CommandExecutor(
            runner or SubprocessCommandRunner(),
            policy,
            default_cwd=project_root,
            default_timeout=settings.deploy_timeout,
        )

        gateway = gateway or CliDatabaseGateway(
            executor,
            cli=settings.cli,
            resource=settings.database_resource,
            timeout=settings.cleanup_timeout,
        )

        state_manager = StateManager(
            environment=settings.environment,
            dry_run=settings.dry_run,
            enable_persistence=persistence,
            logs_dir=project_root / settings.logs_dir if project_root is not None else None,
            user=settings.audit_user,
        )

        known = {}
        if settings.domains_file is not None:
            known.update(load_catalog(settings.domains_file))
        if catalog:
            known.update({name.lower(): dict(cfg) for name, cfg in catalog.items()})

        resolver = DomainResolver(
            known,
            environment=settings.environment,
            database_gateway=gateway,
        )

        backup_root = None
        if persistence and project_root is not None:
            backup_root = project_root / settings.backup_dir / "database"

        database = DatabaseOrchestrator(
            executor=executor,
            gateway=gateway,
            state_manager=state_manager,
            cli=settings.cli,
            resource=settings.database_resource,
            project_root=project_root,
            backup_root=backup_root,
            dry_run=settings.dry_run,
            migration_timeout=settings.migration_timeout,
            backup_timeout=settings.backup_timeout,
            cleanup_timeout=settings.cleanup_timeout,
            confirm=confirm_cleanup or (lambda environment, cleanup_type: settings.allow_production_cleanup),
        )

        circuit_breaker = CircuitBreaker(
            failure_threshold=settings.circuit_failure_threshold,
            recovery_timeout=settings.circuit_recovery_timeout,
            required_half_open_successes=settings.circuit_half_open_successes,
            monitoring_period=settings.circuit_monitoring_period,
        )

        logger.info(
            f"[context] environment={settings.environment} dry_run={settings.dry_run} "
            f"persistence={persistence} root={project_root}"
        )

        return cls(
            settings=settings,
            project_root=project_root,
            enable_persistence=persistence,
            executor=executor,
            gateway=gateway,
            health_checker=health_checker or HttpHealthChecker(timeout=settings.health_check_timeout),
            secrets=secrets or StaticSecretProvider(),
            circuit_breaker=circuit_breaker,
            state_manager=state_manager,
            resolver=resolver,
            database=database,
            hooks=HookRegistry(policy=policy, timeout=settings.hook_timeout),
        )
