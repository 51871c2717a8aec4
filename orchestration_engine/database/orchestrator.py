# orchestration_engine/database/orchestrator.py
"""
Database orchestrator - migrations, backups and cleanup across environments.

Every mutating operation audits both its success and its failure path
through the StateManager.
"""

import json
import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union

from orchestration_engine.collaborators.gateway import DatabaseGateway
from orchestration_engine.core.environments import ENVIRONMENTS, Environment, get_environment
from orchestration_engine.core.errors import (
    EnvironmentMigrationError,
    OrchestrationValidationError,
    TransientExecutionError,
)
from orchestration_engine.core.models import (
    BackupRecord,
    Domain,
    EnvironmentBackup,
    MigrationResult,
    OperationStatus,
    utcnow,
)
from orchestration_engine.database import commands
from orchestration_engine.executor.retry import CommandExecutor
from orchestration_engine.state.state_manager import StateManager

logger = logging.getLogger(__name__)


ConfirmCallback = Callable[[str, str], bool]


class DatabaseOrchestrator:
    """Schema and data operations for every domain database in an environment."""

    def __init__(
        self,
        *,
        executor: CommandExecutor,
        gateway: DatabaseGateway,
        state_manager: StateManager,
        cli: Sequence[str] = ("npx", "wrangler"),
        resource: str = "d1",
        project_root: Optional[Path] = None,
        backup_root: Optional[Path] = None,
        dry_run: bool = False,
        migration_timeout: float = 120.0,
        backup_timeout: float = 300.0,
        cleanup_timeout: float = 60.0,
        confirm: Optional[ConfirmCallback] = None,
    ):
        """
        Args:
            executor: Runs CLI commands with timeout and retry
            gateway: Database existence checks
            state_manager: Receives every audit event
            cli: CLI prefix, e.g. ["npx", "wrangler"]
            resource: Database resource sub-command
            project_root: Working directory for commands
            backup_root: ``<project>/<backup_dir>/database``; None disables backup files
            dry_run: Default dry-run flag for every operation
            confirm: Called as confirm(environment, cleanup_type) before a
                cleanup that needs confirmation; declines when omitted
        """
        self.executor = executor
        self.gateway = gateway
        self.state = state_manager
        self.cli = list(cli)
        self.resource = resource
        self.project_root = project_root
        self.backup_root = Path(backup_root) if backup_root is not None else None
        self.dry_run = dry_run
        self.migration_timeout = migration_timeout
        self.backup_timeout = backup_timeout
        self.cleanup_timeout = cleanup_timeout
        self.confirm = confirm or (lambda environment, cleanup_type: False)

    def _dry(self, dry_run: Optional[bool]) -> bool:
        return self.dry_run if dry_run is None else dry_run

    # -------------------------
    # MIGRATIONS
    # -------------------------

    async def apply_migrations_across_environments(
        self,
        environments: Optional[Iterable[str]] = None,
        domain_configs: Iterable[Domain] = (),
        *,
        skip_backup: bool = False,
        continue_on_error: bool = False,
        dry_run: Optional[bool] = None,
    ) -> Dict[str, Any]:
        """
        Backup (when policy requires it) then migrate every domain database,
        one environment at a time.

        Raises:
            EnvironmentMigrationError: first failing environment when
                continue_on_error is off; carries the partial result
        """
        dry_run = self._dry(dry_run)
        domains = list(domain_configs)
        requested = list(environments) if environments is not None else list(ENVIRONMENTS)
        started = time.monotonic()

        result: Dict[str, Any] = {
            "migration_id": commands.migration_id(),
            "dry_run": dry_run,
            "environments": {},
            "summary": {"total": len(requested), "successful": 0, "failed": 0, "skipped": 0},
            "duration": 0.0,
        }

        logger.info(f"[database] 🚀 Migrating {len(domains)} domain(s) across {', '.join(requested)}")

        try:
            for env_name in requested:
                environment = ENVIRONMENTS.get(env_name)
                if environment is None:
                    logger.warning(f"[database] Unknown environment {env_name}, skipping")
                    result["environments"][env_name] = {"status": OperationStatus.SKIPPED.value}
                    result["summary"]["skipped"] += 1
                    continue

                try:
                    env_result = await self._migrate_environment(
                        environment, domains, skip_backup=skip_backup, dry_run=dry_run
                    )
                except Exception as e:
                    logger.error(f"[database] ❌ Environment {env_name} aborted: {e}")
                    env_result = {
                        "status": OperationStatus.FAILED.value,
                        "backup": None,
                        "databases": {},
                        "error": str(e),
                    }
                    self.state.log_audit_event("ENVIRONMENT_MIGRATION_FAILED", env_name, {
                        "error": str(e),
                    })
                result["environments"][env_name] = env_result

                if env_result["status"] == OperationStatus.FAILED.value:
                    result["summary"]["failed"] += 1
                    if not continue_on_error:
                        result["duration"] = time.monotonic() - started
                        raise EnvironmentMigrationError(env_name, env_result["error"], result=result)
                else:
                    result["summary"]["successful"] += 1

        except Exception as e:
            self.state.log_audit_event("MIGRATION_ORCHESTRATION_FAILED", "ALL", {
                "error": str(e),
                "summary": dict(result["summary"]),
            })
            raise

        result["duration"] = time.monotonic() - started
        self.state.log_audit_event("MIGRATION_ORCHESTRATION_COMPLETED", "ALL", {
            **result["summary"],
            "duration": result["duration"],
        })
        return result

    async def _migrate_environment(
        self,
        environment: Environment,
        domains: List[Domain],
        *,
        skip_backup: bool,
        dry_run: bool,
    ) -> Dict[str, Any]:
        env_result: Dict[str, Any] = {
            "status": OperationStatus.COMPLETED.value,
            "backup": None,
            "databases": {},
            "error": None,
        }

        if environment.requires_backup and not skip_backup:
            backup = await self.create_environment_backup(environment.name, domains, dry_run=dry_run)
            env_result["backup"] = backup.to_manifest()

        for descriptor in self._databases_for(environment.name, domains):
            try:
                migration = await self.apply_database_migrations(
                    descriptor.name,
                    descriptor.binding,
                    environment.name,
                    environment.is_remote,
                    dry_run=dry_run,
                )
            except Exception as e:
                migration = MigrationResult(
                    database_name=descriptor.name,
                    binding_name=descriptor.binding,
                    environment=environment.name,
                    status=OperationStatus.FAILED,
                    error=str(e),
                )
            env_result["databases"][descriptor.name] = migration.to_dict()

        failed = [
            name for name, db in env_result["databases"].items()
            if db["status"] == OperationStatus.FAILED.value
        ]
        if failed:
            env_result["status"] = OperationStatus.FAILED.value
            env_result["error"] = f"{len(failed)} database(s) failed: {', '.join(failed)}"
            self.state.log_audit_event("ENVIRONMENT_MIGRATION_FAILED", environment.name, {
                "failed_databases": failed,
                "total_databases": len(env_result["databases"]),
            })
        else:
            self.state.log_audit_event("ENVIRONMENT_MIGRATION_COMPLETED", environment.name, {
                "databases": list(env_result["databases"]),
                "dry_run": dry_run,
            })

        return env_result

    async def apply_database_migrations(
        self,
        database_name: str,
        binding_name: str,
        environment: str,
        is_remote: bool,
        *,
        dry_run: Optional[bool] = None,
    ) -> MigrationResult:
        if self._dry(dry_run):
            logger.info(f"[database] [dry-run] would migrate {database_name} ({environment})")
            return MigrationResult(
                database_name=database_name,
                binding_name=binding_name,
                environment=environment,
                status=OperationStatus.DRY_RUN,
            )

        try:
            if not await self.gateway.database_exists(database_name):
                raise OrchestrationValidationError(
                    f"Database {database_name} does not exist in {environment}; "
                    f"create it before applying migrations"
                )

            command = commands.migrations_apply_command(self.cli, self.resource, database_name, is_remote)
            output = await self.execute_with_retry(command, timeout=self.migration_timeout)
        except Exception as e:
            logger.error(f"[database] ❌ Migration failed for {database_name} ({environment}): {e}")
            self.state.log_audit_event("DATABASE_MIGRATION_FAILED", environment, {
                "database_name": database_name,
                "binding_name": binding_name,
                "error": str(e),
            })
            raise

        applied = commands.parse_migration_output(output)
        self.state.log_audit_event("DATABASE_MIGRATION_APPLIED", environment, {
            "database_name": database_name,
            "binding_name": binding_name,
            "migrations_applied": applied,
        })
        logger.info(f"[database] ✅ {database_name} ({environment}): {applied} migration(s) applied")

        return MigrationResult(
            database_name=database_name,
            binding_name=binding_name,
            environment=environment,
            status=OperationStatus.COMPLETED,
            migrations_applied=applied,
            output=commands.truncate_output(output),
        )

    # -------------------------
    # BACKUPS
    # -------------------------

    async def create_environment_backup(
        self,
        environment: str,
        domain_configs: Iterable[Domain],
        *,
        dry_run: Optional[bool] = None,
    ) -> EnvironmentBackup:
        """
        Export every domain database of the environment.

        Per-database failures are recorded in the returned backup and do not
        stop the remaining exports.
        """
        env = get_environment(environment)
        dry_run = self._dry(dry_run)
        backup_id = commands.backup_id(env.name)

        backup_dir: Optional[Path] = None
        if self.backup_root is not None and not dry_run:
            backup_dir = self.backup_root / env.name / backup_id

        backup = EnvironmentBackup(
            backup_id=backup_id,
            environment=env.name,
            backup_dir=str(backup_dir) if backup_dir else None,
        )

        try:
            if backup_dir is not None:
                backup_dir.mkdir(parents=True, exist_ok=True)

            for descriptor in self._databases_for(env.name, domain_configs):
                backup.databases[descriptor.name] = await self.create_database_backup(
                    descriptor.name, env.name, backup_dir, backup_id=backup_id, dry_run=dry_run
                )

            backup.finished_at = utcnow()
            if backup_dir is not None:
                manifest = backup_dir / commands.BACKUP_MANIFEST_NAME
                manifest.write_text(json.dumps(backup.to_manifest(), indent=2), encoding="utf-8")

        except OSError as e:
            backup.finished_at = utcnow()
            self.state.log_audit_event("ENVIRONMENT_BACKUP_FAILED", env.name, {
                "backup_id": backup_id,
                "error": str(e),
            })
            raise

        if backup.failed_databases:
            logger.warning(
                f"[database] ⚠️ Backup {backup_id} incomplete: {', '.join(backup.failed_databases)} failed"
            )
        self.state.log_audit_event("ENVIRONMENT_BACKUP_CREATED", env.name, {
            "backup_id": backup_id,
            "backup_dir": backup.backup_dir,
            "databases": list(backup.databases),
            "failed_databases": backup.failed_databases,
        })
        return backup

    async def create_database_backup(
        self,
        database_name: str,
        environment: str,
        backup_dir: Optional[Union[str, Path]],
        *,
        backup_id: Optional[str] = None,
        dry_run: Optional[bool] = None,
    ) -> BackupRecord:
        env = get_environment(environment)
        backup_id = backup_id or commands.backup_id(env.name)
        file_name = commands.backup_file_name(database_name, env.name)

        if self._dry(dry_run):
            return BackupRecord(
                backup_id=backup_id,
                database_name=database_name,
                environment=env.name,
                status=OperationStatus.DRY_RUN,
                backup_file=file_name,
            )

        if backup_dir is None:
            return BackupRecord(
                backup_id=backup_id,
                database_name=database_name,
                environment=env.name,
                status=OperationStatus.FAILED,
                error="Backups disabled: persistence is off or no writable project root",
            )

        backup_file = Path(backup_dir) / file_name
        command = commands.export_command(self.cli, self.resource, database_name, env, str(backup_file))

        try:
            await self.execute_with_retry(command, timeout=self.backup_timeout)
            if not backup_file.exists():
                raise OSError(f"Backup file was not created: {backup_file}")
            size = backup_file.stat().st_size
        except Exception as e:
            logger.error(f"[database] ❌ Backup failed for {database_name} ({env.name}): {e}")
            return BackupRecord(
                backup_id=backup_id,
                database_name=database_name,
                environment=env.name,
                status=OperationStatus.FAILED,
                backup_file=str(backup_file),
                error=str(e),
            )

        logger.info(f"[database] 💾 {database_name} ({env.name}) -> {backup_file} ({size} bytes)")
        return BackupRecord(
            backup_id=backup_id,
            database_name=database_name,
            environment=env.name,
            status=OperationStatus.COMPLETED,
            backup_file=str(backup_file),
            size_bytes=size,
        )

    # -------------------------
    # CLEANUP
    # -------------------------

    async def perform_safe_data_cleanup(
        self,
        environment: str,
        domain_configs: Iterable[Domain] = (),
        cleanup_type: str = "partial",
        *,
        skip_backup: bool = False,
        force: bool = False,
        dry_run: Optional[bool] = None,
    ) -> Dict[str, Any]:
        env = get_environment(environment)
        statements = commands.cleanup_statements(cleanup_type)
        dry_run = self._dry(dry_run)
        domains = list(domain_configs)

        result: Dict[str, Any] = {
            "cleanup_id": commands.cleanup_id(env.name),
            "environment": env.name,
            "cleanup_type": cleanup_type,
            "status": OperationStatus.COMPLETED.value,
            "backup": None,
            "databases": {},
            "dry_run": dry_run,
        }

        if env.requires_confirmation and not force and not dry_run:
            if not self.confirm(env.name, cleanup_type):
                logger.warning(f"[database] Cleanup of {env.name} declined")
                result["status"] = OperationStatus.CANCELLED.value
                result["reason"] = "Confirmation declined"
                self.state.log_audit_event("DATA_CLEANUP_CANCELLED", env.name, {
                    "cleanup_type": cleanup_type,
                    "reason": result["reason"],
                })
                return result

        try:
            if env.requires_backup and not skip_backup:
                backup = await self.create_environment_backup(env.name, domains, dry_run=dry_run)
                result["backup"] = backup.to_manifest()

            for descriptor in self._databases_for(env.name, domains):
                try:
                    outcome = await self.perform_database_cleanup(
                        descriptor.name, env.name, cleanup_type,
                        statements=statements, dry_run=dry_run,
                    )
                except Exception as e:
                    outcome = {"status": OperationStatus.FAILED.value, "error": str(e)}
                result["databases"][descriptor.name] = outcome

        except Exception as e:
            result["status"] = OperationStatus.FAILED.value
            result["error"] = str(e)
            self.state.log_audit_event("DATA_CLEANUP_FAILED", env.name, {
                "cleanup_type": cleanup_type,
                "error": str(e),
            })
            raise

        failed = [
            name for name, db in result["databases"].items()
            if db["status"] == OperationStatus.FAILED.value
        ]
        if failed:
            result["status"] = OperationStatus.FAILED.value
            result["error"] = f"{len(failed)} database(s) failed: {', '.join(failed)}"
            self.state.log_audit_event("DATA_CLEANUP_FAILED", env.name, {
                "cleanup_type": cleanup_type,
                "failed_databases": failed,
            })
        else:
            self.state.log_audit_event("DATA_CLEANUP_COMPLETED", env.name, {
                "cleanup_type": cleanup_type,
                "databases": list(result["databases"]),
                "dry_run": dry_run,
            })
        return result

    async def perform_database_cleanup(
        self,
        database_name: str,
        environment: str,
        cleanup_type: str,
        *,
        statements: Optional[List[str]] = None,
        dry_run: Optional[bool] = None,
    ) -> Dict[str, Any]:
        """Run the cleanup statements in order; stops at the first failure."""
        env = get_environment(environment)
        statements = statements if statements is not None else commands.cleanup_statements(cleanup_type)

        if self._dry(dry_run):
            return {
                "status": OperationStatus.DRY_RUN.value,
                "cleanup_type": cleanup_type,
                "statements": len(statements),
            }

        executed = 0
        for sql in statements:
            command = commands.execute_command(self.cli, self.resource, database_name, env, sql)
            try:
                await self.execute_with_retry(command, timeout=self.cleanup_timeout)
            except TransientExecutionError as e:
                raise TransientExecutionError(
                    f"Database cleanup failed after {executed} operation(s): {e}",
                    command=e.command,
                    exit_code=e.exit_code,
                    stderr=e.stderr,
                ) from e
            executed += 1

        return {
            "status": OperationStatus.COMPLETED.value,
            "cleanup_type": cleanup_type,
            "statements": executed,
        }

    # -------------------------
    # EXECUTION
    # -------------------------

    async def execute_with_retry(
        self,
        command: Sequence[str],
        *,
        timeout: Optional[float] = None,
        working_dir: Optional[Union[str, Path]] = None,
    ) -> str:
        return await self.executor.execute(
            command,
            timeout=timeout,
            cwd=working_dir or self.project_root,
        )

    # -------------------------
    # HELPERS
    # -------------------------

    @staticmethod
    def _databases_for(environment: str, domains: Iterable[Domain]):
        """Unique database descriptors for the environment, in domain order."""
        seen = set()
        for domain in domains:
            descriptor = domain.database_for(environment)
            if descriptor is None:
                logger.debug(f"[database] {domain.name} has no {environment} database")
                continue
            if descriptor.name in seen:
                continue
            seen.add(descriptor.name)
            yield descriptor
