#orchestration_engine\core\config.py

import os
import shlex
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class OrchestratorSettings(BaseSettings):
    """Orchestrator configuration from environment variables.

    Read once when an OrchestrationContext is built; components receive the
    resolved values and never consult the environment again.
    """

    model_config = SettingsConfigDict(
        env_prefix="ORCHESTRATOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Run
    environment: str = "production"
    dry_run: bool = False
    parallel_deployments: int = Field(default=3, ge=1, le=10)
    continue_on_error: bool = True
    rollback_enabled: bool = True
    skip_tests: bool = False

    # Persistence (None = not set, falls back to disabled)
    enable_persistence: Optional[bool] = None
    project_root: Optional[Path] = None
    logs_dir: str = "logs"
    backup_dir: str = "backups"

    # External CLI
    cli_command: str = "npx wrangler"
    database_resource: str = "d1"

    # Retry / timeouts (seconds)
    retry_attempts: int = Field(default=3, ge=1)
    retry_delay: float = Field(default=1.0, ge=0)
    migration_timeout: float = 120.0
    backup_timeout: float = 300.0
    cleanup_timeout: float = 60.0
    deploy_timeout: float = 120.0
    hook_timeout: float = 30.0

    # Safety
    allow_production_cleanup: bool = False

    # Circuit breaker
    circuit_failure_threshold: int = Field(default=5, ge=1)
    circuit_recovery_timeout: float = 60.0
    circuit_half_open_successes: int = Field(default=3, ge=1)
    circuit_monitoring_period: float = 100.0

    # Health checks
    health_check_attempts: int = Field(default=3, ge=1)
    health_check_delay: float = 5.0
    health_check_timeout: float = 15.0

    # Status API
    api_host: str = "127.0.0.1"
    api_port: int = Field(default=8000, ge=1, le=65535)

    # Domain catalog
    domains_file: Optional[Path] = None

    # Audit
    audit_user: str = Field(
        default_factory=lambda: os.environ.get("USER") or os.environ.get("USERNAME") or "system"
    )

    @field_validator("environment")
    @classmethod
    def _known_environment(cls, value: str) -> str:
        from orchestration_engine.core.environments import ENVIRONMENTS

        if value not in ENVIRONMENTS:
            raise ValueError(f"environment must be one of {sorted(ENVIRONMENTS)}")
        return value

    @property
    def cli(self) -> List[str]:
        return shlex.split(self.cli_command)


def running_as_dependency() -> bool:
    """True when this package was installed into another tool's environment."""
    parts = Path(__file__).resolve().parts
    return "site-packages" in parts or "dist-packages" in parts


def resolve_persistence(explicit: Optional[bool], settings: OrchestratorSettings) -> bool:
    """Constructor option > environment toggle > disabled."""
    if explicit is not None:
        return explicit
    if settings.enable_persistence is not None:
        return settings.enable_persistence
    return False


def resolve_project_root(settings: OrchestratorSettings) -> Optional[Path]:
    """Explicit root wins; an installed dependency gets no writable root."""
    if settings.project_root is not None:
        return Path(settings.project_root)
    if running_as_dependency():
        return None
    return Path.cwd()
