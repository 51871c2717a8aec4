"""Compiled-in environment table."""

from dataclasses import dataclass

from orchestration_engine.core.errors import OrchestrationValidationError


@dataclass(frozen=True)
class Environment:
    """Execution target and safety policy for one environment."""

    name: str
    is_remote: bool
    description: str
    requires_backup: bool = False
    requires_confirmation: bool = False

    @property
    def remote_flag(self) -> str:
        return "--remote" if self.is_remote else "--local"


DEVELOPMENT = Environment(
    name="development",
    is_remote=False,
    description="Local development database",
)

STAGING = Environment(
    name="staging",
    is_remote=True,
    description="Staging environment database",
)

PRODUCTION = Environment(
    name="production",
    is_remote=True,
    description="PRODUCTION environment database - USE WITH EXTREME CAUTION",
    requires_backup=True,
    requires_confirmation=True,
)


ENVIRONMENTS: dict[str, Environment] = {
    env.name: env for env in (DEVELOPMENT, STAGING, PRODUCTION)
}


def get_environment(name: str) -> Environment:
    env = ENVIRONMENTS.get(name)
    if env is None:
        raise OrchestrationValidationError(
            f"Unknown environment: {name} (expected one of {', '.join(ENVIRONMENTS)})"
        )
    return env
