# orchestration_engine/core/errors.py

from typing import Any, Optional

# -----------------------------
# Base Errors
# -----------------------------

class OrchestrationError(Exception):
    """Base class for all orchestration engine errors."""
    pass


# -----------------------------
# Validation / Domain Errors
# -----------------------------

class OrchestrationValidationError(OrchestrationError):
    """Bad or missing configuration. Never retried."""
    pass


class DomainStateNotFound(OrchestrationValidationError):
    """Domain is not part of the current portfolio."""
    pass


class InvalidStateTransition(OrchestrationError):
    """Illegal domain status transition attempted."""
    pass


# -----------------------------
# Execution Errors
# -----------------------------

class TransientExecutionError(OrchestrationError):
    """External command failed. Subject to the fixed-delay retry policy."""

    def __init__(
        self,
        message: str,
        *,
        command: Optional[list[str]] = None,
        exit_code: Optional[int] = None,
        stderr: str = "",
    ):
        super().__init__(message)
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr


class CommandTimeoutError(TransientExecutionError):
    """External command exceeded its timeout."""
    pass


class HookExecutionError(OrchestrationError):
    """A lifecycle hook failed after all attempts."""
    pass


# -----------------------------
# Escalated Partial Failures
# -----------------------------

class EnvironmentMigrationError(OrchestrationError):
    """First failing environment when continue_on_error is off."""

    def __init__(self, environment: str, message: str, result: Any = None):
        super().__init__(f"Migration failed in {environment} environment: {message}")
        self.environment = environment
        self.result = result


class PortfolioDeploymentError(OrchestrationError):
    """Portfolio run stopped after a domain failure with continue_on_error off."""

    def __init__(self, message: str, result: Any = None):
        super().__init__(message)
        self.result = result
