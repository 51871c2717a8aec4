# orchestration_engine/executor/retry.py
"""Fixed-delay retry for external commands and hooks."""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Optional, Sequence, TypeVar, Union

from orchestration_engine.core.errors import (
    CommandTimeoutError,
    OrchestrationValidationError,
    TransientExecutionError,
)
from orchestration_engine.executor.command_runner import CommandResult, CommandRunner

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry policy for external operations.

    - Fixed delay between attempts (not exponential)
    - The final attempt's error propagates
    - Validation errors are never retried
    """
    max_attempts: int = 3
    delay_seconds: float = 1.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds cannot be negative")


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    description: str = "operation",
    timeout: Optional[float] = None,
) -> T:
    """
    Run an async operation under the retry policy.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        policy: Attempt cap and fixed delay
        description: Used in log lines
        timeout: Per-attempt timeout; exceeding it counts as a failed attempt

    Returns:
        The first successful result

    Raises:
        The last attempt's exception
    """
    for attempt in range(1, policy.max_attempts + 1):
        try:
            if timeout is None:
                return await operation()
            try:
                return await asyncio.wait_for(operation(), timeout=timeout)
            except asyncio.TimeoutError:
                raise CommandTimeoutError(f"{description} timed out after {timeout}s")
        except OrchestrationValidationError:
            raise
        except Exception as e:
            if attempt == policy.max_attempts:
                logger.warning(
                    f"[retry] {description} failed after {attempt} attempt(s): {e}"
                )
                raise

            logger.info(
                f"[retry] {description} attempt {attempt}/{policy.max_attempts} failed: {e}, "
                f"retrying in {policy.delay_seconds}s"
            )
            await asyncio.sleep(policy.delay_seconds)

    raise RuntimeError("unreachable")  # pragma: no cover


class CommandExecutor:
    """Runs commands through a CommandRunner with timeout and retry."""

    def __init__(
        self,
        runner: CommandRunner,
        policy: RetryPolicy,
        *,
        default_cwd: Optional[Union[str, Path]] = None,
        default_timeout: float = 30.0,
    ):
        self._runner = runner
        self._policy = policy
        self._default_cwd = default_cwd
        self._default_timeout = default_timeout

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def run_once(
        self,
        command: Sequence[str],
        *,
        timeout: Optional[float] = None,
        cwd: Optional[Union[str, Path]] = None,
        input: Optional[str] = None,
    ) -> CommandResult:
        """Single attempt; non-zero exit raises TransientExecutionError."""
        argv = list(command)
        result = await self._runner.run(
            argv,
            timeout=timeout or self._default_timeout,
            cwd=cwd or self._default_cwd,
            input=input,
        )
        if not result.ok:
            detail = (result.stderr or result.stdout).strip()[:500]
            raise TransientExecutionError(
                f"Command exited with {result.exit_code}: {detail or ' '.join(argv)}",
                command=argv,
                exit_code=result.exit_code,
                stderr=result.stderr,
            )
        return result

    async def execute(
        self,
        command: Sequence[str],
        *,
        timeout: Optional[float] = None,
        cwd: Optional[Union[str, Path]] = None,
        input: Optional[str] = None,
    ) -> str:
        """Run with retry and return stdout of the successful attempt."""
        argv = list(command)
        result = await retry_async(
            lambda: self.run_once(argv, timeout=timeout, cwd=cwd, input=input),
            self._policy,
            description=" ".join(argv[:4]),
        )
        return result.stdout
