#tests\test_command_executor.py

"""Test command execution, timeout and retry."""

import asyncio
import sys

import pytest

from orchestration_engine.core.errors import (
    CommandTimeoutError,
    OrchestrationValidationError,
    TransientExecutionError,
)
from orchestration_engine.executor.command_runner import SubprocessCommandRunner
from orchestration_engine.executor.retry import CommandExecutor, RetryPolicy, retry_async

from tests.conftest import FakeCommandRunner


class TestRetryPolicy:
    """Test policy validation."""

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)


class TestRetryAsync:
    """Test the generic retry helper."""

    @pytest.mark.asyncio
    async def test_succeeds_after_failures(self):
        """Test transient failures are retried."""
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise TransientExecutionError("flaky")
            return "ok"

        assert await retry_async(flaky, RetryPolicy(3, 0)) == "ok"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_last_error_propagates(self):
        """Test the final attempt's error is raised."""
        calls = []

        async def failing():
            calls.append(1)
            raise TransientExecutionError(f"attempt {len(calls)}")

        with pytest.raises(TransientExecutionError, match="attempt 2"):
            await retry_async(failing, RetryPolicy(2, 0))

    @pytest.mark.asyncio
    async def test_delay_is_fixed_between_attempts(self, monkeypatch):
        """Test every retry waits the same delay rather than backing off."""
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        monkeypatch.setattr("orchestration_engine.executor.retry.asyncio.sleep", fake_sleep)

        async def failing():
            raise TransientExecutionError("down")

        with pytest.raises(TransientExecutionError):
            await retry_async(failing, RetryPolicy(max_attempts=3, delay_seconds=1.0))

        assert sleeps == [1.0, 1.0]

    @pytest.mark.asyncio
    async def test_validation_errors_not_retried(self):
        """Test validation errors fail immediately."""
        calls = []

        async def invalid():
            calls.append(1)
            raise OrchestrationValidationError("bad input")

        with pytest.raises(OrchestrationValidationError):
            await retry_async(invalid, RetryPolicy(3, 0))
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_timeout_becomes_command_timeout(self):
        """Test slow attempts time out and are retried."""
        calls = []

        async def slow():
            calls.append(1)
            await asyncio.sleep(1)

        with pytest.raises(CommandTimeoutError):
            await retry_async(slow, RetryPolicy(2, 0), timeout=0.01)
        assert len(calls) == 2


class TestCommandExecutor:
    """Test executor over a fake runner."""

    @pytest.mark.asyncio
    async def test_non_zero_exit_is_retried(self):
        """Test a failing command is retried, then succeeds."""
        runner = FakeCommandRunner()
        runner.on("deploy", exit_code=1, stderr="boom", times=1)
        runner.on("deploy", stdout="done")
        executor = CommandExecutor(runner, RetryPolicy(3, 0), default_cwd="/srv")

        assert await executor.execute(["cli", "deploy"]) == "done"
        assert len(runner.calls) == 2
        assert runner.calls[0]["cwd"] == "/srv"

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise(self):
        """Test exit details are carried on the error."""
        runner = FakeCommandRunner().on("deploy", exit_code=2, stderr="denied")
        executor = CommandExecutor(runner, RetryPolicy(2, 0))

        with pytest.raises(TransientExecutionError) as exc_info:
            await executor.execute(["cli", "deploy"])

        assert exc_info.value.exit_code == 2
        assert "denied" in str(exc_info.value)
        assert len(runner.calls) == 2


class TestSubprocessCommandRunner:
    """Test the real subprocess runner."""

    @pytest.mark.asyncio
    async def test_captures_stdout_and_exit_code(self):
        result = await SubprocessCommandRunner().run(
            [sys.executable, "-c", "import sys; print('hello'); sys.exit(3)"], timeout=30
        )
        assert result.stdout.strip() == "hello"
        assert result.exit_code == 3

    @pytest.mark.asyncio
    async def test_passes_stdin(self):
        result = await SubprocessCommandRunner().run(
            [sys.executable, "-c", "import sys; print(sys.stdin.read().upper())"],
            timeout=30,
            input="secret",
        )
        assert result.stdout.strip() == "SECRET"

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self):
        with pytest.raises(CommandTimeoutError):
            await SubprocessCommandRunner().run(
                [sys.executable, "-c", "import time; time.sleep(10)"], timeout=0.2
            )
