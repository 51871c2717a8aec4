# orchestration_engine/executor/command_runner.py
"""Command runner - the only place external CLI processes are spawned."""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Sequence, Union

from orchestration_engine.core.errors import CommandTimeoutError

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Result of one external command invocation."""
    stdout: str
    exit_code: int
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class CommandRunner(Protocol):
    """Narrow contract for running external commands."""

    async def run(
        self,
        command: Sequence[str],
        *,
        timeout: Optional[float] = None,
        cwd: Optional[Union[str, Path]] = None,
        input: Optional[str] = None,
    ) -> CommandResult:
        ...


class SubprocessCommandRunner:
    """Runs commands with asyncio subprocesses (argv, never a shell)."""

    async def run(
        self,
        command: Sequence[str],
        *,
        timeout: Optional[float] = None,
        cwd: Optional[Union[str, Path]] = None,
        input: Optional[str] = None,
    ) -> CommandResult:
        argv = [str(part) for part in command]
        logger.debug(f"[runner] exec: {' '.join(argv)} (cwd={cwd}, timeout={timeout})")

        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.PIPE if input is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd else None,
        )

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(input.encode("utf-8") if input is not None else None),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise CommandTimeoutError(
                f"Command timed out after {timeout}s: {' '.join(argv)}",
                command=argv,
            )

        return CommandResult(
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            exit_code=process.returncode if process.returncode is not None else 0,
        )
