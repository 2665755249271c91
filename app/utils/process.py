"""Subprocess execution with a hard timeout.

Children are started in their own session so that a timeout can kill the
whole process group (npm spawns node, node spawns esbuild, ...). The child is
always killed and reaped before ``spawn`` exits, whatever the exit path.
"""

import asyncio
import os
import signal
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Sequence


@dataclass
class ProcessResult:
    """Outcome of a finished process."""

    command: list[str]
    returncode: int
    stdout: str
    stderr: str
    duration_ms: int

    @property
    def output_preview(self) -> str:
        return (self.stderr or self.stdout)[-1000:]


class ProcessTimeoutError(Exception):
    """Process exceeded its timeout and was killed."""

    def __init__(self, command: Sequence[str], timeout: float, duration_ms: int):
        self.command = list(command)
        self.timeout = timeout
        self.duration_ms = duration_ms
        super().__init__(f"{' '.join(command)} timed out after {timeout:g}s")


def _kill_group(process: asyncio.subprocess.Process) -> None:
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        try:
            process.kill()
        except ProcessLookupError:
            pass


@asynccontextmanager
async def spawn(
    command: Sequence[str],
    cwd: Path | str | None = None,
    env: dict[str, str] | None = None,
) -> AsyncIterator[asyncio.subprocess.Process]:
    """Start ``command`` and guarantee it is dead and reaped on exit."""
    process = await asyncio.create_subprocess_exec(
        *command,
        cwd=str(cwd) if cwd is not None else None,
        env=env,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        start_new_session=True,
    )
    try:
        yield process
    finally:
        if process.returncode is None:
            _kill_group(process)
            await process.wait()


async def run_process(
    command: Sequence[str],
    timeout: float,
    cwd: Path | str | None = None,
    env: dict[str, str] | None = None,
) -> ProcessResult:
    """Run ``command`` to completion, capturing its output.

    Raises:
        FileNotFoundError: If the executable does not exist
        ProcessTimeoutError: If the process outlives ``timeout`` seconds
    """
    start = time.perf_counter()

    async with spawn(command, cwd=cwd, env=env) as process:
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            duration_ms = int((time.perf_counter() - start) * 1000)
            raise ProcessTimeoutError(command, timeout, duration_ms) from None

    return ProcessResult(
        command=list(command),
        returncode=process.returncode,
        stdout=stdout.decode(errors="replace") if stdout else "",
        stderr=stderr.decode(errors="replace") if stderr else "",
        duration_ms=int((time.perf_counter() - start) * 1000),
    )
