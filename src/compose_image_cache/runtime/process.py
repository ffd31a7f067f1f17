"""External command execution."""

import asyncio
import logging
import time
from typing import Sequence

from ..core.types import CommandResult
from ..exceptions import CommandExecutionError

logger = logging.getLogger(__name__)


async def run_command(cmd: Sequence[str], timeout: float | None = None) -> CommandResult:
    """Run an external command and capture its output.

    A non-zero exit code is returned, not raised; callers decide what a
    failure means.

    Args:
        cmd: Executable followed by its arguments
        timeout: Optional timeout in seconds

    Returns:
        CommandResult with exit code, decoded stdout/stderr and duration

    Raises:
        CommandExecutionError: If the command cannot be started or times out
    """
    full_command = " ".join(cmd)
    logger.info(f"Executing: {full_command}")
    start = time.perf_counter()

    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        elapsed_ms = round((time.perf_counter() - start) * 1000)
        logger.error(f"Command failed after {elapsed_ms}ms: {full_command}")
        raise CommandExecutionError(f"Failed to execute {cmd[0]}: {e}") from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError as e:
        proc.kill()
        await proc.wait()
        elapsed_ms = round((time.perf_counter() - start) * 1000)
        logger.error(f"Command timed out after {elapsed_ms}ms: {full_command}")
        raise CommandExecutionError(f"Command timed out: {full_command}") from e

    elapsed_ms = round((time.perf_counter() - start) * 1000)
    logger.info(f"Command completed in {elapsed_ms}ms: {full_command}")

    return CommandResult(
        exit_code=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
        duration_ms=elapsed_ms,
    )
