# mediapreview/infra/process_runner.py
"""
Time-bounded external process execution.

Every process is killed (and reaped) when its deadline expires, when the
run's cancellation token fires, or when the awaiting task is cancelled.
No process outlives the call that started it.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Sequence

from mediapreview.core.cancellation import CancellationToken
from mediapreview.core.domain import ProcessingTimeoutError
from mediapreview.infra.logging_config import get_logger

logger = get_logger(__name__)

# Keep log lines and error messages bounded
STDERR_TAIL_BYTES = 2000


@dataclass
class ProcessResult:
    returncode: int
    stdout: bytes
    stderr: bytes

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def stderr_tail(self) -> str:
        return self.stderr[-STDERR_TAIL_BYTES:].decode("utf-8", errors="replace").strip()


async def run_process(
    args: Sequence[str],
    timeout: float,
    operation: str,
    token: CancellationToken | None = None,
) -> ProcessResult:
    """
    Run ``args`` and collect its output.

    Args:
        args: Program and arguments (no shell)
        timeout: Wall-clock deadline in seconds
        operation: Name used in logs and timeout errors
        token: Optional run token; firing it kills the process

    Returns:
        ProcessResult (a non-zero exit is returned, not raised)

    Raises:
        ProcessingTimeoutError: deadline exceeded, process killed
        FetchTimeoutError: token fired, process killed
        FileNotFoundError: program not found
    """
    logger.debug(f"Starting {operation}: {args[0]}")
    proc = await asyncio.create_subprocess_exec(
        *args,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )

    communicate = asyncio.wait_for(proc.communicate(), timeout=timeout)
    try:
        if token is not None:
            stdout, stderr = await token.guard(communicate)
        else:
            stdout, stderr = await communicate
    except asyncio.TimeoutError:
        await _kill(proc, operation)
        logger.warning(f"{operation} killed after {timeout:g}s deadline")
        raise ProcessingTimeoutError(operation, timeout)
    except BaseException:
        await _kill(proc, operation)
        raise

    result = ProcessResult(returncode=proc.returncode, stdout=stdout, stderr=stderr)
    if not result.ok:
        logger.warning(f"{operation} exited {result.returncode}: {result.stderr_tail()}")
    elif result.stderr:
        logger.debug(f"{operation} stderr: {result.stderr_tail()}")
    return result


async def _kill(proc: asyncio.subprocess.Process, operation: str) -> None:
    if proc.returncode is not None:
        return
    try:
        proc.kill()
    except ProcessLookupError:
        return
    await proc.wait()
    logger.debug(f"{operation} process {proc.pid} reaped")
