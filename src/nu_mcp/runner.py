from __future__ import annotations

import asyncio
import logging
import os
import signal
import time

from nu_mcp.types import (
    MISSING_EXIT_CODE,
    Completed,
    ExecutionOutcome,
    ServerConfig,
    SpawnFailed,
    TimedOut,
)

logger = logging.getLogger(__name__)

# how long to wait for pipes to drain after SIGKILL before giving up on them
_REAP_TIMEOUT = 5.0
_HAS_PROCESS_GROUPS = hasattr(os, "killpg")


def build_command(config: ServerConfig, script: str) -> list[str]:
    return [config.nu_path, *config.interpreter_flags(), "-c", script]


def normalize_exit_code(returncode: int | None) -> int:
    if returncode is None or returncode < 0:
        return MISSING_EXIT_CODE
    return returncode


def _decode(data: bytes | None) -> str:
    if not data:
        return ""
    return data.decode("utf-8", errors="replace")


def _send_kill(process: asyncio.subprocess.Process) -> None:
    try:
        if _HAS_PROCESS_GROUPS:
            os.killpg(process.pid, signal.SIGKILL)
        else:
            process.kill()
    except ProcessLookupError:
        pass


async def _kill_and_reap(process: asyncio.subprocess.Process, output: asyncio.Future) -> None:
    _send_kill(process)
    await asyncio.wait({output}, timeout=_REAP_TIMEOUT)
    if not output.done():
        logger.warning("Output pipes of pid %s still open after kill, abandoning them", process.pid)
        output.cancel()
    await process.wait()


async def run_script(argv: list[str], timeout: float) -> ExecutionOutcome:
    """Run ``argv`` to completion or until ``timeout`` seconds elapse.

    The child gets no stdin and runs in its own process group. On timeout,
    or if the calling task is cancelled, the whole group is killed and the
    child is reaped before this coroutine returns. A timeout the event loop
    cannot schedule raises instead of being reported as TimedOut.
    """
    start = time.perf_counter()
    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=_HAS_PROCESS_GROUPS,
        )
    except OSError as exc:
        logger.debug("Failed to spawn %s", argv[0], exc_info=True)
        return SpawnFailed(cause=str(exc))

    logger.debug("Spawned %s (pid %s), timeout %ss", argv[0], process.pid, timeout)
    output = asyncio.ensure_future(process.communicate())
    timer = asyncio.ensure_future(asyncio.sleep(timeout))
    try:
        done, _ = await asyncio.wait({output, timer}, return_when=asyncio.FIRST_COMPLETED)
        if output in done:
            stdout, stderr = output.result()
            return Completed(
                stdout=_decode(stdout),
                stderr=_decode(stderr),
                exit_code=normalize_exit_code(process.returncode),
            )
        # a timer that failed (e.g. OverflowError) never elapsed
        timer.result()
        elapsed = time.perf_counter() - start
        logger.warning("pid %s exceeded %ss timeout, killing", process.pid, timeout)
        await _kill_and_reap(process, output)
        return TimedOut(timeout=timeout, elapsed=elapsed)
    finally:
        timer.cancel()
        if not output.done():
            await _kill_and_reap(process, output)
