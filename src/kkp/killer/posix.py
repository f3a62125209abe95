"""POSIX killer — SIGTERM, a grace window, then SIGKILL."""

from __future__ import annotations

import asyncio
import errno
import logging
import os
import signal
import time
from collections import deque

import psutil

from kkp.models import KillOptions, KillResult

logger = logging.getLogger(__name__)

# Liveness polling interval while waiting for a process to exit.
_POLL_INTERVAL = 0.03

# How long to wait for the kernel to reap a process after SIGKILL.
_CONFIRM_MS = 200


class PosixKiller:
    """Terminates processes with an escalating signal protocol.

    ALIVE_CHECK → SIGTERM → WAIT_GRACE → SIGKILL → WAIT_CONFIRM. A
    process that vanishes between any two steps counts as killed.
    """

    def is_alive(self, pid: int) -> bool:
        try:
            os.kill(pid, 0)
        except (ProcessLookupError, OverflowError):
            return False
        except PermissionError:
            # Exists, but belongs to someone else.
            return True
        return True

    async def kill(self, pid: int, options: KillOptions) -> KillResult:
        if not self.is_alive(pid):
            return KillResult(pid, True, "already-exited")

        timeout_ms = max(0, options.timeout_ms)

        if options.tree:
            descendants = await list_descendants(pid)
            # Deepest / most recently discovered first, the root last.
            for child in reversed(descendants):
                result = await self._kill_single(child, timeout_ms)
                logger.debug("Descendant %d of %d: %s", child, pid, result)

        return await self._kill_single(pid, timeout_ms)

    async def _kill_single(self, pid: int, timeout_ms: int) -> KillResult:
        try:
            os.kill(pid, signal.SIGTERM)
        except ProcessLookupError:
            return KillResult(pid, True, "already-exited")
        except OSError as exc:
            return _failure(pid, "SIGTERM", exc)
        logger.info("Sent SIGTERM to %d", pid)

        if timeout_ms > 0 and await self._wait_for_exit(pid, timeout_ms):
            return KillResult(pid, True, "SIGTERM")

        try:
            os.kill(pid, signal.SIGKILL)
        except ProcessLookupError:
            # Died on its own during the grace window.
            return KillResult(pid, True, "SIGTERM")
        except OSError as exc:
            return _failure(pid, "SIGKILL", exc)
        logger.info("Sent SIGKILL to %d", pid)

        if await self._wait_for_exit(pid, _CONFIRM_MS):
            return KillResult(pid, True, "SIGKILL")
        return KillResult(pid, False, "SIGKILL", message="process still alive")

    async def _wait_for_exit(self, pid: int, timeout_ms: int) -> bool:
        deadline = time.monotonic() + timeout_ms / 1000
        while time.monotonic() < deadline:
            if not self.is_alive(pid):
                return True
            await asyncio.sleep(_POLL_INTERVAL)
        return not self.is_alive(pid)


def _failure(pid: int, method: str, exc: OSError) -> KillResult:
    code = errno.errorcode.get(exc.errno) if exc.errno else None
    return KillResult(
        pid,
        False,
        method,
        message=exc.strerror or str(exc) or f"{method} failed",
        error_code=code,
    )


def list_children(pid: int) -> list[int]:
    """Direct children of ``pid``; empty when the process is gone or hidden."""
    try:
        return [child.pid for child in psutil.Process(pid).children()]
    except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
        return []


async def list_descendants(root: int) -> list[int]:
    """Breadth-first walk of the process tree below ``root``.

    Uses an explicit worklist and a visited set, so pathological or
    cyclic parent links cannot recurse or loop.
    """
    seen = {root}
    out: list[int] = []
    queue = deque([root])

    while queue:
        pid = queue.popleft()
        children = await asyncio.to_thread(list_children, pid)
        for child in children:
            if child in seen:
                continue
            seen.add(child)
            out.append(child)
            queue.append(child)

    return out
