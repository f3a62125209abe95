"""macOS discovery — lsof plus a ps pass for full command lines."""

from __future__ import annotations

import logging

from kkp.errors import KkpError
from kkp.finder.base import run_tool
from kkp.finder.posix import PosixFallbackFinder
from kkp.models import Listener, ProcessInfo, apply_process_info

logger = logging.getLogger(__name__)

_PS_TIMEOUT_MS = 2000


class DarwinFinder(PosixFallbackFinder):
    """lsof truncates COMMAND to a few characters, so ps supplies the full line."""

    async def enrich(self, listeners: list[Listener]) -> None:
        pids = sorted({listener.pid for listener in listeners})
        if not pids:
            return
        try:
            stdout = await run_tool(
                "ps",
                ["-o", "pid=,command=", "-p", ",".join(str(pid) for pid in pids)],
                _PS_TIMEOUT_MS,
            )
        except KkpError as exc:
            logger.debug("ps enrichment failed: %s", exc)
            return
        if not stdout:
            return
        apply_process_info(listeners, parse_ps_commands(stdout), keep_name=True)


def parse_ps_commands(stdout: str) -> dict[int, ProcessInfo]:
    """Parse ``ps -o pid=,command=`` rows into PID → command line."""
    infos: dict[int, ProcessInfo] = {}
    for line in stdout.splitlines():
        parts = line.strip().split(None, 1)
        if len(parts) != 2 or not parts[0].isdigit():
            continue
        infos[int(parts[0])] = ProcessInfo(command=parts[1].strip())
    return infos
