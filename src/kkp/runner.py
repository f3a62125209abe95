"""Async wrapper for running external tools with a hard timeout."""

from __future__ import annotations

import asyncio
import logging
import os
import subprocess
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from kkp.errors import CommandSpawnError, CommandTimeoutError, ToolNotFoundError

logger = logging.getLogger(__name__)

# Default timeout for external commands in milliseconds.
DEFAULT_TIMEOUT_MS = 2000

_SPAWN_KWARGS: dict = {}
if sys.platform == "win32":
    _SPAWN_KWARGS["creationflags"] = subprocess.CREATE_NO_WINDOW


@dataclass(frozen=True)
class CommandResult:
    """Captured output of a finished command."""

    cmd: str
    args: tuple[str, ...]
    stdout: str
    stderr: str
    returncode: int | None

    @property
    def signal(self) -> int | None:
        """Signal number that ended the process (POSIX), if any."""
        if self.returncode is not None and self.returncode < 0:
            return -self.returncode
        return None

    @property
    def output(self) -> str:
        """stdout and stderr joined, for pattern matching."""
        return f"{self.stdout}\n{self.stderr}".strip()


async def run_command(
    cmd: str,
    args: Sequence[str] = (),
    *,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    cwd: str | os.PathLike | None = None,
    env: Mapping[str, str] | None = None,
    stdin: str | None = None,
) -> CommandResult:
    """Run ``cmd`` with ``args`` and capture its output.

    Raises ``ToolNotFoundError`` when the binary does not exist,
    ``CommandSpawnError`` for any other failure to start it, and
    ``CommandTimeoutError`` after killing a process that outlived
    ``timeout_ms``. A non-zero exit status is not an error.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            cmd,
            *args,
            stdin=subprocess.PIPE if stdin is not None else subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=cwd,
            env=dict(env) if env is not None else None,
            **_SPAWN_KWARGS,
        )
    except FileNotFoundError as exc:
        raise ToolNotFoundError(cmd) from exc
    except OSError as exc:
        raise CommandSpawnError(cmd, exc) from exc

    data = stdin.encode("utf-8") if stdin is not None else None
    timeout = timeout_ms / 1000 if timeout_ms > 0 else None
    try:
        out, err = await asyncio.wait_for(proc.communicate(data), timeout=timeout)
    except asyncio.TimeoutError:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        await proc.wait()
        logger.debug("%s timed out after %dms", cmd, timeout_ms)
        raise CommandTimeoutError(cmd, timeout_ms) from None

    return CommandResult(
        cmd=cmd,
        args=tuple(args),
        stdout=out.decode("utf-8", errors="replace"),
        stderr=err.decode("utf-8", errors="replace"),
        returncode=proc.returncode,
    )
