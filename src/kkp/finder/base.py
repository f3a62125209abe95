"""Finder protocol — every discovery strategy must satisfy this."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from kkp.errors import CommandTimeoutError, ToolNotFoundError
from kkp.models import FindOptions, Listener
from kkp.runner import run_command

logger = logging.getLogger(__name__)


@runtime_checkable
class Finder(Protocol):
    """Protocol for platform-specific listener discovery."""

    async def list_all(self) -> list[Listener]:
        """List every listening socket (best-effort)."""
        ...

    async def find_by_port(self, port: int, options: FindOptions) -> list[Listener]:
        """Find listeners bound to ``port`` for the requested protocols."""
        ...


async def run_tool(cmd: str, args: Sequence[str], timeout_ms: int) -> str | None:
    """Run a discovery tool and return its stdout.

    A missing binary or a timeout returns None so the caller can treat
    that sub-query as unavailable. Other spawn failures propagate.
    """
    try:
        result = await run_command(cmd, args, timeout_ms=timeout_ms)
    except ToolNotFoundError:
        logger.debug("%s not found", cmd)
        return None
    except CommandTimeoutError:
        logger.debug("%s %s timed out", cmd, " ".join(args))
        return None
    return result.stdout
