"""lsof-based discovery, shared by macOS and other POSIX-like systems."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from kkp.errors import ToolNotFoundError
from kkp.finder.base import run_tool
from kkp.finder.parsers import parse_lsof
from kkp.models import PROTOCOLS, TCP, UDP, FindOptions, Listener, dedupe_listeners

logger = logging.getLogger(__name__)

_LSOF_TIMEOUT_MS = 3000


def lsof_args(protocol: str, port: int | None = None) -> list[str]:
    """Arguments selecting TCP listeners or UDP sockets, optionally on one port."""
    suffix = f":{port}" if port is not None else ""
    if protocol == TCP:
        return ["-nP", f"-iTCP{suffix}", "-sTCP:LISTEN"]
    return ["-nP", f"-iUDP{suffix}"]


async def lsof_listeners(
    protocols: Sequence[str], port: int | None = None
) -> list[Listener] | None:
    """Query lsof once per protocol (tcp first).

    Returns None when no lsof invocation could run at all.
    """
    out: list[Listener] = []
    ran = False
    for protocol in (TCP, UDP):
        if protocol not in protocols:
            continue
        stdout = await run_tool("lsof", lsof_args(protocol, port), _LSOF_TIMEOUT_MS)
        if stdout is None:
            continue
        ran = True
        out.extend(parse_lsof(stdout))
    return out if ran else None


class PosixFallbackFinder:
    """Best-effort discovery for POSIX systems without a dedicated strategy."""

    async def list_all(self) -> list[Listener]:
        return await self._discover(PROTOCOLS)

    async def find_by_port(self, port: int, options: FindOptions) -> list[Listener]:
        return await self._discover(options.protocols, port)

    async def _discover(
        self, protocols: Sequence[str], port: int | None = None
    ) -> list[Listener]:
        found = await lsof_listeners(protocols, port)
        if found is None:
            raise ToolNotFoundError("lsof", "lsof not found. Install lsof to find listeners.")
        found = dedupe_listeners(found)
        await self.enrich(found)
        return found

    async def enrich(self, listeners: list[Listener]) -> None:
        """Hook for platform-specific enrichment; lsof already reports name and user."""
