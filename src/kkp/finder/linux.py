"""Linux discovery — ss first, lsof when ss cannot attribute PIDs."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from kkp.errors import ToolNotFoundError
from kkp.finder.base import run_tool
from kkp.finder.parsers import parse_ss
from kkp.finder.posix import lsof_listeners
from kkp.finder.procfs import UidTable, enrich_from_proc
from kkp.models import PROTOCOLS, TCP, UDP, FindOptions, Listener, dedupe_listeners

logger = logging.getLogger(__name__)

_SS_TIMEOUT_MS = 2000

_SS_FLAGS = {TCP: "-ltnp", UDP: "-lunp"}


class LinuxFinder:
    """Prefers ``ss`` (fast) and enriches from /proc.

    Without root, ss usually lists sockets but not their owners. Those
    rows are useless here, so an empty ss result triggers the lsof
    fallback, which may see more under the same privileges.
    """

    def __init__(self, uid_table: UidTable | None = None) -> None:
        self._uid_table = uid_table

    async def list_all(self) -> list[Listener]:
        return await self._discover(PROTOCOLS)

    async def find_by_port(self, port: int, options: FindOptions) -> list[Listener]:
        return await self._discover(options.protocols, port)

    async def _discover(
        self, protocols: Sequence[str], port: int | None = None
    ) -> list[Listener]:
        found = await self._try_ss(protocols, port)

        if not found:
            logger.debug("ss gave no usable rows, falling back to lsof")
            fallback = await lsof_listeners(protocols, port)
            if fallback is None and found is None:
                raise ToolNotFoundError(
                    "ss", "Neither ss nor lsof is available. Install iproute2 or lsof."
                )
            found = fallback or []

        await enrich_from_proc(found, self._uid_table)
        return dedupe_listeners(found)

    async def _try_ss(
        self, protocols: Sequence[str], port: int | None
    ) -> list[Listener] | None:
        """Returns None when no ss invocation could run."""
        out: list[Listener] = []
        ran = False
        for protocol in (TCP, UDP):
            if protocol not in protocols:
                continue
            args = ["-H", _SS_FLAGS[protocol]]
            if port is not None:
                args.append(f"sport = :{port}")
            stdout = await run_tool("ss", args, _SS_TIMEOUT_MS)
            if stdout is None:
                continue
            ran = True
            out.extend(parse_ss(stdout, protocol))
        return out if ran else None
