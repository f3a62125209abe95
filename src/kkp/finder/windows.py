"""Windows discovery — netstat, enriched via PowerShell CIM or tasklist."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Sequence

from kkp.errors import KkpError, ToolNotFoundError
from kkp.finder.base import run_tool
from kkp.finder.parsers import parse_netstat, parse_tasklist_csv
from kkp.models import (
    PROTOCOLS,
    TCP,
    UDP,
    FindOptions,
    Listener,
    ProcessInfo,
    apply_process_info,
    dedupe_listeners,
)
from kkp.platform import POWERSHELL_ARGS

logger = logging.getLogger(__name__)

_NETSTAT_TIMEOUT_MS = 2000
_POWERSHELL_TIMEOUT_MS = 5000
_TASKLIST_TIMEOUT_MS = 3000

# netstat -p only reports one address family per call.
_NETSTAT_FAMILIES = {TCP: ("tcp", "tcpv6"), UDP: ("udp", "udpv6")}


class WindowsFinder:
    async def list_all(self) -> list[Listener]:
        return await self._discover(PROTOCOLS)

    async def find_by_port(self, port: int, options: FindOptions) -> list[Listener]:
        return await self._discover(options.protocols, port)

    async def _discover(
        self, protocols: Sequence[str], port: int | None = None
    ) -> list[Listener]:
        queries = [
            (protocol, family)
            for protocol in (TCP, UDP)
            if protocol in protocols
            for family in _NETSTAT_FAMILIES[protocol]
        ]
        outputs = await asyncio.gather(
            *(
                run_tool("netstat", ["-ano", "-p", family], _NETSTAT_TIMEOUT_MS)
                for _protocol, family in queries
            )
        )
        if queries and all(stdout is None for stdout in outputs):
            raise ToolNotFoundError("netstat")

        found: list[Listener] = []
        for (protocol, _family), stdout in zip(queries, outputs):
            if stdout is None:
                continue
            rows = parse_netstat(stdout, protocol)
            if port is not None:
                rows = [row for row in rows if row.port == port]
            found.extend(rows)

        listeners = dedupe_listeners(found)
        await enrich_windows(listeners)
        return listeners


async def enrich_windows(listeners: list[Listener]) -> None:
    """Fill in name/command/user; CIM first, tasklist as the fallback."""
    pids = sorted({listener.pid for listener in listeners})
    if not pids:
        return

    infos = await powershell_process_info(pids)
    if infos:
        apply_process_info(listeners, infos)
        return

    infos = await tasklist_process_info()
    if infos:
        apply_process_info(listeners, infos)
        # tasklist has no command line; the image name is the best we have.
        for listener in listeners:
            if not listener.command and listener.pid in infos:
                listener.command = listener.process_name


def build_cim_script(pids: Sequence[int]) -> str:
    """PowerShell returning name, command line and owner for each PID as JSON."""
    pid_list = ",".join(str(pid) for pid in pids)
    return "\n".join(
        [
            "[Console]::OutputEncoding = [System.Text.Encoding]::UTF8",
            f"$ids = @({pid_list})",
            "$items = @()",
            "foreach ($id in $ids) {",
            "  try {",
            '    $p = Get-CimInstance Win32_Process -Filter "ProcessId=$id"',
            "    if ($null -eq $p) { continue }",
            "    $owner = $null",
            "    try {",
            "      $o = Invoke-CimMethod -InputObject $p -MethodName GetOwner",
            "      if ($o -and $o.ReturnValue -eq 0) { $owner = $o.Domain + '\\' + $o.User }",
            "    } catch {}",
            "    $items += [pscustomobject]@{ pid = $id; name = $p.Name; "
            "cmd = $p.CommandLine; user = $owner }",
            "  } catch {}",
            "}",
            "$items | ConvertTo-Json -Compress",
        ]
    )


def parse_cim_json(stdout: str) -> dict[int, ProcessInfo]:
    """Parse the CIM script output; a single object or an array are both valid."""
    text = stdout.strip()
    if not text:
        return {}
    try:
        parsed = json.loads(text)
    except ValueError:
        logger.debug("Unparseable CIM output: %.200s", text)
        return {}

    items = parsed if isinstance(parsed, list) else [parsed]
    infos: dict[int, ProcessInfo] = {}
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            pid = int(item.get("pid"))
        except (TypeError, ValueError):
            continue
        infos[pid] = ProcessInfo(
            name=_str_or_none(item.get("name")),
            command=_str_or_none(item.get("cmd")),
            user=_str_or_none(item.get("user")),
        )
    return infos


async def powershell_process_info(pids: Sequence[int]) -> dict[int, ProcessInfo]:
    args = [*POWERSHELL_ARGS, build_cim_script(pids)]
    for exe in ("powershell.exe", "powershell"):
        try:
            stdout = await run_tool(exe, args, _POWERSHELL_TIMEOUT_MS)
        except KkpError as exc:
            logger.debug("CIM query via %s failed: %s", exe, exc)
            continue
        if stdout is not None:
            return parse_cim_json(stdout)
    return {}


async def tasklist_process_info() -> dict[int, ProcessInfo]:
    try:
        stdout = await run_tool("tasklist", ["/V", "/FO", "CSV", "/NH"], _TASKLIST_TIMEOUT_MS)
    except KkpError as exc:
        logger.debug("tasklist failed: %s", exc)
        return {}
    if stdout is None:
        return {}
    return parse_tasklist_csv(stdout)


def _str_or_none(value: object) -> str | None:
    return value if isinstance(value, str) and value else None
