"""Linux enrichment from /proc: process name, command line, and owner.

Everything here is best-effort. Reads of other users' processes commonly
fail without root; those PIDs are simply left un-enriched.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from kkp.models import Listener, ProcessInfo, apply_process_info

logger = logging.getLogger(__name__)

_UID_RE = re.compile(r"^Uid:\s+(\d+)", re.MULTILINE)
_PROC_ROOT = Path("/proc")
_PASSWD_PATH = Path("/etc/passwd")


async def read_small_file(path: Path) -> bytes | None:
    """Read a small file off the event loop; missing or unreadable gives None."""
    try:
        return await asyncio.to_thread(path.read_bytes)
    except OSError:
        return None


@dataclass
class UidTable:
    """UID → login name map, parsed from the account database on first use.

    Read-only once loaded, so concurrent lookups share it safely.
    """

    path: Path = _PASSWD_PATH
    _names: dict[str, str] | None = field(default=None, repr=False)

    def lookup(self, uid: str) -> str | None:
        if self._names is None:
            self._names = self._load()
        return self._names.get(uid)

    def _load(self) -> dict[str, str]:
        names: dict[str, str] = {}
        try:
            text = self.path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            logger.debug("Cannot read %s: %s", self.path, exc)
            return names
        for line in text.splitlines():
            if not line or line.startswith("#"):
                continue
            cols = line.split(":")
            if len(cols) < 3:
                continue
            names.setdefault(cols[2], cols[0])
        return names


_uid_table = UidTable()


async def read_process_info(
    pid: int,
    uid_table: UidTable | None = None,
    proc_root: Path = _PROC_ROOT,
) -> ProcessInfo:
    """Collect comm, cmdline and owner for one PID."""
    table = uid_table or _uid_table
    base = proc_root / str(pid)

    comm, cmdline, status = await asyncio.gather(
        read_small_file(base / "comm"),
        read_small_file(base / "cmdline"),
        read_small_file(base / "status"),
    )

    info = ProcessInfo()
    if comm:
        info.name = comm.decode("utf-8", errors="replace").strip() or None
    if cmdline:
        # NUL-separated argv
        joined = re.sub(r"\x00+", " ", cmdline.decode("utf-8", errors="replace"))
        info.command = joined.strip() or None
    if status:
        m = _UID_RE.search(status.decode("utf-8", errors="replace"))
        if m:
            info.user = table.lookup(m.group(1))
    return info


async def enrich_from_proc(
    listeners: Iterable[Listener],
    uid_table: UidTable | None = None,
    proc_root: Path = _PROC_ROOT,
) -> None:
    """Fill in name/command/user for every listener, one lookup per unique PID."""
    listeners = list(listeners)
    pids = sorted({listener.pid for listener in listeners})
    if not pids:
        return

    results = await asyncio.gather(
        *(read_process_info(pid, uid_table, proc_root) for pid in pids),
        return_exceptions=True,
    )

    infos: dict[int, ProcessInfo] = {}
    for pid, result in zip(pids, results):
        if isinstance(result, BaseException):
            logger.debug("Enrichment failed for PID %d: %s", pid, result)
            continue
        infos[pid] = result

    apply_process_info(listeners, infos, keep_name=True)
