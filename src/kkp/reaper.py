"""Reaper — gates listeners through the safety guard and kills their PIDs."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from kkp.killer import Killer, get_killer
from kkp.models import (
    DEFAULT_TIMEOUT_MS,
    PROTOCOLS,
    TCP,
    KillOptions,
    KillResult,
    Listener,
)
from kkp.platform import Platform, current_platform
from kkp.safety import protection_for

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Outcome:
    """What happened to one listener's process.

    ``refused`` means the safety guard stopped it and no kill was tried;
    ``result.message`` then carries the classification reason.
    """

    listener: Listener
    result: KillResult
    refused: bool = False


class Reaper:
    """Kills the processes behind a set of listeners, once per PID."""

    def __init__(
        self,
        killer: Killer | None = None,
        platform: Platform | None = None,
        protected_names: Sequence[str] = (),
    ) -> None:
        self._platform = platform or current_platform()
        self._killer = killer or get_killer(self._platform)
        self._protected_names = tuple(protected_names)

    async def kill_listeners(
        self,
        listeners: Iterable[Listener],
        *,
        allowed_protocols: Sequence[str] = PROTOCOLS,
        force: bool = False,
        dry_run: bool = False,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        tree: bool = False,
    ) -> list[Outcome]:
        """Kill every distinct PID in order; one outcome per listener.

        Failures come back as outcomes so a batch can partially succeed.
        """
        actionable = [item for item in listeners if item.protocol in allowed_protocols]
        options = KillOptions(force=force, timeout_ms=timeout_ms, tree=tree)

        per_pid: dict[int, tuple[KillResult, bool]] = {}
        for listener in actionable:
            if listener.pid in per_pid:
                continue
            per_pid[listener.pid] = await self._kill_one(listener, options, dry_run)

        return [Outcome(item, *per_pid[item.pid]) for item in actionable]

    async def kill_pid(
        self,
        pid: int,
        *,
        force: bool = False,
        dry_run: bool = False,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        tree: bool = False,
    ) -> Outcome:
        """Kill a PID given directly, without a discovered listener."""
        pseudo = Listener(protocol=TCP, port=0, pid=pid)
        options = KillOptions(force=force, timeout_ms=timeout_ms, tree=tree)
        result, refused = await self._kill_one(pseudo, options, dry_run)
        return Outcome(pseudo, result, refused)

    async def _kill_one(
        self, listener: Listener, options: KillOptions, dry_run: bool
    ) -> tuple[KillResult, bool]:
        pid = listener.pid
        verdict = protection_for(listener, self._platform, self._protected_names)
        if verdict.protected and not options.force:
            logger.info("Refusing to kill %d: %s", pid, verdict.reason)
            return KillResult(pid, False, "refused", message=verdict.reason), True

        if dry_run:
            return KillResult(pid, True, "dry-run"), False

        result = await self._killer.kill(pid, options)
        if result.ok:
            logger.info("Killed %d via %s", pid, result.method)
        else:
            logger.warning("Failed to kill %d: %s", pid, result.message)
        return result, False


def match_process_names(
    listeners: Iterable[Listener], names: Iterable[str]
) -> tuple[list[Listener], list[str]]:
    """Select listeners whose process name equals or contains a requested name.

    Comparison ignores case and a trailing ``.exe``. Returns the matched
    listeners (deduplicated by PID) and the names that matched nothing.
    """
    listeners = list(listeners)
    matched: list[Listener] = []
    seen_pids: set[int] = set()
    missing: list[str] = []

    for raw in names:
        wanted = _normalize_name(raw)
        found = [
            item
            for item in listeners
            if item.process_name and wanted in _normalize_name(item.process_name)
        ]
        if not found:
            missing.append(raw)
            continue
        for listener in found:
            if listener.pid not in seen_pids:
                seen_pids.add(listener.pid)
                matched.append(listener)

    return matched, missing


def _normalize_name(name: str) -> str:
    name = name.lower()
    return name[:-4] if name.endswith(".exe") else name
