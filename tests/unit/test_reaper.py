"""Tests for the reaper: safety gating, per-PID kills, name matching."""

from __future__ import annotations

import asyncio
import errno
import signal
from unittest.mock import patch

from kkp.killer.posix import PosixKiller
from kkp.models import TCP, UDP, KillOptions, KillResult, Listener
from kkp.platform import Platform
from kkp.reaper import Reaper, match_process_names


def run_async(coro):
    """Helper to run async functions in sync tests."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)


class RecordingKiller:
    def __init__(self, results: dict[int, KillResult] | None = None) -> None:
        self.results = results or {}
        self.calls: list[tuple[int, KillOptions]] = []

    def is_alive(self, pid: int) -> bool:
        return True

    async def kill(self, pid: int, options: KillOptions) -> KillResult:
        self.calls.append((pid, options))
        return self.results.get(pid, KillResult(pid, True, "SIGTERM"))


def test_port_lookup_and_kill(node_listener: Listener):
    alive = {4242}

    def fake_kill(pid: int, sig: int) -> None:
        if pid not in alive:
            raise ProcessLookupError(errno.ESRCH, "No such process")
        if sig == signal.SIGTERM:
            alive.discard(pid)

    reaper = Reaper(killer=PosixKiller(), platform=Platform.LINUX)
    with patch("kkp.killer.posix.os.kill", side_effect=fake_kill):
        (outcome,) = run_async(reaper.kill_listeners([node_listener]))

    assert outcome.listener is node_listener
    assert not outcome.refused
    assert (outcome.result.pid, outcome.result.ok, outcome.result.method) == (4242, True, "SIGTERM")


def test_protected_pid_refused_without_kill(systemd_listener: Listener):
    killer = RecordingKiller()
    reaper = Reaper(killer=killer, platform=Platform.LINUX)

    (outcome,) = run_async(reaper.kill_listeners([systemd_listener]))

    assert outcome.refused
    assert not outcome.result.ok
    assert outcome.result.method == "refused"
    assert outcome.result.message == "pid 1 (system init)"
    assert killer.calls == []


def test_force_overrides_protection(systemd_listener: Listener):
    killer = RecordingKiller()
    reaper = Reaper(killer=killer, platform=Platform.LINUX)

    (outcome,) = run_async(reaper.kill_listeners([systemd_listener], force=True))

    assert not outcome.refused
    assert [pid for pid, _ in killer.calls] == [1]
    assert killer.calls[0][1].force


def test_dry_run_never_kills(node_listener: Listener):
    killer = RecordingKiller()
    reaper = Reaper(killer=killer, platform=Platform.LINUX)

    (outcome,) = run_async(reaper.kill_listeners([node_listener], dry_run=True))

    assert outcome.result.method == "dry-run"
    assert outcome.result.ok
    assert killer.calls == []


def test_one_kill_per_pid_one_outcome_per_listener():
    killer = RecordingKiller()
    reaper = Reaper(killer=killer, platform=Platform.LINUX)
    listeners = [
        Listener(protocol=TCP, port=3000, pid=4242, local_address="0.0.0.0"),
        Listener(protocol=TCP, port=3000, pid=4242, local_address="::"),
        Listener(protocol=TCP, port=5173, pid=5000),
    ]

    outcomes = run_async(reaper.kill_listeners(listeners, timeout_ms=300, tree=True))

    assert [outcome.listener.port for outcome in outcomes] == [3000, 3000, 5173]
    assert [pid for pid, _ in killer.calls] == [4242, 5000]
    assert killer.calls[0][1] == KillOptions(force=False, timeout_ms=300, tree=True)


def test_protocol_filter():
    killer = RecordingKiller()
    reaper = Reaper(killer=killer, platform=Platform.LINUX)
    listeners = [
        Listener(protocol=UDP, port=5353, pid=2288),
        Listener(protocol=TCP, port=3000, pid=4242),
    ]

    outcomes = run_async(reaper.kill_listeners(listeners, allowed_protocols=(TCP,)))

    assert [outcome.listener.pid for outcome in outcomes] == [4242]


def test_failure_is_reported_not_raised(node_listener: Listener):
    denied = KillResult(4242, False, "SIGTERM", message="Operation not permitted", error_code="EPERM")
    reaper = Reaper(killer=RecordingKiller({4242: denied}), platform=Platform.LINUX)

    (outcome,) = run_async(reaper.kill_listeners([node_listener]))

    assert outcome.result is denied
    assert not outcome.refused


def test_configured_protected_names():
    killer = RecordingKiller()
    reaper = Reaper(killer=killer, platform=Platform.LINUX, protected_names=("postgres",))
    listener = Listener(protocol=TCP, port=5432, pid=612, process_name="postgres")

    (outcome,) = run_async(reaper.kill_listeners([listener]))

    assert outcome.refused
    assert outcome.result.message == "listed in protected_names"


def test_kill_pid():
    killer = RecordingKiller()
    reaper = Reaper(killer=killer, platform=Platform.LINUX)

    outcome = run_async(reaper.kill_pid(4242, timeout_ms=100))

    assert outcome.result.ok
    assert outcome.listener.pid == 4242
    assert killer.calls[0][1].timeout_ms == 100


def test_kill_pid_refuses_pid_1():
    killer = RecordingKiller()
    outcome = run_async(Reaper(killer=killer, platform=Platform.LINUX).kill_pid(1))
    assert outcome.refused
    assert killer.calls == []


def test_match_process_names(mixed_listeners: list[Listener]):
    windows_node = Listener(protocol=TCP, port=3001, pid=4300, process_name="node.exe")
    listeners = [*mixed_listeners, windows_node]

    matched, missing = match_process_names(listeners, ["NODE", "redis"])

    assert [item.pid for item in matched] == [4242, 4300]
    assert missing == ["redis"]


def test_match_process_names_substring_and_dedupe(mixed_listeners: list[Listener]):
    duplicate = Listener(protocol=UDP, port=3000, pid=4242, process_name="node")
    matched, missing = match_process_names([*mixed_listeners, duplicate], ["no", "node"])

    assert [item.pid for item in matched] == [4242]
    assert missing == []
