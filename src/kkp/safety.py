"""Safety guard — refuse to kill processes the system cannot live without.

Callers skip it when the user passes ``--force``.
"""

from __future__ import annotations

from collections.abc import Iterable

from kkp.models import Listener, Protection
from kkp.platform import Platform, current_platform

POSIX_PROTECTED_NAMES: tuple[str, ...] = (
    "systemd",
    "launchd",
    "init",
    "kernel_task",
    "kthreadd",
    "systemd-journald",
    "systemd-logind",
    "sshd",
)

# Matched as substrings of the lowercased name, so "system" also covers
# any name containing it.
WINDOWS_PROTECTED_NAMES: tuple[str, ...] = (
    "system",
    "system idle process",
    "registry",
    "smss.exe",
    "csrss.exe",
    "wininit.exe",
    "services.exe",
    "lsass.exe",
    "winlogon.exe",
    "svchost.exe",
)

_WINDOWS_SYSTEM_PIDS = (0, 4)
_SSH_PORT = 22

UNPROTECTED = Protection(protected=False)


def protection_for(
    listener: Listener,
    platform: Platform | None = None,
    extra_names: Iterable[str] = (),
) -> Protection:
    """Classify a listener's process; the first matching rule wins."""
    platform = platform or current_platform()
    windows = platform is Platform.WINDOWS
    name = (listener.process_name or listener.command or "").lower()

    if not windows and listener.pid <= 1:
        return Protection(True, "pid 1 (system init)")

    if windows and listener.pid in _WINDOWS_SYSTEM_PIDS:
        return Protection(True, "system process")

    if name:
        if windows:
            denylist, reason = WINDOWS_PROTECTED_NAMES, "critical Windows process"
        else:
            denylist, reason = POSIX_PROTECTED_NAMES, "critical system process"
        if any(protected in name for protected in denylist):
            return Protection(True, reason)
        if any(n and n.lower() in name for n in extra_names):
            return Protection(True, "listed in protected_names")

    if listener.port == _SSH_PORT and "sshd" in name:
        return Protection(True, "sshd (avoid locking yourself out)")

    return UNPROTECTED


def refusal_message(listener: Listener, reason: str) -> str:
    name = f" ({listener.process_name})" if listener.process_name else ""
    return f"refused to kill pid {listener.pid}{name}: {reason}"
