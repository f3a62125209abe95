"""Operating-system detection and privilege checks."""

from __future__ import annotations

import enum
import logging
import os
import platform as _platform

from kkp.errors import KkpError
from kkp.runner import run_command

logger = logging.getLogger(__name__)

_ADMIN_CHECK_TIMEOUT_MS = 1500

_ADMIN_SCRIPT = (
    "([Security.Principal.WindowsPrincipal]"
    "[Security.Principal.WindowsIdentity]::GetCurrent())"
    ".IsInRole([Security.Principal.WindowsBuiltInRole]::Administrator)"
)

POWERSHELL_ARGS = (
    "-NoProfile",
    "-NonInteractive",
    "-ExecutionPolicy",
    "Bypass",
    "-Command",
)


class Platform(enum.Enum):
    """Operating systems with a dedicated finder/killer strategy."""

    LINUX = "linux"
    DARWIN = "darwin"
    WINDOWS = "windows"
    OTHER = "other"


def current_platform() -> Platform:
    system = _platform.system()
    if system == "Linux":
        return Platform.LINUX
    if system == "Darwin":
        return Platform.DARWIN
    if system == "Windows":
        return Platform.WINDOWS
    return Platform.OTHER


def is_root() -> bool:
    getuid = getattr(os, "geteuid", None)
    return getuid is not None and getuid() == 0


async def is_windows_admin() -> bool:
    """Best-effort elevation check, only consulted after an access-denied kill."""
    if current_platform() is not Platform.WINDOWS:
        return False
    try:
        result = await run_command(
            "powershell.exe",
            [*POWERSHELL_ARGS, _ADMIN_SCRIPT],
            timeout_ms=_ADMIN_CHECK_TIMEOUT_MS,
        )
    except KkpError as exc:
        logger.debug("Administrator check failed: %s", exc)
        return False
    return result.stdout.strip().lower().startswith("true")
