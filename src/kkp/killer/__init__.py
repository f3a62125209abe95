"""Process termination, one strategy per operating system."""

from __future__ import annotations

from kkp.killer.base import Killer
from kkp.platform import Platform, current_platform


def get_killer(platform: Platform | None = None) -> Killer:
    platform = platform or current_platform()
    if platform is Platform.WINDOWS:
        from kkp.killer.windows import WindowsKiller

        return WindowsKiller()

    from kkp.killer.posix import PosixKiller

    return PosixKiller()


__all__ = ["Killer", "get_killer"]
