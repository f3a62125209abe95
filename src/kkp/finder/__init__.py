"""Listener discovery, one strategy per operating system."""

from __future__ import annotations

from kkp.finder.base import Finder
from kkp.platform import Platform, current_platform


def get_finder(platform: Platform | None = None) -> Finder:
    """Return the discovery strategy for ``platform`` (default: this host)."""
    platform = platform or current_platform()

    if platform is Platform.LINUX:
        from kkp.finder.linux import LinuxFinder

        return LinuxFinder()
    if platform is Platform.DARWIN:
        from kkp.finder.darwin import DarwinFinder

        return DarwinFinder()
    if platform is Platform.WINDOWS:
        from kkp.finder.windows import WindowsFinder

        return WindowsFinder()

    # Unknown POSIX-like system: lsof is the most portable option.
    from kkp.finder.posix import PosixFallbackFinder

    return PosixFallbackFinder()


__all__ = ["Finder", "get_finder"]
