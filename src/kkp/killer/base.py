"""Killer protocol — platform termination strategies must satisfy this."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from kkp.models import KillOptions, KillResult


@runtime_checkable
class Killer(Protocol):
    """Protocol for graceful-then-forceful process termination."""

    async def kill(self, pid: int, options: KillOptions) -> KillResult:
        """Terminate ``pid``. Failures are returned, never raised."""
        ...

    def is_alive(self, pid: int) -> bool:
        """Whether ``pid`` exists. A process we may not signal counts as alive."""
        ...
