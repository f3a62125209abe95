"""Exception taxonomy.

Discovery and enrichment failures are mostly absorbed where they happen;
these exceptions cover the cases that reach the caller. Kill failures are
never raised, they come back as ``KillResult`` values.
"""

from __future__ import annotations


class KkpError(Exception):
    """Base class for kkp errors."""


class ToolNotFoundError(KkpError):
    """An external tool is missing, or no discovery strategy could run."""

    def __init__(self, tool: str, message: str | None = None) -> None:
        self.tool = tool
        super().__init__(message or f"{tool} not found")


class CommandTimeoutError(KkpError):
    """An external command did not finish within its timeout and was killed."""

    def __init__(self, cmd: str, timeout_ms: int) -> None:
        self.cmd = cmd
        self.timeout_ms = timeout_ms
        super().__init__(f"Command timed out after {timeout_ms}ms: {cmd}")


class CommandSpawnError(KkpError):
    """An external command could not be started for a reason other than absence."""

    def __init__(self, cmd: str, cause: OSError) -> None:
        self.cmd = cmd
        self.errno = cause.errno
        super().__init__(f"Failed to run {cmd}: {cause.strerror or cause}")
