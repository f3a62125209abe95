"""Core data models — listeners, protection verdicts, and kill results."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import asdict, dataclass

TCP = "tcp"
UDP = "udp"
PROTOCOLS: tuple[str, ...] = (TCP, UDP)

# Default grace window before escalating to a forceful kill.
DEFAULT_TIMEOUT_MS = 1200


@dataclass
class Listener:
    """A socket bound in listening state and the process that owns it.

    Only enrichment passes mutate a listener after parsing, and only to
    fill in the optional fields.
    """

    protocol: str
    port: int
    pid: int
    local_address: str | None = None
    process_name: str | None = None
    command: str | None = None
    user: str | None = None
    raw: str | None = None
    source: str | None = None

    @property
    def key(self) -> tuple[str, int, int, str]:
        return listener_key(self)

    def to_dict(self) -> dict:
        """Serializable form with unset optional fields dropped."""
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass(frozen=True)
class Protection:
    """Whether the safety layer refuses to kill a listener's process."""

    protected: bool
    reason: str | None = None


@dataclass(frozen=True)
class KillResult:
    """Outcome of one kill attempt against one PID."""

    pid: int
    ok: bool
    method: str
    message: str | None = None
    error_code: str | None = None

    @property
    def permission_denied(self) -> bool:
        return self.error_code == "EPERM"


@dataclass(frozen=True)
class FindOptions:
    protocols: tuple[str, ...] = PROTOCOLS


@dataclass(frozen=True)
class KillOptions:
    force: bool = False
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    tree: bool = False


@dataclass
class ProcessInfo:
    """Partial process details from an enrichment source."""

    name: str | None = None
    command: str | None = None
    user: str | None = None


def listener_key(listener: Listener) -> tuple[str, int, int, str]:
    return (
        listener.protocol,
        listener.port,
        listener.pid,
        listener.local_address or "",
    )


def dedupe_listeners(listeners: Iterable[Listener]) -> list[Listener]:
    """Drop near-duplicate rows (IPv4/IPv6 dual binds, repeated tool runs).

    The first occurrence of each (protocol, port, pid, address) key wins
    and input order is preserved.
    """
    seen: set[tuple[str, int, int, str]] = set()
    out: list[Listener] = []
    for listener in listeners:
        key = listener_key(listener)
        if key in seen:
            continue
        seen.add(key)
        out.append(listener)
    return out


def apply_process_info(
    listeners: Iterable[Listener],
    infos: dict[int, ProcessInfo],
    *,
    keep_name: bool = False,
) -> None:
    """Overlay enrichment results onto listeners in place.

    Only present fields are copied, so a populated field is never
    cleared by a source that lacks it. With ``keep_name`` a name already
    reported by the discovery tool is left alone.
    """
    for listener in listeners:
        info = infos.get(listener.pid)
        if info is None:
            continue
        if info.name and not (keep_name and listener.process_name):
            listener.process_name = info.name
        if info.command:
            listener.command = info.command
        if info.user:
            listener.user = info.user
