"""Positional target parsing: ports, port/protocol pairs, process names."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from kkp.models import PROTOCOLS, TCP, UDP

_PORT_RE = re.compile(r"^(\d{1,5})(?:/(tcp|udp))?$", re.IGNORECASE)
_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9._-]*$")


@dataclass(frozen=True)
class PortTarget:
    raw: str
    port: int
    # None means "whatever --tcp/--udp allow".
    protocols: tuple[str, ...] | None = None


@dataclass
class Targets:
    ports: list[PortTarget]
    names: list[str]
    unknown: list[str]

    @property
    def empty(self) -> bool:
        return not self.ports and not self.names


def parse_port_target(raw: str) -> PortTarget | None:
    match = _PORT_RE.match(raw)
    if not match:
        return None
    port = int(match.group(1))
    if not 1 <= port <= 65535:
        return None
    proto = match.group(2)
    return PortTarget(raw, port, (proto.lower(),) if proto else None)


def is_process_name(raw: str) -> bool:
    return bool(_NAME_RE.match(raw))


def parse_targets(args: Iterable[str]) -> Targets:
    """Sort each argument into a port, a process name, or unknown."""
    targets = Targets(ports=[], names=[], unknown=[])
    for raw in args:
        port = parse_port_target(raw)
        if port is not None:
            targets.ports.append(port)
        elif is_process_name(raw):
            targets.names.append(raw)
        else:
            targets.unknown.append(raw)
    return targets


def resolve_protocols(tcp: bool, udp: bool) -> tuple[str, ...]:
    """Both flags or neither mean both protocols."""
    if tcp and not udp:
        return (TCP,)
    if udp and not tcp:
        return (UDP,)
    return PROTOCOLS
