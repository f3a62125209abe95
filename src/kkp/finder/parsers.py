"""Parsers turning ss / lsof / netstat / tasklist text into Listener records.

Every parser is best-effort: a line that does not have the expected
shape is dropped, never reported as an error. Tool output varies across
versions and locales, so nothing here raises on bad input.
"""

from __future__ import annotations

import csv
import re

from kkp.models import TCP, UDP, Listener, ProcessInfo

_PORT_SUFFIX_RE = re.compile(r":(\d+)$")
_WINDOWS_ADDR_RE = re.compile(r"^(.*):(\d+)$")
_SS_PID_RE = re.compile(r"pid=(\d+)")
_SS_NAME_RE = re.compile(r'users:\(\("([^"]+)"')
# First ":<digits>" that is not inside an [IPv6] bracket.
_LSOF_PORT_RE = re.compile(r"^(?:[^\[]|\[[^\]]*\])*?:(\d+)\b")
_UNPRINTABLE_RE = re.compile(r"[\x00-\x1f]|[^\x00-\x7f]")

# Mojibake left behind when a non-UTF-8 console code page is decoded as UTF-8.
_GARBLED_MARKERS = ("\ufffd", "锟斤拷")

_LSOF_MIN_FIELDS = 9
_LSOF_FIRST_NODE_FIELD = 5


def _valid_port(port: int) -> bool:
    return 1 <= port <= 65535


def parse_addr_port(token: str) -> tuple[int | None, str | None]:
    """Split ``addr:port`` into (port, address).

    Handles ``0.0.0.0:3000``, ``*:5173``, ``[::]:22`` and ``:::8080``.
    Returns ``(None, None)`` when there is no usable port.
    """
    m = _PORT_SUFFIX_RE.search(token)
    if not m:
        return None, None
    port = int(m.group(1))
    if not _valid_port(port):
        return None, None
    return port, token[: m.start()]


def parse_windows_addr_port(token: str) -> tuple[int | None, str | None]:
    """Like ``parse_addr_port`` but strips the brackets from IPv6 addresses."""
    m = _WINDOWS_ADDR_RE.match(token)
    if not m:
        return None, None
    port = int(m.group(2))
    if not _valid_port(port):
        return None, None
    address = m.group(1)
    if address.startswith("["):
        address = address[1:]
    if address.endswith("]"):
        address = address[:-1]
    return port, address


def parse_ss(stdout: str, protocol: str, source: str = "ss") -> list[Listener]:
    """Parse ``ss -H -l[tu]np`` output.

    Columns: State Recv-Q Send-Q Local:Port Peer:Port Process. Rows
    without a ``pid=`` token are dropped; unprivileged ss often omits it.
    """
    out: list[Listener] = []
    for raw in stdout.splitlines():
        line = raw.strip()
        if not line:
            continue

        parts = line.split()
        if len(parts) < 5:
            continue

        port, address = parse_addr_port(parts[3])
        if port is None:
            continue

        proc = " ".join(parts[5:])
        pid_match = _SS_PID_RE.search(proc)
        if not pid_match:
            continue
        pid = int(pid_match.group(1))
        if pid <= 0:
            continue

        name_match = _SS_NAME_RE.search(proc)
        out.append(
            Listener(
                protocol=protocol,
                port=port,
                pid=pid,
                local_address=address,
                process_name=name_match.group(1) if name_match else None,
                raw=line,
                source=source,
            )
        )
    return out


def parse_lsof(stdout: str, source: str = "lsof") -> list[Listener]:
    """Parse ``lsof -nP -i...`` output.

    Columns: COMMAND PID USER FD TYPE DEVICE SIZE/OFF NODE NAME. The
    name field is read from the ``TCP``/``UDP`` node marker onward, e.g.
    ``TCP *:3000 (LISTEN)``: the first ``:<digits>`` outside brackets is
    the port and the text between the marker and it is the bind address.
    """
    out: list[Listener] = []
    saw_header = False

    for line in stdout.splitlines():
        if not line.strip():
            continue
        if not saw_header:
            if line.lower().startswith("command"):
                saw_header = True
            continue

        parts = line.split()
        if len(parts) < _LSOF_MIN_FIELDS:
            continue

        cmd, pid_text, user = parts[0], parts[1], parts[2]
        if not pid_text.isdigit() or int(pid_text) <= 0:
            continue

        marker = next(
            (
                i
                for i in range(_LSOF_FIRST_NODE_FIELD, len(parts))
                if parts[i] in ("TCP", "UDP")
            ),
            None,
        )
        if marker is None:
            continue
        name = " ".join(parts[marker:])
        protocol = TCP if name.startswith("TCP") else UDP

        port_match = _LSOF_PORT_RE.search(name)
        if not port_match:
            continue
        port = int(port_match.group(1))
        if not _valid_port(port):
            continue

        head = name[: port_match.start(1) - 1].split(None, 1)
        out.append(
            Listener(
                protocol=protocol,
                port=port,
                pid=int(pid_text),
                local_address=head[1] if len(head) == 2 else None,
                process_name=cmd,
                user=user,
                raw=line,
                source=source,
            )
        )
    return out


def parse_netstat(stdout: str, protocol: str, source: str = "netstat") -> list[Listener]:
    """Parse Windows ``netstat -ano -p <proto>`` output.

    TCP rows are ``Proto Local Foreign State PID`` and only LISTENING ones
    are kept. UDP rows have no state column (``Proto Local Foreign PID``)
    and are always kept.
    """
    out: list[Listener] = []
    for raw in stdout.splitlines():
        line = raw.strip()
        if not line:
            continue
        lower = line.lower()
        if lower.startswith("proto") or lower.startswith("active"):
            continue

        parts = line.split()
        if len(parts) < 4:
            continue

        proto = parts[0].lower()
        if proto not in (TCP, UDP) or proto != protocol:
            continue

        has_state = proto == TCP
        if has_state:
            if len(parts) < 5 or parts[3].lower() != "listening":
                continue
            pid_text = parts[4]
        else:
            pid_text = parts[3]

        if not pid_text.isdigit():
            continue

        port, address = parse_windows_addr_port(parts[1])
        if port is None:
            continue

        out.append(
            Listener(
                protocol=proto,
                port=port,
                pid=int(pid_text),
                local_address=address,
                raw=line,
                source=source,
            )
        )
    return out


def parse_tasklist_csv(stdout: str) -> dict[int, ProcessInfo]:
    """Parse ``tasklist /V /FO CSV /NH`` into PID → (name, user).

    Columns: Image Name, PID, Session Name, Session#, Mem Usage, Status,
    User Name, CPU Time, Window Title. User names that came through as
    mojibake are dropped rather than shown.
    """
    infos: dict[int, ProcessInfo] = {}
    lines = [line.strip() for line in stdout.splitlines() if line.strip()]
    for row in csv.reader(lines):
        if len(row) < 7:
            continue
        pid_text = row[1].strip()
        if not pid_text.isdigit():
            continue
        user: str | None = row[6].strip() or None
        if user and is_garbled(user):
            user = None
        infos[int(pid_text)] = ProcessInfo(name=row[0].strip() or None, user=user)
    return infos


def is_garbled(text: str) -> bool:
    return any(marker in text for marker in _GARBLED_MARKERS)


def scrub_text(text: str) -> str:
    """Drop control characters and anything outside ASCII."""
    return _UNPRINTABLE_RE.sub("", text).strip()
