"""Console formatting for kill outcomes and the listener list."""

from __future__ import annotations

from collections.abc import Sequence

from rich.markup import escape
from rich.table import Table

from kkp.models import TCP, UDP, Listener

OK = "✔"
ERR = "✖"
INFO = "ℹ"

_NAME_MAX = 32
_USER_MAX = 18
_ADDR_MAX = 26


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: max(0, limit - 1)] + "…"


def format_kill_line(listener: Listener) -> str:
    """``3000 tcp #1234 (node)`` with markup; the port is omitted for bare PIDs."""
    parts = []
    if listener.port:
        parts.append(f"[bold cyan]{listener.port}[/bold cyan]")
        parts.append(f"[magenta]{listener.protocol}[/magenta]")
    parts.append(f"[bold]#{listener.pid}[/bold]")
    if listener.process_name:
        parts.append(f"[dim]({escape(listener.process_name)})[/dim]")
    return " ".join(parts)


def ok_line(listener: Listener, method: str) -> str:
    return f"[green]{OK} {format_kill_line(listener)}[/green] [dim]{escape(method)}[/dim]"


def err_line(listener: Listener, message: str | None) -> str:
    reason = escape(message or "failed")
    return f"[red]{ERR} {format_kill_line(listener)}[/red] [dim]{reason}[/dim]"


def info_line(text: str) -> str:
    return f"[dim]{INFO} {text}[/dim]"


def listener_table(listeners: Sequence[Listener]) -> Table:
    """Table for ``--list``: one row per listener."""
    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("Port", style="bold cyan", justify="right")
    table.add_column("Proto", style="magenta")
    table.add_column("PID", style="dim", justify="right")
    table.add_column("User", style="dim", max_width=_USER_MAX, no_wrap=True)
    table.add_column("Address", style="dim", max_width=_ADDR_MAX, no_wrap=True)
    table.add_column("Process")

    for listener in listeners:
        name = listener.process_name or listener.command or "—"
        table.add_row(
            str(listener.port),
            listener.protocol,
            f"#{listener.pid}",
            escape(truncate(listener.user or "—", _USER_MAX)),
            escape(truncate(listener.local_address or "—", _ADDR_MAX)),
            escape(truncate(name, _NAME_MAX)),
        )
    return table


def summary_line(listeners: Sequence[Listener]) -> str:
    tcp = sum(1 for listener in listeners if listener.protocol == TCP)
    udp = sum(1 for listener in listeners if listener.protocol == UDP)
    return f"{len(listeners)} listeners ({tcp} tcp, {udp} udp)"
