"""Picker display — builds Rich renderables from SelectionState."""

from __future__ import annotations

from typing import NamedTuple

from rich.console import Group
from rich.text import Text

from kkp.models import Listener
from kkp.tui.state import SelectionState

FOOTER = "Space select · Enter kill · Esc exit · j/k move"

_NAME_MAX = 32


class ColumnWidths(NamedTuple):
    port: int
    pid: int


def column_widths(items: list[Listener]) -> ColumnWidths:
    """Widths computed over the whole list so columns stay put while scrolling."""
    port_w = max([4, *(len(str(item.port)) for item in items)])
    pid_w = max([4, *(len(str(item.pid)) for item in items)])
    return ColumnWidths(port_w, pid_w)


def _truncate_name(name: str) -> str:
    if len(name) <= _NAME_MAX:
        return name
    return name[: _NAME_MAX - 1] + "…"


class SelectionDisplay:
    """Builds the picker screen: one line per visible row plus a footer."""

    def render(self, state: SelectionState) -> Group:
        if not state.items:
            return Group(Text("No listeners.", style="dim"), Text(""), self._render_footer(state))

        widths = column_widths(state.items)
        lines = [
            self._render_row(item, widths, idx == state.cursor, idx in state.selected, state.width)
            for idx, item in state.visible()
        ]
        return Group(*lines, Text(""), self._render_footer(state))

    def _render_row(
        self,
        item: Listener,
        widths: ColumnWidths,
        is_cursor: bool,
        is_selected: bool,
        width: int,
    ) -> Text:
        line = Text(no_wrap=True, overflow="ellipsis")
        line.append("› " if is_cursor else "  ", style="bold cyan")
        if is_selected:
            line.append("[✓]", style="bold green")
        else:
            line.append("[ ]", style="dim")
        line.append(" ")
        line.append(str(item.port).rjust(widths.port), style="bold" if is_cursor else "")
        line.append(" ")
        line.append(item.protocol.ljust(3), style="cyan")
        line.append(" ")
        line.append(f"#{item.pid}".ljust(widths.pid + 1), style="dim")
        if item.process_name:
            line.append(" ")
            line.append(_truncate_name(item.process_name), style="yellow")
        line.truncate(max(1, width), overflow="ellipsis")
        return line

    def _render_footer(self, state: SelectionState) -> Text:
        footer = Text(FOOTER, style="dim", no_wrap=True, overflow="ellipsis")
        footer.truncate(max(1, state.width), overflow="ellipsis")
        return footer
