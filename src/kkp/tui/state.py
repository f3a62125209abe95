"""Selection state for the interactive listener picker."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from kkp.models import Listener, dedupe_listeners

# Lines kept free under the list for the footer.
FOOTER_LINES = 2


def sort_listeners(listeners: Iterable[Listener]) -> list[Listener]:
    """Deduplicate and order by port, then protocol, then PID."""
    return sorted(
        dedupe_listeners(listeners),
        key=lambda listener: (listener.port, listener.protocol, listener.pid),
    )


@dataclass
class SelectionResult:
    """How a picker session ended.

    An empty ``selected`` with ``cancelled=False`` means the user pressed
    Enter without choosing anything, which is not a cancellation.
    """

    cancelled: bool
    selected: list[Listener] = field(default_factory=list)
    interrupted: bool = False


@dataclass
class SelectionState:
    """Cursor, viewport and multi-select set over a fixed item list.

    Invariants after every operation: ``0 <= cursor < len(items)`` (0 when
    empty), ``0 <= top <= max(0, len(items) - rows)``, and the cursor row
    is inside the viewport.
    """

    items: list[Listener]
    width: int = 80
    height: int = 24
    cursor: int = 0
    top: int = 0
    selected: set[int] = field(default_factory=set)
    done: bool = False
    needs_render: bool = True

    @classmethod
    def from_listeners(
        cls, listeners: Iterable[Listener], width: int = 80, height: int = 24
    ) -> SelectionState:
        return cls(items=sort_listeners(listeners), width=width, height=height)

    @property
    def rows(self) -> int:
        """Number of list rows that fit above the footer."""
        return max(1, self.height - FOOTER_LINES)

    @property
    def max_top(self) -> int:
        return max(0, len(self.items) - self.rows)

    def move(self, delta: int) -> None:
        if not self.items:
            return
        self.cursor = max(0, min(self.cursor + delta, len(self.items) - 1))
        self._scroll_into_view()
        self.needs_render = True

    def page_up(self) -> None:
        self.move(-self.rows)

    def page_down(self) -> None:
        self.move(self.rows)

    def home(self) -> None:
        self.cursor = 0
        self.top = 0
        self.needs_render = True

    def end(self) -> None:
        self.cursor = max(0, len(self.items) - 1)
        self.top = self.max_top
        self.needs_render = True

    def toggle(self) -> None:
        """Flip selection of the cursor row; the cursor stays put."""
        if not self.items:
            return
        self.selected ^= {self.cursor}
        self.needs_render = True

    def resize(self, width: int, height: int) -> None:
        if (width, height) == (self.width, self.height):
            return
        self.width = width
        self.height = height
        self._scroll_into_view()
        self.needs_render = True

    def visible(self) -> Iterator[tuple[int, Listener]]:
        """(absolute index, item) pairs inside the viewport."""
        end = min(self.top + self.rows, len(self.items))
        for idx in range(self.top, end):
            yield idx, self.items[idx]

    def selected_items(self) -> list[Listener]:
        return [item for idx, item in enumerate(self.items) if idx in self.selected]

    def _scroll_into_view(self) -> None:
        if self.cursor < self.top:
            self.top = self.cursor
        elif self.cursor >= self.top + self.rows:
            self.top = self.cursor - self.rows + 1
        self.top = max(0, min(self.top, self.max_top))
