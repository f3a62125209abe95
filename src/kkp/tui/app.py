"""Interactive listener picker — full-screen multi-select over a list."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from collections.abc import Callable, Iterable

from rich.console import Console
from rich.live import Live

from kkp.models import Listener
from kkp.tui.display import SelectionDisplay
from kkp.tui.input import KeyboardInput, WindowsKeyboardInput, open_keyboard
from kkp.tui.state import SelectionResult, SelectionState

logger = logging.getLogger(__name__)

# Idle wait between non-blocking key polls, in seconds
_POLL_INTERVAL = 0.03

_MOVE_KEYS = {
    "up": -1,
    "k": -1,
    "down": 1,
    "j": 1,
}


def handle_key(state: SelectionState, key: str) -> SelectionResult | None:
    """Apply one key to the state; return a result when the key ends the session."""
    if key in _MOVE_KEYS:
        state.move(_MOVE_KEYS[key])
    elif key == "page_up":
        state.page_up()
    elif key == "page_down":
        state.page_down()
    elif key == "home":
        state.home()
    elif key == "end":
        state.end()
    elif key == "space":
        state.toggle()
    elif key == "enter":
        state.done = True
        return SelectionResult(cancelled=False, selected=state.selected_items())
    elif key == "escape":
        state.done = True
        return SelectionResult(cancelled=True)
    elif key == "ctrl_c":
        state.done = True
        return SelectionResult(cancelled=True, interrupted=True)
    return None


def _terminal_size() -> tuple[int, int]:
    size = os.get_terminal_size(sys.stdout.fileno())
    return size.columns, size.lines


class SelectionSession:
    """Runs the picker until the user confirms, cancels or is interrupted.

    The keyboard is polled without blocking so the event loop stays free;
    the screen is redrawn once per state change and on terminal resize.
    """

    def __init__(
        self,
        listeners: Iterable[Listener],
        console: Console | None = None,
        keyboard_factory: Callable[[], KeyboardInput | WindowsKeyboardInput] = open_keyboard,
        terminal_size: Callable[[], tuple[int, int]] = _terminal_size,
    ) -> None:
        self._console = console or Console()
        self._keyboard_factory = keyboard_factory
        self._terminal_size = terminal_size
        self._display = SelectionDisplay()
        self._interrupted = False
        width, height = terminal_size()
        self.state = SelectionState.from_listeners(listeners, width, height)

    async def run(self) -> SelectionResult:
        original_sigint = signal.getsignal(signal.SIGINT)

        def _signal_handler(signum: int, frame: object) -> None:
            self._interrupted = True

        signal.signal(signal.SIGINT, _signal_handler)

        try:
            with self._keyboard_factory() as kb:
                with Live(
                    console=self._console,
                    screen=True,
                    auto_refresh=False,
                    transient=True,
                ) as live:
                    return await self._loop(kb, live)
        finally:
            signal.signal(signal.SIGINT, original_sigint)

    async def _loop(self, kb: KeyboardInput | WindowsKeyboardInput, live: Live) -> SelectionResult:
        state = self.state
        while True:
            if self._interrupted:
                return SelectionResult(cancelled=True, interrupted=True)

            state.resize(*self._terminal_size())
            if state.needs_render:
                live.update(self._display.render(state), refresh=True)
                state.needs_render = False

            key = kb.read(timeout=0)
            if key is None:
                await asyncio.sleep(_POLL_INTERVAL)
                continue

            result = handle_key(state, key)
            if result is not None:
                logger.debug(
                    "Picker closed: cancelled=%s selected=%d",
                    result.cancelled,
                    len(result.selected),
                )
                return result


async def select_listeners(listeners: Iterable[Listener]) -> SelectionResult:
    """Let the user pick listeners interactively.

    Without a terminal on both stdin and stdout there is nobody to ask,
    so the session resolves as cancelled right away.
    """
    if not (sys.stdin.isatty() and sys.stdout.isatty()):
        logger.debug("Not a terminal; skipping interactive selection")
        return SelectionResult(cancelled=True)
    return await SelectionSession(listeners).run()
