"""Non-blocking raw keyboard input.

Keys are reported as names: ``up``, ``down``, ``page_up``, ``page_down``,
``home``, ``end``, ``enter``, ``space``, ``escape``, ``ctrl_c``, or the
typed character itself. Unrecognised escape sequences come back as
``unknown`` so they can never be mistaken for a bare Esc.
"""

from __future__ import annotations

import os
import selectors
import sys
import time
from types import TracebackType

if sys.platform == "win32":
    import msvcrt
else:
    import termios

# Escape sequence mappings (bytes after the leading ESC)
_ESCAPE_SEQUENCES = {
    "[A": "up",
    "[B": "down",
    "OA": "up",
    "OB": "down",
    "[5~": "page_up",
    "[6~": "page_down",
    "[H": "home",
    "[F": "end",
    "OH": "home",
    "OF": "end",
    "[1~": "home",
    "[4~": "end",
    "[7~": "home",
    "[8~": "end",
}

_SINGLE_KEYS = {
    "\x03": "ctrl_c",
    "\r": "enter",
    "\n": "enter",
    " ": "space",
}

# Windows console scan codes following a \x00 or \xe0 prefix
_WINDOWS_SCAN_CODES = {
    "H": "up",
    "P": "down",
    "I": "page_up",
    "Q": "page_down",
    "G": "home",
    "O": "end",
}

_MAX_SEQUENCE = 6
_SEQUENCE_TIMEOUT = 0.02


def decode_key(ch: str) -> str:
    """Name for a single non-escape character."""
    return _SINGLE_KEYS.get(ch, ch)


def decode_escape_sequence(seq: str) -> str:
    """Name for the characters that followed an ESC byte."""
    if not seq:
        return "escape"
    return _ESCAPE_SEQUENCES.get(seq, "unknown")


class KeyboardInput:
    """Context manager that puts stdin into raw-ish mode for single-key reads.

    Echo, line buffering and signal generation are turned off so Ctrl-C
    arrives as a key; output processing stays on so the renderer's
    newlines still return the carriage.

    Uses ``os.read`` on the raw file descriptor so that reads stay in
    sync with what ``selectors`` reports as available.  Python's
    buffered ``sys.stdin.read`` can consume multiple bytes into its
    internal buffer, causing the selector to miss subsequent bytes of
    an escape sequence.

    Usage::

        with KeyboardInput() as kb:
            key = kb.read(timeout=0.05)  # returns key name or None
    """

    def __init__(self) -> None:
        self._old_settings: list | None = None
        self._selector = selectors.DefaultSelector()
        self._fd: int = sys.stdin.fileno()

    def __enter__(self) -> KeyboardInput:
        self._old_settings = termios.tcgetattr(self._fd)
        mode = termios.tcgetattr(self._fd)
        mode[0] &= ~termios.IXON
        mode[3] &= ~(termios.ECHO | termios.ICANON | termios.ISIG | termios.IEXTEN)
        mode[6][termios.VMIN] = 1
        mode[6][termios.VTIME] = 0
        termios.tcsetattr(self._fd, termios.TCSAFLUSH, mode)
        self._selector.register(self._fd, selectors.EVENT_READ)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self._selector.unregister(self._fd)
        self._selector.close()
        if self._old_settings is not None:
            termios.tcsetattr(self._fd, termios.TCSADRAIN, self._old_settings)

    def _read_byte(self) -> str:
        return os.read(self._fd, 1).decode("utf-8", errors="replace")

    def read(self, timeout: float = 0.05) -> str | None:
        """Read a single key press, returning None on timeout."""
        ready = self._selector.select(timeout=timeout)
        if not ready:
            return None

        ch = self._read_byte()
        if ch == "\x1b":
            return self._read_escape_sequence()
        return decode_key(ch)

    def _read_escape_sequence(self) -> str:
        """Collect bytes after ESC until a final byte or a short silence."""
        seq = ""
        while len(seq) < _MAX_SEQUENCE:
            ready = self._selector.select(timeout=_SEQUENCE_TIMEOUT)
            if not ready:
                break
            seq += self._read_byte()
            if len(seq) >= 2 and (seq[-1].isalpha() or seq[-1] == "~"):
                break
        return decode_escape_sequence(seq)


class WindowsKeyboardInput:
    """msvcrt-based equivalent of ``KeyboardInput`` for the Windows console."""

    def __enter__(self) -> WindowsKeyboardInput:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        return None

    def read(self, timeout: float = 0.05) -> str | None:
        deadline = time.monotonic() + timeout
        while not msvcrt.kbhit():
            if time.monotonic() >= deadline:
                return None
            time.sleep(0.01)

        ch = msvcrt.getwch()
        if ch in ("\x00", "\xe0"):
            return _WINDOWS_SCAN_CODES.get(msvcrt.getwch(), "unknown")
        if ch == "\x1b":
            return "escape"
        return decode_key(ch)


def open_keyboard() -> KeyboardInput | WindowsKeyboardInput:
    if sys.platform == "win32":
        return WindowsKeyboardInput()
    return KeyboardInput()
