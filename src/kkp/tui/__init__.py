"""Interactive picker for choosing listeners to kill."""

from kkp.tui.app import select_listeners
from kkp.tui.state import SelectionResult

__all__ = ["SelectionResult", "select_listeners"]
