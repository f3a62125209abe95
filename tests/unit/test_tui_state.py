"""Tests for the picker state and key handling."""

from __future__ import annotations

import pytest

from kkp.models import TCP, UDP, Listener
from kkp.tui.app import handle_key
from kkp.tui.state import SelectionState


def _listeners(n: int) -> list[Listener]:
    return [Listener(protocol=TCP, port=3000 + i, pid=100 + i, process_name=f"p{i}") for i in range(n)]


def _state(n: int, height: int = 7) -> SelectionState:
    # height 7 leaves 5 list rows
    return SelectionState.from_listeners(_listeners(n), width=80, height=height)


def _assert_invariants(state: SelectionState) -> None:
    n = len(state.items)
    assert 0 <= state.cursor <= max(0, n - 1)
    assert 0 <= state.top <= max(0, n - state.rows)
    if n:
        assert state.top <= state.cursor < state.top + state.rows


def test_items_sorted_and_deduplicated():
    listeners = [
        Listener(protocol=UDP, port=3000, pid=5),
        Listener(protocol=TCP, port=8080, pid=1),
        Listener(protocol=TCP, port=3000, pid=9),
        Listener(protocol=TCP, port=3000, pid=2),
        Listener(protocol=TCP, port=3000, pid=2),
    ]
    state = SelectionState.from_listeners(listeners)
    assert [(item.port, item.protocol, item.pid) for item in state.items] == [
        (3000, TCP, 2),
        (3000, TCP, 9),
        (3000, UDP, 5),
        (8080, TCP, 1),
    ]


def test_rows_never_below_one():
    assert _state(3, height=1).rows == 1
    assert _state(3, height=24).rows == 22


def test_move_clamps_at_edges():
    state = _state(3)
    state.move(-1)
    assert state.cursor == 0
    state.move(10)
    assert state.cursor == 2
    _assert_invariants(state)


def test_scrolls_to_keep_cursor_visible():
    state = _state(20)
    for _ in range(7):
        state.move(1)
    assert state.cursor == 7
    assert state.top == 3
    _assert_invariants(state)

    state.move(-6)
    assert state.cursor == 1
    assert state.top == 1


def test_paging():
    state = _state(20)
    state.page_down()
    assert state.cursor == 5
    state.page_down()
    state.page_down()
    state.page_down()
    assert state.cursor == 19
    assert state.top == 15
    state.page_up()
    assert state.cursor == 14
    _assert_invariants(state)


def test_home_and_end():
    state = _state(20)
    state.end()
    assert (state.cursor, state.top) == (19, 15)
    state.home()
    assert (state.cursor, state.top) == (0, 0)


def test_end_on_short_list_keeps_top_zero():
    state = _state(3)
    state.end()
    assert (state.cursor, state.top) == (2, 0)


def test_empty_list_is_inert():
    state = SelectionState.from_listeners([])
    for action in (state.page_down, state.page_up, state.end, state.home, state.toggle):
        action()
    state.move(3)
    assert (state.cursor, state.top) == (0, 0)
    assert state.selected == set()
    assert state.selected_items() == []


def test_toggle_and_selected_items_follow_display_order():
    state = _state(5)
    state.move(3)
    state.toggle()
    state.home()
    state.toggle()
    assert state.cursor == 0
    assert [item.port for item in state.selected_items()] == [3000, 3003]
    state.toggle()
    assert [item.port for item in state.selected_items()] == [3003]


def test_resize_keeps_cursor_visible():
    state = _state(20, height=24)
    state.end()
    state.resize(80, 6)
    _assert_invariants(state)
    assert state.cursor == 19

    state.home()
    state.resize(80, 40)
    _assert_invariants(state)
    assert state.top == 0


@pytest.mark.parametrize(
    "keys",
    [
        ["down"] * 30,
        ["up"] * 5 + ["page_down"] * 9,
        ["end", "k", "k", "page_up", "j", "home", "up"],
        ["page_down", "page_down", "page_up", "down", "end", "page_down"],
    ],
)
def test_navigation_bounds_hold_for_any_key_sequence(keys):
    state = _state(12)
    for key in keys:
        assert handle_key(state, key) is None
        _assert_invariants(state)


def test_handle_key_jk_move():
    state = _state(4)
    handle_key(state, "j")
    handle_key(state, "j")
    handle_key(state, "k")
    assert state.cursor == 1


def test_enter_returns_selection():
    state = _state(4)
    handle_key(state, "down")
    handle_key(state, "space")
    result = handle_key(state, "enter")

    assert result is not None
    assert not result.cancelled
    assert not result.interrupted
    assert [item.pid for item in result.selected] == [101]
    assert state.done


def test_enter_with_nothing_selected_is_not_a_cancel():
    result = handle_key(_state(4), "enter")
    assert result is not None
    assert not result.cancelled
    assert result.selected == []


def test_escape_cancels():
    state = _state(4)
    handle_key(state, "space")
    result = handle_key(state, "escape")
    assert result.cancelled
    assert result.selected == []
    assert not result.interrupted


def test_ctrl_c_interrupts():
    result = handle_key(_state(4), "ctrl_c")
    assert result.cancelled
    assert result.interrupted


def test_other_keys_ignored():
    state = _state(4)
    state.needs_render = False
    for key in ("x", "q", "unknown", "G", "tab"):
        assert handle_key(state, key) is None
    assert state.cursor == 0
    assert state.selected == set()
    assert not state.needs_render
