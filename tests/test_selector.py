"""
Interactive Selector Tests

Key handling, selection results and terminal mode restoration.
"""

import asyncio

import pytest

from dockrs.core.errors import Cancelled, DaemonUnreachable
from dockrs.core.models import Candidate, ResourceHandle, ResourceKind
from dockrs.testing import Key
from dockrs.utils.selector import SelectionState


def _candidates(n=4):
    return [
        Candidate(ResourceHandle(ResourceKind.CONTAINER, f"c{i}", f"svc{i}"), f"c{i}  svc{i}")
        for i in range(n)
    ]


def _ids(chosen):
    return [c.handle.id for c in chosen]


# ==============================================================================
# Selector
# ==============================================================================

async def test_single_selection(terminal):
    terminal.send(Key.DOWN, Key.DOWN, Key.UP, Key.ENTER)
    chosen = await terminal.selector().select(_candidates())
    assert _ids(chosen) == ["c1"]
    assert terminal.mode == "cooked"
    assert terminal.raw_entries == 1


async def test_multiple_selection_in_list_order(terminal):
    terminal.send(Key.END, Key.SPACE, Key.HOME, Key.SPACE, Key.SPACE, Key.ENTER)
    chosen = await terminal.selector().select(_candidates(), multiple=True)
    assert _ids(chosen) == ["c0", "c1", "c3"]


async def test_multiple_without_toggles_takes_cursor_row(terminal):
    terminal.send("j", "j", Key.ENTER)
    chosen = await terminal.selector().select(_candidates(), multiple=True)
    assert _ids(chosen) == ["c2"]


async def test_toggle_all(terminal):
    terminal.send("a", Key.ENTER)
    chosen = await terminal.selector()(_candidates(3), True)
    assert _ids(chosen) == ["c0", "c1", "c2"]


@pytest.mark.parametrize("key", [Key.ESCAPE, Key.CTRL_C, Key.CTRL_D, "q"])
async def test_cancel_restores_terminal(terminal, key):
    terminal.send(Key.DOWN, key)
    with pytest.raises(Cancelled):
        await terminal.selector().select(_candidates())
    assert terminal.mode == "cooked"
    assert terminal.restores == 1


async def test_empty_candidates(terminal):
    assert await terminal.selector().select([]) == []
    assert terminal.raw_entries == 0


async def test_keys_typed_while_loading_are_kept(terminal):
    async def slow_listing():
        terminal.send(Key.DOWN, Key.ENTER)
        await asyncio.sleep(0.05)
        return _candidates()

    chosen = await terminal.selector().select(slow_listing())
    assert _ids(chosen) == ["c1"]


async def test_cancel_while_loading(terminal):
    async def never():
        await asyncio.Event().wait()

    terminal.send(Key.CTRL_C)
    with pytest.raises(Cancelled):
        await asyncio.wait_for(terminal.selector().select(never()), 1.0)
    assert terminal.mode == "cooked"


async def test_loading_failure_restores_terminal(terminal):
    async def unreachable():
        await asyncio.sleep(0)
        raise DaemonUnreachable("cannot connect to the Docker daemon")

    with pytest.raises(DaemonUnreachable):
        await terminal.selector().select(unreachable())
    assert terminal.mode == "cooked"
    assert terminal.restores == 1


async def test_loading_nothing_returns_empty(terminal):
    async def nothing():
        return []

    assert await terminal.selector().select(nothing()) == []
    assert terminal.mode == "cooked"


# ==============================================================================
# SelectionState
# ==============================================================================

def test_cursor_is_clamped():
    state = SelectionState(_candidates(3), multiple=False, height=2)
    state.move(-5)
    assert state.cursor == 0
    state.move(10)
    assert state.cursor == 2


def test_window_follows_cursor():
    state = SelectionState(_candidates(10), multiple=False, height=3)
    state.move(state.height)
    assert state.cursor == 3
    assert state.offset == 1
    state.move(len(state.candidates))
    assert (state.cursor, state.offset) == (9, 7)
    state.move(-len(state.candidates))
    assert (state.cursor, state.offset) == (0, 0)


def test_toggle_ignored_in_single_mode():
    state = SelectionState(_candidates(3), multiple=False)
    state.toggle_and_advance()
    assert state.selected == set()
    assert _ids(state.result()) == ["c1"]
    assert state.status == "3 items"


def test_status_counts_toggles():
    state = SelectionState(_candidates(3), multiple=True)
    state.toggle_and_advance()
    state.toggle_and_advance()
    assert state.status == "2/3 selected"
    state.toggle_all()
    assert state.status == "3/3 selected"
    state.toggle_all()
    assert state.selected == set()
