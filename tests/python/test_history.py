from __future__ import annotations

import pytest

from driftcells.sim.core.errors import ConfigurationError
from driftcells.sim.systems.history import HistoryBuffer
from driftcells.sim.utils.math2d import Position


def _snapshot(step: int) -> list[Position]:
    return [Position(float(step), 0.0), Position(0.0, float(step))]


def test_history_keeps_only_the_most_recent_snapshots():
    history = HistoryBuffer(capacity=3)

    for step in range(7):
        history.push(_snapshot(step))
        assert len(history) == min(step + 1, 3)

    assert [snapshot[0].x for snapshot in history.oldest_first()] == [4.0, 5.0, 6.0]
    assert [snapshot[0].x for snapshot in history.newest_first()] == [6.0, 5.0, 4.0]
    assert history.latest() == tuple(_snapshot(6))


def test_pushed_snapshots_are_copies():
    history = HistoryBuffer(capacity=2)
    live = _snapshot(1)

    history.push(live)
    live[0] = Position(99.0, 99.0)

    assert history.latest()[0] == Position(1.0, 0.0)


def test_clear_empties_buffer():
    history = HistoryBuffer(capacity=4)
    history.push(_snapshot(0))

    history.clear()

    assert len(history) == 0
    assert not history
    assert history.latest() is None
    assert history.capacity == 4


@pytest.mark.parametrize("capacity", [0, -3])
def test_non_positive_capacity_is_rejected(capacity: int):
    with pytest.raises(ConfigurationError):
        HistoryBuffer(capacity)
