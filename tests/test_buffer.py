from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import pytest

from swerve_core.localization.buffer import TimeInterpolatableBuffer


@dataclass(frozen=True)
class Item:
    value: float

    def interpolate(self, end: "Item", t: float) -> "Item":
        return Item(self.value + (end.value - self.value) * t)


def make_buffer(horizon: float = 10.0) -> TimeInterpolatableBuffer[Item]:
    return TimeInterpolatableBuffer(horizon=horizon, initial_time=0.0, initial_value=Item(0.0))


def test_buffer_interpolates_between_samples() -> None:
    buffer = make_buffer()
    assert buffer.get(0.0) == Item(0.0)
    buffer.put(1.0, Item(10.0))
    assert np.isclose(buffer.get(0.5).value, 5.0, atol=1e-3)
    assert np.isclose(buffer.get(0.25).value, 2.5)


def test_buffer_clamps_outside_range() -> None:
    buffer = make_buffer()
    buffer.put(1.0, Item(10.0))
    assert buffer.get(-5.0) == Item(0.0)
    assert buffer.get(7.0) == Item(10.0)


def test_buffer_exact_hit_and_replace() -> None:
    buffer = make_buffer()
    buffer.put(1.0, Item(10.0))
    buffer.put(1.0, Item(3.0))
    assert len(buffer) == 2
    assert buffer.get(1.0) == Item(3.0)


def test_horizon_eviction_keeps_newest() -> None:
    buffer = make_buffer(horizon=1.0)
    for step in range(1, 7):
        buffer.put(0.5 * step, Item(float(step)))
    assert buffer.first_key() == 2.0
    assert buffer.last_key() == 3.0
    assert len(buffer) == 3
    # evicted times clamp to the oldest remaining record
    assert buffer.get(0.5) == Item(4.0)


def test_consistent_pair_respects_min_gap() -> None:
    buffer = make_buffer()
    for t, v in [(0.01, 1.0), (0.02, 2.0), (0.04, 4.0)]:
        buffer.put(t, Item(v))

    pair = buffer.consistent_pair(0.05, 0.02)
    assert [key for key, _ in pair] == [0.04, 0.02]

    pair = buffer.consistent_pair(0.015, 0.02)
    assert [key for key, _ in pair] == [0.01]

    assert buffer.consistent_pair(0.0, 0.02) == []


def test_range_queries() -> None:
    buffer = make_buffer()
    for t in (1.0, 2.0, 3.0):
        buffer.put(t, Item(t))
    assert buffer.floor_entry(2.5)[0] == 2.0
    assert buffer.floor_entry(2.0)[0] == 2.0
    assert buffer.lower_entry(2.0)[0] == 1.0
    assert buffer.ceiling_entry(2.5)[0] == 3.0
    assert buffer.ceiling_entry(3.5) is None
    assert buffer.lower_entry(0.0) is None
    assert [key for key, _ in buffer.tail(1.0)] == [2.0, 3.0]
    assert [key for key, _ in buffer.tail(1.0, inclusive=True)] == [1.0, 2.0, 3.0]
    assert buffer.last_entry() == (3.0, Item(3.0))


def test_reset_leaves_single_record() -> None:
    buffer = make_buffer()
    buffer.put(1.0, Item(1.0))
    buffer.reset(5.0, Item(9.0))
    assert len(buffer) == 1
    assert buffer.get(0.0) == Item(9.0)


def test_non_positive_horizon_rejected() -> None:
    with pytest.raises(ValueError):
        make_buffer(horizon=0.0)
