"""Fixed-horizon, time-ordered buffer of interpolatable samples.

The buffer is not synchronized. The pose estimator serializes every access
behind its own lock.
"""

from __future__ import annotations

import bisect
import logging
from dataclasses import dataclass, field
from typing import Generic, Protocol, TypeVar

logger = logging.getLogger(__name__)

# Tolerance when comparing timestamps for the consistent-pair gap.
TIME_EPSILON = 1e-9

T = TypeVar("T", bound="Interpolatable")


class Interpolatable(Protocol):
    def interpolate(self, end, t: float): ...


@dataclass(slots=True)
class TimeInterpolatableBuffer(Generic[T]):
    """Ordered map from timestamp to sample, bounded by ``horizon`` seconds.

    The buffer is seeded with one sample at construction and is never empty
    afterwards: eviction is measured from the newest key, which always stays.

    Parameters
    ----------
    horizon:
        Age in seconds, relative to the newest key, beyond which samples are
        evicted on insert.
    initial_time:
        Timestamp of the seed sample.
    initial_value:
        Seed sample.
    """

    horizon: float
    initial_time: float
    initial_value: T
    _keys: list[float] = field(init=False, repr=False)
    _values: list[T] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.horizon <= 0.0:
            raise ValueError(f"Buffer horizon must be positive, got {self.horizon}")
        self._keys = [float(self.initial_time)]
        self._values = [self.initial_value]

    def __len__(self) -> int:
        return len(self._keys)

    def reset(self, timestamp: float, value: T) -> None:
        """Drop everything and reseed with a single sample."""
        self._keys = [float(timestamp)]
        self._values = [value]

    def put(self, timestamp: float, value: T) -> None:
        """Insert or replace the sample at ``timestamp`` and evict old samples."""
        timestamp = float(timestamp)
        index = bisect.bisect_left(self._keys, timestamp)
        if index < len(self._keys) and self._keys[index] == timestamp:
            self._values[index] = value
        else:
            self._keys.insert(index, timestamp)
            self._values.insert(index, value)
        self._evict()

    def get(self, timestamp: float) -> T:
        """Sample at ``timestamp``.

        Exact hits are returned as stored. Times between two samples are
        interpolated, and times outside the recorded range clamp to the
        nearest end.
        """
        keys = self._keys
        if timestamp <= keys[0]:
            return self._values[0]
        if timestamp >= keys[-1]:
            return self._values[-1]
        index = bisect.bisect_left(keys, timestamp)
        if keys[index] == timestamp:
            return self._values[index]
        t0, t1 = keys[index - 1], keys[index]
        fraction = (timestamp - t0) / (t1 - t0)
        return self._values[index - 1].interpolate(self._values[index], fraction)

    def consistent_pair(self, timestamp: float, min_gap: float) -> list[tuple[float, T]]:
        """Entries usable for finite differencing a sample at ``timestamp``.

        Returns
        -------
        list[tuple[float, T]]
            Empty when nothing precedes ``timestamp``. Otherwise the latest
            entry strictly before ``timestamp``, followed by the latest entry
            at least ``min_gap`` older than it when one exists.
        """
        first = self.lower_entry(timestamp)
        if first is None:
            return []
        second = self.floor_entry(first[0] - min_gap + TIME_EPSILON)
        if second is None or second[0] >= first[0]:
            return [first]
        return [first, second]

    def floor_entry(self, timestamp: float) -> tuple[float, T] | None:
        """Latest entry at or before ``timestamp``."""
        index = bisect.bisect_right(self._keys, timestamp) - 1
        if index < 0:
            return None
        return self._keys[index], self._values[index]

    def lower_entry(self, timestamp: float) -> tuple[float, T] | None:
        """Latest entry strictly before ``timestamp``."""
        index = bisect.bisect_left(self._keys, timestamp) - 1
        if index < 0:
            return None
        return self._keys[index], self._values[index]

    def ceiling_entry(self, timestamp: float) -> tuple[float, T] | None:
        """Earliest entry at or after ``timestamp``."""
        index = bisect.bisect_left(self._keys, timestamp)
        if index >= len(self._keys):
            return None
        return self._keys[index], self._values[index]

    def tail(self, timestamp: float, inclusive: bool = False) -> list[tuple[float, T]]:
        """Snapshot of entries after ``timestamp`` in time order."""
        if inclusive:
            index = bisect.bisect_left(self._keys, timestamp)
        else:
            index = bisect.bisect_right(self._keys, timestamp)
        return list(zip(self._keys[index:], self._values[index:]))

    def last_entry(self) -> tuple[float, T]:
        return self._keys[-1], self._values[-1]

    def last_key(self) -> float:
        return self._keys[-1]

    def first_key(self) -> float:
        return self._keys[0]

    def _evict(self) -> None:
        cutoff = self._keys[-1] - self.horizon
        index = bisect.bisect_left(self._keys, cutoff)
        if index > 0:
            logger.debug("Evicting %d samples older than %.3f s", index, cutoff)
            del self._keys[:index]
            del self._values[:index]
