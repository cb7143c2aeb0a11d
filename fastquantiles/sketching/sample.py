"""Retained samples and the rules for folding them together.

A sample stands for a run of consecutive ranks of the (never materialized)
sorted stream. Following Greenwald and Khanna, each sample keeps:

- ``value``: the stream value that was retained.
- ``g``: ranks covered since the previous retained sample, so the sum of
  ``g`` up to and including a sample is a lower bound on its rank (rmin).
- ``delta``: extra uncertainty, so ``rmin + delta`` bounds the rank from
  above (rmax).

A sketch with error ``epsilon`` over ``n`` values keeps every sample within
``g + delta <= floor(2 * epsilon * n)``; that bound is what lets a query pick
a sample whose rank is within ``epsilon * n`` of the target.

Reference:
    Greenwald, Khanna. "Space-Efficient Online Computation of Quantile
    Summaries" (SIGMOD 2001)
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable


@dataclass(frozen=True, slots=True)
class Sample[T]:
    """A retained stream value with its rank bookkeeping.

    Samples are immutable; compaction and insertion replace them. Samples
    order by ``value`` only, while equality also compares ``g`` and ``delta``.

    Attributes:
        value: The retained value.
        g: Ranks represented since the previous retained sample (>= 1).
        delta: Upper bound on the additional rank uncertainty (>= 0).
    """

    value: T
    g: int = 1
    delta: int = 0

    def __lt__(self, other: Sample[T]) -> bool:
        return self.value < other.value

    def __le__(self, other: Sample[T]) -> bool:
        return self.value <= other.value

    def __gt__(self, other: Sample[T]) -> bool:
        return self.value > other.value

    def __ge__(self, other: Sample[T]) -> bool:
        return self.value >= other.value

    @property
    def is_exact(self) -> bool:
        """True if the sample's rank is known exactly relative to its predecessor."""
        return self.delta == 0

    def absorb_one(self) -> Sample[T]:
        """Return a copy that also covers one more value just below it."""
        return Sample(self.value, self.g + 1, self.delta)

    def with_delta(self, delta: int) -> Sample[T]:
        """Return a copy with a different uncertainty."""
        return Sample(self.value, self.g, delta)


def max_g_delta(count: int, epsilon: float) -> int:
    """Largest ``g + delta`` a sample may carry after ``count`` values."""
    return math.floor(2.0 * epsilon * count)


def target_rank(phi: float, count: int) -> int:
    """1-based rank of the phi-quantile, robust to float noise in phi * count."""
    return min(count, max(1, math.ceil(round(phi * count, 6))))


def combine_adjacent[T](a: Sample[T], b: Sample[T]) -> Sample[T]:
    """Fold ``a`` into its immediate successor ``b``.

    The deleted sample's ranks are absorbed by ``b``: rmin and rmax of ``b``
    are unchanged, so no uncertainty is added.
    """
    return Sample(b.value, a.g + b.g, b.delta)


def is_compactable(a: Sample, b: Sample, limit: int) -> bool:
    """True if ``a`` can be folded into its successor ``b`` without exceeding ``limit``."""
    return a.g + b.g + b.delta <= limit


class SamplesCompressor[T]:
    """Compacts an ascending stream of samples, left to right.

    Each pushed sample becomes the pending block tail. When the next sample
    arrives, the tail is folded into it if the pair is compactable, otherwise
    the tail is committed. Folding greedily from the left keeps the largest
    possible blocks, which minimizes the number of retained samples for a
    single pass.

    Args:
        limit: Maximum ``g + delta`` of any sample produced by a fold.

    Example:
        compressor = SamplesCompressor(limit=5)
        for sample in samples:
            compressor.push(sample)
        compacted = compressor.into_samples()
    """

    __slots__ = ("_limit", "_compacted", "_tail", "_tail_removable")

    def __init__(self, limit: int):
        self._limit = limit
        self._compacted: list[Sample[T]] = []
        self._tail: Sample[T] | None = None
        self._tail_removable = True

    @property
    def limit(self) -> int:
        """Maximum ``g + delta`` produced by a fold."""
        return self._limit

    def push(self, sample: Sample[T], *, removable: bool = True, absorbing: bool = True) -> None:
        """Add the next sample in ascending order.

        Args:
            sample: The sample following every sample pushed so far.
            removable: False pins the sample so it is never folded into its
                successor (used for the global minimum).
            absorbing: False forbids folding the pending tail into this
                sample (used for the global maximum).
        """
        tail = self._tail
        if tail is not None:
            if absorbing and self._tail_removable and is_compactable(tail, sample, self._limit):
                sample = combine_adjacent(tail, sample)
            else:
                self._compacted.append(tail)
        self._tail = sample
        self._tail_removable = removable

    def extend(self, samples: Iterable[Sample[T]]) -> None:
        """Push every sample of an ascending iterable with default flags."""
        for sample in samples:
            self.push(sample)

    def into_samples(self) -> list[Sample[T]]:
        """Commit the pending tail and return the compacted samples."""
        if self._tail is not None:
            self._compacted.append(self._tail)
            self._tail = None
        compacted, self._compacted = self._compacted, []
        return compacted


def compact_run[T](
    samples: list[Sample[T]],
    limit: int,
    *,
    pin_first: bool = False,
    pin_last: bool = False,
) -> list[Sample[T]]:
    """Compact an ascending list of samples in one greedy pass.

    Args:
        samples: Globally adjacent samples in ascending order.
        limit: Maximum ``g + delta`` of any folded sample.
        pin_first: Keep the first sample as is (it is the global minimum).
        pin_last: Never fold into the last sample (it is the global maximum).

    Returns:
        A new list; the input is left untouched.
    """
    if len(samples) < 2 or limit <= 1:
        return list(samples)

    compressor: SamplesCompressor[T] = SamplesCompressor(limit)
    last_index = len(samples) - 1
    for index, sample in enumerate(samples):
        compressor.push(
            sample,
            removable=not (pin_first and index == 0),
            absorbing=not (pin_last and index == last_index),
        )
    return compressor.into_samples()
