"""Base protocol for mergeable quantile sketches.

Quantile sketches summarize a stream of totally ordered values in bounded
memory and answer rank queries with a guaranteed maximum error. They trade
exact answers for space, which makes them suitable for streams too large to
store or sort.

Every sketch built on this protocol supports:
- Recording values one at a time
- Merging independently built sketches (e.g. one per worker thread)
- Quantile and percentile queries with an error estimate
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from fastquantiles.sketching.errors import InvalidQuantile

if TYPE_CHECKING:
    from collections.abc import Iterable


class QuantileSketch[T](ABC):
    """Protocol for sketches that estimate quantiles of an ordered stream.

    Used for medians, percentiles (p50, p95, p99) and min/max without
    storing all values.

    Implementations: Sketch
    """

    @abstractmethod
    def record(self, value: T) -> None:
        """Record one value.

        Args:
            value: A value comparable with every other recorded value.
        """

    def record_many(self, values: Iterable[T]) -> None:
        """Record every value of an iterable, in order."""
        for value in values:
            self.record(value)

    @abstractmethod
    def merge(self, other: QuantileSketch[T]) -> QuantileSketch[T]:
        """Combine this sketch with another into a new sketch.

        Both operands are consumed: the returned sketch answers queries as
        if every value recorded by either operand had been recorded by one
        sketch.

        Args:
            other: Another sketch of the same type.

        Returns:
            The combined sketch.

        Raises:
            TypeError: If other is not the same sketch type.
            IncompatibleMerge: If the configurations cannot be combined.
        """

    @abstractmethod
    def quantile(self, phi: float) -> tuple[T, float]:
        """Estimate the value at a given quantile.

        Args:
            phi: Quantile to estimate (0.0 to 1.0).
               - 0.5 = median (p50)
               - 0.99 = 99th percentile (p99)

        Returns:
            Tuple of the estimated value and the rank uncertainty of that
            answer as a fraction of the count.

        Raises:
            InvalidQuantile: If phi is not in [0, 1].
            EmptySketch: If nothing was recorded.
        """

    @property
    @abstractmethod
    def count(self) -> int:
        """Number of values recorded."""

    @property
    def item_count(self) -> int:
        """Alias of ``count``."""
        return self.count

    def percentile(self, p: float) -> T:
        """Convenience method for percentile estimation.

        Args:
            p: Percentile (0 to 100).

        Returns:
            Estimated value at the percentile.

        Raises:
            InvalidQuantile: If p is not in [0, 100].
        """
        if not 0 <= p <= 100:
            raise InvalidQuantile(f"Percentile must be in [0, 100], got {p}")
        return self.quantile(p / 100.0)[0]

    def quantiles(self, phis: Iterable[float]) -> list[T]:
        """Estimate several quantiles at once.

        Args:
            phis: Quantiles to estimate, each in [0, 1].

        Returns:
            Estimated values, in the order requested.
        """
        return [self.quantile(phi)[0] for phi in phis]
