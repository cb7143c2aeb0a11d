"""Mergeable epsilon-approximate quantile sketch.

A modified Greenwald-Khanna summary stored as a tree of sample nodes instead
of a flat list, so inserts stay logarithmic and two sketches built by
independent workers can be merged structurally.

Key properties:
- Space: O((1/epsilon) * log(epsilon * n)) retained samples
- Record: O(log n) amortized, plus an O(size) compaction every
  ceil(1 / (2 * epsilon)) records
- Merge: O(size_a + size_b)
- Query: O(position of the answer), stops as soon as the answer is known
- Accuracy: the true rank of every answer is within epsilon * n of the
  requested rank, including after any number of merges of sketches built
  with the same epsilon

Reference:
    Greenwald, Khanna. "Space-Efficient Online Computation of Quantile
    Summaries" (SIGMOD 2001)
    Greenwald, Khanna. "Power-Conserving Computation of Order-Statistics
    over Sensor Networks" (PODS 2004)
"""

from __future__ import annotations

import logging
import math
from enum import Enum
from typing import TYPE_CHECKING

from fastquantiles.sketching.base import QuantileSketch
from fastquantiles.sketching.errors import (
    ConsumedSketch,
    EmptySketch,
    IncompatibleMerge,
    InvalidConfiguration,
    InvalidQuantile,
)
from fastquantiles.sketching.node_iterator import NodeIterator
from fastquantiles.sketching.sample import Sample, max_g_delta, target_rank
from fastquantiles.sketching.samples_node import SamplesNode, merge_sorted_samples
from fastquantiles.sketching.samples_node import node_capacity as default_node_capacity

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)

# Extra levels tolerated above twice the balanced depth before a rebuild
_DEPTH_SLACK = 4


class MergePolicy(Enum):
    """How ``Sketch.merge`` treats operands built with different epsilons.

    WIDEN: equal epsilons are kept; different epsilons add up, since the
        combined rank error is bounded by the sum of the operands' errors.
    STRICT: different epsilons raise IncompatibleMerge.
    """

    WIDEN = "widen"
    STRICT = "strict"


def _validate_epsilon(epsilon: float) -> float:
    if isinstance(epsilon, bool) or not isinstance(epsilon, (int, float)):
        raise InvalidConfiguration(f"epsilon must be a real number, got {epsilon!r}")
    if not 0 < epsilon < 1:
        raise InvalidConfiguration(f"epsilon must be in (0, 1), got {epsilon}")
    if not math.isfinite(1.0 / (2.0 * epsilon)):
        raise InvalidConfiguration(f"epsilon is too small to size the sketch, got {epsilon}")
    return float(epsilon)


def _validate_capacity(capacity: int) -> int:
    if isinstance(capacity, bool) or not isinstance(capacity, int):
        raise InvalidConfiguration(f"node_capacity must be an integer, got {capacity!r}")
    if capacity < 3 or capacity % 2 == 0:
        raise InvalidConfiguration(f"node_capacity must be an odd integer >= 3, got {capacity}")
    return capacity


class Sketch[T](QuantileSketch[T]):
    """Epsilon-approximate quantile summary with structural merge.

    A sketch is owned by a single writer. Parallel workers each build their
    own sketch and combine them with ``merge``, which consumes both operands
    so a sketch can never be mutated while it is being merged.

    Args:
        epsilon: Maximum rank error as a fraction of the count, in (0, 1).
        node_capacity: Samples per tree node (odd, >= 3). Defaults to a
            value derived from epsilon.
        merge_policy: How merges treat differing epsilons.

    Example:
        sketch = Sketch(epsilon=0.01)
        for latency in latencies:
            sketch.record(latency)

        median, error = sketch.quantile(0.5)
        p99 = sketch.percentile(99)

        # Per-thread sketches
        combined = sketch_a.merge(sketch_b)
    """

    def __init__(
        self,
        epsilon: float,
        *,
        node_capacity: int | None = None,
        merge_policy: MergePolicy | str = MergePolicy.WIDEN,
    ):
        """Initialize an empty sketch.

        Raises:
            InvalidConfiguration: If epsilon is not in (0, 1), node_capacity
                is not an odd integer >= 3, or merge_policy is unknown.
        """
        self._epsilon = _validate_epsilon(epsilon)
        if node_capacity is None:
            self._capacity = default_node_capacity(self._epsilon)
        else:
            self._capacity = _validate_capacity(node_capacity)
        try:
            self._merge_policy = MergePolicy(merge_policy)
        except ValueError:
            raise InvalidConfiguration(f"Unknown merge_policy {merge_policy!r}") from None

        self._compact_every = max(1, math.ceil(1.0 / (2.0 * self._epsilon)))
        self._root: SamplesNode[T] = SamplesNode()
        self._count = 0
        self._size = 0
        self._min_value: T | None = None
        self._max_value: T | None = None
        self._consumed = False

    # -- configuration ---------------------------------------------------------

    @property
    def epsilon(self) -> float:
        """Guaranteed maximum rank error, as a fraction of the count."""
        return self._epsilon

    @property
    def node_capacity(self) -> int:
        """Maximum number of samples per tree node."""
        return self._capacity

    @property
    def merge_policy(self) -> MergePolicy:
        """Policy applied when this sketch receives a merge."""
        return self._merge_policy

    @property
    def compact_every(self) -> int:
        """Number of records between two full compactions."""
        return self._compact_every

    # -- state -------------------------------------------------------------------

    @property
    def count(self) -> int:
        """Number of values recorded."""
        self._ensure_usable()
        return self._count

    @property
    def sample_count(self) -> int:
        """Number of samples currently retained."""
        self._ensure_usable()
        return self._size

    @property
    def min(self) -> T | None:
        """Smallest value recorded (exact)."""
        self._ensure_usable()
        return self._min_value

    @property
    def max(self) -> T | None:
        """Largest value recorded (exact)."""
        self._ensure_usable()
        return self._max_value

    @property
    def depth(self) -> int:
        """Number of levels of the sample tree."""
        self._ensure_usable()
        return self._root.depth()

    @property
    def root(self) -> SamplesNode[T]:
        """Root of the sample tree (read-only use)."""
        self._ensure_usable()
        return self._root

    @property
    def consumed(self) -> bool:
        """True once the sketch was consumed by a merge."""
        return self._consumed

    def samples(self) -> list[Sample[T]]:
        """All retained samples in ascending order."""
        self._ensure_usable()
        return list(NodeIterator(self._root))

    def max_current_error(self) -> float:
        """Rank error currently guaranteed by the retained samples.

        Returns ``max(g + delta) / (2 * count)``, which never exceeds epsilon
        once the count is past ``1 / (2 * epsilon)``. 0.0 for an empty sketch.
        """
        self._ensure_usable()
        if self._count == 0:
            return 0.0
        widest = max(sample.g + sample.delta for sample in NodeIterator(self._root))
        return widest / (2.0 * self._count)

    # -- writes --------------------------------------------------------------------

    def record(self, value: T) -> None:
        """Record one value.

        Args:
            value: Value to record; must be comparable with every value
                recorded before.

        Raises:
            TypeError: If value is None.
            ValueError: If value is a float NaN.
            ConsumedSketch: If the sketch was consumed by a merge.
        """
        self._ensure_usable()
        check_recordable(value)

        self._count += 1
        if self._min_value is None or value < self._min_value:
            self._min_value = value
        if self._max_value is None or value > self._max_value:
            self._max_value = value

        limit = max_g_delta(self._count, self._epsilon)
        outcome = self._root.insert(value, limit, self._capacity)
        self._size += outcome.added

        if self._count % self._compact_every == 0:
            self.compact()
        elif outcome.depth > self._depth_limit():
            self._size = self._root.rebalance(self._capacity)
            logger.debug(
                "Rebalanced sample tree: depth %d exceeded limit at %d samples",
                outcome.depth, self._size,
            )

    def record_sorted(self, values: Sequence[T]) -> None:
        """Fold an ascending batch of values in with one merge pass.

        The batch is treated as a sketch of exact samples and combined with
        the retained samples like ``merge`` does, then the tree is compacted
        at the new count. Used by SketchWriter; much cheaper than one
        ``record`` per value for large batches.

        Args:
            values: Values in non-decreasing order.

        Raises:
            TypeError: If a value is None.
            ValueError: If a value is a float NaN or the batch is not sorted.
            ConsumedSketch: If the sketch was consumed by a merge.
        """
        self._ensure_usable()
        if not values:
            return
        previous = None
        for value in values:
            check_recordable(value)
            if previous is not None and value < previous:
                raise ValueError(
                    f"record_sorted needs ascending values, got {value!r} after {previous!r}"
                )
            previous = value

        self._count += len(values)
        self._min_value = _pick(self._min_value, values[0], min)
        self._max_value = _pick(self._max_value, values[-1], max)

        batch = [Sample(value) for value in values]
        merged = merge_sorted_samples(list(NodeIterator(self._root)), batch)
        self._root = SamplesNode.from_sorted(merged, self._capacity)
        self._size = self._root.compact(self._count, self._epsilon, self._capacity)
        logger.debug(
            "Folded a sorted batch of %d values (count=%d) into %d samples",
            len(values), self._count, self._size,
        )

    def compact(self) -> int:
        """Run a full compaction now.

        Returns:
            Number of samples retained afterwards.
        """
        self._ensure_usable()
        self._size = self._root.compact(self._count, self._epsilon, self._capacity)
        return self._size

    def _depth_limit(self) -> int:
        run = (self._capacity + 1) // 2
        balanced = (self._size // run + 1).bit_length()
        return 2 * balanced + _DEPTH_SLACK

    # -- merge -----------------------------------------------------------------------

    def merge(self, other: Sketch[T]) -> Sketch[T]:
        """Combine two sketches into a new one, consuming both.

        The result keeps this sketch's merge policy and the wider node
        capacity. Its epsilon follows the merge policy (see MergePolicy).

        Args:
            other: Another Sketch.

        Returns:
            A new sketch covering every value recorded by either operand.

        Raises:
            TypeError: If other is not a Sketch.
            IncompatibleMerge: If other is this sketch, or the epsilons are
                incompatible under the merge policy.
            ConsumedSketch: If either operand was already consumed.
        """
        if not isinstance(other, Sketch):
            raise TypeError(f"Can only merge with Sketch, got {type(other).__name__}")
        self._ensure_usable()
        other._ensure_usable()
        if other is self:
            raise IncompatibleMerge("Cannot merge a sketch with itself")

        merged: Sketch[T] = Sketch(
            self._merged_epsilon(other),
            node_capacity=max(self._capacity, other._capacity),
            merge_policy=self._merge_policy,
        )
        merged._count = self._count + other._count
        merged._min_value = _pick(self._min_value, other._min_value, min)
        merged._max_value = _pick(self._max_value, other._max_value, max)
        merged._root = self._root.merge_subtree(other._root, merged._capacity)
        merged._size = merged._root.compact(merged._count, merged._epsilon, merged._capacity)

        logger.debug(
            "Merged sketches (count %d + %d, epsilon %s + %s) into %d samples",
            self._count, other._count, self._epsilon, other._epsilon, merged._size,
        )
        self._consume()
        other._consume()
        return merged

    def _merged_epsilon(self, other: Sketch[T]) -> float:
        if self._epsilon == other._epsilon:
            return self._epsilon
        if self._merge_policy is MergePolicy.STRICT:
            raise IncompatibleMerge(
                f"epsilon mismatch under strict merge policy: {self._epsilon} != {other._epsilon}"
            )
        widened = self._epsilon + other._epsilon
        if widened >= 1:
            raise IncompatibleMerge(
                f"Combined epsilon {self._epsilon} + {other._epsilon} is not below 1"
            )
        return widened

    def _consume(self) -> None:
        self._consumed = True
        self._root = SamplesNode()
        self._size = 0

    def _ensure_usable(self) -> None:
        if self._consumed:
            raise ConsumedSketch("Sketch was consumed by a merge and can no longer be used")

    # -- queries ---------------------------------------------------------------------

    def quantile(self, phi: float) -> tuple[T, float]:
        """Estimate the value at a given quantile.

        Walks the samples in ascending order keeping ``rmin`` (sum of ``g``)
        and ``rmax = rmin + delta``, and returns the last sample before the
        first one whose ``rmax`` exceeds ``rank + epsilon * count``. The true
        rank of that sample is within ``epsilon * count`` of the target rank
        ``ceil(phi * count)``.

        Args:
            phi: Quantile to estimate (0.0 to 1.0).

        Returns:
            Tuple of the estimated value and ``(rmax - rmin) / count`` for
            the returned sample. phi = 0 and phi = 1 return the exact
            minimum and maximum with error 0.0.

        Raises:
            InvalidQuantile: If phi is not in [0, 1].
            EmptySketch: If nothing was recorded.
        """
        self._ensure_usable()
        if not 0 <= phi <= 1:
            raise InvalidQuantile(f"Quantile must be in [0, 1], got {phi}")
        if self._count == 0:
            raise EmptySketch("Cannot compute quantile of empty sketch")

        if phi == 0:
            return self._root.first().value, 0.0
        if phi == 1:
            return self._root.last().value, 0.0

        count = self._count
        allowed = target_rank(phi, count) + self._epsilon * count

        chosen: Sample[T] | None = None
        rmin = 0
        for sample in NodeIterator(self._root):
            rmin += sample.g
            if chosen is not None and rmin + sample.delta > allowed:
                break
            chosen = sample

        return chosen.value, chosen.delta / count

    def __repr__(self) -> str:
        if self._consumed:
            return f"Sketch(epsilon={self._epsilon}, consumed)"
        return (
            f"Sketch(epsilon={self._epsilon}, count={self._count}, "
            f"samples={self._size})"
        )


def check_recordable(value) -> None:
    """Reject values a sketch cannot order (None and float NaN)."""
    if value is None:
        raise TypeError("Cannot record None")
    if isinstance(value, float) and math.isnan(value):
        raise ValueError("Cannot record NaN: values must be totally ordered")


def _pick(a, b, choose):
    if a is None:
        return b
    if b is None:
        return a
    return choose(a, b)
