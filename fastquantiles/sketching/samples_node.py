"""Tree of retained samples.

A ``SamplesNode`` holds a short sorted run of samples plus at most two
children: ``left`` covers values below the run, ``right`` values above it.
An in-order walk (left subtree, own samples, right subtree) therefore yields
every retained sample in ascending order.

Key properties:
- Insert: O(depth + capacity), iterative descent
- Node overflow: local compaction first, split only if still full
- Full compaction / rebalance / merge: O(size), rebuilds a balanced tree
- Depth: O(log(size / capacity)) after any rebuild

Nodes do not know the stream count or epsilon: callers pass the current
``g + delta`` limit (see ``max_g_delta``) and the node capacity.
"""

from __future__ import annotations

import bisect
import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

from fastquantiles.sketching.node_iterator import NodeIterator
from fastquantiles.sketching.sample import Sample, compact_run, max_g_delta

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)

DEFAULT_MIN_NODE_CAPACITY = 7
DEFAULT_MAX_NODE_CAPACITY = 127


def node_capacity(epsilon: float) -> int:
    """Default number of samples per node for a given epsilon.

    Roughly ``sqrt(1 / epsilon)``, made odd so a split has a true middle,
    and clamped to [DEFAULT_MIN_NODE_CAPACITY, DEFAULT_MAX_NODE_CAPACITY].
    Wider nodes mean shallower trees but costlier in-node inserts.
    """
    inverse = 1.0 / epsilon
    if not math.isfinite(inverse):
        return DEFAULT_MAX_NODE_CAPACITY
    width = int(math.sqrt(inverse))
    width = max(DEFAULT_MIN_NODE_CAPACITY, min(DEFAULT_MAX_NODE_CAPACITY, width))
    return width if width % 2 else width + 1


def _sample_value(sample: Sample):
    return sample.value


@dataclass(frozen=True, slots=True)
class InsertOutcome:
    """Result of inserting one value into a tree.

    Attributes:
        added: Net change in the number of retained samples (1 for a new
            sample, 0 when the value was absorbed by its successor, negative
            when the overflowing node compacted more than it gained).
        depth: Depth (root = 1) of the node that received the value.
    """

    added: int
    depth: int


def merge_sorted_samples[T](ours: list[Sample[T]], theirs: list[Sample[T]]) -> list[Sample[T]]:
    """Interleave two independently built ascending sample lists.

    Implements the COMBINE step of Greenwald and Khanna (PODS 2004). For a
    sample ``x`` whose next not-yet-emitted sample from the other list is
    ``y``::

        delta' = x.delta + y.g + y.delta - 1

    which is ``rmax_ours(x) + rmax_theirs(y) - 1`` minus the new rmin. ``g``
    is never changed, and samples with no successor in the other list keep
    their delta. Equal values from ``ours`` are emitted first.
    """
    merged: list[Sample[T]] = []
    i = j = 0
    while i < len(ours) and j < len(theirs):
        x = ours[i]
        y = theirs[j]
        if x.value <= y.value:
            merged.append(x.with_delta(x.delta + y.g + y.delta - 1))
            i += 1
        else:
            merged.append(y.with_delta(y.delta + x.g + x.delta - 1))
            j += 1
    merged.extend(ours[i:])
    merged.extend(theirs[j:])
    return merged


class SamplesNode[T]:
    """A bounded sorted run of samples with optional left/right subtrees.

    Only the root of a tree may be empty; every other node holds at least
    one sample.

    Attributes:
        samples: The node's own samples, ascending.
        left: Subtree of values below ``samples[0]`` (or None).
        right: Subtree of values above ``samples[-1]`` (or None).
    """

    __slots__ = ("samples", "left", "right")

    def __init__(
        self,
        samples: list[Sample[T]] | None = None,
        left: SamplesNode[T] | None = None,
        right: SamplesNode[T] | None = None,
    ) -> None:
        self.samples: list[Sample[T]] = samples if samples is not None else []
        self.left = left
        self.right = right

    # -- construction -----------------------------------------------------

    @classmethod
    def from_sorted(cls, samples: list[Sample[T]], capacity: int) -> SamplesNode[T]:
        """Build a balanced tree from ascending samples.

        Every node gets a run of ``(capacity + 1) // 2`` samples so that
        later inserts have room before a node overflows.
        """
        if not samples:
            return cls()
        run = max(1, (capacity + 1) // 2)
        return cls._build(samples, 0, len(samples), run)

    @classmethod
    def _build(cls, samples: list[Sample[T]], lo: int, hi: int, run: int) -> SamplesNode[T]:
        size = hi - lo
        if size <= run:
            return cls(samples[lo:hi])
        start = lo + (size - run) // 2
        stop = start + run
        node = cls(samples[start:stop])
        if start > lo:
            node.left = cls._build(samples, lo, start, run)
        if stop < hi:
            node.right = cls._build(samples, stop, hi, run)
        return node

    def _replace_with(self, other: SamplesNode[T]) -> None:
        self.samples = other.samples
        self.left = other.left
        self.right = other.right

    def clear(self) -> None:
        """Drop every sample and subtree."""
        self.samples = []
        self.left = None
        self.right = None

    # -- lookups ------------------------------------------------------------

    def first(self) -> Sample[T] | None:
        """Smallest sample of the subtree, or None if it is empty."""
        node = self
        while node.left is not None:
            node = node.left
        return node.samples[0] if node.samples else None

    def last(self) -> Sample[T] | None:
        """Largest sample of the subtree, or None if it is empty."""
        node = self
        while node.right is not None:
            node = node.right
        return node.samples[-1] if node.samples else None

    def depth(self) -> int:
        """Number of levels in the subtree (an empty root counts as 1)."""
        deepest = 0
        pending = [(self, 1)]
        while pending:
            node, level = pending.pop()
            deepest = max(deepest, level)
            if node.left is not None:
                pending.append((node.left, level + 1))
            if node.right is not None:
                pending.append((node.right, level + 1))
        return deepest

    def node_count(self) -> int:
        """Number of nodes in the subtree."""
        nodes = 0
        pending = [self]
        while pending:
            node = pending.pop()
            nodes += 1
            if node.left is not None:
                pending.append(node.left)
            if node.right is not None:
                pending.append(node.right)
        return nodes

    def __len__(self) -> int:
        total = 0
        pending = [self]
        while pending:
            node = pending.pop()
            total += len(node.samples)
            if node.left is not None:
                pending.append(node.left)
            if node.right is not None:
                pending.append(node.right)
        return total

    def __iter__(self) -> Iterator[Sample[T]]:
        return NodeIterator(self)

    # -- insertion ------------------------------------------------------------

    def insert(self, value: T, limit: int, capacity: int) -> InsertOutcome:
        """Record one value in the tree rooted at this node.

        Args:
            value: The value to record.
            limit: Current ``g + delta`` limit, already accounting for this
                value.
            capacity: Maximum number of samples per node.

        Returns:
            InsertOutcome with the net change in retained samples and the
            depth at which the value landed.
        """
        node = self
        predecessor: Sample[T] | None = None
        successor: Sample[T] | None = None
        depth = 1
        while node.samples:
            if value < node.samples[0].value:
                if node.left is None:
                    # A node with room extends its own run before growing a child
                    if len(node.samples) < capacity:
                        break
                    node.left = SamplesNode()
                successor = node.samples[0]
                node = node.left
            elif value > node.samples[-1].value:
                if node.right is None:
                    if len(node.samples) < capacity:
                        break
                    node.right = SamplesNode()
                predecessor = node.samples[-1]
                node = node.right
            else:
                break
            depth += 1

        added = node._insert_here(value, limit, capacity, predecessor, successor)
        return InsertOutcome(added=added, depth=depth)

    def _insert_here(
        self,
        value: T,
        limit: int,
        capacity: int,
        predecessor: Sample[T] | None,
        successor: Sample[T] | None,
    ) -> int:
        """Place ``value`` among this node's samples.

        ``predecessor``/``successor`` are the closest samples outside this
        subtree, inherited from the descent (None at the tree's edges).
        """
        samples = self.samples
        index = bisect.bisect_right(samples, value, key=_sample_value)

        if index > 0:
            pred = samples[index - 1]
        elif self.left is not None:
            pred = self.left.last()
        else:
            pred = predecessor

        in_node = index < len(samples)
        if in_node:
            succ = samples[index]
        elif self.right is not None:
            succ = self.right.first()
        else:
            succ = successor
        succ_is_last = (
            index == len(samples) - 1 and self.right is None and successor is None
        )

        if pred is None or succ is None:
            # New global minimum or maximum: always kept exact
            samples.insert(index, Sample(value))
        elif in_node and not succ_is_last and succ.g + succ.delta + 1 <= limit:
            # The successor can cover this value on its own
            samples[index] = succ.absorb_one()
            return 0
        else:
            samples.insert(index, Sample(value, 1, succ.g + succ.delta - 1))

        if len(samples) <= capacity:
            return 1

        removed = self._compact_own(limit, predecessor, successor)
        if len(self.samples) > capacity:
            self._split()
        return 1 - removed

    def _compact_own(
        self,
        limit: int,
        predecessor: Sample[T] | None,
        successor: Sample[T] | None,
    ) -> int:
        """Compact this node's own samples; returns how many were dropped.

        Samples inside one node are globally adjacent, so any pair may be
        folded. The first sample is pinned when it is the global minimum and
        the last when it is the global maximum.
        """
        before = len(self.samples)
        self.samples = compact_run(
            self.samples,
            limit,
            pin_first=self.left is None and predecessor is None,
            pin_last=self.right is None and successor is None,
        )
        return before - len(self.samples)

    def _split(self) -> None:
        """Promote the middle sample; the halves become the new children."""
        samples = self.samples
        middle = len(samples) // 2
        self.left = SamplesNode(samples[:middle], left=self.left)
        self.right = SamplesNode(samples[middle + 1 :], right=self.right)
        self.samples = [samples[middle]]
        logger.debug("Split node of %d samples around %r", len(samples), samples[middle].value)

    # -- whole-tree operations ------------------------------------------------

    def compact(self, count: int, epsilon: float, capacity: int) -> int:
        """Compact the whole subtree and rebuild it balanced.

        Walks every sample in order, including the pairs that straddle node
        boundaries, and folds each sample into its successor whenever
        ``a.g + b.g + b.delta <= floor(2 * epsilon * count)``. The first and
        last samples of the subtree are pinned.

        Returns:
            Number of samples retained afterwards.
        """
        limit = max_g_delta(count, epsilon)
        samples = list(NodeIterator(self))
        compacted = compact_run(samples, limit, pin_first=True, pin_last=True)
        self._replace_with(SamplesNode.from_sorted(compacted, capacity))
        logger.debug(
            "Compacted %d samples to %d (count=%d, limit=%d)",
            len(samples), len(compacted), count, limit,
        )
        return len(compacted)

    def rebalance(self, capacity: int) -> int:
        """Rebuild the subtree balanced without dropping any sample.

        Returns:
            Number of samples retained.
        """
        samples = list(NodeIterator(self))
        self._replace_with(SamplesNode.from_sorted(samples, capacity))
        return len(samples)

    def merge_subtree(self, other: SamplesNode[T], capacity: int) -> SamplesNode[T]:
        """Merge two independently built trees into a new balanced tree.

        Both operands are emptied: their samples now belong to the result.
        See ``merge_sorted_samples`` for the delta adjustment.
        """
        ours = list(NodeIterator(self))
        theirs = list(NodeIterator(other))
        merged = merge_sorted_samples(ours, theirs)
        self.clear()
        other.clear()
        logger.debug("Merged subtrees of %d and %d samples", len(ours), len(theirs))
        return SamplesNode.from_sorted(merged, capacity)

    def __repr__(self) -> str:
        return (
            f"SamplesNode(samples={len(self.samples)}, "
            f"left={self.left is not None}, right={self.right is not None})"
        )
