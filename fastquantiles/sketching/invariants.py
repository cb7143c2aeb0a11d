"""Structural invariant checks for sketches and sample trees.

These checks walk the whole tree and are meant for tests and debugging, not
for the recording hot path. A violated invariant is a bug in the sketch, so
it is reported as an ``InvariantViolation`` (an AssertionError), never as one
of the user-facing sketch errors.
"""

from __future__ import annotations

import bisect
from typing import TYPE_CHECKING

from fastquantiles.sketching.node_iterator import NodeIterator
from fastquantiles.sketching.sample import max_g_delta, target_rank

if TYPE_CHECKING:
    from collections.abc import Sequence

    from fastquantiles.sketching.samples_node import SamplesNode
    from fastquantiles.sketching.sketch import Sketch


class InvariantViolation(AssertionError):
    """A sketch or tree is in a state its algorithms should never produce."""


def check_tree(root: SamplesNode, capacity: int | None = None) -> int:
    """Check the ordering and shape of a sample tree.

    Verifies that:
    - the in-order traversal is non-decreasing,
    - every node except the root holds at least one sample,
    - no node holds more than ``capacity`` samples (when given),
    - a full NodeIterator traversal visits as many samples as the nodes hold.

    Returns:
        Number of samples in the tree.
    """
    held = 0
    pending = [(root, True)]
    while pending:
        node, is_root = pending.pop()
        if not node.samples and not is_root:
            raise InvariantViolation("Non-root node without samples")
        if capacity is not None and len(node.samples) > capacity:
            raise InvariantViolation(
                f"Node holds {len(node.samples)} samples, capacity is {capacity}"
            )
        held += len(node.samples)
        for child in (node.left, node.right):
            if child is not None:
                pending.append((child, False))

    visited = 0
    previous = None
    for sample in NodeIterator(root):
        if previous is not None and sample.value < previous.value:
            raise InvariantViolation(
                f"Traversal out of order: {sample.value!r} after {previous.value!r}"
            )
        previous = sample
        visited += 1

    if visited != held:
        raise InvariantViolation(f"Traversal visited {visited} of {held} samples")
    return held


def check_sketch(sketch: Sketch) -> None:
    """Check every invariant of a sketch.

    On top of ``check_tree``:
    - the retained sample counter matches the tree,
    - the g values add up to the count,
    - every sample satisfies ``g + delta <= max(1, floor(2 * epsilon * n))``,
    - the first and last samples are the exact minimum and maximum
      (``g == 1`` and ``delta == 0``).

    Raises:
        InvariantViolation: On the first violated invariant.
    """
    root = sketch.root
    held = check_tree(root, sketch.node_capacity)
    if held != sketch.sample_count:
        raise InvariantViolation(
            f"Sketch tracks {sketch.sample_count} samples, tree holds {held}"
        )

    count = sketch.count
    if count == 0:
        if held:
            raise InvariantViolation(f"Empty sketch retains {held} samples")
        return

    limit = max(1, max_g_delta(count, sketch.epsilon))
    total_g = 0
    for sample in NodeIterator(root):
        if sample.g < 1 or sample.delta < 0:
            raise InvariantViolation(f"Malformed sample {sample!r}")
        if sample.g + sample.delta > limit:
            raise InvariantViolation(
                f"Sample {sample!r} exceeds g + delta <= {limit} (count={count})"
            )
        total_g += sample.g
    if total_g != count:
        raise InvariantViolation(f"Sum of g is {total_g}, count is {count}")

    first, last = root.first(), root.last()
    for edge, name, expected in ((first, "minimum", sketch.min), (last, "maximum", sketch.max)):
        if edge.g != 1 or edge.delta != 0:
            raise InvariantViolation(f"Retained {name} {edge!r} is not exact")
        if edge.value != expected:
            raise InvariantViolation(
                f"Retained {name} {edge.value!r} differs from recorded {expected!r}"
            )


def rank_range(sorted_values: Sequence, value) -> tuple[int, int]:
    """1-based ranks a value occupies in a sorted sequence.

    Returns:
        ``(first, last)`` rank of ``value``; equal values share the range.
    """
    lo = bisect.bisect_left(sorted_values, value)
    hi = bisect.bisect_right(sorted_values, value)
    if lo == hi:
        raise InvariantViolation(f"{value!r} was never recorded")
    return lo + 1, hi


def rank_error(sorted_values: Sequence, value, target_rank: float) -> float:
    """Distance between a target rank and the closest rank of ``value``."""
    first, last = rank_range(sorted_values, value)
    if target_rank < first:
        return first - target_rank
    if target_rank > last:
        return target_rank - last
    return 0.0


def check_accuracy(sketch: Sketch, sorted_values: Sequence, phis: Sequence[float]) -> float:
    """Check query answers against the exact sorted stream.

    For every phi, the returned value must have a true rank within
    ``epsilon * n`` of ``ceil(phi * n)`` (clamped to [1, n]).

    Returns:
        Largest rank error observed, as a fraction of n.

    Raises:
        InvariantViolation: If any answer is outside the guarantee.
    """
    n = len(sorted_values)
    allowed = sketch.epsilon * n
    worst = 0.0
    for phi in phis:
        value, _ = sketch.quantile(phi)
        target = target_rank(phi, n)
        error = rank_error(sorted_values, value, target)
        if error > allowed + 1e-9:
            raise InvariantViolation(
                f"quantile({phi}) = {value!r} is {error} ranks from {target}, "
                f"allowed {allowed}"
            )
        worst = max(worst, error / n)
    return worst
