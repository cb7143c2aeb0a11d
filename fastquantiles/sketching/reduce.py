"""Combining many sketches at once."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from fastquantiles.sketching.sketch import Sketch

logger = logging.getLogger(__name__)


def merge_all[T](sketches: Iterable[Sketch[T]]) -> Sketch[T]:
    """Merge any number of sketches with a balanced pairwise reduction.

    Each round merges adjacent pairs, so every sample takes part in
    O(log k) merges for k sketches instead of O(k) with a left fold. All
    input sketches are consumed, except a single input, which is returned
    as is.

    Args:
        sketches: Sketches to combine, in any order.

    Returns:
        The combined sketch.

    Raises:
        ValueError: If no sketch is given.
        IncompatibleMerge: If two operands cannot be merged.
    """
    level = list(sketches)
    if not level:
        raise ValueError("merge_all requires at least one sketch")

    rounds = 0
    while len(level) > 1:
        paired = [level[i].merge(level[i + 1]) for i in range(0, len(level) - 1, 2)]
        if len(level) % 2:
            paired.append(level[-1])
        level = paired
        rounds += 1

    logger.debug("Reduced sketches in %d merge rounds", rounds)
    return level[0]
