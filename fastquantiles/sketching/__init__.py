"""Mergeable epsilon-approximate quantile sketches.

A sketch keeps a bounded set of samples of an ordered stream and answers
quantile queries whose rank is off by at most ``epsilon * n``. Sketches built
independently (one per thread, process or shard) can be merged into one that
keeps the same guarantee.

Quick Reference:
    Sketch: The quantile summary (record, merge, quantile, count)
    merge_all: Balanced pairwise merge of many sketches
    Sample: A retained value with its rank bookkeeping (g, delta)
    SamplesNode: Node of the sample tree
    NodeIterator: Ascending, non-recursive traversal of a sample tree
    SamplesCompressor: Greedy left-to-right sample folding
    SketchWriter: Buffered bulk writes folded in one sorted batch at a time

Example:
    from fastquantiles.sketching import Sketch, merge_all

    shards = [Sketch(epsilon=0.01) for _ in range(4)]
    for i, value in enumerate(values):
        shards[i % 4].record(value)

    combined = merge_all(shards)
    median, error = combined.quantile(0.5)
"""

from fastquantiles.sketching.base import QuantileSketch
from fastquantiles.sketching.errors import (
    ConsumedSketch,
    EmptySketch,
    IncompatibleMerge,
    InvalidConfiguration,
    InvalidQuantile,
    QuantileSketchError,
)
from fastquantiles.sketching.node_iterator import NodeIterator
from fastquantiles.sketching.reduce import merge_all
from fastquantiles.sketching.sample import (
    Sample,
    SamplesCompressor,
    combine_adjacent,
    compact_run,
    is_compactable,
    max_g_delta,
    target_rank,
)
from fastquantiles.sketching.samples_node import (
    DEFAULT_MAX_NODE_CAPACITY,
    DEFAULT_MIN_NODE_CAPACITY,
    InsertOutcome,
    SamplesNode,
    merge_sorted_samples,
    node_capacity,
)
from fastquantiles.sketching.sketch import MergePolicy, Sketch
from fastquantiles.sketching.writer import DEFAULT_BUFFER_SIZE, SketchWriter

__all__ = [
    "ConsumedSketch",
    "DEFAULT_BUFFER_SIZE",
    "DEFAULT_MAX_NODE_CAPACITY",
    "DEFAULT_MIN_NODE_CAPACITY",
    "EmptySketch",
    "IncompatibleMerge",
    "InsertOutcome",
    "InvalidConfiguration",
    "InvalidQuantile",
    "MergePolicy",
    "NodeIterator",
    "QuantileSketch",
    "QuantileSketchError",
    "Sample",
    "SamplesCompressor",
    "SamplesNode",
    "Sketch",
    "SketchWriter",
    "combine_adjacent",
    "compact_run",
    "is_compactable",
    "max_g_delta",
    "merge_all",
    "merge_sorted_samples",
    "node_capacity",
    "target_rank",
]
