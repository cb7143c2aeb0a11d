"""Buffered bulk writes into a Sketch.

Recording values one at a time walks the tree for every value. A
SketchWriter instead collects values in a buffer and, once the buffer is
full, sorts it and folds the whole batch in with ``Sketch.record_sorted``:
the batch becomes a run of exact samples, is combined with the retained
samples in a single pass, and the result is compacted at the new count.

The batch path gives the same accuracy guarantee as ``record``. It pays off
for large streams that arrive faster than they are queried; values still in
the buffer are invisible to the sketch until ``flush`` runs.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastquantiles.sketching.errors import InvalidConfiguration
from fastquantiles.sketching.sketch import Sketch, check_recordable

if TYPE_CHECKING:
    from collections.abc import Iterable

DEFAULT_BUFFER_SIZE = 1_000


class SketchWriter[T]:
    """Batches writes to one sketch.

    Args:
        sketch: The sketch receiving the values.
        buffer_size: Values collected before a batch is folded in (>= 1).

    Example:
        writer = SketchWriter.with_epsilon(0.001, buffer_size=4096)
        writer.write_many(latencies)
        sketch = writer.into_sketch()
        p99 = sketch.percentile(99)
    """

    def __init__(self, sketch: Sketch[T], buffer_size: int = DEFAULT_BUFFER_SIZE):
        if not isinstance(sketch, Sketch):
            raise TypeError(f"SketchWriter needs a Sketch, got {type(sketch).__name__}")
        if isinstance(buffer_size, bool) or not isinstance(buffer_size, int) or buffer_size < 1:
            raise InvalidConfiguration(
                f"buffer_size must be a positive integer, got {buffer_size!r}"
            )
        self._sketch = sketch
        self._buffer: list[T] = []
        self._buffer_size = buffer_size

    @classmethod
    def with_epsilon(
        cls,
        epsilon: float,
        *,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        **sketch_options,
    ) -> SketchWriter[T]:
        """Writer over a new empty ``Sketch(epsilon, **sketch_options)``."""
        return cls(Sketch(epsilon, **sketch_options), buffer_size)

    @property
    def buffer_size(self) -> int:
        """Values collected before a batch is folded in."""
        return self._buffer_size

    @property
    def pending(self) -> int:
        """Values written but not yet folded into the sketch."""
        return len(self._buffer)

    @property
    def sketch(self) -> Sketch[T]:
        """The target sketch, without the values still pending."""
        return self._sketch

    def write(self, value: T) -> None:
        """Buffer one value, folding the buffer in once it is full.

        Raises:
            TypeError: If value is None.
            ValueError: If value is a float NaN.
        """
        check_recordable(value)
        self._buffer.append(value)
        if len(self._buffer) >= self._buffer_size:
            self.flush()

    def write_many(self, values: Iterable[T]) -> None:
        """Write every value of an iterable, in order."""
        for value in values:
            self.write(value)

    def flush(self) -> int:
        """Fold every pending value into the sketch.

        Returns:
            Number of values folded in.
        """
        if not self._buffer:
            return 0
        self._buffer.sort()
        self._sketch.record_sorted(self._buffer)
        flushed = len(self._buffer)
        self._buffer.clear()
        return flushed

    def into_sketch(self) -> Sketch[T]:
        """Flush and return the sketch, ready for queries or merges."""
        self.flush()
        return self._sketch

    def __repr__(self) -> str:
        return f"SketchWriter(buffer_size={self._buffer_size}, pending={len(self._buffer)})"
