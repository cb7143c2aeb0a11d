"""Exceptions raised by the quantile sketch.

Every user-facing failure derives from ``QuantileSketchError`` and from the
builtin exception a caller would naturally catch (``ValueError`` for bad
arguments, ``RuntimeError`` for misuse of a consumed sketch), so code written
against plain ``ValueError`` keeps working.
"""

from __future__ import annotations


class QuantileSketchError(Exception):
    """Base class for all errors raised by fastquantiles."""


class InvalidConfiguration(QuantileSketchError, ValueError):
    """Raised when a sketch is constructed with invalid parameters."""


class InvalidQuantile(QuantileSketchError, ValueError):
    """Raised when a quantile outside [0, 1] (or a percentile outside [0, 100]) is requested."""


class EmptySketch(QuantileSketchError, ValueError):
    """Raised when a quantile is requested from a sketch with no recorded values."""


class IncompatibleMerge(QuantileSketchError, ValueError):
    """Raised when two sketches cannot be merged under the adopted merge policy."""


class ConsumedSketch(QuantileSketchError, RuntimeError):
    """Raised when a sketch is used after it was consumed by a merge."""
