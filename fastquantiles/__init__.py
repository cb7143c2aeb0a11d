"""fastquantiles: mergeable epsilon-approximate quantile sketches.

Example:
    import fastquantiles

    sketch = fastquantiles.Sketch(epsilon=0.001)
    for value in stream:
        sketch.record(value)
    p99 = sketch.percentile(99)
"""

import logging

from fastquantiles.logging_config import (
    configure_from_env,
    disable_logging,
    enable_console_logging,
    enable_file_logging,
    enable_json_logging,
    set_level,
    set_module_level,
)
from fastquantiles.sketching import (
    ConsumedSketch,
    EmptySketch,
    IncompatibleMerge,
    InvalidConfiguration,
    InvalidQuantile,
    MergePolicy,
    NodeIterator,
    QuantileSketch,
    QuantileSketchError,
    Sample,
    SamplesCompressor,
    SamplesNode,
    Sketch,
    SketchWriter,
    max_g_delta,
    merge_all,
    node_capacity,
)

# Silent unless the application configures logging
logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

__all__ = [
    "ConsumedSketch",
    "EmptySketch",
    "IncompatibleMerge",
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
    "configure_from_env",
    "disable_logging",
    "enable_console_logging",
    "enable_file_logging",
    "enable_json_logging",
    "max_g_delta",
    "merge_all",
    "node_capacity",
    "set_level",
    "set_module_level",
]
