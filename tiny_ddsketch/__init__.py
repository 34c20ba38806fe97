"""
tiny-ddsketch - Mergeable Relative-Error Quantile Sketches

tiny-ddsketch is a Python library for summarizing numeric data streams with
DDSketch: approximate quantiles within a fixed relative error, from summaries
that can be built independently and merged exactly.
"""

import logging

__version__ = "0.1.0"

# Import main classes to make them available at the top level
from tiny_ddsketch.algorithms.ddsketch import DDSketch, exact_quantile
from tiny_ddsketch.core.base import QuantileEstimator, StreamSummary
from tiny_ddsketch.core.exceptions import (
    EmptySketchError,
    IncompatibleErrorFactorError,
    OutOfRangeError,
    SketchError,
)

# Library logging is opt-in for applications
logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    # Core base classes
    "StreamSummary",
    "QuantileEstimator",
    # Exceptions
    "SketchError",
    "OutOfRangeError",
    "EmptySketchError",
    "IncompatibleErrorFactorError",
    # Algorithm implementations
    "DDSketch",
    "exact_quantile",
]
