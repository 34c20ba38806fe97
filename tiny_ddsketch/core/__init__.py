"""
Core functionality for tiny-ddsketch.
"""

from tiny_ddsketch.core.base import QuantileEstimator, StreamSummary
from tiny_ddsketch.core.exceptions import (
    EmptySketchError,
    IncompatibleErrorFactorError,
    OutOfRangeError,
    SketchError,
)

__all__ = [
    # Base classes
    "StreamSummary",
    "QuantileEstimator",
    # Exceptions
    "SketchError",
    "OutOfRangeError",
    "EmptySketchError",
    "IncompatibleErrorFactorError",
]
