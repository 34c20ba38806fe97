"""
Exceptions raised by tiny-ddsketch summaries.

All of them signal caller misuse and are raised before any state is changed.
"""


class SketchError(Exception):
    """Base class for errors raised by sketch operations."""


class OutOfRangeError(SketchError, ValueError):
    """Raised when an error factor or quantile lies outside its valid range."""


class EmptySketchError(SketchError):
    """Raised when a quantile is requested from a sketch with no values."""


class IncompatibleErrorFactorError(SketchError, ValueError):
    """
    Raised when merging two sketches built with different error factors.

    Bucket boundaries are only comparable when both sketches share the same
    gamma, so such a merge would corrupt the bucket counts.
    """
