"""
Algorithm implementations for tiny-ddsketch.
"""

from tiny_ddsketch.algorithms.ddsketch import DDSketch, exact_quantile

__all__ = [
    "DDSketch",
    "exact_quantile",
]
