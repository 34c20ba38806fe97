"""
Base classes and interfaces for tiny-ddsketch stream summaries.

This module defines the abstract base classes that stream summaries implement
to provide a consistent interface: updating with new items, querying,
merging in place with another summary of the same kind, and exporting state
as plain dictionaries. It also includes benchmarking hooks for measuring
update cost and memory footprint.
"""

import abc
import sys
from collections import deque
from typing import Any, Dict, Generic, Iterable, List, Optional, TypeVar

T = TypeVar("T")  # Type for the items being processed
R = TypeVar("R")  # Type for the result of queries


class StreamSummary(Generic[T, R], abc.ABC):
    """
    Abstract base class for all streaming summaries.

    Summaries are single-writer objects: they are updated from one thread at a
    time and combined afterwards with merge(). Derived classes implement the
    algorithm-specific state; this class keeps the shared bookkeeping.
    """

    def __init__(self, memory_limit_bytes: Optional[int] = None):
        """
        Initialize a new stream summary.

        Args:
            memory_limit_bytes: Optional advisory memory budget in bytes.
                                None means no explicit limit. Exceeding it is
                                reported by check_memory_limit(), nothing is
                                evicted.
        """
        self._memory_limit_bytes = memory_limit_bytes
        self._items_processed = 0

        # Performance tracking attributes
        self._last_update_time: float = 0.0
        self._total_update_time: float = 0.0
        self._update_count: int = 0

        # Optional performance tracking buffer for recent updates
        self._track_recent_updates: bool = False
        self._recent_update_times: Optional[deque] = None
        self._max_update_history: int = 100

    @abc.abstractmethod
    def update(self, item: T) -> None:
        """
        Update the summary with a new item from the stream.

        Derived classes call super().update(item) once the item has been
        accounted for.

        Args:
            item: The new item to process.
        """
        self._items_processed += 1

    def update_batch(self, items: Iterable[T]) -> None:
        """
        Update the summary with every item of an iterable, in order.

        Args:
            items: The items to process.
        """
        for item in items:
            self.update(item)

    def _record_update_time(self, elapsed: float) -> None:
        """
        Record the duration of one update when performance tracking is on.

        Args:
            elapsed: Update duration in seconds.
        """
        self._last_update_time = elapsed
        self._total_update_time += elapsed
        self._update_count += 1

        if self._recent_update_times is None:
            self._recent_update_times = deque(maxlen=self._max_update_history)
        self._recent_update_times.append(elapsed)

    @abc.abstractmethod
    def query(self, *args: Any, **kwargs: Any) -> R:
        """
        Query the current state of the summary.

        The parameters and return value depend on the specific algorithm.
        """
        pass

    @abc.abstractmethod
    def merge(self, other: "StreamSummary[T, R]") -> None:
        """
        Merge another summary of the same type into this one, in place.

        The other summary is only read, never modified.

        Args:
            other: Another stream summary of the same type.

        Raises:
            TypeError: If other is not of the same type.
        """
        pass

    def _check_same_type(self, other: "StreamSummary[T, R]") -> None:
        """
        Helper method to check if another summary is of the same type.

        Raises:
            TypeError: If other is not of the same type.
        """
        if not isinstance(other, self.__class__):
            raise TypeError(f"Cannot merge with {other.__class__.__name__}")

    def _combine_items_processed(self, other: "StreamSummary[T, R]") -> int:
        """Return the combined count of processed items of both summaries."""
        return self._items_processed + other._items_processed

    @abc.abstractmethod
    def to_dict(self) -> Dict[str, Any]:
        """
        Export the summary state as a dictionary of plain Python values.

        Returns:
            A dictionary representation of the summary.
        """
        pass

    def _base_dict(self) -> Dict[str, Any]:
        """
        Create a dictionary with base attributes common to all summaries.

        Returns:
            A dictionary with base attributes.
        """
        return {
            "type": self.__class__.__name__,
            "items_processed": self._items_processed,
            "memory_limit_bytes": self._memory_limit_bytes,
        }

    @classmethod
    @abc.abstractmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StreamSummary[T, R]":
        """
        Rebuild a summary from the dictionary produced by to_dict().

        Args:
            data: The dictionary containing the summary state.

        Returns:
            A new stream summary initialized with the given state.
        """
        pass

    def estimate_size(self) -> int:
        """
        Estimate the current memory usage of this summary in bytes.

        This is a rough figure: it accounts for the object, its instance
        dictionary and the tracking structures kept here. Derived classes add
        their own data structures on top.

        Returns:
            Estimated memory usage in bytes.
        """
        size = sys.getsizeof(self)

        if hasattr(self, "__dict__"):
            size += sys.getsizeof(self.__dict__)

        if self._recent_update_times is not None:
            size += sys.getsizeof(self._recent_update_times)
            size += len(self._recent_update_times) * sys.getsizeof(0.0)

        return size

    def check_memory_limit(self) -> bool:
        """
        Check whether the current memory estimate is within the limit.

        Returns:
            True if there is no limit or usage is within it, False otherwise.
        """
        if self._memory_limit_bytes is None:
            return True

        return self.estimate_size() <= self._memory_limit_bytes

    def clear(self) -> None:
        """
        Reset the base counters and tracking metrics.

        Derived classes override this to clear their own state and call
        super().clear().
        """
        self._items_processed = 0
        self._total_update_time = 0.0
        self._update_count = 0
        self._last_update_time = 0.0

        if self._recent_update_times is not None:
            self._recent_update_times.clear()

    def enable_performance_tracking(
        self, track_recent_updates: bool = True, max_history: int = 100
    ) -> None:
        """
        Enable per-update timing for benchmarking.

        Timing adds overhead to every update, so it should only be enabled
        when benchmarking or debugging performance issues.

        Args:
            track_recent_updates: Whether to time updates.
            max_history: Maximum number of recent update times to keep.
        """
        self._track_recent_updates = track_recent_updates
        self._max_update_history = max(1, max_history)

        if track_recent_updates:
            self._recent_update_times = deque(
                self._recent_update_times or (), maxlen=self._max_update_history
            )

    def disable_performance_tracking(self) -> None:
        """Disable performance tracking to reduce overhead."""
        self._track_recent_updates = False
        self._recent_update_times = None

    def get_performance_stats(self) -> Dict[str, Any]:
        """
        Get performance statistics for this summary.

        Returns:
            A dictionary with the items processed, the memory estimate and,
            when tracking is enabled, update timings in nanoseconds.
        """
        stats: Dict[str, Any] = {
            "items_processed": self._items_processed,
            "memory_bytes": self.estimate_size(),
        }

        if self._update_count > 0:
            stats["avg_update_time_ns"] = (
                self._total_update_time / self._update_count
            ) * 1e9
            stats["last_update_time_ns"] = self._last_update_time * 1e9

        if self._recent_update_times:
            recent_times_ns = [t * 1e9 for t in self._recent_update_times]
            stats["recent_update_times_ns"] = recent_times_ns
            stats["min_update_time_ns"] = min(recent_times_ns)
            stats["max_update_time_ns"] = max(recent_times_ns)

        return stats

    def get_stats(self) -> Dict[str, Any]:
        """
        Get detailed statistics about the current state of the summary.

        Derived classes extend this with algorithm-specific entries while
        calling super().get_stats() for the base metrics.

        Returns:
            A dictionary containing various statistics about the summary state.
        """
        stats: Dict[str, Any] = {
            "type": self.__class__.__name__,
            "items_processed": self._items_processed,
            "memory_bytes": self.estimate_size(),
        }

        if self._memory_limit_bytes is not None:
            stats["memory_limit_bytes"] = self._memory_limit_bytes
            stats["memory_usage_pct"] = (
                self.estimate_size() / self._memory_limit_bytes
            ) * 100

        if self._update_count > 0:
            stats["avg_update_time_ns"] = (
                self._total_update_time / self._update_count
            ) * 1e9

        error_bounds = self.error_bounds()
        if error_bounds:
            stats.update(error_bounds)

        return stats

    def error_bounds(self) -> Dict[str, Any]:
        """
        Get the theoretical error bounds for this summary.

        The base implementation returns an empty dictionary.
        """
        return {}

    @property
    def items_processed(self) -> int:
        """Get the total number of items processed by this summary."""
        return self._items_processed


class QuantileEstimator(StreamSummary[float, float], abc.ABC):
    """
    Abstract base class for quantile estimation over numeric streams.

    Examples include DDSketch.
    """

    SUMMARY_QUANTILES = (0.5, 0.9, 0.99)

    @abc.abstractmethod
    def get_quantile(self, quantile: float) -> float:
        """
        Estimate the value at the given quantile.

        Args:
            quantile: Target quantile between 0.0 and 1.0.

        Returns:
            The estimated value.
        """
        pass

    def get_quantiles(self, quantiles: Iterable[float]) -> List[float]:
        """
        Estimate several quantiles at once.

        Args:
            quantiles: Target quantiles, each between 0.0 and 1.0.

        Returns:
            The estimates, in the order the quantiles were given.
        """
        return [self.get_quantile(q) for q in quantiles]

    def query(self, quantile: float) -> float:
        """
        Query the summary for a quantile.

        This is a convenience method that calls get_quantile.
        """
        return self.get_quantile(quantile)

    def get_stats(self) -> Dict[str, Any]:
        """
        Get statistics about the current state of the quantile estimator.

        Returns:
            A dictionary with the base statistics plus p50/p90/p99 estimates
            once the summary holds data.
        """
        stats = super().get_stats()

        if self._items_processed > 0:
            for q in self.SUMMARY_QUANTILES:
                stats[f"p{q * 100:g}"] = self.get_quantile(q)

        return stats
