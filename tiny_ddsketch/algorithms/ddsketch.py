"""
DDSketch implementation for tiny-ddsketch.

DDSketch is a quantile sketch with relative-error guarantees: with an error
factor of 1%, a true quantile of 100 is estimated between 99 and 101, and a
true quantile of 1000 between 990 and 1010. It works on negative and positive
values alike.

Values with magnitude of at least 1.0 are mapped to logarithmically sized
buckets and only the per-bucket counts are kept. Magnitudes below 1.0 are
collapsed into a single zero bucket.

The sketch provides the following guarantees:
1. Update Time: O(1) amortized (one dictionary update)
2. Query Time: O(B log B) on the first query after a new bucket appears,
   O(B) afterwards, where B is the number of non-empty buckets
3. Space: O(B); B grows with the range of magnitudes seen, not the count
4. Merging is exact: merged sketches keep the same relative-error bound

References:
    - Masson, C., Rim, J. E., & Lee, H. K. (2019). DDSketch: A fast and
      fully-mergeable quantile sketch with relative-error guarantees.
      Proceedings of the VLDB Endowment, 12(12), 2195-2205.
"""

import logging
import math
import numbers
import sys
import time
from typing import (
    Any,
    Dict,
    Iterable,
    Iterator,
    List,
    Optional,
    Sequence,
    Tuple,
    Type,
    TypeVar,
    Union,
)

from tiny_ddsketch.core.base import QuantileEstimator
from tiny_ddsketch.core.exceptions import (
    EmptySketchError,
    IncompatibleErrorFactorError,
    OutOfRangeError,
)

logger = logging.getLogger(__name__)

# Type variable for the class itself (for from_dict)
DDSketchType = TypeVar("DDSketchType", bound="DDSketch")


def exact_quantile(values: Iterable[float], quantile: float) -> float:
    """
    Compute the exact quantile of a collection by sorting it.

    The element at 0-based position floor(quantile * (n - 1)) of the sorted
    values is returned. This is the reference the sketch estimates are
    compared against.

    Args:
        values: The values to rank.
        quantile: Target quantile between 0.0 and 1.0.

    Returns:
        The exact quantile value.

    Raises:
        ValueError: If values is empty or quantile is outside [0.0, 1.0].
    """
    if not (0.0 <= quantile <= 1.0):
        raise ValueError(f"Quantile must be between 0.0 and 1.0, got {quantile}")

    sorted_values = sorted(values)
    if not sorted_values:
        raise ValueError("Cannot compute a quantile of an empty collection")

    return _exact_from_sorted(sorted_values, quantile)


def _exact_from_sorted(sorted_values: Sequence[float], quantile: float) -> float:
    position = int(math.floor(quantile * (len(sorted_values) - 1)))
    return sorted_values[position]


class _BucketStore:
    """Sparse bucket counts for one sign, keyed by bucket index."""

    __slots__ = ["_counts", "_sorted_keys", "total"]

    def __init__(self) -> None:
        self._counts: Dict[int, int] = {}
        self._sorted_keys: Optional[List[int]] = None
        self.total: int = 0

    def add(self, index: int, count: int = 1) -> None:
        """Add count observations to the bucket at index."""
        if index in self._counts:
            self._counts[index] += count
        else:
            self._counts[index] = count
            # A new key invalidates the cached ordering
            self._sorted_keys = None
        self.total += count

    def merge(self, other: "_BucketStore") -> None:
        """Add every bucket of other into this store."""
        # Snapshot so that merging a store into itself is well defined
        for index, count in list(other._counts.items()):
            self.add(index, count)

    def keys(self) -> List[int]:
        """Return the bucket indices in ascending order."""
        if self._sorted_keys is None:
            self._sorted_keys = sorted(self._counts)
        return self._sorted_keys

    def items(self, descending: bool = False) -> Iterator[Tuple[int, int]]:
        """Iterate (index, count) pairs in ascending or descending index order."""
        keys = self.keys()
        ordered = reversed(keys) if descending else iter(keys)
        for index in ordered:
            yield index, self._counts[index]

    def __len__(self) -> int:
        return len(self._counts)

    def __repr__(self) -> str:
        return f"BucketStore(buckets={len(self._counts)}, total={self.total})"

    def to_list(self) -> List[List[int]]:
        """Export the buckets as [index, count] pairs sorted by index."""
        return [[index, count] for index, count in self.items()]

    @classmethod
    def from_list(cls, pairs: Iterable[Sequence[int]]) -> "_BucketStore":
        """Rebuild a store from [index, count] pairs."""
        store = cls()
        for pair in pairs:
            if len(pair) != 2:
                raise ValueError(f"Bucket entry must be an [index, count] pair: {pair}")
            index, count = pair
            if not isinstance(index, int) or not isinstance(count, int):
                raise ValueError(f"Bucket index and count must be integers: {pair}")
            if count <= 0:
                raise ValueError(
                    f"Invalid serialized data: bucket {index} has non-positive count ({count})"
                )
            store.add(index, count)
        return store

    def estimate_size(self) -> int:
        """Approximate memory used by the store in bytes."""
        size = sys.getsizeof(self._counts)
        size += sum(
            sys.getsizeof(index) + sys.getsizeof(count)
            for index, count in self._counts.items()
        )
        if self._sorted_keys is not None:
            size += sys.getsizeof(self._sorted_keys)
        return size


class DDSketch(QuantileEstimator):
    """
    DDSketch for relative-error quantile estimation over data streams.

    Each value x with |x| >= 1.0 is counted in the bucket
    i = ceil(ln|x| / ln(gamma)) of its sign, where
    gamma = (1 + error_factor) / (1 - error_factor), so that
    gamma^(i-1) < |x| <= gamma^i. A quantile is answered with the
    representative value 2 * gamma^i / (gamma + 1) of the bucket holding the
    target rank, which is within error_factor of every value in that bucket.

    Sketches are single-writer. To aggregate several streams, build one sketch
    per stream and merge them afterwards; merging only adds bucket counts and
    introduces no additional error.

    References:
        - Masson, C., Rim, J. E., & Lee, H. K. (2019). DDSketch: A fast and
          fully-mergeable quantile sketch with relative-error guarantees.
    """

    DEFAULT_ERROR_FACTOR: float = 0.001
    # Values strictly inside (-ZERO_THRESHOLD, ZERO_THRESHOLD) go to the zero bucket
    ZERO_THRESHOLD: float = 1.0

    def __init__(
        self,
        error_factor: float = DEFAULT_ERROR_FACTOR,
        memory_limit_bytes: Optional[int] = None,
    ):
        """
        Initialize a DDSketch.

        Args:
            error_factor: Maximum relative error of quantile estimates, in
                (0.0, 1.0]. Smaller values give narrower buckets and therefore
                more of them. Default: 0.001.
            memory_limit_bytes: Optional advisory memory budget in bytes.

        Raises:
            TypeError: If error_factor is not a real number.
            OutOfRangeError: If error_factor is not in (0.0, 1.0], or is so
                small that gamma rounds to 1.0.
        """
        super().__init__(memory_limit_bytes)

        if isinstance(error_factor, bool) or not isinstance(error_factor, numbers.Real):
            raise TypeError(
                f"Error factor must be a real number, got {type(error_factor).__name__}"
            )
        if not (0.0 < error_factor <= 1.0):
            raise OutOfRangeError(
                f"Error factor must be in (0.0, 1.0], got {error_factor}"
            )

        self._error_factor: float = float(error_factor)
        if self._error_factor == 1.0:
            # Limit of (1 + e) / (1 - e); every magnitude falls into bucket 0
            self._gamma = math.inf
        else:
            self._gamma = (1.0 + self._error_factor) / (1.0 - self._error_factor)
        if self._gamma <= 1.0:
            raise OutOfRangeError(
                f"Error factor {error_factor} is too small to separate buckets"
            )
        self._log_gamma: float = math.log(self._gamma)

        self._positive = _BucketStore()
        self._negative = _BucketStore()
        self._zero_count: int = 0

        self._min_val: float = math.inf
        self._max_val: float = -math.inf

    def _index(self, magnitude: float) -> int:
        """Bucket index of a magnitude >= 1.0. Infinity shares the bucket of the largest float."""
        if magnitude == math.inf:
            magnitude = sys.float_info.max
        return math.ceil(math.log(magnitude) / self._log_gamma)

    def _value(self, index: int) -> float:
        """Representative value of the bucket at index."""
        try:
            return 2.0 * math.pow(self._gamma, index) / (self._gamma + 1.0)
        except OverflowError:
            # gamma^index can exceed the float range for magnitudes near the maximum
            return 2.0 * math.pow(self._gamma, index - 1) * (self._gamma / (self._gamma + 1.0))

    def update(self, item: float) -> None:
        """
        Add a value to the sketch.

        Args:
            item: Numeric value to add. NaN is counted in the zero bucket and
                leaves the extremes unchanged. +/-Inf is counted in the bucket
                of the largest float and becomes the maximum or minimum.
                Non-numeric items are ignored.
        """
        if not isinstance(item, numbers.Real):
            return

        start = time.perf_counter() if self._track_recent_updates else 0.0

        value = float(item)
        if value >= self.ZERO_THRESHOLD:
            self._positive.add(self._index(value))
        elif value <= -self.ZERO_THRESHOLD:
            self._negative.add(self._index(-value))
        else:
            self._zero_count += 1

        super().update(value)

        if value < self._min_val:
            self._min_val = value
        if value > self._max_val:
            self._max_val = value

        if self._track_recent_updates:
            self._record_update_time(time.perf_counter() - start)

    def insert(self, values: Union[float, Iterable[float]]) -> None:
        """
        Add one value or every value of an iterable to the sketch.

        Args:
            values: A single number, or an iterable of numbers added in order.

        Raises:
            TypeError: If values is a string or bytes object.
        """
        if isinstance(values, (str, bytes, bytearray)):
            raise TypeError(
                f"Expected a number or an iterable of numbers, got {type(values).__name__}"
            )
        if isinstance(values, numbers.Real):
            self.update(values)
        else:
            self.update_batch(values)

    def get_quantile(self, quantile: float) -> float:
        """
        Estimate the value at the given quantile.

        Args:
            quantile: Target quantile between 0.0 and 1.0.
                      0.0 returns the exact minimum.
                      1.0 returns the exact maximum.

        Returns:
            Estimated value at the specified quantile, within error_factor of
            the true quantile for values outside the zero bucket.

        Raises:
            OutOfRangeError: If quantile is not between 0.0 and 1.0.
            EmptySketchError: If no value has been added.
        """
        if not (0.0 <= quantile <= 1.0):
            raise OutOfRangeError(
                f"Quantile must be between 0.0 and 1.0, got {quantile}"
            )
        if self._items_processed == 0:
            raise EmptySketchError("Cannot get a quantile from an empty sketch")

        if quantile == 0.0:
            return self._min_val
        if quantile == 1.0:
            return self._max_val

        rank = quantile * (self._items_processed - 1)
        cumulative = 0

        # Ascending value order: largest negative magnitudes first
        for index, count in self._negative.items(descending=True):
            cumulative += count
            if cumulative > rank:
                return -self._value(index)

        cumulative += self._zero_count
        if cumulative > rank:
            return 0.0

        for index, count in self._positive.items():
            cumulative += count
            if cumulative > rank:
                return self._value(index)

        # Only reachable through floating point rounding of the rank
        return self._max_val

    def merge(self, other: "DDSketch") -> None:
        """
        Merge another DDSketch into this one, in place.

        The result is identical to a sketch that had received the values of
        both sketches. The other sketch is only read.

        Args:
            other: Another DDSketch with the same error factor.

        Raises:
            TypeError: If other is not a DDSketch.
            IncompatibleErrorFactorError: If the error factors differ. This
                sketch is left unchanged.
        """
        self._check_same_type(other)

        if other._error_factor != self._error_factor:
            raise IncompatibleErrorFactorError(
                f"Cannot merge DDSketch instances with different error factors: "
                f"{self._error_factor} != {other._error_factor}"
            )

        self._positive.merge(other._positive)
        self._negative.merge(other._negative)
        self._zero_count += other._zero_count
        self._items_processed = self._combine_items_processed(other)

        if other._min_val < self._min_val:
            self._min_val = other._min_val
        if other._max_val > self._max_val:
            self._max_val = other._max_val

        logger.debug(
            "Merged %d values into DDSketch (error_factor=%s), now %d values in %d buckets",
            other._items_processed,
            self._error_factor,
            self._items_processed,
            len(self._positive) + len(self._negative),
        )

    def copy(self: DDSketchType) -> DDSketchType:
        """Return an independent copy of this sketch."""
        duplicate = self.__class__(
            error_factor=self._error_factor,
            memory_limit_bytes=self._memory_limit_bytes,
        )
        duplicate.merge(self)
        return duplicate

    @classmethod
    def merge_all(cls: Type[DDSketchType], sketches: Iterable[DDSketchType]) -> DDSketchType:
        """
        Build a new sketch holding the union of several sketches.

        The inputs are not modified. This is the aggregator side of
        distributed collection: each collector builds its own sketch and the
        aggregator combines them.

        Args:
            sketches: One or more DDSketch instances sharing an error factor.

        Returns:
            A new DDSketch containing the data of every input.

        Raises:
            ValueError: If no sketch is given.
            TypeError: If an input is not a DDSketch.
            IncompatibleErrorFactorError: If the error factors differ.
        """
        sketches = list(sketches)
        if not sketches:
            raise ValueError("merge_all requires at least one sketch")

        first = sketches[0]
        if not isinstance(first, cls):
            raise TypeError(f"Cannot merge with {first.__class__.__name__}")

        merged = cls(error_factor=first.error_factor)
        for sketch in sketches:
            merged.merge(sketch)

        logger.debug("Combined %d sketches into %d values", len(sketches), merged.count)
        return merged

    @property
    def error_factor(self) -> float:
        """The relative error guarantee fixed at construction."""
        return self._error_factor

    @property
    def gamma(self) -> float:
        """Ratio between consecutive bucket boundaries."""
        return self._gamma

    @property
    def count(self) -> int:
        """Total number of values added, including merged ones."""
        return self._items_processed

    @property
    def zero_count(self) -> int:
        """Number of values in the open interval (-1.0, 1.0)."""
        return self._zero_count

    @property
    def minimum(self) -> float:
        """Smallest value added; +inf while the sketch holds no non-NaN value."""
        return self._min_val

    @property
    def maximum(self) -> float:
        """Largest value added; -inf while the sketch holds no non-NaN value."""
        return self._max_val

    @property
    def is_empty(self) -> bool:
        """Check if the sketch contains any data."""
        return self._items_processed == 0

    @property
    def _has_extremes(self) -> bool:
        # False while empty or when only NaN has been added
        return self._min_val <= self._max_val

    def __len__(self) -> int:
        """Return the number of values added to the sketch."""
        return self._items_processed

    def __repr__(self) -> str:
        return (
            f"DDSketch(error_factor={self._error_factor}, count={self._items_processed}, "
            f"negative={self._negative!r}, zero_count={self._zero_count}, "
            f"positive={self._positive!r}, min={self._min_val}, max={self._max_val})"
        )

    def get_buckets(self) -> Dict[str, Any]:
        """
        Return the bucket counts for inspection.

        Returns:
            A dictionary with "negative" and "positive" lists of
            (index, count) tuples in ascending index order, and the "zero"
            bucket count.
        """
        return {
            "negative": list(self._negative.items()),
            "zero": self._zero_count,
            "positive": list(self._positive.items()),
        }

    def to_dict(self) -> Dict[str, Any]:
        """
        Export the sketch to a dictionary of plain Python values.

        Returns:
            Dictionary containing the sketch configuration and bucket counts.
            Extremes are exported as None while no non-NaN value has been added.
        """
        state = self._base_dict()
        state.update(
            {
                "error_factor": self._error_factor,
                "zero_count": self._zero_count,
                "min_val": self._min_val if self._has_extremes else None,
                "max_val": self._max_val if self._has_extremes else None,
                "positive_buckets": self._positive.to_list(),
                "negative_buckets": self._negative.to_list(),
            }
        )
        return state

    @classmethod
    def from_dict(cls: Type[DDSketchType], data: Dict[str, Any]) -> DDSketchType:
        """
        Rebuild a DDSketch from a dictionary produced by to_dict().

        Args:
            data: Dictionary created by to_dict().

        Returns:
            A reconstructed DDSketch instance.

        Raises:
            ValueError: If the dictionary is missing required keys or holds
                inconsistent data.
        """
        if "type" not in data:
            raise ValueError("Invalid dictionary format for DDSketch. Missing 'type'")

        if data.get("type") != cls.__name__:
            raise ValueError(
                f"Dictionary represents class '{data.get('type')}' but expected '{cls.__name__}'"
            )

        required_keys = {
            "error_factor",
            "items_processed",
            "zero_count",
            "positive_buckets",
            "negative_buckets",
        }
        missing_keys = required_keys - data.keys()
        if missing_keys:
            raise ValueError(
                f"Invalid dictionary format for DDSketch. Missing keys: {missing_keys}"
            )

        instance = cls(
            error_factor=data["error_factor"],
            memory_limit_bytes=data.get("memory_limit_bytes"),
        )

        try:
            instance._positive = _BucketStore.from_list(data["positive_buckets"])
            instance._negative = _BucketStore.from_list(data["negative_buckets"])
        except (TypeError, ValueError) as e:
            raise ValueError(f"Error restoring buckets: {e}") from e

        zero_count = data["zero_count"]
        if not isinstance(zero_count, int) or zero_count < 0:
            raise ValueError(f"Invalid zero_count: {zero_count}")
        instance._zero_count = zero_count

        items_processed = data["items_processed"]
        expected = zero_count + instance._positive.total + instance._negative.total
        if items_processed != expected:
            raise ValueError(
                f"items_processed ({items_processed}) does not match bucket totals ({expected})"
            )
        instance._items_processed = items_processed

        min_val = data.get("min_val")
        max_val = data.get("max_val")
        if (min_val is None) != (max_val is None):
            raise ValueError("'min_val' and 'max_val' must both be set or both be None")

        if min_val is None:
            # Only an empty or NaN-only sketch has no extremes
            if instance._positive.total or instance._negative.total:
                raise ValueError("DDSketch with non-zero buckets requires 'min_val' and 'max_val'")
        else:
            try:
                min_val = float(min_val)
                max_val = float(max_val)
            except (TypeError, ValueError) as e:
                raise ValueError(f"Invalid extremes: {e}") from e
            if items_processed == 0:
                raise ValueError("Empty DDSketch cannot have 'min_val' or 'max_val'")
            if math.isnan(min_val) or math.isnan(max_val):
                raise ValueError("'min_val' and 'max_val' cannot be NaN")
            if min_val > max_val:
                raise ValueError(f"min_val ({min_val}) is greater than max_val ({max_val})")
            if instance._negative.total and min_val > -cls.ZERO_THRESHOLD:
                raise ValueError(f"min_val ({min_val}) contradicts the negative buckets")
            if not instance._negative.total and min_val <= -cls.ZERO_THRESHOLD:
                raise ValueError(f"min_val ({min_val}) requires a negative bucket")
            if instance._positive.total and max_val < cls.ZERO_THRESHOLD:
                raise ValueError(f"max_val ({max_val}) contradicts the positive buckets")
            if not instance._positive.total and max_val >= cls.ZERO_THRESHOLD:
                raise ValueError(f"max_val ({max_val}) requires a positive bucket")
            instance._min_val = min_val
            instance._max_val = max_val

        logger.debug(
            "Restored DDSketch with %d values from dictionary", instance._items_processed
        )
        return instance

    def estimate_size(self) -> int:
        """
        Estimate the memory footprint of the sketch in bytes.

        Returns:
            Estimated size in bytes.
        """
        size = super().estimate_size()
        size += sys.getsizeof(self._error_factor)
        size += sys.getsizeof(self._gamma)
        size += sys.getsizeof(self._log_gamma)
        size += sys.getsizeof(self._zero_count)
        size += sys.getsizeof(self._min_val) + sys.getsizeof(self._max_val)
        size += self._positive.estimate_size()
        size += self._negative.estimate_size()
        return size

    def clear(self) -> None:
        """
        Reset the sketch to its initial empty state.

        The error factor and memory limit are preserved.
        """
        super().clear()
        self._positive = _BucketStore()
        self._negative = _BucketStore()
        self._zero_count = 0
        self._min_val = math.inf
        self._max_val = -math.inf

    #
    # Benchmarking hooks
    #
    def error_bounds(self) -> Dict[str, Any]:
        """
        Describe the error guarantee of this sketch.

        Unlike rank-error sketches, DDSketch bounds the error relative to the
        estimated value itself, uniformly across quantiles. Values in the zero
        bucket are reported as 0.0 and carry no relative guarantee.

        Returns:
            A dictionary with the accuracy model and its parameters.
        """
        if self.is_empty:
            return {"state": "empty"}

        return {
            "accuracy_model": "relative (uniform across quantiles)",
            "relative_accuracy": self._error_factor,
            "gamma": self._gamma,
            "zero_threshold": self.ZERO_THRESHOLD,
            "notes": [
                "|estimate - q| <= error_factor * |q| for every quantile q",
                "Magnitudes below the zero threshold are estimated as 0.0",
            ],
        }

    def get_stats(self) -> Dict[str, Any]:
        """
        Get detailed statistics about the current state of the sketch.

        Returns:
            A dictionary with parameters, bucket usage, extremes, selected
            quantile estimates and the error bounds.
        """
        stats = super().get_stats()

        stats.update(
            {
                "error_factor": self._error_factor,
                "gamma": self._gamma,
                "num_positive_buckets": len(self._positive),
                "num_negative_buckets": len(self._negative),
                "num_buckets": len(self._positive) + len(self._negative),
                "zero_count": self._zero_count,
            }
        )

        if not self.is_empty:
            stats["min_value"] = self._min_val
            stats["max_value"] = self._max_val
            stats["bytes_per_item"] = self.estimate_size() / self._items_processed

        positive_keys = self._positive.keys()
        if positive_keys:
            stats["positive_index_range"] = (positive_keys[0], positive_keys[-1])
        negative_keys = self._negative.keys()
        if negative_keys:
            stats["negative_index_range"] = (negative_keys[0], negative_keys[-1])

        return stats

    def analyze_quantile_accuracy(
        self, reference_data: Optional[Sequence[float]] = None
    ) -> Dict[str, Any]:
        """
        Analyze the accuracy of quantile estimates against reference data.

        Args:
            reference_data: Optional values to compare against, normally the
                same values that were added to the sketch. If None or empty,
                only the theoretical bound is reported.

        Returns:
            A dictionary containing accuracy analysis information.

        Raises:
            EmptySketchError: If reference data is given but the sketch is empty.
        """
        analysis: Dict[str, Any] = {
            "algorithm": "DDSketch",
            "error_factor": self._error_factor,
            "num_buckets": len(self._positive) + len(self._negative),
            "items_processed": self._items_processed,
        }

        if not reference_data:
            analysis["theoretical_relative_error"] = self._error_factor
            return analysis

        quantiles = [0.01, 0.05, 0.1, 0.25, 0.5, 0.75, 0.9, 0.95, 0.99]
        sorted_data = sorted(reference_data)

        exact_quantiles = {}
        estimates = {}
        abs_errors = {}
        rel_errors = {}
        within_bound = {}

        for q in quantiles:
            q_key = f"q{q:.2f}"
            exact = _exact_from_sorted(sorted_data, q)
            estimate = self.get_quantile(q)

            exact_quantiles[q_key] = exact
            estimates[q_key] = estimate
            abs_errors[q_key] = abs(estimate - exact)
            within_bound[q_key] = abs_errors[q_key] <= self._error_factor * abs(exact)

            # Relative error is undefined at zero
            if abs(exact) > 1e-10:
                rel_errors[q_key] = abs_errors[q_key] / abs(exact)
            else:
                rel_errors[q_key] = abs_errors[q_key]

        analysis.update(
            {
                "reference_data_size": len(sorted_data),
                "exact_quantiles": exact_quantiles,
                "ddsketch_estimates": estimates,
                "absolute_errors": abs_errors,
                "relative_errors": rel_errors,
                "within_bound": within_bound,
                "all_within_bound": all(within_bound.values()),
                "max_relative_error": max(rel_errors.values()),
                "avg_relative_error": sum(rel_errors.values()) / len(rel_errors),
            }
        )
        return analysis
