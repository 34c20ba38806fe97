"""
Unit tests for DDSketch benchmarking hooks.
"""

import random
import unittest

from tiny_ddsketch.algorithms.ddsketch import DDSketch


class TestDDSketchBenchmarking(unittest.TestCase):
    """Test cases for DDSketch benchmarking hooks."""

    def test_get_stats_empty(self):
        """Test getting stats for an empty DDSketch."""
        sketch = DDSketch(0.01)

        stats = sketch.get_stats()

        self.assertEqual(stats["type"], "DDSketch")
        self.assertEqual(stats["items_processed"], 0)
        self.assertEqual(stats["error_factor"], 0.01)
        self.assertEqual(stats["num_buckets"], 0)
        self.assertEqual(stats["zero_count"], 0)
        self.assertEqual(stats["state"], "empty")

        # Empty sketch has no extremes or quantiles
        self.assertNotIn("min_value", stats)
        self.assertNotIn("max_value", stats)
        self.assertNotIn("p50", stats)
        self.assertNotIn("positive_index_range", stats)

    def test_get_stats_with_data(self):
        """Test getting stats for a DDSketch with data."""
        sketch = DDSketch(0.01)
        for i in range(-500, 1000):
            sketch.update(i)

        stats = sketch.get_stats()

        self.assertEqual(stats["items_processed"], 1500)
        self.assertAlmostEqual(stats["gamma"], 1.01 / 0.99)
        self.assertEqual(stats["zero_count"], 1)
        self.assertGreater(stats["num_positive_buckets"], 0)
        self.assertGreater(stats["num_negative_buckets"], 0)
        self.assertEqual(
            stats["num_buckets"],
            stats["num_positive_buckets"] + stats["num_negative_buckets"],
        )

        self.assertEqual(stats["min_value"], -500)
        self.assertEqual(stats["max_value"], 999)
        self.assertGreater(stats["bytes_per_item"], 0)

        low, high = stats["positive_index_range"]
        self.assertEqual(low, 0)
        self.assertLessEqual(low, high)
        self.assertIn("negative_index_range", stats)

        # Summary quantiles
        for key in ("p50", "p90", "p99"):
            self.assertIn(key, stats)
        self.assertEqual(stats["p90"], sketch.get_quantile(0.9))

        # Error bounds are folded in
        self.assertEqual(stats["relative_accuracy"], 0.01)

    def test_error_bounds(self):
        """Test error bound reporting."""
        sketch = DDSketch(0.02)

        self.assertEqual(sketch.error_bounds(), {"state": "empty"})

        sketch.update(42.0)
        bounds = sketch.error_bounds()

        self.assertEqual(bounds["accuracy_model"], "relative (uniform across quantiles)")
        self.assertEqual(bounds["relative_accuracy"], 0.02)
        self.assertAlmostEqual(bounds["gamma"], 1.02 / 0.98)
        self.assertEqual(bounds["zero_threshold"], 1.0)
        self.assertIsInstance(bounds["notes"], list)

    def test_estimate_size_grows_with_buckets(self):
        """Memory grows with the range of magnitudes, not the value count."""
        sketch = DDSketch(0.01)
        empty_size = sketch.estimate_size()
        self.assertGreater(empty_size, 0)

        for _ in range(1000):
            sketch.update(10.0)
        one_bucket_size = sketch.estimate_size()

        for exponent in range(1, 8):
            sketch.update(10.0**exponent)
        many_bucket_size = sketch.estimate_size()

        self.assertGreater(many_bucket_size, one_bucket_size)
        self.assertLess(one_bucket_size - empty_size, 1000)

    def test_check_memory_limit(self):
        """Test the advisory memory limit."""
        unlimited = DDSketch()
        self.assertTrue(unlimited.check_memory_limit())

        tiny = DDSketch(memory_limit_bytes=1)
        self.assertFalse(tiny.check_memory_limit())

        roomy = DDSketch(memory_limit_bytes=10**9)
        roomy.update(5)
        self.assertTrue(roomy.check_memory_limit())

        stats = roomy.get_stats()
        self.assertEqual(stats["memory_limit_bytes"], 10**9)
        self.assertGreater(stats["memory_usage_pct"], 0)
        self.assertLess(stats["memory_usage_pct"], 100)

    def test_performance_tracking(self):
        """Test per-update timing."""
        sketch = DDSketch()

        # No timings without tracking
        sketch.update(1.0)
        self.assertNotIn("avg_update_time_ns", sketch.get_performance_stats())

        sketch.enable_performance_tracking(max_history=5)
        for i in range(10):
            sketch.update(float(i + 2))

        perf = sketch.get_performance_stats()
        self.assertEqual(perf["items_processed"], 11)
        self.assertIn("avg_update_time_ns", perf)
        self.assertIn("last_update_time_ns", perf)
        self.assertEqual(len(perf["recent_update_times_ns"]), 5)
        self.assertLessEqual(perf["min_update_time_ns"], perf["max_update_time_ns"])
        self.assertIn("avg_update_time_ns", sketch.get_stats())

        # Non-numeric items are not timed
        sketch.update("abc")
        self.assertEqual(sketch.get_performance_stats()["items_processed"], 11)
        self.assertEqual(len(sketch.get_performance_stats()["recent_update_times_ns"]), 5)

        # NaN is counted and timed
        sketch.update(float("nan"))
        self.assertEqual(sketch.get_performance_stats()["items_processed"], 12)

        sketch.disable_performance_tracking()
        sketch.update(3.0)
        self.assertNotIn("recent_update_times_ns", sketch.get_performance_stats())

    def test_clear_resets_tracking(self):
        """Clearing resets counters and timings."""
        sketch = DDSketch()
        sketch.enable_performance_tracking()
        sketch.update(5.0)
        sketch.clear()

        perf = sketch.get_performance_stats()
        self.assertEqual(perf["items_processed"], 0)
        self.assertNotIn("avg_update_time_ns", perf)
        self.assertNotIn("recent_update_times_ns", perf)

    def test_analyze_quantile_accuracy_no_reference(self):
        """Test accuracy analysis without reference data."""
        sketch = DDSketch(0.01)
        for i in range(1, 1001):
            sketch.update(i)

        analysis = sketch.analyze_quantile_accuracy()

        self.assertEqual(analysis["algorithm"], "DDSketch")
        self.assertEqual(analysis["error_factor"], 0.01)
        self.assertEqual(analysis["items_processed"], 1000)
        self.assertEqual(analysis["theoretical_relative_error"], 0.01)
        self.assertNotIn("relative_errors", analysis)

    def test_analyze_quantile_accuracy_with_reference(self):
        """Test accuracy analysis against the inserted data."""
        random.seed(42)
        data = [random.uniform(10, 10000) for _ in range(10000)]

        sketch = DDSketch(0.01)
        sketch.insert(data)

        analysis = sketch.analyze_quantile_accuracy(data)

        self.assertEqual(analysis["reference_data_size"], 10000)
        for key in ("q0.01", "q0.50", "q0.99"):
            self.assertIn(key, analysis["exact_quantiles"])
            self.assertIn(key, analysis["ddsketch_estimates"])
            self.assertIn(key, analysis["relative_errors"])
            self.assertTrue(analysis["within_bound"][key])

        self.assertTrue(analysis["all_within_bound"])
        self.assertLessEqual(analysis["max_relative_error"], 0.01)
        self.assertLessEqual(analysis["avg_relative_error"], analysis["max_relative_error"])

    def test_analyze_quantile_accuracy_zero_bucket(self):
        """Values below the zero threshold fall outside the relative bound."""
        sketch = DDSketch(0.01)
        data = [0.5] * 100
        sketch.insert(data)

        analysis = sketch.analyze_quantile_accuracy(data)

        self.assertEqual(analysis["ddsketch_estimates"]["q0.50"], 0.0)
        self.assertFalse(analysis["within_bound"]["q0.50"])
        self.assertFalse(analysis["all_within_bound"])

    def test_query_and_len(self):
        """Test the generic query interface and length."""
        sketch = DDSketch()
        sketch.insert([3.0, 30.0, 300.0])
        self.assertEqual(len(sketch), 3)
        self.assertEqual(sketch.query(0.5), sketch.get_quantile(0.5))
        self.assertIn("DDSketch(error_factor=0.001, count=3", repr(sketch))


if __name__ == "__main__":
    unittest.main()
