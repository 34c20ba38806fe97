"""
Example of using tiny-ddsketch to summarize latency streams.

This example builds one DDSketch per simulated host, merges them into a
global view the way an aggregator would, and compares the estimates with the
exact quantiles of the raw data.
"""

import logging
import random
import time

from tiny_ddsketch import DDSketch, EmptySketchError, exact_quantile


def demonstrate_basic_sketch():
    """Demonstrate quantile estimation on a single latency stream."""
    print("\n=== Basic DDSketch Demo ===")

    sketch = DDSketch(error_factor=0.01)
    rng = random.Random(42)

    # Simulated request latencies in microseconds (log-normal, heavy tail)
    latencies = [rng.lognormvariate(6.0, 1.2) for _ in range(100000)]

    start_time = time.time()
    sketch.insert(latencies)
    elapsed = time.time() - start_time
    print(f"Inserted {sketch.count} latencies in {elapsed:.3f} seconds")

    print("\nQuantile  Estimated      Exact          Rel. error")
    for q in [0.5, 0.9, 0.99, 0.999]:
        estimate = sketch.get_quantile(q)
        exact = exact_quantile(latencies, q)
        print(f"  p{q * 100:<6g} {estimate:12.1f}  {exact:12.1f}  {abs(estimate - exact) / exact:.5f}")

    print(f"\nMinimum: {sketch.minimum:.1f}, maximum: {sketch.maximum:.1f}")
    stats = sketch.get_stats()
    print(f"Buckets in use: {stats['num_buckets']} for {sketch.count} values")
    print(f"Approximate memory usage: {sketch.estimate_size()} bytes")


def demonstrate_distributed_merge():
    """Simulate per-host collectors merged by a central aggregator."""
    print("\n=== Distributed Aggregation Demo ===")

    rng = random.Random(7)
    hosts = {"web-1": 800.0, "web-2": 1200.0, "web-3": 5000.0}
    local_sketches = []
    all_values = []

    for host, median_us in hosts.items():
        sketch = DDSketch(error_factor=0.01)
        values = [rng.gauss(median_us, median_us / 4) for _ in range(20000)]
        sketch.insert(values)
        all_values.extend(values)
        local_sketches.append(sketch)
        print(f"  {host}: {sketch.count} values, p99 = {sketch.get_quantile(0.99):.1f}")

    # Collectors ship their exported state; the aggregator rebuilds and merges
    shipped = [sketch.to_dict() for sketch in local_sketches]
    global_sketch = DDSketch.merge_all(DDSketch.from_dict(state) for state in shipped)

    print(f"\nGlobal sketch: {global_sketch.count} values")
    for q in [0.5, 0.9, 0.99]:
        estimate = global_sketch.get_quantile(q)
        exact = exact_quantile(all_values, q)
        print(f"  p{q * 100:g}: estimated {estimate:.1f}, exact {exact:.1f}")


def demonstrate_error_handling():
    """Show the errors raised on misuse."""
    print("\n=== Error Handling Demo ===")

    try:
        DDSketch(error_factor=0.01).get_quantile(0.5)
    except EmptySketchError as e:
        print(f"  Empty sketch: {e}")

    try:
        DDSketch(error_factor=0.01).merge(DDSketch(error_factor=0.02))
    except ValueError as e:
        print(f"  Incompatible merge: {e}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    demonstrate_basic_sketch()
    demonstrate_distributed_merge()
    demonstrate_error_handling()
