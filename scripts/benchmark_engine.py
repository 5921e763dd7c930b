"""Engine benchmark: measures ``calculate_clearing_price`` latency.

Clears the same synthetic bid book repeatedly and reports per-call
latency and clears per second. The engine is O(n log n) in the number
of bids, dominated by the priority sort.

Usage:
    python -m scripts.benchmark_engine
    python -m scripts.benchmark_engine --num-bids 10000
    python -m scripts.benchmark_engine --total-supply 250000 --price-levels 5

Output:
    JSON-formatted :class:`ClearingTimings` to stdout.
    Progress to stderr.
"""

import argparse
import logging
import sys
import time

from clearing.engine import calculate_clearing_price
from clearing.models import Bid
from scripts.benchmark_utils import (
    BenchmarkConfig,
    ClearingTimings,
    build_synthetic_bids,
    summarize_timings,
)


def run_engine_benchmark(config: BenchmarkConfig) -> ClearingTimings:
    """Time ``config.num_iterations`` clearing calls on one synthetic book.

    Warmup calls are executed but left out of the timings.
    """
    bids: list[Bid] = build_synthetic_bids(
        count=config.num_bids,
        seed=config.seed,
        price_levels=config.price_levels,
    )

    latencies_ns: list[int] = []
    for i in range(config.num_iterations):
        t0: int = time.perf_counter_ns()
        calculate_clearing_price(bids, config.total_supply)
        elapsed: int = time.perf_counter_ns() - t0
        if i >= config.warmup_count:
            latencies_ns.append(elapsed)

    return summarize_timings(latencies_ns, num_bids=config.num_bids)


def main() -> None:
    """Run the engine benchmark and print the timings as JSON."""
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Latency benchmark for the clearing engine",
    )
    parser.add_argument("--num-bids", type=int, default=1_000)
    parser.add_argument("--total-supply", type=int, default=100_000)
    parser.add_argument("--iterations", type=int, default=200)
    parser.add_argument("--warmup", type=int, default=20)
    parser.add_argument("--price-levels", type=int, default=20)
    parser.add_argument("--seed", type=int, default=42)
    args: argparse.Namespace = parser.parse_args()

    # Engine INFO logs on every call would dominate the measurement
    logging.basicConfig(level=logging.WARNING)

    config: BenchmarkConfig = BenchmarkConfig(
        num_bids=args.num_bids,
        total_supply=args.total_supply,
        num_iterations=args.iterations,
        warmup_count=args.warmup,
        price_levels=args.price_levels,
        seed=args.seed,
    )
    print(
        f"Clearing {config.num_bids} bids against {config.total_supply} "
        f"shares, {config.num_iterations} calls "
        f"(warmup={config.warmup_count})...",
        file=sys.stderr,
    )

    timings: ClearingTimings = run_engine_benchmark(config)
    print(
        f"  P50={timings.p50_us:.1f}us P99={timings.p99_us:.1f}us "
        f"throughput={timings.clears_per_sec:,.0f}/s",
        file=sys.stderr,
    )
    print(timings.model_dump_json(indent=2))


if __name__ == "__main__":
    main()
