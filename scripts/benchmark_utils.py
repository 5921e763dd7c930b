"""Helpers for timing the clearing engine.

Used by ``scripts/benchmark_engine.py``. Provides a seeded synthetic
bid book and a reduction of per-call timings into a
:class:`ClearingTimings` report.

The synthetic book uses a small number of price levels and groups
bids three to a second, so equal-price and equal-time ties (and
therefore pro-rata rationing) show up in every run.

Example:
    >>> bids = build_synthetic_bids(count=100, seed=7)
    >>> len(bids)
    100
    >>> summarize_timings([1000, 2000, 3000], num_bids=100).p50_us
    2.0
"""

import random
import statistics
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from clearing.models import Bid

_BOOK_START: datetime = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)
_PRICE_FLOOR: Decimal = Decimal("10.00")
_PRICE_SPAN: Decimal = Decimal("190.00")


class BenchmarkConfig(BaseModel):
    """Configuration for one engine benchmark run.

    Attributes:
        num_bids: Bids in the synthetic book.
        total_supply: Shares on offer per clearing call.
        num_iterations: Clearing calls, warmup included.
        warmup_count: Leading calls left out of the timings.
        price_levels: Distinct prices in the book.
        seed: Seed for the book generator.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    num_bids: int = Field(default=1_000, gt=0)
    total_supply: int = Field(default=100_000, gt=0)
    num_iterations: int = Field(default=200, gt=0)
    warmup_count: int = Field(default=20, ge=0)
    price_levels: int = Field(default=20, gt=0)
    seed: int = 42

    @model_validator(mode="after")
    def validate_warmup_less_than_iterations(self) -> "BenchmarkConfig":
        """At least one call must remain after warmup."""
        if self.warmup_count >= self.num_iterations:
            raise ValueError(
                f"warmup_count ({self.warmup_count}) must be less than "
                f"num_iterations ({self.num_iterations})"
            )
        return self


class ClearingTimings(BaseModel):
    """Per-call latency of ``calculate_clearing_price`` on one book."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    num_bids: int = Field(gt=0)
    num_measured: int = Field(gt=0)
    p50_us: float = Field(ge=0.0)
    p99_us: float = Field(ge=0.0)
    max_us: float = Field(ge=0.0)
    mean_us: float = Field(ge=0.0)
    clears_per_sec: float = Field(gt=0.0)


def summarize_timings(latencies_ns: list[int], num_bids: int) -> ClearingTimings:
    """Reduce per-call nanosecond timings to a :class:`ClearingTimings`.

    Percentiles use ``statistics.quantiles`` with the inclusive
    (linear interpolation) method.

    Raises:
        ValueError: If latencies_ns is empty.
    """
    if not latencies_ns:
        raise ValueError("latencies_ns must not be empty")

    micros: list[float] = [ns / 1_000 for ns in latencies_ns]
    if len(micros) == 1:
        p50 = p99 = micros[0]
    else:
        cuts: list[float] = statistics.quantiles(micros, n=100, method="inclusive")
        p50, p99 = cuts[49], cuts[98]

    total_us: float = sum(micros)
    return ClearingTimings(
        num_bids=num_bids,
        num_measured=len(micros),
        p50_us=p50,
        p99_us=p99,
        max_us=max(micros),
        mean_us=total_us / len(micros),
        # A coarse clock can report zero for very small books
        clears_per_sec=len(micros) / max(total_us, 1e-3) * 1e6,
    )


def build_synthetic_bids(
    count: int,
    seed: int = 42,
    price_levels: int = 20,
) -> list[Bid]:
    """Generate a reproducible bid book.

    Prices are drawn from ``price_levels`` points in [$10.00, $200.00),
    quantities from 1 to 1,000 shares.

    Raises:
        ValueError: If count or price_levels is not greater than zero.
    """
    if count <= 0:
        raise ValueError(f"count must be > 0, got {count}")
    if price_levels <= 0:
        raise ValueError(f"price_levels must be > 0, got {price_levels}")

    rng: random.Random = random.Random(seed)
    step: Decimal = _PRICE_SPAN / price_levels
    prices: list[Decimal] = [
        (_PRICE_FLOOR + step * level).quantize(Decimal("0.01"))
        for level in range(price_levels)
    ]

    return [
        Bid(
            id=f"bid-{i:06d}",
            bidder_id=f"bidder-{rng.randrange(count):06d}",
            bidder_email=f"bidder{i}@example.com",
            quantity=rng.randint(1, 1_000),
            max_price=rng.choice(prices),
            bid_time=_BOOK_START + timedelta(seconds=i // 3),
        )
        for i in range(count)
    ]
