"""Example: Clear a modified Dutch auction end to end.

This script demonstrates the full pipeline:

    bid rows → parse_bid_rows → validate_bids → calculate_clearing_price
                                                      ↓
                                   clearing_record / allocation_rows → on_cleared

By default it clears the reference auction (1,000 shares, four bids)
whose expected outcome is a $120.00 clearing price with the $120 bid
rationed to 80%. A JSON file of bid rows can be supplied instead.

Usage:
    python -m examples.example_clearing
    python -m examples.example_clearing --bids-file bids.json --total-supply 5000

Bid rows file format (a JSON list)::

    [{"id": "bid-1", "bidder_id": "bidder-a",
      "bidder_email": "a@example.com", "quantity_requested": 500,
      "max_price": "120.00", "bid_time": "2024-01-01T10:00:00Z",
      "bid_status": "active"}]
"""

import argparse
import json
import logging
from pathlib import Path
from typing import Any

from clearing.summary import render_summary
from infra.clearing_job import ClearingJob, ClearingOutcome

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger: logging.Logger = logging.getLogger(__name__)

REFERENCE_ROWS: list[dict[str, Any]] = [
    {
        "id": "bid-1",
        "bidder_id": "bidder-a",
        "bidder_email": "bidder.a@example.com",
        "quantity_requested": 500,
        "max_price": "120.00",
        "bid_time": "2024-01-01T10:00:00Z",
        "bid_status": "active",
    },
    {
        "id": "bid-2",
        "bidder_id": "bidder-b",
        "bidder_email": "bidder.b@example.com",
        "quantity_requested": 200,
        "max_price": "140.00",
        "bid_time": "2024-01-01T10:01:00Z",
        "bid_status": "active",
    },
    {
        "id": "bid-3",
        "bidder_id": "bidder-c",
        "bidder_email": "bidder.c@example.com",
        "quantity_requested": 300,
        "max_price": "100.00",
        "bid_time": "2024-01-01T10:02:00Z",
        "bid_status": "active",
    },
    {
        "id": "bid-4",
        "bidder_id": "bidder-d",
        "bidder_email": "bidder.d@example.com",
        "quantity_requested": 400,
        "max_price": "130.00",
        "bid_time": "2024-01-01T10:03:00Z",
        "bid_status": "active",
    },
]


def main() -> None:
    """Clear the reference auction (or a bids file) and log the report."""
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Clear a modified Dutch auction and print the report",
    )
    parser.add_argument(
        "--bids-file",
        type=Path,
        default=None,
        help="JSON file with a list of bid rows (default: reference auction)",
    )
    parser.add_argument(
        "--total-supply",
        type=int,
        default=1_000,
        help="Shares on offer (default: 1000)",
    )
    parser.add_argument(
        "--auction-id",
        type=str,
        default="reference-auction",
        help="Auction identifier used in persistence rows",
    )
    args: argparse.Namespace = parser.parse_args()

    rows: list[dict[str, Any]] = REFERENCE_ROWS
    if args.bids_file is not None:
        rows = json.loads(args.bids_file.read_text(encoding="utf-8"))
        logger.info("Loaded %d bid row(s) from %s", len(rows), args.bids_file)

    persisted: list[ClearingOutcome] = []
    job: ClearingJob = ClearingJob(on_cleared=persisted.append)

    try:
        outcome: ClearingOutcome = job.run(
            auction_id=args.auction_id,
            rows=rows,
            total_supply=args.total_supply,
        )
    except ValueError as exc:
        logger.error("Cannot clear auction: %s", exc)
        return

    if not outcome.cleared:
        logger.error("Bid validation failed:")
        for error in outcome.validation.errors:
            logger.error("  %s", error)
        return

    assert outcome.result is not None
    print(render_summary(outcome.result, args.total_supply))

    logger.info("=" * 50)
    logger.info("Persistence rows handed off: %d", len(persisted))
    logger.info("Summary row: %s", outcome.clearing_record)
    for row in outcome.allocation_rows:
        logger.info("Allocation row: %s", row)
    logger.info("Job stats: %s", job.stats())
    logger.info("=" * 50)


if __name__ == "__main__":
    main()
