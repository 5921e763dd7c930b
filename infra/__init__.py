"""Infrastructure layer for the auction clearing engine.

This package provides the storage-row boundary (bid row parsing and
persistence row building) and the clearing job that runs the
validate, clear and hand-off sequence for one auction.
"""

from infra.clearing_job import ClearingJob, ClearingJobConfig, ClearingOutcome
from infra.records import (
    BidRowConfig,
    allocation_rows,
    clearing_record,
    parse_bid_rows,
)

__all__: list[str] = [
    "BidRowConfig",
    "ClearingJob",
    "ClearingJobConfig",
    "ClearingOutcome",
    "allocation_rows",
    "clearing_record",
    "parse_bid_rows",
]
