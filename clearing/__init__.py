"""Core domain layer for the auction clearing engine.

This package provides the bid and allocation models, the bid
validator, the uniform-clearing-price engine, and result summaries.
All models are Pydantic-based with frozen configuration for
immutability. Nothing in this package performs I/O.
"""

from clearing.engine import ClearingConfig, calculate_clearing_price, sort_bids
from clearing.models import (
    Allocation,
    AllocationType,
    Bid,
    BidStep,
    CalculationDetails,
    ClearingLogic,
    ClearingResult,
)
from clearing.summary import AuctionSummary, render_summary, summarize
from clearing.validator import BidValidationResult, validate_bids

__all__: list[str] = [
    "Allocation",
    "AllocationType",
    "AuctionSummary",
    "Bid",
    "BidStep",
    "BidValidationResult",
    "CalculationDetails",
    "ClearingConfig",
    "ClearingLogic",
    "ClearingResult",
    "calculate_clearing_price",
    "render_summary",
    "sort_bids",
    "summarize",
    "validate_bids",
]
