"""Domain models for uniform-clearing-price auction runs.

This module defines the input and output records of the clearing
engine. All models are Pydantic-based with ``frozen=True`` for
immutability, so a single ``ClearingResult`` can be handed to several
collaborators (persistence, notification, reporting) without copying.

Validated vs. unvalidated construction:
    Regular ``Bid(...)`` construction enforces every field constraint
    and is the right choice for trusted callers and tests. The storage
    row parser in :mod:`infra.records` uses ``Bid.model_construct()``
    instead, so that malformed rows reach :func:`clearing.validator.validate_bids`
    and every problem in a batch is reported in one pass.

Money convention:
    Prices and amounts are ``decimal.Decimal``. ``total_amount`` is
    always ``allocated_quantity * clearing_price`` computed exactly,
    with no binary floating point involved.

Example:
    >>> from datetime import datetime, timezone
    >>> from decimal import Decimal
    >>> bid = Bid(
    ...     id="bid-1",
    ...     bidder_id="bidder-a",
    ...     bidder_email="a@example.com",
    ...     quantity=500,
    ...     max_price="120",
    ...     bid_time=datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc),
    ... )
    >>> bid.max_price
    Decimal('120')
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class AllocationType(str, Enum):
    """How a single bid was served by a clearing run.

    Attributes:
        FULL: The bid received its whole quantity (subject only to the
            final supply clamp).
        PRO_RATA: The bid sat at an oversubscribed clearing price and
            received a floored fraction of its quantity.
        REJECTED: The bid received nothing.
    """

    FULL = "full"
    PRO_RATA = "pro_rata"
    REJECTED = "rejected"


class ClearingLogic(str, Enum):
    """Classification of how the clearing price was reached.

    Attributes:
        FULL_ALLOCATION: Accumulated demand hit supply exactly at the
            clearing bid, or no excess had to be rationed.
        PRO_RATA_AT_CLEARING_PRICE: The clearing bid pushed demand past
            supply, so bids at the clearing price are rationed.
        UNDERSUBSCRIBED: Total demand never reached supply.
    """

    FULL_ALLOCATION = "full_allocation"
    PRO_RATA_AT_CLEARING_PRICE = "pro_rata_at_clearing_price"
    UNDERSUBSCRIBED = "undersubscribed"


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------


class Bid(BaseModel):
    """A sealed bid for shares in a modified Dutch auction.

    ``max_price`` is a ceiling: winning bidders pay the uniform
    clearing price, which is never above their own ``max_price``.
    ``bid_time`` only breaks ties between bids at the same price.

    Attributes:
        id: Unique bid identifier. Non-empty.
        bidder_id: Identifier of the submitting party. Non-empty.
        bidder_email: Contact address, used for report labels only.
        quantity: Number of shares requested. Greater than zero.
        max_price: Highest acceptable unit price. Greater than zero.
        bid_time: Submission instant. Naive values are treated as UTC
            when ordering.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(min_length=1, description="Unique bid identifier")
    bidder_id: str = Field(min_length=1, description="Submitting party")
    bidder_email: str = Field(
        min_length=1,
        description="Bidder contact address (labels only, never ordering)",
    )
    quantity: int = Field(gt=0, description="Shares requested")
    max_price: Decimal = Field(
        gt=0,
        description="Highest unit price the bidder accepts",
    )
    bid_time: datetime = Field(description="Submission instant (tie-break)")


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


class Allocation(BaseModel):
    """Outcome of a clearing run for one bid.

    There is exactly one ``Allocation`` per input bid.
    ``pro_rata_percentage`` is ``None`` unless ``allocation_type`` is
    :attr:`AllocationType.PRO_RATA`. It is the rounded, reported
    fraction; ``allocated_quantity`` is floored from the exact fraction
    ``available_at_price / marginal_quantity`` in
    :class:`CalculationDetails`, so re-deriving it from the rounded
    value can come out one share low.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    bid_id: str
    bidder_id: str
    bidder_email: str
    original_quantity: int = Field(ge=0)
    allocated_quantity: int = Field(ge=0)
    clearing_price: Decimal = Field(ge=0)
    total_amount: Decimal = Field(ge=0)
    allocation_type: AllocationType
    pro_rata_percentage: Decimal | None = Field(default=None, ge=0, le=1)


class BidStep(BaseModel):
    """Snapshot of the demand walk after adding one bid.

    Attributes:
        step: 1-based position in priority order.
        running_demand_before: Demand accumulated before this bid.
        running_demand_after: Demand accumulated including this bid.
        is_clearing_price: ``True`` for the bid that set the price.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    step: int = Field(ge=1)
    bid_id: str
    bidder_email: str
    max_price: Decimal
    quantity: int
    running_demand_before: int = Field(ge=0)
    running_demand_after: int = Field(ge=0)
    is_clearing_price: bool = False


class CalculationDetails(BaseModel):
    """Audit trail of a clearing run.

    Attributes:
        pro_rata_percentage: Rounded fraction for display.
        available_at_price: Supply left for the clearing bid
            (``total_supply - running_demand_before``). Set only when
            pro-rata is applied.
        marginal_quantity: Quantity of the clearing bid. Each bid at
            the clearing price receives
            ``quantity * available_at_price // marginal_quantity``,
            capped at the supply still unallocated.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    total_bids: int = Field(ge=0)
    clearing_logic: ClearingLogic
    bid_steps: tuple[BidStep, ...] = ()
    pro_rata_percentage: Decimal | None = Field(default=None, ge=0, le=1)
    available_at_price: int | None = Field(default=None, ge=0)
    marginal_quantity: int | None = Field(default=None, gt=0)


class ClearingResult(BaseModel):
    """Complete output of one clearing run.

    Invariant:
        ``shares_allocated + shares_remaining == total_supply``.

    Attributes:
        clearing_price: Uniform unit price paid by every winner.
        total_demand: Demand accumulated while locating the clearing
            price. Smaller than the sum of all quantities when the walk
            stopped early.
        shares_allocated: Sum of ``allocated_quantity``.
        shares_remaining: Supply left unallocated, including the
            residual lost to pro-rata flooring.
        pro_rata_applied: ``True`` if bids at the clearing price were
            rationed.
        allocations: One entry per input bid, in priority order.
        calculation_details: Demand-walk audit trail.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    clearing_price: Decimal = Field(ge=0)
    total_demand: int = Field(ge=0)
    shares_allocated: int = Field(ge=0)
    shares_remaining: int = Field(ge=0)
    pro_rata_applied: bool
    allocations: tuple[Allocation, ...] = ()
    calculation_details: CalculationDetails
