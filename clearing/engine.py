"""Uniform-clearing-price engine for modified Dutch auctions.

Given a fixed share supply and a set of sealed ``(quantity, max_price)``
bids, :func:`calculate_clearing_price` finds a single clearing price and
allocates shares so that higher bids are served first, everyone pays the
same price, and bids at an oversubscribed clearing price are rationed
pro-rata with floored quantities.

Algorithm:
    1. Sort bids by ``max_price`` descending, then ``bid_time``
       ascending, then ``id`` ascending. This order is the only source
       of allocation priority.
    2. Walk the sorted bids accumulating demand. The first bid whose
       inclusion brings demand to or past supply is the clearing bid;
       its ``max_price`` is the clearing price. If demand never reaches
       supply the auction is undersubscribed and the lowest bid's price
       clears.
    3. If the clearing bid overshoots supply, the fraction of its
       quantity that still fits becomes the pro-rata percentage.
    4. Every bid is then allocated in priority order: above the price
       in full, at the price in full or pro-rata, below the price
       rejected.

Rounding law:
    Pro-rata quantities are ``floor(quantity * percentage)`` computed
    with exact integer arithmetic, and additionally clamped to the
    supply still unallocated. ``shares_allocated`` therefore never
    exceeds ``total_supply``. The floor residual is left unallocated
    on purpose.

Thread safety:
    Pure function with no shared state. Safe to call concurrently on
    disjoint inputs. Identical inputs in any order produce equal results.

Example:
    >>> from clearing.engine import calculate_clearing_price
    >>> result = calculate_clearing_price(bids, total_supply=1000)
    >>> result.clearing_price
    Decimal('120')
    >>> result.calculation_details.clearing_logic
    <ClearingLogic.PRO_RATA_AT_CLEARING_PRICE: 'pro_rata_at_clearing_price'>
"""

import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

from pydantic import BaseModel, ConfigDict, Field

from clearing.models import (
    Allocation,
    AllocationType,
    Bid,
    BidStep,
    CalculationDetails,
    ClearingLogic,
    ClearingResult,
)

logger: logging.Logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ClearingConfig(BaseModel):
    """Configuration for :func:`calculate_clearing_price`.

    Attributes:
        percentage_places: Decimal places of the *reported*
            ``pro_rata_percentage`` (ROUND_HALF_UP). Allocated
            quantities are always floored from the exact fraction,
            never from the rounded value.

    Example:
        >>> ClearingConfig().percentage_places
        6
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    percentage_places: int = Field(
        default=6,
        ge=0,
        le=28,
        description="Decimal places of the reported pro-rata percentage",
    )


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------


def _as_utc(moment: datetime) -> datetime:
    """Normalize ``moment`` so naive and aware instants compare."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _max_price(bid: Bid) -> Decimal:
    # Unvalidated bids may carry int, float or numeric-string prices
    price: object = bid.max_price
    if isinstance(price, Decimal):
        return price
    return Decimal(str(price))


def priority_key(bid: Bid) -> tuple[Decimal, datetime, str]:
    """Sort key giving allocation priority.

    Higher price first, earlier submission first at equal price, and
    lexicographically smaller ``id`` first for identical submission
    instants.
    """
    return (-_max_price(bid), _as_utc(bid.bid_time), bid.id)


def sort_bids(bids: Sequence[Bid]) -> list[Bid]:
    """Return ``bids`` in allocation priority order (input untouched)."""
    return sorted(bids, key=priority_key)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def calculate_clearing_price(
    bids: Sequence[Bid],
    total_supply: int,
    config: ClearingConfig | None = None,
) -> ClearingResult:
    """Determine the clearing price and allocate supply across bids.

    The engine does not re-validate bids; run
    :func:`clearing.validator.validate_bids` first.

    Args:
        bids: Unordered bids. Not mutated.
        total_supply: Shares on offer. Must be an ``int`` greater
            than zero.
        config: Engine configuration. Defaults to ``ClearingConfig()``.

    Returns:
        Frozen :class:`ClearingResult` with one allocation per bid,
        in priority order.

    Raises:
        ValueError: If ``total_supply`` is not a positive ``int``.
    """
    if (
        isinstance(total_supply, bool)
        or not isinstance(total_supply, int)
        or total_supply <= 0
    ):
        raise ValueError(
            f"total_supply must be an int > 0, got {total_supply!r}"
        )
    cfg: ClearingConfig = config or ClearingConfig()

    if not bids:
        logger.info(
            "No bids to clear; %d shares remain unallocated",
            total_supply,
        )
        return ClearingResult(
            clearing_price=Decimal("0"),
            total_demand=0,
            shares_allocated=0,
            shares_remaining=total_supply,
            pro_rata_applied=False,
            allocations=(),
            calculation_details=CalculationDetails(
                total_bids=0,
                clearing_logic=ClearingLogic.UNDERSUBSCRIBED,
            ),
        )

    ordered: list[Bid] = sort_bids(bids)

    # Demand walk
    running_demand: int = 0
    clearing_index: int | None = None
    steps: list[BidStep] = []
    for index, bid in enumerate(ordered):
        demand_before: int = running_demand
        running_demand += bid.quantity
        reached: bool = running_demand >= total_supply
        steps.append(
            BidStep(
                step=index + 1,
                bid_id=bid.id,
                bidder_email=bid.bidder_email,
                max_price=_max_price(bid),
                quantity=bid.quantity,
                running_demand_before=demand_before,
                running_demand_after=running_demand,
                is_clearing_price=reached,
            )
        )
        if reached:
            clearing_index = index
            break

    # Classification
    pro_rata_applied: bool = False
    pro_rata_percentage: Decimal | None = None
    available_at_price: int = 0
    marginal_quantity: int = 1

    if clearing_index is None:
        clearing_logic: ClearingLogic = ClearingLogic.UNDERSUBSCRIBED
        clearing_price: Decimal = _max_price(ordered[-1])
    else:
        clearing_bid: Bid = ordered[clearing_index]
        clearing_price = _max_price(clearing_bid)
        demand_before_clearing: int = running_demand - clearing_bid.quantity
        logger.debug(
            "Clearing bid %s at %s (demand %d -> %d, supply %d)",
            clearing_bid.id,
            clearing_price,
            demand_before_clearing,
            running_demand,
            total_supply,
        )
        if (
            running_demand > total_supply
            and demand_before_clearing < total_supply
        ):
            clearing_logic = ClearingLogic.PRO_RATA_AT_CLEARING_PRICE
            pro_rata_applied = True
            available_at_price = total_supply - demand_before_clearing
            marginal_quantity = clearing_bid.quantity
            pro_rata_percentage = (
                Decimal(available_at_price) / Decimal(marginal_quantity)
            ).quantize(
                Decimal(1).scaleb(-cfg.percentage_places),
                rounding=ROUND_HALF_UP,
            )
        else:
            clearing_logic = ClearingLogic.FULL_ALLOCATION

    # Allocation pass
    shares_allocated: int = 0
    allocations: list[Allocation] = []
    for bid in ordered:
        remaining: int = total_supply - shares_allocated
        allocated: int = 0
        allocation_type: AllocationType = AllocationType.REJECTED
        percentage: Decimal | None = None
        price: Decimal = _max_price(bid)

        if price > clearing_price:
            allocated = min(bid.quantity, remaining)
            allocation_type = AllocationType.FULL
        elif price == clearing_price:
            if pro_rata_applied:
                allocated = (bid.quantity * available_at_price) // marginal_quantity
                if allocated > remaining:
                    logger.warning(
                        "Pro-rata share for bid %s clamped from %d to "
                        "remaining supply %d",
                        bid.id,
                        allocated,
                        remaining,
                    )
                    allocated = remaining
                if allocated > 0:
                    allocation_type = AllocationType.PRO_RATA
                    percentage = pro_rata_percentage
            else:
                allocated = min(bid.quantity, remaining)
                if allocated > 0:
                    allocation_type = AllocationType.FULL

        allocations.append(
            Allocation(
                bid_id=bid.id,
                bidder_id=bid.bidder_id,
                bidder_email=bid.bidder_email,
                original_quantity=bid.quantity,
                allocated_quantity=allocated,
                clearing_price=clearing_price,
                total_amount=allocated * clearing_price,
                allocation_type=allocation_type,
                pro_rata_percentage=percentage,
            )
        )
        shares_allocated += allocated

    logger.info(
        "Cleared %d bid(s) at %s (%s): allocated=%d remaining=%d",
        len(ordered),
        clearing_price,
        clearing_logic.value,
        shares_allocated,
        total_supply - shares_allocated,
    )

    return ClearingResult(
        clearing_price=clearing_price,
        total_demand=running_demand,
        shares_allocated=shares_allocated,
        shares_remaining=total_supply - shares_allocated,
        pro_rata_applied=pro_rata_applied,
        allocations=tuple(allocations),
        calculation_details=CalculationDetails(
            total_bids=len(ordered),
            clearing_logic=clearing_logic,
            bid_steps=tuple(steps),
            pro_rata_percentage=pro_rata_percentage,
            available_at_price=available_at_price if pro_rata_applied else None,
            marginal_quantity=marginal_quantity if pro_rata_applied else None,
        ),
    )
