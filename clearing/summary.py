"""Aggregate statistics and text reports for clearing results.

Everything here is a pure derivation from a :class:`ClearingResult`.
:func:`summarize` produces a frozen :class:`AuctionSummary` for UI and
audit consumers; :func:`render_summary` produces the plain-text report
used in operator logs and notification bodies.

Example:
    >>> summary = summarize(result, total_supply=1000)
    >>> summary.total_revenue
    Decimal('120000')
    >>> print(render_summary(result, total_supply=1000))
    === MODIFIED DUTCH AUCTION RESULTS ===
    ...
"""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from clearing.models import (
    Allocation,
    AllocationType,
    ClearingLogic,
    ClearingResult,
)


class AuctionSummary(BaseModel):
    """Reporting view of a clearing run.

    Ratios are fractions (``1.1`` means 110%) and are ``0`` when
    ``total_supply`` is ``0``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    total_supply: int = Field(ge=0)
    total_demand: int = Field(ge=0)
    clearing_price: Decimal = Field(ge=0)
    shares_allocated: int = Field(ge=0)
    shares_remaining: int
    total_revenue: Decimal = Field(ge=0)
    total_bids: int = Field(ge=0)
    successful_bidders: int = Field(ge=0)
    rejected_bidders: int = Field(ge=0)
    demand_ratio: Decimal = Field(ge=0)
    allocation_rate: Decimal = Field(ge=0)
    pro_rata_applied: bool
    pro_rata_percentage: Decimal | None = None
    clearing_logic: ClearingLogic


def successful_allocations(result: ClearingResult) -> list[Allocation]:
    """Allocations that received at least one share."""
    return [a for a in result.allocations if a.allocated_quantity > 0]


def rejected_allocations(result: ClearingResult) -> list[Allocation]:
    """Allocations that received nothing."""
    return [a for a in result.allocations if a.allocated_quantity == 0]


def _ratio(numerator: int, denominator: int) -> Decimal:
    if denominator == 0:
        return Decimal("0")
    return Decimal(numerator) / Decimal(denominator)


def summarize(result: ClearingResult, total_supply: int) -> AuctionSummary:
    """Derive aggregate statistics from a clearing result.

    Args:
        result: Output of :func:`clearing.engine.calculate_clearing_price`.
        total_supply: Supply the run was cleared against.

    Returns:
        Frozen :class:`AuctionSummary`.
    """
    winners: list[Allocation] = successful_allocations(result)
    return AuctionSummary(
        total_supply=total_supply,
        total_demand=result.total_demand,
        clearing_price=result.clearing_price,
        shares_allocated=result.shares_allocated,
        shares_remaining=result.shares_remaining,
        total_revenue=sum((a.total_amount for a in winners), Decimal("0")),
        total_bids=result.calculation_details.total_bids,
        successful_bidders=len(winners),
        rejected_bidders=len(result.allocations) - len(winners),
        demand_ratio=_ratio(result.total_demand, total_supply),
        allocation_rate=_ratio(result.shares_allocated, total_supply),
        pro_rata_applied=result.pro_rata_applied,
        pro_rata_percentage=result.calculation_details.pro_rata_percentage,
        clearing_logic=result.calculation_details.clearing_logic,
    )


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def format_currency(amount: Decimal | int | float) -> str:
    """Format a USD amount with thousands separators and two decimals.

    Example:
        >>> format_currency(Decimal("48000"))
        '$48,000.00'
        >>> format_currency(-3.5)
        '-$3.50'
    """
    value: Decimal = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    sign: str = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"


def format_number(number: int | Decimal) -> str:
    """Format a count with thousands separators (``1,000``)."""
    return f"{number:,}"


def _percent(fraction: Decimal, places: int) -> str:
    return f"{fraction * 100:.{places}f}%"


def render_summary(result: ClearingResult, total_supply: int) -> str:
    """Render a multi-section plain-text report of a clearing run.

    Sections: overview, allocation results, bidder statistics,
    clearing logic, then successful allocations and rejected bids
    when there are any.

    Args:
        result: Output of :func:`clearing.engine.calculate_clearing_price`.
        total_supply: Supply the run was cleared against.

    Returns:
        The report as a single string with ``\\n`` line breaks.
    """
    summary: AuctionSummary = summarize(result, total_supply)
    price: str = format_currency(summary.clearing_price)

    lines: list[str] = [
        "=== MODIFIED DUTCH AUCTION RESULTS ===",
        "",
        "AUCTION OVERVIEW:",
        f"- Total Supply: {format_number(summary.total_supply)} shares",
        f"- Total Demand: {format_number(summary.total_demand)} shares",
        f"- Demand Ratio: {_percent(summary.demand_ratio, 1)}",
        f"- Clearing Price: {price}",
        "",
        "ALLOCATION RESULTS:",
        f"- Shares Allocated: {format_number(summary.shares_allocated)} shares",
        f"- Shares Remaining: {format_number(summary.shares_remaining)} shares",
        f"- Allocation Rate: {_percent(summary.allocation_rate, 1)}",
        f"- Total Revenue: {format_currency(summary.total_revenue)}",
        "",
        "BIDDER STATISTICS:",
        f"- Total Bidders: {summary.total_bids}",
        f"- Successful Bidders: {summary.successful_bidders}",
        f"- Rejected Bidders: {summary.rejected_bidders}",
        f"- Pro-rata Applied: {'Yes' if summary.pro_rata_applied else 'No'}",
    ]
    if summary.pro_rata_applied and summary.pro_rata_percentage is not None:
        lines.append(
            f"- Pro-rata Percentage: {_percent(summary.pro_rata_percentage, 2)}"
        )
    lines += [
        "",
        "CLEARING LOGIC: "
        + summary.clearing_logic.value.replace("_", " ").upper(),
    ]

    winners: list[Allocation] = successful_allocations(result)
    if winners:
        lines += ["", "SUCCESSFUL ALLOCATIONS:"]
        for a in winners:
            marker: str = (
                " (Pro-rata)"
                if a.allocation_type == AllocationType.PRO_RATA
                else ""
            )
            lines.append(
                f"- {a.bidder_email}: {format_number(a.allocated_quantity)} "
                f"shares @ {price} = {format_currency(a.total_amount)}{marker}"
            )

    rejected: list[Allocation] = rejected_allocations(result)
    if rejected:
        lines += ["", "REJECTED BIDS:"]
        for a in rejected:
            lines.append(
                f"- {a.bidder_email}: {format_number(a.original_quantity)} "
                f"shares (not allocated at clearing price of {price})"
            )

    return "\n".join(lines) + "\n"
