"""Storage-row boundary for the clearing engine.

The owning application keeps bids in an ``auction_bids`` table and
persists each clearing run as one summary row plus one row per bid
allocation. This module converts between those untyped row dicts and
the frozen models in :mod:`clearing.models`.

Parsing policy:
    :func:`parse_bid_rows` never raises on bad data. Values that cannot
    be coerced (non-numeric price, unparseable timestamp, missing key)
    are passed through as ``None`` or their raw value, and bids are
    built with ``Bid.model_construct()`` so that
    :func:`clearing.validator.validate_bids` can report every problem
    in the batch at once.

Serialization:
    Scalar columns keep native Python types (``Decimal`` for money,
    ``int`` for share counts) for the database driver.
    ``calculation_details`` is a JSON column and is dumped with
    ``model_dump(mode="json")``.

Example:
    >>> rows = [{
    ...     "id": "b1", "bidder_id": "u1", "bidder_email": "u1@example.com",
    ...     "quantity_requested": 100, "max_price": "50.00",
    ...     "bid_time": "2024-01-01T10:00:00Z", "bid_status": "active",
    ... }]
    >>> bids = parse_bid_rows(rows)
    >>> bids[0].max_price
    Decimal('50.00')
"""

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from clearing.models import AllocationType, Bid, ClearingResult

logger: logging.Logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class BidRowConfig(BaseModel):
    """Column mapping for bid rows.

    Attributes:
        quantity_field: Column holding the requested share count.
        status_field: Column holding the bid status. Rows without this
            column are always included.
        active_statuses: Status values that take part in clearing.

    Example:
        >>> BidRowConfig().active_statuses
        ('active',)
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    quantity_field: str = Field(
        default="quantity_requested",
        min_length=1,
        description="Column holding the requested share count",
    )
    status_field: str = Field(
        default="bid_status",
        min_length=1,
        description="Column holding the bid status",
    )
    active_statuses: tuple[str, ...] = Field(
        default=("active",),
        description="Statuses included in clearing",
    )


# ---------------------------------------------------------------------------
# Row -> Bid
# ---------------------------------------------------------------------------


def parse_bid_rows(
    rows: Iterable[Mapping[str, Any]],
    config: BidRowConfig | None = None,
) -> list[Bid]:
    """Build unvalidated :class:`Bid` records from storage rows.

    Rows whose status is not in ``config.active_statuses`` are skipped.

    Args:
        rows: Row mappings as returned by the database client.
        config: Column mapping. Defaults to ``BidRowConfig()``.

    Returns:
        Bids built with ``model_construct()``, in row order. Run
        :func:`clearing.validator.validate_bids` before clearing them.
    """
    cfg: BidRowConfig = config or BidRowConfig()
    bids: list[Bid] = []
    skipped: int = 0

    for row in rows:
        status: object = row.get(cfg.status_field)
        if status is not None and status not in cfg.active_statuses:
            skipped += 1
            continue
        bids.append(
            Bid.model_construct(
                id=_text(row.get("id")),
                bidder_id=_text(row.get("bidder_id")),
                bidder_email=_text(row.get("bidder_email")),
                quantity=_quantity(row.get(cfg.quantity_field)),
                max_price=_price(row.get("max_price")),
                bid_time=_instant(row.get("bid_time")),
            )
        )

    if skipped:
        logger.debug("Skipped %d inactive bid row(s)", skipped)
    logger.info("Parsed %d bid row(s)", len(bids))
    return bids


def _text(value: object) -> str:
    # UUID columns arrive as uuid.UUID from some drivers
    return "" if value is None else str(value)


def _quantity(value: object) -> object:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    # NUMERIC columns arrive as Decimal
    if (
        isinstance(value, Decimal)
        and value.is_finite()
        and value == value.to_integral_value()
    ):
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return value


def _price(value: object) -> object:
    if isinstance(value, Decimal) or isinstance(value, bool):
        return value
    if isinstance(value, (int, float, str)):
        try:
            return Decimal(str(value))
        except InvalidOperation:
            return value
    return value


def _instant(value: object) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    return None


# ---------------------------------------------------------------------------
# ClearingResult -> rows
# ---------------------------------------------------------------------------


def clearing_record(auction_id: str, result: ClearingResult) -> dict[str, Any]:
    """Build the single summary row for a clearing run.

    The owning schema keys this row by ``auction_id`` with a uniqueness
    constraint, which is what prevents an auction being cleared twice.

    Args:
        auction_id: Identifier of the cleared auction.
        result: Engine output.

    Returns:
        Row dict ready for insertion.
    """
    return {
        "auction_id": auction_id,
        "clearing_price": result.clearing_price,
        "total_bids_count": result.calculation_details.total_bids,
        "total_demand": result.total_demand,
        "shares_allocated": result.shares_allocated,
        "shares_remaining": result.shares_remaining,
        "pro_rata_applied": result.pro_rata_applied,
        "calculation_details": result.calculation_details.model_dump(
            mode="json",
        ),
    }


def allocation_rows(
    auction_id: str,
    result: ClearingResult,
) -> list[dict[str, Any]]:
    """Build one row per allocation for a clearing run.

    ``pro_rata_percentage`` is ``None`` unless the allocation type is
    ``pro_rata``.

    Args:
        auction_id: Identifier of the cleared auction.
        result: Engine output.

    Returns:
        Row dicts in the engine's priority order.
    """
    return [
        {
            "auction_id": auction_id,
            "bid_id": a.bid_id,
            "bidder_id": a.bidder_id,
            "bidder_email": a.bidder_email,
            "original_quantity": a.original_quantity,
            "allocated_quantity": a.allocated_quantity,
            "clearing_price": a.clearing_price,
            "total_amount": a.total_amount,
            "allocation_type": a.allocation_type.value,
            "pro_rata_percentage": (
                a.pro_rata_percentage
                if a.allocation_type == AllocationType.PRO_RATA
                else None
            ),
        }
        for a in result.allocations
    ]
