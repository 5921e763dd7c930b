"""Structural validation of bid batches.

:func:`validate_bids` is the gate in front of the clearing engine.
It never raises: every problem in the batch is collected into
:class:`BidValidationResult` so an operator sees all of them at once.

The validator is written against bids built with
``Bid.model_construct()`` (see :mod:`infra.records`), whose fields may
hold ``None``, strings or other raw values. Validated ``Bid(...)``
instances always pass.

Batch policy:
    Callers treat ``is_valid=False`` as blocking for the whole batch.
    Dropping individual bad bids and clearing the rest could produce a
    misleading clearing price.
"""

import logging
import math
from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal, InvalidOperation

from pydantic import BaseModel, ConfigDict, Field

from clearing.models import Bid

logger: logging.Logger = logging.getLogger(__name__)


class BidValidationResult(BaseModel):
    """Outcome of :func:`validate_bids`.

    Attributes:
        is_valid: ``True`` if no bid failed any check.
        errors: One message per failed check, in bid order.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    is_valid: bool
    errors: tuple[str, ...] = Field(default=())


def validate_bids(bids: Iterable[Bid]) -> BidValidationResult:
    """Check every bid in a batch and collect all failures.

    Checks per bid: non-empty ``id``, ``bidder_id`` and
    ``bidder_email``; integer ``quantity > 0``; finite
    ``max_price > 0``; ``bid_time`` is a ``datetime``.

    Args:
        bids: Bids to check. Not mutated.

    Returns:
        :class:`BidValidationResult` with ``is_valid`` and the
        collected error messages.

    Example:
        >>> validate_bids([]).is_valid
        True
    """
    errors: list[str] = []
    checked: int = 0
    for position, bid in enumerate(bids):
        errors.extend(_bid_errors(bid, position))
        checked += 1

    if errors:
        logger.warning(
            "Bid validation found %d error(s) in %d bid(s)",
            len(errors),
            checked,
        )
    return BidValidationResult(is_valid=not errors, errors=tuple(errors))


def _bid_errors(bid: Bid, position: int) -> list[str]:
    bid_id: object = getattr(bid, "id", None)
    label: str = (
        str(bid_id) if _has_text(bid_id) else f"at position {position}"
    )
    errors: list[str] = []

    if not _has_text(bid_id):
        errors.append(f"Bid {label}: id is required")
    if not _has_text(getattr(bid, "bidder_id", None)):
        errors.append(f"Bid {label}: bidder_id is required")
    if not _has_text(getattr(bid, "bidder_email", None)):
        errors.append(f"Bid {label}: bidder_email is required")

    quantity: object = getattr(bid, "quantity", None)
    if not _is_positive_int(quantity):
        errors.append(
            f"Invalid quantity for bid {label}: must be an integer "
            f"greater than 0 (got {quantity!r})"
        )

    max_price: object = getattr(bid, "max_price", None)
    price: Decimal | None = _as_decimal(max_price)
    if price is None or price <= 0:
        errors.append(
            f"Invalid max price for bid {label}: must be greater than 0 "
            f"(got {max_price!r})"
        )

    if not isinstance(getattr(bid, "bid_time", None), datetime):
        errors.append(f"Invalid bid time for bid {label}")

    return errors


def _has_text(value: object) -> bool:
    return isinstance(value, str) and value.strip() != ""


def _is_positive_int(value: object) -> bool:
    # bool is an int subclass; True is not a share count
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _as_decimal(value: object) -> Decimal | None:
    """Coerce a numeric value to a finite ``Decimal``, or ``None``."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if not isinstance(value, (Decimal, int, float, str)):
        return None
    try:
        number: Decimal = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation:
        return None
    return number if number.is_finite() else None
