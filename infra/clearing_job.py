"""One-shot clearing job: rows in, persistence rows out.

``ClearingJob`` runs the call sequence every collaborator of the engine
follows: parse bid rows, validate the whole batch, abort on any error,
clear, build the persistence rows, and hand them to an ``on_cleared``
callback (typically a repository insert).

Error isolation:
    Validation failures and callback failures are counted separately.
    A batch that fails validation never reaches the engine or the
    callback. A callback that raises is logged with its stack trace and
    counted in ``callback_errors``; the outcome is still returned to the
    caller so it can decide whether to retry persistence.

Exactly-once clearing is NOT enforced here. The owning storage layer
guarantees it with a uniqueness constraint on ``auction_id``.

Thread ownership:
    - ``run()``: any thread; counters are updated under a lock.
    - ``stats()``: any thread (lock-protected read snapshot).

Example:
    >>> saved = []
    >>> job = ClearingJob(on_cleared=saved.append)
    >>> outcome = job.run("auction-1", rows, total_supply=1000)
    >>> outcome.cleared
    True
    >>> job.stats()["auctions_cleared"]
    1
"""

import logging
import threading
from collections.abc import Iterable, Mapping
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field

from clearing.engine import ClearingConfig, calculate_clearing_price
from clearing.models import Bid, ClearingResult
from clearing.validator import BidValidationResult, validate_bids
from infra.records import (
    BidRowConfig,
    allocation_rows,
    clearing_record,
    parse_bid_rows,
)

logger: logging.Logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ClearingJobConfig(BaseModel):
    """Configuration for :class:`ClearingJob`.

    Attributes:
        rows: Column mapping for bid rows.
        clearing: Engine configuration.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    rows: BidRowConfig = Field(default_factory=BidRowConfig)
    clearing: ClearingConfig = Field(default_factory=ClearingConfig)


# ---------------------------------------------------------------------------
# Outcome
# ---------------------------------------------------------------------------


class ClearingOutcome(BaseModel):
    """Result of one :meth:`ClearingJob.run` call.

    When validation fails, ``result`` and ``clearing_record`` are
    ``None`` and ``allocation_rows`` is empty.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    auction_id: str = Field(min_length=1)
    validation: BidValidationResult
    result: ClearingResult | None = None
    clearing_record: dict[str, Any] | None = None
    allocation_rows: tuple[dict[str, Any], ...] = ()

    @property
    def cleared(self) -> bool:
        """``True`` if the batch passed validation and was cleared."""
        return self.result is not None


ClearedCallback = Callable[[ClearingOutcome], None]
"""Callback signature for persistence: ``(outcome) -> None``."""


# ---------------------------------------------------------------------------
# Job
# ---------------------------------------------------------------------------


class ClearingJob:
    """Validate, clear and hand off one auction's bids at a time.

    Args:
        on_cleared: Invoked with each successfully cleared outcome.
        config: Job configuration. Defaults to ``ClearingJobConfig()``.
    """

    def __init__(
        self,
        on_cleared: ClearedCallback,
        config: ClearingJobConfig | None = None,
    ) -> None:
        self._config: ClearingJobConfig = config or ClearingJobConfig()
        self._on_cleared: ClearedCallback = on_cleared

        self._auctions_cleared: int = 0
        self._validation_failures: int = 0
        self._callback_errors: int = 0
        self._counter_lock: threading.Lock = threading.Lock()

    def run(
        self,
        auction_id: str,
        rows: Iterable[Mapping[str, Any]],
        total_supply: int,
    ) -> ClearingOutcome:
        """Clear one auction from its bid rows.

        Args:
            auction_id: Identifier of the auction being cleared.
            rows: Bid rows from storage.
            total_supply: Shares on offer.

        Returns:
            :class:`ClearingOutcome`. Check ``outcome.cleared`` and
            ``outcome.validation.errors``.

        Raises:
            ValueError: If ``total_supply`` is not a positive ``int``.
        """
        bids: list[Bid] = parse_bid_rows(rows, config=self._config.rows)
        validation: BidValidationResult = validate_bids(bids)

        if not validation.is_valid:
            with self._counter_lock:
                self._validation_failures += 1
            logger.error(
                "Aborting clearing for auction %s: %d invalid bid field(s)",
                auction_id,
                len(validation.errors),
            )
            return ClearingOutcome(auction_id=auction_id, validation=validation)

        result: ClearingResult = calculate_clearing_price(
            bids,
            total_supply,
            config=self._config.clearing,
        )
        outcome: ClearingOutcome = ClearingOutcome(
            auction_id=auction_id,
            validation=validation,
            result=result,
            clearing_record=clearing_record(auction_id, result),
            allocation_rows=tuple(allocation_rows(auction_id, result)),
        )

        try:
            self._on_cleared(outcome)
        except Exception:
            with self._counter_lock:
                self._callback_errors += 1
            logger.exception(
                "on_cleared callback failed for auction %s",
                auction_id,
            )
            return outcome

        with self._counter_lock:
            self._auctions_cleared += 1
        logger.info(
            "Auction %s cleared at %s with %d allocation(s)",
            auction_id,
            result.clearing_price,
            len(result.allocations),
        )
        return outcome

    def stats(self) -> dict[str, int]:
        """Return job counters. Thread-safe.

        Returns:
            Dictionary with ``auctions_cleared``,
            ``validation_failures`` and ``callback_errors``.
        """
        with self._counter_lock:
            return {
                "auctions_cleared": self._auctions_cleared,
                "validation_failures": self._validation_failures,
                "callback_errors": self._callback_errors,
            }
