"""Unit tests for infra.clearing_job module.

Tests ClearingJob end to end with a mock ``on_cleared`` callback:
successful clearing, validation aborts, callback error isolation,
precondition errors, stats counters, configuration, and logging.
"""

import threading
from decimal import Decimal
from typing import Any
from unittest.mock import MagicMock, Mock, patch

import pytest
from pydantic import ValidationError

from clearing.engine import ClearingConfig
from infra.clearing_job import ClearingJob, ClearingJobConfig, ClearingOutcome
from infra.records import BidRowConfig


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _rows() -> list[dict[str, Any]]:
    """Reference auction rows (supply 1,000)."""
    table: list[tuple[str, int, str, str]] = [
        ("bid-1", 500, "120.00", "2024-01-01T10:00:00Z"),
        ("bid-2", 200, "140.00", "2024-01-01T10:01:00Z"),
        ("bid-3", 300, "100.00", "2024-01-01T10:02:00Z"),
        ("bid-4", 400, "130.00", "2024-01-01T10:03:00Z"),
    ]
    return [
        {
            "id": bid_id,
            "bidder_id": f"bidder-{bid_id}",
            "bidder_email": f"{bid_id}@example.com",
            "quantity_requested": quantity,
            "max_price": price,
            "bid_time": moment,
            "bid_status": "active",
        }
        for bid_id, quantity, price, moment in table
    ]


def _bad_rows() -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = _rows()
    rows[1]["quantity_requested"] = 0
    rows[2]["max_price"] = "free"
    return rows


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class TestClearingJobConfig:
    """Tests for ClearingJobConfig Pydantic model."""

    def test_defaults(self) -> None:
        """Nested configs default to their own defaults."""
        config: ClearingJobConfig = ClearingJobConfig()
        assert config.rows == BidRowConfig()
        assert config.clearing == ClearingConfig()

    def test_frozen(self) -> None:
        """Frozen config rejects attribute assignment."""
        config: ClearingJobConfig = ClearingJobConfig()
        with pytest.raises(ValidationError):
            config.rows = BidRowConfig()  # type: ignore[misc]


# ---------------------------------------------------------------------------
# Successful Runs
# ---------------------------------------------------------------------------


class TestSuccessfulRun:
    """A valid batch is cleared and handed to the callback."""

    def test_outcome_and_callback(self) -> None:
        """Callback receives the same outcome that run() returns."""
        on_cleared: Mock = Mock()
        job: ClearingJob = ClearingJob(on_cleared=on_cleared)
        outcome: ClearingOutcome = job.run("auction-1", _rows(), 1000)

        assert outcome.cleared is True
        assert outcome.validation.is_valid is True
        assert outcome.result is not None
        assert outcome.result.clearing_price == Decimal("120.00")
        on_cleared.assert_called_once_with(outcome)

    def test_persistence_rows(self) -> None:
        """Outcome carries the summary row and one row per bid."""
        job: ClearingJob = ClearingJob(on_cleared=Mock())
        outcome: ClearingOutcome = job.run("auction-1", _rows(), 1000)

        assert outcome.clearing_record is not None
        assert outcome.clearing_record["auction_id"] == "auction-1"
        assert outcome.clearing_record["shares_allocated"] == 1000
        assert len(outcome.allocation_rows) == 4
        assert outcome.allocation_rows[2]["bid_id"] == "bid-1"
        assert outcome.allocation_rows[2]["allocated_quantity"] == 400

    def test_inactive_rows_excluded(self) -> None:
        """Skipped rows never reach the engine."""
        rows: list[dict[str, Any]] = _rows()
        rows[3]["bid_status"] = "withdrawn"
        job: ClearingJob = ClearingJob(on_cleared=Mock())
        outcome: ClearingOutcome = job.run("auction-1", rows, 1000)
        assert outcome.result is not None
        assert outcome.result.calculation_details.total_bids == 3

    def test_custom_config_applied(self) -> None:
        """Job passes the row mapping and engine config through."""
        rows: list[dict[str, Any]] = _rows()
        for row in rows:
            row["qty"] = row.pop("quantity_requested")
        config: ClearingJobConfig = ClearingJobConfig(
            rows=BidRowConfig(quantity_field="qty"),
            clearing=ClearingConfig(percentage_places=1),
        )
        job: ClearingJob = ClearingJob(on_cleared=Mock(), config=config)
        outcome: ClearingOutcome = job.run("auction-1", rows, 1000)
        assert outcome.result is not None
        assert outcome.result.calculation_details.pro_rata_percentage == (
            Decimal("0.8")
        )

    def test_empty_batch_clears(self) -> None:
        """No bids is a valid (degenerate) auction."""
        on_cleared: Mock = Mock()
        job: ClearingJob = ClearingJob(on_cleared=on_cleared)
        outcome: ClearingOutcome = job.run("auction-1", [], 50)
        assert outcome.cleared is True
        assert outcome.result is not None
        assert outcome.result.shares_remaining == 50
        on_cleared.assert_called_once()


# ---------------------------------------------------------------------------
# Validation Aborts
# ---------------------------------------------------------------------------


class TestValidationAbort:
    """An invalid batch is never cleared."""

    def test_abort_skips_engine_and_callback(self) -> None:
        """Invalid rows abort before clearing; callback not invoked."""
        on_cleared: Mock = Mock()
        job: ClearingJob = ClearingJob(on_cleared=on_cleared)
        with patch("infra.clearing_job.calculate_clearing_price") as mock_clear:
            outcome: ClearingOutcome = job.run("auction-1", _bad_rows(), 1000)

        assert outcome.cleared is False
        assert outcome.result is None
        assert outcome.clearing_record is None
        assert outcome.allocation_rows == ()
        mock_clear.assert_not_called()
        on_cleared.assert_not_called()

    def test_all_errors_reported(self) -> None:
        """Every bad field in the batch appears in the outcome."""
        job: ClearingJob = ClearingJob(on_cleared=Mock())
        outcome: ClearingOutcome = job.run("auction-1", _bad_rows(), 1000)
        assert len(outcome.validation.errors) == 2
        assert outcome.validation.errors[0].startswith(
            "Invalid quantity for bid bid-2"
        )
        assert outcome.validation.errors[1].startswith(
            "Invalid max price for bid bid-3"
        )

    def test_abort_logged_at_error(self) -> None:
        """A validation abort is logged at ERROR."""
        job: ClearingJob = ClearingJob(on_cleared=Mock())
        with patch("infra.clearing_job.logger") as mock_logger:
            job.run("auction-1", _bad_rows(), 1000)
        mock_logger.error.assert_called_once()
        mock_logger.info.assert_not_called()


# ---------------------------------------------------------------------------
# Error Isolation
# ---------------------------------------------------------------------------


class TestErrorIsolation:
    """Callback failures are counted and logged, never propagated."""

    def test_callback_error_isolated(self) -> None:
        """A raising callback does not break run()."""
        job: ClearingJob = ClearingJob(
            on_cleared=Mock(side_effect=RuntimeError("db down")),
        )
        outcome: ClearingOutcome = job.run("auction-1", _rows(), 1000)
        assert outcome.cleared is True
        assert job.stats()["callback_errors"] == 1
        assert job.stats()["auctions_cleared"] == 0

    def test_callback_error_logged_with_traceback(self) -> None:
        """Callback failures use logger.exception."""
        job: ClearingJob = ClearingJob(
            on_cleared=Mock(side_effect=RuntimeError("db down")),
        )
        with patch("infra.clearing_job.logger") as mock_logger:
            job.run("auction-1", _rows(), 1000)
        mock_logger.exception.assert_called_once()

    def test_job_usable_after_callback_error(self) -> None:
        """A later run succeeds once the callback recovers."""
        on_cleared: Mock = Mock(side_effect=[RuntimeError("db down"), None])
        job: ClearingJob = ClearingJob(on_cleared=on_cleared)
        job.run("auction-1", _rows(), 1000)
        job.run("auction-2", _rows(), 1000)
        assert job.stats() == {
            "auctions_cleared": 1,
            "validation_failures": 0,
            "callback_errors": 1,
        }

    @pytest.mark.parametrize("supply", [0, -1, True])
    def test_invalid_supply_propagates(self, supply: Any) -> None:
        """Caller bugs are raised, not counted."""
        on_cleared: MagicMock = MagicMock()
        job: ClearingJob = ClearingJob(on_cleared=on_cleared)
        with pytest.raises(ValueError, match="total_supply"):
            job.run("auction-1", _rows(), supply)
        on_cleared.assert_not_called()


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


class TestStats:
    """Tests for job counters."""

    def test_initial_stats(self) -> None:
        """All counters start at zero."""
        job: ClearingJob = ClearingJob(on_cleared=Mock())
        assert job.stats() == {
            "auctions_cleared": 0,
            "validation_failures": 0,
            "callback_errors": 0,
        }

    def test_counters_accumulate(self) -> None:
        """Each outcome type increments its own counter."""
        job: ClearingJob = ClearingJob(on_cleared=Mock())
        job.run("a1", _rows(), 1000)
        job.run("a2", _rows(), 500)
        job.run("a3", _bad_rows(), 1000)
        stats: dict[str, int] = job.stats()
        assert stats["auctions_cleared"] == 2
        assert stats["validation_failures"] == 1
        assert stats["callback_errors"] == 0

    def test_concurrent_runs_counted(self) -> None:
        """Separate threads on one job never lose counts."""
        job: ClearingJob = ClearingJob(on_cleared=Mock())
        threads: list[threading.Thread] = [
            threading.Thread(
                target=job.run,
                args=(f"auction-{i}", _rows(), 1000),
            )
            for i in range(8)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert job.stats()["auctions_cleared"] == 8

    def test_stats_returns_copy(self) -> None:
        """Mutating the returned dict does not affect the job."""
        job: ClearingJob = ClearingJob(on_cleared=Mock())
        job.stats()["auctions_cleared"] = 99
        assert job.stats()["auctions_cleared"] == 0
