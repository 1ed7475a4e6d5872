"""
Tests for PromptTransactionService.

Unit tests with a mocked session: ordering of checks, error mapping and the
retry behavior of the transaction runner.
"""

import itertools
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError

from conftest import create_mock_result, make_purchase_intent, make_save_intent
from remix_market.exceptions import (
    AlreadyPurchasedError,
    AlreadySavedError,
    InsufficientCreditsError,
    SellerNotFoundError,
    SelfTransactionRejectedError,
    TransactionFailedError,
)
from remix_market.models.api import ContentType
from remix_market.models.domain import SaleNotification
from remix_market.services.prompt_transactions import PromptTransactionService, _is_retryable


class FakeDriverError(Exception):
    """Driver exception carrying a SQLSTATE code."""

    def __init__(self, sqlstate: str) -> None:
        super().__init__(f"sqlstate {sqlstate}")
        self.sqlstate = sqlstate


def successful_purchase_results(balance: int = 20) -> list:
    """execute() results for one clean purchase attempt."""
    return [
        create_mock_result(None),  # no existing record
        create_mock_result(balance),  # buyer balance
        create_mock_result("seller-1"),  # seller account exists
        create_mock_result(rowcount=1),  # debit buyer
        create_mock_result(rowcount=1),  # credit seller
    ]


def make_service(session, dispatcher=None, max_attempts: int = 3) -> PromptTransactionService:
    return PromptTransactionService(
        session,
        dispatcher=dispatcher,
        payout_percent=80,
        max_attempts=max_attempts,
        retry_backoff_seconds=0,
    )


class TestSelfTransactionRejection:
    """Self purchases are rejected before any store call."""

    async def test_self_purchase_makes_no_store_calls(self, db_session: AsyncMock):
        """Buyer == seller raises without touching the session."""
        service = make_service(db_session)

        with pytest.raises(SelfTransactionRejectedError) as exc_info:
            await service.purchase(make_purchase_intent(buyer_id="u1", seller_id="u1"))

        assert exc_info.value.user_id == "u1"
        db_session.execute.assert_not_called()
        db_session.add.assert_not_called()
        db_session.commit.assert_not_called()

    async def test_self_save_makes_no_store_calls(self, db_session: AsyncMock):
        """Saving your own free prompt is rejected the same way."""
        service = make_service(db_session)

        with pytest.raises(SelfTransactionRejectedError):
            await service.save(make_save_intent(buyer_id="u1", seller_id="u1"))

        db_session.execute.assert_not_called()
        db_session.commit.assert_not_called()


class TestPurchaseChecks:
    """Tests for the order of checks inside a purchase."""

    async def test_success_commits_once_and_adds_record(self, db_session: AsyncMock):
        """A clean purchase debits, credits, adds one record and commits."""
        db_session.execute = AsyncMock(side_effect=successful_purchase_results())
        service = make_service(db_session)

        record_id = await service.purchase(make_purchase_intent(price=5))

        assert record_id == "buyer-1_video-1_video"
        assert db_session.execute.await_count == 5
        db_session.add.assert_called_once()
        record = db_session.add.call_args.args[0]
        assert record.id == "buyer-1_video-1_video"
        assert record.credits_paid == 5
        assert record.seller_id == "seller-1"
        db_session.flush.assert_awaited_once()
        db_session.commit.assert_awaited_once()
        db_session.rollback.assert_not_called()

    async def test_existing_record_rejected_before_ledger(self, db_session: AsyncMock):
        """An existing record short-circuits before any balance read."""
        db_session.execute = AsyncMock(return_value=create_mock_result("buyer-1_video-1_video"))
        service = make_service(db_session)

        with pytest.raises(AlreadyPurchasedError):
            await service.purchase(make_purchase_intent())

        assert db_session.execute.await_count == 1
        db_session.add.assert_not_called()
        db_session.rollback.assert_awaited_once()
        db_session.commit.assert_not_called()

    async def test_low_balance_rejected_before_updates(self, db_session: AsyncMock):
        """Balance below price raises before any update is issued."""
        db_session.execute = AsyncMock(
            side_effect=[create_mock_result(None), create_mock_result(3)]
        )
        service = make_service(db_session)

        with pytest.raises(InsufficientCreditsError) as exc_info:
            await service.purchase(make_purchase_intent(price=5))

        assert exc_info.value.balance == 3
        assert exc_info.value.required == 5
        assert db_session.execute.await_count == 2
        db_session.commit.assert_not_called()

    async def test_missing_seller_rejected_before_updates(self, db_session: AsyncMock):
        """Seller without an account raises before any update is issued."""
        db_session.execute = AsyncMock(
            side_effect=[
                create_mock_result(None),
                create_mock_result(20),
                create_mock_result(None),
            ]
        )
        service = make_service(db_session)

        with pytest.raises(SellerNotFoundError):
            await service.purchase(make_purchase_intent())

        assert db_session.execute.await_count == 3
        db_session.rollback.assert_awaited_once()
        db_session.commit.assert_not_called()

    async def test_conditional_debit_miss_is_insufficient_credits(self, db_session: AsyncMock):
        """A debit that matches no row (balance spent concurrently) rolls back."""
        db_session.execute = AsyncMock(
            side_effect=[
                create_mock_result(None),
                create_mock_result(20),
                create_mock_result("seller-1"),
                create_mock_result(rowcount=0),  # debit lost the race
                create_mock_result(2),  # balance re-read
            ]
        )
        service = make_service(db_session)

        with pytest.raises(InsufficientCreditsError) as exc_info:
            await service.purchase(make_purchase_intent(price=5))

        assert exc_info.value.balance == 2
        db_session.add.assert_not_called()
        db_session.rollback.assert_awaited_once()


class TestConflictMapping:
    """Key collisions on insert map to the duplicate errors."""

    async def test_integrity_error_on_purchase_is_already_purchased(self, db_session: AsyncMock):
        """A concurrent insert of the same record id surfaces as AlreadyPurchased."""
        db_session.execute = AsyncMock(side_effect=successful_purchase_results())
        db_session.flush = AsyncMock(
            side_effect=IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))
        )
        service = make_service(db_session)

        with pytest.raises(AlreadyPurchasedError) as exc_info:
            await service.purchase(make_purchase_intent())

        assert exc_info.value.record_id == "buyer-1_video-1_video"
        db_session.rollback.assert_awaited_once()
        db_session.commit.assert_not_called()

    async def test_integrity_error_on_save_is_already_saved(self, db_session: AsyncMock):
        """Same mapping for saves."""
        db_session.flush = AsyncMock(
            side_effect=IntegrityError("INSERT", {}, Exception("duplicate key"))
        )
        service = make_service(db_session)

        with pytest.raises(AlreadySavedError):
            await service.save(make_save_intent())

        db_session.rollback.assert_awaited_once()

    async def test_integrity_error_on_remove_is_transaction_failure(self, db_session: AsyncMock):
        """Operations without a conflict mapping report a failed transaction."""
        db_session.execute = AsyncMock(
            side_effect=IntegrityError("DELETE", {}, Exception("constraint"))
        )
        service = make_service(db_session)

        with pytest.raises(TransactionFailedError):
            await service.remove("buyer-1", "video-1", ContentType.VIDEO)


class TestRetryPolicy:
    """Contention faults re-run the whole unit of work."""

    async def test_operational_error_is_retried_then_succeeds(self, db_session: AsyncMock):
        """A locked database on the first attempt is retried."""
        db_session.execute = AsyncMock(
            side_effect=[
                OperationalError("SELECT", {}, Exception("database is locked")),
                *successful_purchase_results(),
            ]
        )
        service = make_service(db_session)

        with patch(
            "remix_market.services.prompt_transactions.asyncio.sleep", new_callable=AsyncMock
        ) as mock_sleep:
            record_id = await service.purchase(make_purchase_intent())

        assert record_id == "buyer-1_video-1_video"
        mock_sleep.assert_awaited_once()
        db_session.rollback.assert_awaited_once()
        db_session.commit.assert_awaited_once()

    async def test_retries_exhausted_raise_transaction_failed(self, db_session: AsyncMock):
        """Persistent contention gives up after max_attempts."""
        db_session.execute = AsyncMock(
            side_effect=OperationalError("SELECT", {}, Exception("database is locked"))
        )
        service = make_service(db_session, max_attempts=3)

        with patch(
            "remix_market.services.prompt_transactions.asyncio.sleep", new_callable=AsyncMock
        ):
            with pytest.raises(TransactionFailedError) as exc_info:
                await service.purchase(make_purchase_intent())

        assert exc_info.value.attempts == 3
        assert db_session.rollback.await_count == 3
        db_session.commit.assert_not_called()

    async def test_serialization_failure_is_retried(self, db_session: AsyncMock):
        """SQLSTATE 40001 from the driver counts as contention."""
        db_session.execute = AsyncMock(
            side_effect=[
                DBAPIError("UPDATE", {}, FakeDriverError("40001")),
                *successful_purchase_results(),
            ]
        )
        service = make_service(db_session)

        with patch(
            "remix_market.services.prompt_transactions.asyncio.sleep", new_callable=AsyncMock
        ):
            await service.purchase(make_purchase_intent())

        db_session.commit.assert_awaited_once()

    async def test_other_driver_error_fails_immediately(self, db_session: AsyncMock):
        """Non-contention driver errors are not retried."""
        db_session.execute = AsyncMock(
            side_effect=DBAPIError("UPDATE", {}, FakeDriverError("XX000"))
        )
        service = make_service(db_session)

        with pytest.raises(TransactionFailedError) as exc_info:
            await service.purchase(make_purchase_intent())

        assert exc_info.value.attempts == 1
        assert db_session.execute.await_count == 1

    async def test_generic_sqlalchemy_error_fails_immediately(self, db_session: AsyncMock):
        """Errors raised outside the driver become TransactionFailed."""
        db_session.execute = AsyncMock(side_effect=SQLAlchemyError("connection closed"))
        service = make_service(db_session)

        with pytest.raises(TransactionFailedError):
            await service.save(make_save_intent())

        db_session.rollback.assert_awaited_once()

    def test_is_retryable(self):
        """Only contention SQLSTATEs and operational errors are retryable."""
        assert _is_retryable(OperationalError("x", {}, Exception("locked")))
        assert _is_retryable(DBAPIError("x", {}, FakeDriverError("40P01")))
        assert _is_retryable(DBAPIError("x", {}, FakeDriverError("55P03")))
        assert not _is_retryable(DBAPIError("x", {}, FakeDriverError("23505")))
        assert not _is_retryable(DBAPIError("x", {}, Exception("no code")))


class TestNotificationDispatch:
    """The seller is notified after commit."""

    async def test_successful_purchase_dispatches_sale(self, db_session: AsyncMock):
        """One sale notification for the seller, carrying the price."""
        db_session.execute = AsyncMock(side_effect=successful_purchase_results())
        dispatcher = MagicMock()
        service = make_service(db_session, dispatcher=dispatcher)

        await service.purchase(make_purchase_intent(price=5))

        dispatcher.dispatch.assert_called_once_with(
            SaleNotification(
                recipient_id="seller-1",
                content_id="video-1",
                content_type=ContentType.VIDEO,
                amount=5,
            )
        )

    async def test_failed_purchase_dispatches_nothing(self, db_session: AsyncMock):
        """No notification when the purchase is rejected."""
        db_session.execute = AsyncMock(
            side_effect=[create_mock_result(None), create_mock_result(0)]
        )
        dispatcher = MagicMock()
        service = make_service(db_session, dispatcher=dispatcher)

        with pytest.raises(InsufficientCreditsError):
            await service.purchase(make_purchase_intent())

        dispatcher.dispatch.assert_not_called()

    async def test_notifications_disabled(self, db_session: AsyncMock):
        """NOTIFICATIONS_ENABLED=false suppresses dispatch."""
        db_session.execute = AsyncMock(side_effect=successful_purchase_results())
        dispatcher = MagicMock()
        service = make_service(db_session, dispatcher=dispatcher)

        with patch("remix_market.services.prompt_transactions.settings") as mock_settings:
            mock_settings.notifications_enabled = False
            await service.purchase(make_purchase_intent())

        dispatcher.dispatch.assert_not_called()


class TestRemove:
    """Tests for remove with a mocked session."""

    async def test_remove_missing_record_is_noop(self, db_session: AsyncMock):
        """Deleting nothing still commits and reports False."""
        db_session.execute = AsyncMock(return_value=create_mock_result(rowcount=0))
        service = make_service(db_session)

        assert await service.remove("buyer-1", "video-1", ContentType.VIDEO) is False
        db_session.commit.assert_awaited_once()

    async def test_remove_records_elapsed_time(self, db_session: AsyncMock):
        """The removal outcome is recorded with its measured duration."""
        db_session.execute = AsyncMock(return_value=create_mock_result(rowcount=1))
        service = make_service(db_session)
        clock = itertools.chain([100.0], itertools.repeat(100.25))

        with (
            patch("remix_market.services.prompt_transactions.metrics") as mock_metrics,
            patch("remix_market.services.prompt_transactions.time.time", side_effect=clock),
        ):
            assert await service.remove("buyer-1", "video-1", ContentType.VIDEO) is True

        mock_metrics.record_transaction.assert_called_once_with(
            "remove", "success", "video", pytest.approx(0.25)
        )

    async def test_failed_remove_is_recorded(self, db_session: AsyncMock):
        """A store failure during removal is counted against the remove operation."""
        db_session.execute = AsyncMock(side_effect=SQLAlchemyError("disk I/O error"))
        service = make_service(db_session)

        with patch("remix_market.services.prompt_transactions.metrics") as mock_metrics:
            with pytest.raises(TransactionFailedError):
                await service.remove("buyer-1", "video-1", ContentType.VIDEO)

        mock_metrics.record_transaction.assert_called_once()
        assert mock_metrics.record_transaction.call_args.args[:3] == (
            "remove",
            "TransactionFailedError",
            "video",
        )
        mock_metrics.record_error.assert_called_once_with("TransactionFailedError", "remove")
