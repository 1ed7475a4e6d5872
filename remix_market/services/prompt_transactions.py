"""
Prompt Transaction Service - Purchases and saves of remixable prompts.

A purchase moves credits from the buyer to the seller and writes the buyer's
purchase record in ONE database transaction:
1. Reject if the buyer already holds a record for the content
2. Check the buyer's balance
3. Check the seller has an account
4. Debit the buyer, credit the seller's payout (conditional atomic updates)
5. Insert the record, keyed by buyer/content so a duplicate insert fails
6. Commit, then notify the seller outside the transaction

Free prompts are saved the same way without touching the ledger.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy import delete, select
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from remix_market.config import settings
from remix_market.db.models import PurchaseRecord
from remix_market.exceptions import (
    AlreadyPurchasedError,
    AlreadySavedError,
    DuplicateRecordError,
    InsufficientCreditsError,
    PromptTransactionError,
    SellerNotFoundError,
    SelfTransactionRejectedError,
    TransactionFailedError,
)
from remix_market.models.api import ContentType
from remix_market.models.domain import (
    PromptDisplay,
    PurchaseIntent,
    PurchaseRecordData,
    SaleNotification,
    SaveIntent,
    build_record_id,
    seller_payout,
)
from remix_market.observability.metrics import metrics
from remix_market.observability.tracing import transaction_span
from remix_market.services.ledger import CreditLedger
from remix_market.services.notifications import NotificationDispatcher

logger = get_logger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected, lock_not_available
_RETRYABLE_SQLSTATES = frozenset({"40001", "40P01", "55P03"})


def _is_retryable(exc: DBAPIError) -> bool:
    """Contention faults that a fresh attempt can succeed past."""
    if isinstance(exc, OperationalError):
        return True
    code = getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)
    return code in _RETRYABLE_SQLSTATES


class PromptTransactionService:
    """
    Purchase, save, remove and access checks for prompts.

    Every write runs as one unit of work on the given session: it either
    commits completely or is rolled back, and contention faults re-run the
    whole unit.
    """

    def __init__(
        self,
        session: AsyncSession,
        dispatcher: NotificationDispatcher | None = None,
        payout_percent: int | None = None,
        max_attempts: int | None = None,
        retry_backoff_seconds: float | None = None,
    ) -> None:
        self.session = session
        self.dispatcher = dispatcher
        self.payout_percent = (
            payout_percent if payout_percent is not None else settings.seller_payout_percent
        )
        self.max_attempts = max_attempts or settings.transaction_max_attempts
        self.retry_backoff_seconds = (
            retry_backoff_seconds
            if retry_backoff_seconds is not None
            else settings.transaction_retry_backoff_seconds
        )

    async def purchase(self, intent: PurchaseIntent) -> str:
        """
        Buy a paid prompt. Returns the purchase record id.

        Raises:
            SelfTransactionRejectedError: Buyer is the seller (no store call made)
            AlreadyPurchasedError: Buyer already holds this prompt
            InsufficientCreditsError: Buyer balance below the price
            SellerNotFoundError: Seller has no ledger account
            TransactionFailedError: Store fault; nothing was applied
        """
        if intent.buyer_id == intent.seller_id:
            raise SelfTransactionRejectedError(intent.buyer_id)

        start_time = time.time()
        try:
            with transaction_span(
                "prompt_purchase",
                record_id=intent.record_id,
                content_type=intent.content_type,
                price=intent.price,
            ):
                payout = await self._run_in_transaction(
                    "purchase",
                    lambda: self._purchase_once(intent),
                    on_conflict=lambda: AlreadyPurchasedError(intent.record_id),
                )
        except PromptTransactionError as e:
            self._record_failure("purchase", intent.content_type, e, start_time)
            raise

        metrics.record_transaction(
            "purchase", "success", intent.content_type.value, time.time() - start_time
        )
        metrics.record_sale(intent.price, payout)
        logger.info(
            "prompt_purchased",
            record_id=intent.record_id,
            buyer_id=intent.buyer_id,
            seller_id=intent.seller_id,
            price=intent.price,
            seller_payout=payout,
        )

        self._notify_seller(
            SaleNotification(
                recipient_id=intent.seller_id,
                content_id=intent.content_id,
                content_type=intent.content_type,
                amount=intent.price,
            )
        )
        return intent.record_id

    async def save(self, intent: SaveIntent) -> str:
        """
        Save a free prompt. Returns the purchase record id.

        Raises:
            SelfTransactionRejectedError: Buyer is the creator
            AlreadySavedError: Buyer already holds this prompt
            TransactionFailedError: Store fault; nothing was applied
        """
        if intent.seller_id is not None and intent.buyer_id == intent.seller_id:
            raise SelfTransactionRejectedError(intent.buyer_id)

        start_time = time.time()
        try:
            with transaction_span(
                "prompt_save", record_id=intent.record_id, content_type=intent.content_type
            ):
                await self._run_in_transaction(
                    "save",
                    lambda: self._save_once(intent),
                    on_conflict=lambda: AlreadySavedError(intent.record_id),
                )
        except PromptTransactionError as e:
            self._record_failure("save", intent.content_type, e, start_time)
            raise

        metrics.record_transaction(
            "save", "success", intent.content_type.value, time.time() - start_time
        )
        logger.info(
            "prompt_saved",
            record_id=intent.record_id,
            buyer_id=intent.buyer_id,
            seller_id=intent.seller_id,
        )
        return intent.record_id

    async def remove(self, buyer_id: str, content_id: str, content_type: ContentType) -> bool:
        """
        Delete a saved prompt. Removing a missing record is a no-op.

        No credits are refunded. Returns True if a record was deleted.
        """
        record_id = build_record_id(buyer_id, content_id, content_type)

        async def _remove_once() -> bool:
            result = await self.session.execute(
                delete(PurchaseRecord).where(PurchaseRecord.id == record_id)
            )
            return result.rowcount > 0

        start_time = time.time()
        try:
            removed = await self._run_in_transaction("remove", _remove_once)
        except PromptTransactionError as e:
            self._record_failure("remove", content_type, e, start_time)
            raise

        outcome = "success" if removed else "noop"
        metrics.record_transaction(
            "remove", outcome, content_type.value, time.time() - start_time
        )
        logger.info("saved_prompt_removed", record_id=record_id, removed=removed)
        return removed

    async def has_access(self, buyer_id: str, content_id: str, content_type: ContentType) -> bool:
        """True iff the buyer holds a purchase record for the content."""
        return await self._record_exists(build_record_id(buyer_id, content_id, content_type))

    async def get_saved(
        self, buyer_id: str, content_id: str, content_type: ContentType
    ) -> PurchaseRecordData | None:
        """The buyer's record for one content item, if any."""
        record_id = build_record_id(buyer_id, content_id, content_type)
        result = await self.session.execute(
            select(PurchaseRecord).where(PurchaseRecord.id == record_id)
        )
        record = result.scalar_one_or_none()
        return _record_to_domain(record) if record is not None else None

    async def list_saved(
        self, buyer_id: str, content_type: ContentType | None = None
    ) -> list[PurchaseRecordData]:
        """All of a buyer's purchased and saved prompts, newest first."""
        stmt = select(PurchaseRecord).where(PurchaseRecord.buyer_id == buyer_id)
        if content_type is not None:
            stmt = stmt.where(PurchaseRecord.content_type == content_type)
        stmt = stmt.order_by(PurchaseRecord.created_at.desc(), PurchaseRecord.id.desc())

        result = await self.session.execute(stmt)
        return [_record_to_domain(record) for record in result.scalars().all()]

    # ========================================================================
    # Private Helper Methods
    # ========================================================================

    async def _purchase_once(self, intent: PurchaseIntent) -> int:
        """One attempt of the purchase unit. Returns the seller payout."""
        if await self._record_exists(intent.record_id):
            raise AlreadyPurchasedError(intent.record_id)

        ledger = CreditLedger(self.session)

        balance = await ledger.get_balance(intent.buyer_id)
        if balance < intent.price:
            raise InsufficientCreditsError(balance, intent.price)

        if not await ledger.account_exists(intent.seller_id):
            raise SellerNotFoundError(intent.seller_id)

        payout = seller_payout(intent.price, self.payout_percent)

        # Fixed row order keeps concurrent purchases from deadlocking
        adjustments = sorted([(intent.buyer_id, -intent.price), (intent.seller_id, payout)])
        for user_id, delta in adjustments:
            await ledger.adjust_balance(user_id, delta)

        self.session.add(
            _new_record(
                record_id=intent.record_id,
                buyer_id=intent.buyer_id,
                seller_id=intent.seller_id,
                content_id=intent.content_id,
                content_type=intent.content_type,
                credits_paid=intent.price,
                prompt_snapshot=intent.prompt_snapshot,
                display=intent.display,
            )
        )
        await self.session.flush()
        return payout

    async def _save_once(self, intent: SaveIntent) -> None:
        """One attempt of the save unit."""
        if await self._record_exists(intent.record_id):
            raise AlreadySavedError(intent.record_id)

        self.session.add(
            _new_record(
                record_id=intent.record_id,
                buyer_id=intent.buyer_id,
                seller_id=intent.seller_id,
                content_id=intent.content_id,
                content_type=intent.content_type,
                credits_paid=0,
                prompt_snapshot=intent.prompt_snapshot,
                display=intent.display,
            )
        )
        await self.session.flush()

    async def _record_exists(self, record_id: str) -> bool:
        # Query instead of session.get so a stale identity map can't answer
        result = await self.session.execute(
            select(PurchaseRecord.id).where(PurchaseRecord.id == record_id)
        )
        return result.scalar_one_or_none() is not None

    async def _run_in_transaction(
        self,
        operation: str,
        work: Callable[[], Awaitable[T]],
        on_conflict: Callable[[], DuplicateRecordError] | None = None,
    ) -> T:
        """
        Run `work` and commit, rolling back on any failure.

        Contention faults are retried up to max_attempts. A key collision
        maps to `on_conflict`. Any other store fault becomes
        TransactionFailedError.
        """
        last_error: DBAPIError | None = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                result = await work()
                await self.session.commit()
                return result
            except PromptTransactionError:
                await self.session.rollback()
                raise
            except IntegrityError as e:
                await self.session.rollback()
                if on_conflict is None:
                    raise TransactionFailedError(str(e), attempt) from e
                raise on_conflict() from e
            except DBAPIError as e:
                await self.session.rollback()
                if not _is_retryable(e):
                    raise TransactionFailedError(str(e), attempt) from e
                last_error = e
                metrics.record_retry(operation)
                logger.warning(
                    "transaction_retry",
                    operation=operation,
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    error=str(e),
                )
                await asyncio.sleep(self.retry_backoff_seconds * attempt)
            except SQLAlchemyError as e:
                await self.session.rollback()
                raise TransactionFailedError(str(e), attempt) from e

        raise TransactionFailedError(
            f"store contention not resolved: {last_error}", self.max_attempts
        ) from last_error

    def _notify_seller(self, notification: SaleNotification) -> None:
        if self.dispatcher is None or not settings.notifications_enabled:
            return
        self.dispatcher.dispatch(notification)

    def _record_failure(
        self,
        operation: str,
        content_type: ContentType,
        error: PromptTransactionError,
        start_time: float,
    ) -> None:
        outcome = type(error).__name__
        metrics.record_transaction(
            operation, outcome, content_type.value, time.time() - start_time
        )
        if isinstance(error, TransactionFailedError):
            metrics.record_error(outcome, operation)
            logger.error(f"{operation}_failed", error=str(error), attempts=error.attempts)
        else:
            logger.info(f"{operation}_rejected", reason=outcome, error=str(error))


def _new_record(
    *,
    record_id: str,
    buyer_id: str,
    seller_id: str | None,
    content_id: str,
    content_type: ContentType,
    credits_paid: int,
    prompt_snapshot: str,
    display: PromptDisplay,
) -> PurchaseRecord:
    return PurchaseRecord(
        id=record_id,
        buyer_id=buyer_id,
        seller_id=seller_id,
        content_id=content_id,
        content_type=content_type,
        credits_paid=credits_paid,
        prompt_text_snapshot=prompt_snapshot,
        media_url=display.media_url,
        thumbnail_url=display.thumbnail_url,
        model=display.model,
        seller_username=display.seller_username,
    )


def _record_to_domain(record: PurchaseRecord) -> PurchaseRecordData:
    return PurchaseRecordData(
        record_id=record.id,
        buyer_id=record.buyer_id,
        seller_id=record.seller_id,
        content_id=record.content_id,
        content_type=ContentType(record.content_type),
        credits_paid=record.credits_paid,
        prompt_snapshot=record.prompt_text_snapshot,
        display=PromptDisplay(
            media_url=record.media_url,
            thumbnail_url=record.thumbnail_url,
            model=record.model,
            seller_username=record.seller_username,
        ),
        created_at=record.created_at,
    )
