"""
Credit Ledger - Per-user integer credit balances.

Every balance change is a single conditional UPDATE, so concurrent writers
can't lose updates and a debit can never drive a balance below zero. The
ledger works inside the caller's session and never commits: its writes join
whatever transaction the caller is running.
"""

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from remix_market.db.models import UserAccount
from remix_market.exceptions import AccountNotFoundError, InsufficientCreditsError

logger = get_logger(__name__)


class CreditLedger:
    """Atomic balance reads and adjustments on the user_accounts table."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_balance(self, user_id: str) -> int:
        """Current balance; users without an account hold 0 credits."""
        stmt = select(UserAccount.credits).where(UserAccount.user_id == user_id)
        result = await self.session.execute(stmt)
        credits = result.scalar_one_or_none()
        return credits if credits is not None else 0

    async def account_exists(self, user_id: str) -> bool:
        """True if the user has a ledger account."""
        stmt = select(UserAccount.user_id).where(UserAccount.user_id == user_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def adjust_balance(self, user_id: str, delta: int) -> None:
        """
        Apply a signed delta to a balance.

        Raises:
            InsufficientCreditsError: The debit would make the balance negative
                (a missing account counts as a zero balance)
            AccountNotFoundError: Crediting a user with no account
        """
        if delta == 0:
            return

        stmt = (
            update(UserAccount)
            .where(
                UserAccount.user_id == user_id,
                UserAccount.credits + delta >= 0,
            )
            .values(credits=UserAccount.credits + delta)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)

        if result.rowcount == 1:
            return

        # Nothing updated: find out why
        if delta < 0:
            raise InsufficientCreditsError(await self.get_balance(user_id), -delta)
        raise AccountNotFoundError(user_id)

    async def open_account(self, user_id: str, initial_credits: int = 0) -> int:
        """
        Create a ledger account if missing and commit.

        Returns the balance of the (new or existing) account.
        """
        if initial_credits < 0:
            raise ValueError(f"Initial credits cannot be negative: {initial_credits}")

        existing = await self.session.get(UserAccount, user_id)
        if existing is not None:
            return existing.credits

        self.session.add(UserAccount(user_id=user_id, credits=initial_credits))
        try:
            await self.session.flush()
            await self.session.commit()
        except IntegrityError:
            # Race condition - account created by another request
            await self.session.rollback()
            logger.info("account_already_opened", user_id=user_id)
            return await self.get_balance(user_id)

        logger.info("account_opened", user_id=user_id, initial_credits=initial_credits)
        return initial_credits
