"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.
"""

from remix_market.models.api import ContentType


class PromptTransactionError(Exception):
    """Base exception for all prompt transaction errors."""

    pass


class DuplicateRecordError(PromptTransactionError):
    """Raised when a purchase record already exists for a buyer/content pair."""

    verb = "acquired"

    def __init__(self, record_id: str) -> None:
        self.record_id = record_id
        super().__init__(f"Prompt already {self.verb}: {record_id}")


class AlreadyPurchasedError(DuplicateRecordError):
    """Raised when the buyer has already purchased this prompt."""

    verb = "purchased"


class AlreadySavedError(DuplicateRecordError):
    """Raised when the buyer has already saved this prompt."""

    verb = "saved"


class InsufficientCreditsError(PromptTransactionError):
    """Raised when account has insufficient balance for a debit."""

    def __init__(self, balance: int, required: int) -> None:
        self.balance = balance
        self.required = required
        super().__init__(f"Insufficient credits. Balance: {balance}, Required: {required}")


class SellerNotFoundError(PromptTransactionError):
    """Raised when the seller of a paid prompt has no ledger account."""

    def __init__(self, seller_id: str) -> None:
        self.seller_id = seller_id
        super().__init__(f"Seller account not found: {seller_id}")


class SelfTransactionRejectedError(PromptTransactionError):
    """Raised when a user tries to purchase or save their own prompt."""

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__(f"User {user_id} cannot acquire their own prompt")


class TransactionFailedError(PromptTransactionError):
    """Raised when the underlying store fails; nothing was applied."""

    def __init__(self, message: str, attempts: int = 1) -> None:
        self.message = message
        self.attempts = attempts
        super().__init__(f"Transaction failed after {attempts} attempt(s): {message}")


class AccountNotFoundError(PromptTransactionError):
    """Raised when a ledger account doesn't exist."""

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__(f"Account not found: {user_id}")


class ContentNotFoundError(PromptTransactionError):
    """Raised when a content item doesn't exist or is not remixable."""

    def __init__(self, content_id: str, content_type: ContentType) -> None:
        self.content_id = content_id
        self.content_type = content_type
        super().__init__(f"Content not found: {content_type.value}/{content_id}")


class ListingMismatchError(PromptTransactionError):
    """Raised when a request's price or seller differs from the stored listing."""

    def __init__(self, content_id: str, field: str, listed: object, requested: object) -> None:
        self.content_id = content_id
        self.field = field
        self.listed = listed
        self.requested = requested
        super().__init__(
            f"Listing for {content_id} has {field}={listed!r}, request had {requested!r}"
        )
