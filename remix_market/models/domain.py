"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass
from datetime import datetime

from remix_market.models.api import ContentType, NotificationKind


def _key_part(value: str) -> str:
    # "_" separates the parts, so it is escaped inside them ("%" first).
    return value.replace("%", "%25").replace("_", "%5F")


def build_record_id(buyer_id: str, content_id: str, content_type: ContentType) -> str:
    """
    Deterministic purchase record key: one record per buyer/content pair.

    Ids without "_" or "%" give the plain `buyer_content_type` form. Those
    characters are percent-escaped so two different pairs never share a key,
    e.g. ("alice", "smith_x") and ("alice_smith", "x").
    """
    return f"{_key_part(buyer_id)}_{_key_part(content_id)}_{content_type.value}"


def seller_payout(price: int, payout_percent: int) -> int:
    """Seller's share of a sale, rounded down."""
    return price * payout_percent // 100


@dataclass(frozen=True)
class PromptDisplay:
    """Display fields copied onto a purchase record at transaction time."""

    media_url: str | None = None
    thumbnail_url: str | None = None
    model: str | None = None
    seller_username: str | None = None


@dataclass(frozen=True)
class PurchaseIntent:
    """Domain model for a paid prompt purchase before persistence."""

    content_id: str
    content_type: ContentType
    buyer_id: str
    seller_id: str
    price: int
    prompt_snapshot: str
    display: PromptDisplay = PromptDisplay()

    def __post_init__(self) -> None:
        """Validate purchase constraints."""
        if not self.content_id:
            raise ValueError("content_id cannot be empty")
        if not self.buyer_id:
            raise ValueError("buyer_id cannot be empty")
        if not self.seller_id:
            raise ValueError("seller_id cannot be empty")
        if self.price <= 0:
            raise ValueError(f"Purchase price must be positive: {self.price}")

    @property
    def record_id(self) -> str:
        return build_record_id(self.buyer_id, self.content_id, self.content_type)


@dataclass(frozen=True)
class SaveIntent:
    """Domain model for saving a free prompt before persistence."""

    content_id: str
    content_type: ContentType
    buyer_id: str
    seller_id: str | None
    prompt_snapshot: str
    display: PromptDisplay = PromptDisplay()

    def __post_init__(self) -> None:
        """Validate save constraints."""
        if not self.content_id:
            raise ValueError("content_id cannot be empty")
        if not self.buyer_id:
            raise ValueError("buyer_id cannot be empty")

    @property
    def record_id(self) -> str:
        return build_record_id(self.buyer_id, self.content_id, self.content_type)


@dataclass(frozen=True)
class PurchaseRecordData:
    """Immutable purchase record after persistence."""

    record_id: str
    buyer_id: str
    seller_id: str | None
    content_id: str
    content_type: ContentType
    credits_paid: int
    prompt_snapshot: str
    display: PromptDisplay
    created_at: datetime


@dataclass(frozen=True)
class ContentItemData:
    """Immutable view of a content item read from the content store."""

    content_id: str
    content_type: ContentType
    owner_id: str | None
    price: int
    prompt_text: str
    media_url: str | None
    thumbnail_url: str | None
    model: str | None
    owner_username: str | None
    created_at: datetime

    @property
    def is_free(self) -> bool:
        return self.price <= 0

    def display(self) -> PromptDisplay:
        return PromptDisplay(
            media_url=self.media_url,
            thumbnail_url=self.thumbnail_url,
            model=self.model,
            seller_username=self.owner_username,
        )


@dataclass(frozen=True)
class SaleNotification:
    """Best-effort message sent to a seller after a sale."""

    recipient_id: str
    content_id: str
    content_type: ContentType
    amount: int
    kind: NotificationKind = NotificationKind.SALE

    @property
    def title(self) -> str:
        return "Prompt Purchased"

    @property
    def message(self) -> str:
        return (
            f"Someone purchased your {self.content_type.value} prompt "
            f"for {self.amount} credits"
        )


@dataclass(frozen=True)
class NotificationData:
    """Immutable notification snapshot."""

    notification_id: str
    user_id: str
    kind: NotificationKind
    title: str
    message: str
    content_id: str | None
    content_type: ContentType | None
    amount: int | None
    is_read: bool
    created_at: datetime
