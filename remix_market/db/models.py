"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from remix_market.models.api import ContentType, NotificationKind


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def _new_id() -> str:
    return str(uuid4())


def _enum_column(enum_cls: type, name: str) -> SQLEnum:
    return SQLEnum(
        enum_cls,
        name=name,
        native_enum=False,
        length=20,
        values_callable=lambda x: [e.value for e in x],
    )


class UserAccount(Base):
    """
    ORM model for user_accounts table.

    One row per user holding the credit balance.
    """

    __tablename__ = "user_accounts"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    credits: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (CheckConstraint("credits >= 0", name="ck_credits_non_negative"),)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<UserAccount(user_id={self.user_id}, credits={self.credits})>"


class ContentItem(Base):
    """
    ORM model for content_items table.

    Generated videos and images whose prompts can be remixed.
    """

    __tablename__ = "content_items"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    content_type: Mapped[ContentType] = mapped_column(
        _enum_column(ContentType, "content_type"), primary_key=True
    )

    owner_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    owner_username: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Remix pricing (NULL or 0 means free)
    remix_price: Mapped[int | None] = mapped_column(Integer, nullable=True)

    prompt_text: Mapped[str] = mapped_column(Text, nullable=False)
    media_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    thumbnail_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    model: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Visibility
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    allow_remix: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("remix_price IS NULL OR remix_price >= 0", name="ck_remix_price"),
        Index("idx_content_items_remixable", "content_type", "is_public", "allow_remix"),
        Index("idx_content_items_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<ContentItem(id={self.id}, type={self.content_type}, "
            f"owner_id={self.owner_id}, remix_price={self.remix_price})>"
        )


class PurchaseRecord(Base):
    """
    ORM model for purchase_records table.

    Append/delete-only ledger of purchased and saved prompts. The primary key
    is the buyer/content composite key, so a second insert for the same pair
    violates the key.
    """

    __tablename__ = "purchase_records"

    # Escaped buyer and content ids plus the type; see build_record_id.
    id: Mapped[str] = mapped_column(String(800), primary_key=True)

    buyer_id: Mapped[str] = mapped_column(String(128), nullable=False)
    seller_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    content_id: Mapped[str] = mapped_column(String(128), nullable=False)
    content_type: Mapped[ContentType] = mapped_column(
        _enum_column(ContentType, "content_type"), nullable=False
    )

    credits_paid: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    prompt_text_snapshot: Mapped[str] = mapped_column(Text, nullable=False)

    # Display copies
    media_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    thumbnail_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    seller_username: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("credits_paid >= 0", name="ck_credits_paid_non_negative"),
        Index("idx_purchase_records_buyer_created", "buyer_id", "created_at"),
        Index("idx_purchase_records_seller", "seller_id"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<PurchaseRecord(id={self.id}, buyer_id={self.buyer_id}, "
            f"credits_paid={self.credits_paid})>"
        )


class Notification(Base):
    """
    ORM model for notifications table.

    Messages shown to users (currently: prompt sales).
    """

    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    kind: Mapped[NotificationKind] = mapped_column(
        _enum_column(NotificationKind, "notification_kind"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)

    # Action data
    content_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    content_type: Mapped[ContentType | None] = mapped_column(
        _enum_column(ContentType, "content_type"), nullable=True
    )
    amount: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (Index("idx_notifications_user_created", "user_id", "created_at"),)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Notification(id={self.id}, user_id={self.user_id}, kind={self.kind})>"
