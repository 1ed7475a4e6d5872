"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
"""

from enum import Enum

from pydantic import BaseModel, Field


class ContentType(str, Enum):
    """Kind of generated content a prompt belongs to."""

    VIDEO = "video"
    IMAGE = "image"


class PricingFilter(str, Enum):
    """Price filter for remixable content listings."""

    ALL = "all"
    FREE = "free"
    PAID = "paid"


class NotificationKind(str, Enum):
    """Notification type enumeration."""

    SALE = "sale"


# ============================================================================
# Prompt Transaction Models
# ============================================================================


class PurchasePromptRequest(BaseModel):
    """
    POST /v1/prompts/{content_type}/{content_id}/purchase request body.

    The buyer confirms the price and seller they were shown. Both must match
    the stored listing; the prompt text and display fields always come from
    the content store.
    """

    seller_id: str = Field(..., min_length=1, max_length=255)
    price: int = Field(..., gt=0, description="Credit cost shown to the buyer")


class SavePromptRequest(BaseModel):
    """POST /v1/prompts/{content_type}/{content_id}/save request body."""

    seller_id: str | None = Field(
        None, min_length=1, max_length=255, description="Creator shown to the user, if any"
    )


class PurchaseRecordResponse(BaseModel):
    """A purchased or saved prompt."""

    record_id: str
    buyer_id: str
    seller_id: str | None
    content_id: str
    content_type: ContentType
    credits_paid: int
    prompt: str
    media_url: str | None = None
    thumbnail_url: str | None = None
    model: str | None = None
    seller_username: str | None = None
    created_at: str


class SavedPromptListResponse(BaseModel):
    """GET /v1/prompts/saved response."""

    records: list[PurchaseRecordResponse]
    total_count: int


class PromptAccessResponse(BaseModel):
    """GET /v1/prompts/{content_type}/{content_id}/access response."""

    has_access: bool
    prompt: str


# ============================================================================
# Content Models
# ============================================================================


class ContentItemResponse(BaseModel):
    """Remixable content listing entry (prompt text is never exposed here)."""

    content_id: str
    content_type: ContentType
    owner_id: str | None
    owner_username: str | None = None
    price: int
    is_free: bool
    media_url: str | None = None
    thumbnail_url: str | None = None
    model: str | None = None
    created_at: str


class ContentListResponse(BaseModel):
    """GET /v1/content/remixable response."""

    items: list[ContentItemResponse]
    total_count: int


# ============================================================================
# Credit Models
# ============================================================================


class BalanceResponse(BaseModel):
    """GET /v1/credits/balance response."""

    user_id: str
    credits: int


# ============================================================================
# Notification Models
# ============================================================================


class NotificationResponse(BaseModel):
    """A notification shown to a user."""

    notification_id: str
    kind: NotificationKind
    title: str
    message: str
    content_id: str | None = None
    content_type: ContentType | None = None
    amount: int | None = None
    is_read: bool
    created_at: str


class NotificationListResponse(BaseModel):
    """GET /v1/notifications response."""

    notifications: list[NotificationResponse]
    unread_count: int


# ============================================================================
# Health Models
# ============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    database: str
    timestamp: str
