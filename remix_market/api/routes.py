"""
API Routes - FastAPI endpoints for prompt marketplace operations.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from remix_market.api.dependencies import (
    CallerIdentity,
    get_caller,
    get_content_store,
    get_ledger,
    get_notification_reader,
    get_prompt_service,
)
from remix_market.db.session import get_db
from remix_market.exceptions import (
    ContentNotFoundError,
    DuplicateRecordError,
    InsufficientCreditsError,
    ListingMismatchError,
    PromptTransactionError,
    SellerNotFoundError,
    SelfTransactionRejectedError,
    TransactionFailedError,
)
from remix_market.models.api import (
    BalanceResponse,
    ContentItemResponse,
    ContentListResponse,
    ContentType,
    HealthResponse,
    NotificationListResponse,
    NotificationResponse,
    PricingFilter,
    PromptAccessResponse,
    PurchasePromptRequest,
    PurchaseRecordResponse,
    SavedPromptListResponse,
    SavePromptRequest,
)
from remix_market.models.domain import (
    ContentItemData,
    NotificationData,
    PurchaseIntent,
    PurchaseRecordData,
    SaveIntent,
)
from remix_market.services.content import ContentStore
from remix_market.services.ledger import CreditLedger
from remix_market.services.notifications import NotificationReader
from remix_market.services.prompt_transactions import PromptTransactionService

router = APIRouter()

REDACTED_PROMPT = "Prompt hidden. Purchase or save it to reveal the text."


def _to_http_exception(exc: PromptTransactionError) -> HTTPException:
    """Map a transaction error to its HTTP response."""
    if isinstance(exc, (DuplicateRecordError, ListingMismatchError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, InsufficientCreditsError):
        return HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail=f"Insufficient credits. Balance: {exc.balance}, Required: {exc.required}",
        )
    if isinstance(exc, (SellerNotFoundError, ContentNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, SelfTransactionRejectedError):
        return HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You cannot purchase or save your own prompt",
        )
    if isinstance(exc, TransactionFailedError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Transaction failed, nothing was charged. Please retry.",
        )
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def _record_response(record: PurchaseRecordData) -> PurchaseRecordResponse:
    return PurchaseRecordResponse(
        record_id=record.record_id,
        buyer_id=record.buyer_id,
        seller_id=record.seller_id,
        content_id=record.content_id,
        content_type=record.content_type,
        credits_paid=record.credits_paid,
        prompt=record.prompt_snapshot,
        media_url=record.display.media_url,
        thumbnail_url=record.display.thumbnail_url,
        model=record.display.model,
        seller_username=record.display.seller_username,
        created_at=record.created_at.isoformat(),
    )


def _content_response(item: ContentItemData) -> ContentItemResponse:
    return ContentItemResponse(
        content_id=item.content_id,
        content_type=item.content_type,
        owner_id=item.owner_id,
        owner_username=item.owner_username,
        price=item.price,
        is_free=item.is_free,
        media_url=item.media_url,
        thumbnail_url=item.thumbnail_url,
        model=item.model,
        created_at=item.created_at.isoformat(),
    )


def _notification_response(notification: NotificationData) -> NotificationResponse:
    return NotificationResponse(
        notification_id=notification.notification_id,
        kind=notification.kind,
        title=notification.title,
        message=notification.message,
        content_id=notification.content_id,
        content_type=notification.content_type,
        amount=notification.amount,
        is_read=notification.is_read,
        created_at=notification.created_at.isoformat(),
    )


async def _load_record(
    service: PromptTransactionService,
    buyer_id: str,
    content_id: str,
    content_type: ContentType,
) -> PurchaseRecordResponse:
    record = await service.get_saved(buyer_id, content_id, content_type)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Purchase record missing after commit",
        )
    return _record_response(record)


# ============================================================================
# Prompt Transactions
# ============================================================================


async def _purchase_listing(
    service: PromptTransactionService, item: ContentItemData, buyer_id: str
) -> None:
    if item.owner_id is None:
        # Paid content must have a payee
        raise SellerNotFoundError("system")
    await service.purchase(
        PurchaseIntent(
            content_id=item.content_id,
            content_type=item.content_type,
            buyer_id=buyer_id,
            seller_id=item.owner_id,
            price=item.price,
            prompt_snapshot=item.prompt_text,
            display=item.display(),
        )
    )


async def _save_listing(
    service: PromptTransactionService, item: ContentItemData, buyer_id: str
) -> None:
    await service.save(
        SaveIntent(
            content_id=item.content_id,
            content_type=item.content_type,
            buyer_id=buyer_id,
            seller_id=item.owner_id,
            prompt_snapshot=item.prompt_text,
            display=item.display(),
        )
    )


@router.post(
    "/v1/prompts/{content_type}/{content_id}/purchase",
    response_model=PurchaseRecordResponse,
    status_code=status.HTTP_201_CREATED,
)
async def purchase_prompt(
    content_type: ContentType,
    content_id: str,
    request: PurchasePromptRequest,
    caller: CallerIdentity = Depends(get_caller),
    service: PromptTransactionService = Depends(get_prompt_service),
    content_store: ContentStore = Depends(get_content_store),
) -> PurchaseRecordResponse:
    """
    Purchase a paid prompt with credits.

    The price and seller the buyer confirmed must match the stored listing,
    otherwise nothing is charged and 409 is returned. Debits the caller, pays
    the seller their share and records the purchase in one transaction.
    """
    try:
        item = await content_store.get_content(content_id, content_type)
        if request.price != item.price:
            raise ListingMismatchError(content_id, "price", item.price, request.price)
        if request.seller_id != item.owner_id:
            raise ListingMismatchError(content_id, "seller_id", item.owner_id, request.seller_id)
        await _purchase_listing(service, item, caller.user_id)
    except PromptTransactionError as exc:
        raise _to_http_exception(exc) from exc

    return await _load_record(service, caller.user_id, content_id, content_type)


@router.post(
    "/v1/prompts/{content_type}/{content_id}/save",
    response_model=PurchaseRecordResponse,
    status_code=status.HTTP_201_CREATED,
)
async def save_prompt(
    content_type: ContentType,
    content_id: str,
    request: SavePromptRequest,
    caller: CallerIdentity = Depends(get_caller),
    service: PromptTransactionService = Depends(get_prompt_service),
    content_store: ContentStore = Depends(get_content_store),
) -> PurchaseRecordResponse:
    """Save a free prompt to the caller's prompt database. Paid listings get 409."""
    try:
        item = await content_store.get_content(content_id, content_type)
        if not item.is_free:
            raise ListingMismatchError(content_id, "price", item.price, 0)
        if request.seller_id is not None and request.seller_id != item.owner_id:
            raise ListingMismatchError(content_id, "seller_id", item.owner_id, request.seller_id)
        await _save_listing(service, item, caller.user_id)
    except PromptTransactionError as exc:
        raise _to_http_exception(exc) from exc

    return await _load_record(service, caller.user_id, content_id, content_type)


@router.post(
    "/v1/prompts/{content_type}/{content_id}/acquire",
    response_model=PurchaseRecordResponse,
    status_code=status.HTTP_201_CREATED,
)
async def acquire_prompt(
    content_type: ContentType,
    content_id: str,
    caller: CallerIdentity = Depends(get_caller),
    service: PromptTransactionService = Depends(get_prompt_service),
    content_store: ContentStore = Depends(get_content_store),
) -> PurchaseRecordResponse:
    """
    Purchase or save a prompt using the stored price.

    The content item is read once here; the prompt text read is the
    snapshot written to the record.
    """
    try:
        item = await content_store.get_content(content_id, content_type)
        if item.is_free:
            await _save_listing(service, item, caller.user_id)
        else:
            await _purchase_listing(service, item, caller.user_id)
    except PromptTransactionError as exc:
        raise _to_http_exception(exc) from exc

    return await _load_record(service, caller.user_id, content_id, content_type)


@router.delete(
    "/v1/prompts/{content_type}/{content_id}/saved",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def remove_saved_prompt(
    content_type: ContentType,
    content_id: str,
    caller: CallerIdentity = Depends(get_caller),
    service: PromptTransactionService = Depends(get_prompt_service),
) -> Response:
    """Remove a prompt from the caller's saved prompts. No refund is issued."""
    try:
        await service.remove(caller.user_id, content_id, content_type)
    except PromptTransactionError as exc:
        raise _to_http_exception(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/v1/prompts/{content_type}/{content_id}/access",
    response_model=PromptAccessResponse,
)
async def get_prompt_access(
    content_type: ContentType,
    content_id: str,
    caller: CallerIdentity = Depends(get_caller),
    service: PromptTransactionService = Depends(get_prompt_service),
) -> PromptAccessResponse:
    """Reveal the saved prompt text, or a placeholder if the caller has no access."""
    record = await service.get_saved(caller.user_id, content_id, content_type)
    if record is None:
        return PromptAccessResponse(has_access=False, prompt=REDACTED_PROMPT)
    return PromptAccessResponse(has_access=True, prompt=record.prompt_snapshot)


@router.get("/v1/prompts/saved", response_model=SavedPromptListResponse)
async def list_saved_prompts(
    content_type: ContentType | None = Query(None),
    caller: CallerIdentity = Depends(get_caller),
    service: PromptTransactionService = Depends(get_prompt_service),
) -> SavedPromptListResponse:
    """The caller's purchased and saved prompts, newest first."""
    records = await service.list_saved(caller.user_id, content_type)
    return SavedPromptListResponse(
        records=[_record_response(record) for record in records],
        total_count=len(records),
    )


# ============================================================================
# Content
# ============================================================================


@router.get("/v1/content/remixable", response_model=ContentListResponse)
async def list_remixable_content(
    content_type: ContentType = Query(ContentType.VIDEO),
    pricing: PricingFilter = Query(PricingFilter.ALL),
    limit: int = Query(20, ge=1, le=100),
    content_store: ContentStore = Depends(get_content_store),
) -> ContentListResponse:
    """Public content whose prompts can be remixed."""
    items = await content_store.list_remixable(content_type, pricing, limit)
    return ContentListResponse(
        items=[_content_response(item) for item in items],
        total_count=len(items),
    )


# ============================================================================
# Credits and Notifications
# ============================================================================


@router.get("/v1/credits/balance", response_model=BalanceResponse)
async def get_balance(
    caller: CallerIdentity = Depends(get_caller),
    ledger: CreditLedger = Depends(get_ledger),
) -> BalanceResponse:
    """The caller's credit balance."""
    credits = await ledger.get_balance(caller.user_id)
    return BalanceResponse(user_id=caller.user_id, credits=credits)


@router.get("/v1/notifications", response_model=NotificationListResponse)
async def list_notifications(
    limit: int = Query(50, ge=1, le=200),
    caller: CallerIdentity = Depends(get_caller),
    reader: NotificationReader = Depends(get_notification_reader),
) -> NotificationListResponse:
    """The caller's notifications, newest first."""
    notifications = await reader.list_for_user(caller.user_id, limit)
    return NotificationListResponse(
        notifications=[_notification_response(n) for n in notifications],
        unread_count=sum(1 for n in notifications if not n.is_read),
    )


@router.post(
    "/v1/notifications/{notification_id}/read",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def mark_notification_read(
    notification_id: str,
    caller: CallerIdentity = Depends(get_caller),
    reader: NotificationReader = Depends(get_notification_reader),
) -> Response:
    """Mark one of the caller's notifications as read."""
    if not await reader.mark_read(caller.user_id, notification_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found",
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================================
# Health
# ============================================================================


@router.get("/health", response_model=HealthResponse)
async def health_check(db: AsyncSession = Depends(get_db)) -> HealthResponse:
    """
    Health check for load balancer.

    Verifies database connectivity.
    """
    try:
        await db.execute(text("SELECT 1"))
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "status": "unhealthy",
                "database": "disconnected",
                "error": str(exc),
                "timestamp": datetime.now(UTC).isoformat(),
            },
        ) from exc

    return HealthResponse(
        status="healthy",
        database="connected",
        timestamp=datetime.now(UTC).isoformat(),
    )
