"""
Content Store - Read-only access to remixable videos and images.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from remix_market.db.models import ContentItem
from remix_market.exceptions import ContentNotFoundError
from remix_market.models.api import ContentType, PricingFilter
from remix_market.models.domain import ContentItemData


class ContentStore:
    """Lookups over the content_items table."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_content(self, content_id: str, content_type: ContentType) -> ContentItemData:
        """
        Fetch a public, remixable content item.

        Raises:
            ContentNotFoundError: Item missing, private, or remixing disabled
        """
        item = await self.session.get(ContentItem, (content_id, content_type))
        if item is None or not item.is_public or not item.allow_remix:
            raise ContentNotFoundError(content_id, content_type)
        return _content_to_domain(item)

    async def list_remixable(
        self,
        content_type: ContentType,
        pricing: PricingFilter = PricingFilter.ALL,
        limit: int = 20,
    ) -> list[ContentItemData]:
        """Public remixable items, newest first, filtered by price."""
        stmt = select(ContentItem).where(
            ContentItem.content_type == content_type,
            ContentItem.is_public.is_(True),
            ContentItem.allow_remix.is_(True),
        )

        if pricing == PricingFilter.FREE:
            stmt = stmt.where(
                (ContentItem.remix_price.is_(None)) | (ContentItem.remix_price == 0)
            )
        elif pricing == PricingFilter.PAID:
            stmt = stmt.where(ContentItem.remix_price > 0)

        stmt = stmt.order_by(ContentItem.created_at.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return [_content_to_domain(item) for item in result.scalars().all()]


def _content_to_domain(item: ContentItem) -> ContentItemData:
    return ContentItemData(
        content_id=item.id,
        content_type=ContentType(item.content_type),
        owner_id=item.owner_id,
        price=item.remix_price or 0,
        prompt_text=item.prompt_text,
        media_url=item.media_url,
        thumbnail_url=item.thumbnail_url,
        model=item.model,
        owner_username=item.owner_username,
        created_at=item.created_at,
    )
