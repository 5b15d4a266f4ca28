"""News feed routes."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from core.config import Settings
from core.container import get_content_service, get_settings
from core.logging import get_logger
from models.content import ArticleRequest
from services.content import ContentService

logger = get_logger(__name__)
router = APIRouter(prefix="/api/news", tags=["news"])

MAX_FEED_LIMIT = 50


@router.get("")
async def get_news(
    limit: Optional[int] = Query(default=None, ge=1, le=MAX_FEED_LIMIT),
    refresh: bool = False,
    service: ContentService = Depends(get_content_service),
    settings: Settings = Depends(get_settings)
) -> Dict[str, Any]:
    """Recent summarized articles.

    Served from cache while fresh entries exist; `refresh=1` fetches the feed
    and regenerates every item.
    """
    return await service.news_feed(limit or settings.news_page_size, refresh=refresh)


@router.post("/article")
async def summarize_article(
    request: ArticleRequest,
    service: ContentService = Depends(get_content_service)
) -> Dict[str, Any]:
    """Summary and vocabulary for a single article."""
    return await service.summarize_article(request)
