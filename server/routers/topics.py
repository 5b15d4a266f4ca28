"""Daily topic article routes."""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from core.container import get_content_service
from models.content import TopicArticlesRequest
from services.content import ContentService

router = APIRouter(prefix="/api/topics", tags=["topics"])


@router.get("/articles")
async def daily_articles(
    request: TopicArticlesRequest = Depends(),
    service: ContentService = Depends(get_content_service)
) -> Dict[str, Any]:
    """Today's self-improvement articles, or those of `date`.

    Generated once per UTC day; `refresh=1` regenerates the batch.
    """
    return await service.daily_articles(request)
