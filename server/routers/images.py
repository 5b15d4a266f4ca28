"""Phrase illustration routes.

GET takes the request as query parameters so that image tags can point at
the endpoint directly; POST takes the same fields as JSON.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from core.container import get_content_service
from models.content import ImageRequest
from services.content import ContentService

router = APIRouter(prefix="/api", tags=["images"])


@router.get("/images")
async def illustrate_query(
    request: ImageRequest = Depends(),
    service: ContentService = Depends(get_content_service)
) -> Dict[str, Any]:
    return await service.illustrate(request)


@router.post("/images")
async def illustrate(
    request: ImageRequest,
    service: ContentService = Depends(get_content_service)
) -> Dict[str, Any]:
    return await service.illustrate(request)
