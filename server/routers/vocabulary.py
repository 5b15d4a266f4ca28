"""Vocabulary extraction routes."""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from core.container import get_content_service
from models.content import VocabularyRequest
from services.content import ContentService

router = APIRouter(prefix="/api/vocabulary", tags=["vocabulary"])


@router.post("/extract")
async def extract_vocabulary(
    request: VocabularyRequest,
    service: ContentService = Depends(get_content_service)
) -> Dict[str, Any]:
    return await service.extract_vocabulary(request)
