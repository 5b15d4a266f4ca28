"""Text-to-speech routes."""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from core.container import get_content_service
from models.content import SpeechRequest
from services.content import ContentService

router = APIRouter(prefix="/api", tags=["speech"])


@router.post("/speech")
async def speak(
    request: SpeechRequest,
    service: ContentService = Depends(get_content_service)
) -> Dict[str, Any]:
    """Audio for a word or phrase.

    Returns a signed URL minted for this response; `cached` tells whether the
    audio already existed.
    """
    return await service.speak(request)
