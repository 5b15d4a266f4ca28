"""Content service: one pipeline per domain plus the response shaping around it."""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

from core.config import Settings
from core.exceptions import ConfigurationError, GenerationError, RequestShapeError
from core.logging import get_logger
from pydantic import ValidationError as SchemaError
from models.content import (
    ArticleRequest, ImageRequest, SpeechRequest, TopicArticlesRequest, VocabularyRequest,
)
from services.domains.topics import utc_day
from services.news_source import NewsSource
from services.pipeline import ContentPipeline, PipelineResult
from services.providers import ObjectStorage

logger = get_logger(__name__)


class ContentService:
    """Entry point for the HTTP layer.

    Binary payloads (speech, images) are stored as object paths; a fresh
    signed URL is minted for every response, cached or not.
    """

    def __init__(self, settings: Settings,
                 speech: ContentPipeline, news: ContentPipeline,
                 vocabulary: ContentPipeline, images: ContentPipeline,
                 topics: ContentPipeline,
                 speech_storage: ObjectStorage, image_storage: ObjectStorage,
                 news_source: NewsSource,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self.settings = settings
        self.speech = speech
        self.news = news
        self.vocabulary = vocabulary
        self.images = images
        self.topics = topics
        self.speech_storage = speech_storage
        self.image_storage = image_storage
        self.news_source = news_source
        self.sleep = sleep

    async def _signed_url(self, storage: ObjectStorage, path: Optional[str]) -> tuple:
        """Return (url, note); url is None when there is nothing to sign or signing failed."""
        if not path:
            return None, None
        try:
            return await storage.get_signed_url(path, self.settings.signed_url_ttl), None
        except GenerationError as e:
            logger.warning("Signed URL failed", bucket=storage.bucket, path=path, error=str(e))
            return None, f"{type(e).__name__}: {e}"

    # =========================================================================
    # Speech
    # =========================================================================

    async def speak(self, request: SpeechRequest) -> Dict[str, Any]:
        result = await self.speech.get_or_generate(request, force_refresh=request.refresh)
        url, note = await self._signed_url(self.speech_storage, result.payload.get("storage_path"))

        response = result.to_response()
        response["url"] = url
        response["cached"] = result.cache_hit
        if note and "generation_note" not in response:
            response["generation_note"] = note
        return response

    # =========================================================================
    # Images
    # =========================================================================

    async def illustrate(self, request: ImageRequest) -> Dict[str, Any]:
        result = await self.images.get_or_generate(request, force_refresh=request.refresh)
        url, note = await self._signed_url(self.image_storage, result.payload.get("storage_path"))

        response = result.to_response()
        response["url"] = url or result.payload.get("image_url")
        if note and "generation_note" not in response:
            response["generation_note"] = note
        return response

    # =========================================================================
    # Vocabulary
    # =========================================================================

    async def extract_vocabulary(self, request: VocabularyRequest) -> Dict[str, Any]:
        result = await self.vocabulary.get_or_generate(request, force_refresh=request.refresh)
        response = result.to_response()
        response["vocabulary"] = result.payload.get("vocabulary", [])
        return response

    # =========================================================================
    # News
    # =========================================================================

    async def summarize_article(self, request: ArticleRequest) -> Dict[str, Any]:
        result = await self.news.get_or_generate(request, force_refresh=request.refresh)
        return result.to_response()

    @staticmethod
    def _entry_item(entry) -> Dict[str, Any]:
        return {
            **entry.payload,
            "cache_key": entry.key,
            "generation_status": entry.generation_status,
            "generated_at": entry.generated_at,
        }

    async def generate_articles(self, raw_articles: List[Dict[str, Any]],
                                force_refresh: bool = False) -> List[PipelineResult]:
        """Run a batch through the news pipeline, pacing consecutive generations."""
        results = []
        generated_before = False
        for raw in raw_articles:
            try:
                request = ArticleRequest.model_validate(raw)
                if generated_before and self.settings.batch_delay > 0:
                    await self.sleep(self.settings.batch_delay)
                result = await self.news.get_or_generate(request, force_refresh=force_refresh)
            except (RequestShapeError, SchemaError) as e:
                logger.warning("Skipping feed item", error=str(e))
                continue
            generated_before = not result.cache_hit
            results.append(result)
        return results

    async def news_feed(self, limit: int, refresh: bool = False) -> Dict[str, Any]:
        """Recent summarized articles; fetches and generates when the cache has none."""
        recent = await self.news.store.get_recent(limit)
        if recent and not refresh:
            return self._cached_feed("ok", recent)

        try:
            raw_articles = await self.news_source.fetch_latest(limit)
        except ConfigurationError:
            if recent:
                logger.warning("News source not configured, serving cached feed")
                return self._cached_feed("stale", recent)
            raise
        except GenerationError as e:
            logger.warning("News source failed", error=str(e))
            if recent:
                return self._cached_feed("stale", recent)
            return {"status": "error", "source": "none", "fetched_at": None, "articles": [],
                    "generation_note": f"{type(e).__name__}: {e}"}

        results = await self.generate_articles(raw_articles, force_refresh=refresh)
        return {
            "status": "ok",
            "source": "generated",
            "fetched_at": results[0].entry.generated_at if results else None,
            "articles": [self._entry_item(result.entry) for result in results[:limit]],
        }

    def _cached_feed(self, status: str, recent) -> Dict[str, Any]:
        return {
            "status": status,
            "source": "cache",
            "fetched_at": recent[0].generated_at,
            "articles": [self._entry_item(entry) for entry in recent],
        }

    # =========================================================================
    # Daily topic articles
    # =========================================================================

    async def daily_articles(self, request: TopicArticlesRequest) -> Dict[str, Any]:
        """The day's article batch; a cached batch that came out too small is regenerated."""
        if not request.date:
            request = request.model_copy(update={"date": utc_day(self.topics.clock())})

        result = await self.topics.get_or_generate(request, force_refresh=request.refresh)
        minimum = self.settings.topic_min_cached_articles
        if result.cache_hit and len(result.payload.get("articles", [])) < minimum:
            logger.info("Cached article batch below minimum, regenerating",
                        date=request.date, cached=len(result.payload.get("articles", [])),
                        minimum=minimum)
            result = await self.topics.get_or_generate(request, force_refresh=True)

        articles = result.payload.get("articles", [])
        response = result.to_response()
        response["status"] = "ok" if articles else "error"
        response["date"] = request.date
        response["articles"] = articles
        return response
