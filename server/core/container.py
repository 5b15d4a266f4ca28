"""Dependency injection container for the application."""

from typing import Optional

from dependency_injector import containers, providers

from core.config import Settings
from core.database import Database
from core.cache import CacheService
from services.content import ContentService
from services.domains import (
    ImageDomain, ImageGenerator, NewsDomain, NewsGenerator, QualityGate,
    SpeechDomain, SpeechGenerator, TopicArticlesDomain, TopicArticlesGenerator,
    VocabularyDomain, VocabularyExtractor, VocabularyGenerator,
)
from services.news_source import NewsSource
from services.pipeline import ContentPipeline, InFlightRegistry
from services.providers import ImageProvider, ObjectStorage, SpeechProvider, TextProvider
from services.retry import RetryPolicy


def in_flight_registry(settings: Settings) -> Optional[InFlightRegistry]:
    """Shared single-flight registry, or None when disabled."""
    if not settings.single_flight_enabled:
        return None
    return InFlightRegistry()


class Container(containers.DeclarativeContainer):
    """Application dependency injection container.

    Pipelines bind to a cache store when first resolved, so content_service
    must not be resolved before cache.startup() has selected a backend.
    """

    # Settings
    settings = providers.Singleton(
        Settings,
    )

    # Database (needed by CacheService for the SQL backend)
    database = providers.Singleton(
        Database,
        settings=settings
    )

    # Content cache (Redis when available, SQL otherwise)
    cache = providers.Singleton(
        CacheService,
        settings=settings,
        database=database
    )

    # External providers
    retry_policy = providers.Singleton(
        RetryPolicy.from_settings,
        settings
    )

    text_provider = providers.Singleton(
        TextProvider,
        settings=settings,
        retry_policy=retry_policy
    )

    speech_provider = providers.Singleton(
        SpeechProvider,
        settings=settings,
        retry_policy=retry_policy
    )

    image_provider = providers.Singleton(
        ImageProvider,
        settings=settings,
        retry_policy=retry_policy
    )

    speech_storage = providers.Singleton(
        ObjectStorage,
        settings=settings,
        bucket=settings.provided.tts_bucket,
        retry_policy=retry_policy
    )

    image_storage = providers.Singleton(
        ObjectStorage,
        settings=settings,
        bucket=settings.provided.image_bucket,
        retry_policy=retry_policy
    )

    news_source = providers.Singleton(
        NewsSource,
        settings=settings,
        retry_policy=retry_policy
    )

    # Generation building blocks
    extractor = providers.Singleton(
        VocabularyExtractor,
        text_provider=text_provider,
        min_source_words=settings.provided.vocab_min_source_words,
        max_items=settings.provided.vocab_max_items
    )

    quality_gate = providers.Singleton(
        QualityGate,
        text_provider=text_provider,
        min_words=settings.provided.summary_min_words,
        max_tokens=settings.provided.summary_max_tokens
    )

    # Domains
    speech_domain = providers.Singleton(
        SpeechDomain,
        generator=providers.Singleton(
            SpeechGenerator,
            speech_provider=speech_provider,
            storage=speech_storage
        )
    )

    news_domain = providers.Singleton(
        NewsDomain,
        generator=providers.Singleton(
            NewsGenerator,
            text_provider=text_provider,
            quality_gate=quality_gate,
            extractor=extractor,
            fallback_vocab_size=settings.provided.fallback_vocab_size
        )
    )

    vocabulary_domain = providers.Singleton(
        VocabularyDomain,
        generator=providers.Singleton(
            VocabularyGenerator,
            text_provider=text_provider,
            extractor=extractor
        ),
        default_limit=settings.provided.vocab_max_items,
        fallback_size=settings.provided.fallback_vocab_size
    )

    image_domain = providers.Singleton(
        ImageDomain,
        generator=providers.Singleton(
            ImageGenerator,
            image_provider=image_provider,
            storage=image_storage,
            settings=settings
        ),
        settings=settings
    )

    topics_domain = providers.Singleton(
        TopicArticlesDomain,
        generator=providers.Singleton(
            TopicArticlesGenerator,
            text_provider=text_provider,
            count=settings.provided.topic_article_count,
            delay=settings.provided.batch_delay
        ),
        default_count=settings.provided.topic_article_count
    )

    # Pipelines
    in_flight = providers.Singleton(
        in_flight_registry,
        settings
    )

    speech_pipeline = providers.Singleton(
        ContentPipeline,
        domain=speech_domain,
        store=cache.provided.store.call(SpeechDomain.namespace),
        ttl=settings.provided.cache_ttl,
        generation_timeout=settings.provided.generation_timeout,
        in_flight=in_flight
    )

    news_pipeline = providers.Singleton(
        ContentPipeline,
        domain=news_domain,
        store=cache.provided.store.call(NewsDomain.namespace),
        ttl=settings.provided.cache_ttl,
        generation_timeout=settings.provided.generation_timeout,
        in_flight=in_flight
    )

    vocabulary_pipeline = providers.Singleton(
        ContentPipeline,
        domain=vocabulary_domain,
        store=cache.provided.store.call(VocabularyDomain.namespace),
        ttl=settings.provided.cache_ttl,
        generation_timeout=settings.provided.generation_timeout,
        in_flight=in_flight
    )

    image_pipeline = providers.Singleton(
        ContentPipeline,
        domain=image_domain,
        store=cache.provided.store.call(ImageDomain.namespace),
        ttl=settings.provided.cache_ttl,
        generation_timeout=settings.provided.generation_timeout,
        in_flight=in_flight
    )

    topics_pipeline = providers.Singleton(
        ContentPipeline,
        domain=topics_domain,
        store=cache.provided.store.call(TopicArticlesDomain.namespace),
        ttl=settings.provided.cache_ttl,
        generation_timeout=settings.provided.topic_generation_timeout,
        in_flight=in_flight
    )

    # Services
    content_service = providers.Singleton(
        ContentService,
        settings=settings,
        speech=speech_pipeline,
        news=news_pipeline,
        vocabulary=vocabulary_pipeline,
        images=image_pipeline,
        topics=topics_pipeline,
        speech_storage=speech_storage,
        image_storage=image_storage,
        news_source=news_source
    )


# Global container instance
container = Container()


def get_settings() -> Settings:
    return container.settings()


def get_content_service() -> ContentService:
    return container.content_service()
