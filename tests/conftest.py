"""Shared fixtures: fake providers, a controllable clock and in-memory stores."""

import asyncio
import json
from typing import Any, Dict, List, Optional

import pytest

from core.cache import MemoryCacheStore
from core.config import Settings
from core.exceptions import ProviderError
from services.content import ContentService
from services.domains import (
    ImageDomain, ImageGenerator, NewsDomain, NewsGenerator, QualityGate,
    SpeechDomain, SpeechGenerator, TopicArticlesDomain, TopicArticlesGenerator,
    VocabularyDomain, VocabularyExtractor, VocabularyGenerator,
)
from services.pipeline import ContentPipeline, InFlightRegistry

START = 1_700_000_000.0

WORDS = (
    "parliament approved ambitious climate legislation yesterday after lengthy "
    "negotiations between coalition partners who disagreed about funding "
    "renewable infrastructure across rural regions"
).split()


def text_of(word_count: int) -> str:
    """Deterministic prose of exactly word_count words."""
    return " ".join(WORDS[i % len(WORDS)] for i in range(word_count))


def vocab_json(*words: str) -> str:
    return json.dumps([{"word": word, "definition": f"meaning of {word}"} for word in words])


class FakeClock:
    def __init__(self, now: float = START):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTextProvider:
    """Returns queued responses in order; queued exceptions are raised."""

    name = "openai"

    def __init__(self, responses: Optional[List[Any]] = None):
        self.configured = True
        self.responses = list(responses or [])
        self.calls: List[Dict[str, Any]] = []
        self.delay = 0.0

    def queue(self, *responses: Any) -> None:
        self.responses.extend(responses)

    async def generate_text(self, prompt: str, system: Optional[str] = None,
                            max_tokens: int = 600, temperature: float = 0.7) -> str:
        self.calls.append({"prompt": prompt, "system": system, "max_tokens": max_tokens})
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self.responses:
            raise ProviderError(self.name, "status", "no response queued", status_code=500)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeSpeechProvider:
    name = "openai_speech"

    def __init__(self):
        self.configured = True
        self.calls: List[Dict[str, Any]] = []
        self.error: Optional[Exception] = None
        self.delay = 0.0

    async def generate_speech(self, text: str, voice: str, rate: float) -> bytes:
        self.calls.append({"text": text, "voice": voice, "rate": rate})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return b"ID3" + text.encode("utf-8")


class FakeImageProvider:
    name = "openai_image"

    def __init__(self):
        self.configured = True
        self.calls: List[Dict[str, Any]] = []
        self.errors: List[Exception] = []

    async def generate_image(self, prompt: str, size: str, quality: str,
                             output_format: str = "png") -> bytes:
        self.calls.append({"prompt": prompt, "size": size, "quality": quality,
                           "output_format": output_format})
        if self.errors:
            raise self.errors.pop(0)
        return b"\x89PNG"


class FakeStorage:
    name = "storage"

    def __init__(self, bucket: str):
        self.bucket = bucket
        self.configured = True
        self.objects: Dict[str, bytes] = {}
        self.signed: List[str] = []

    async def put_object(self, path: str, data: bytes, content_type: str) -> str:
        self.objects[path] = data
        return path

    async def get_signed_url(self, path: str, ttl: int) -> str:
        self.signed.append(path)
        return f"https://storage.test/{self.bucket}/{path}?token={len(self.signed)}"


class FakeNewsSource:
    name = "news_feed"

    def __init__(self, articles: Optional[List[Dict[str, Any]]] = None):
        self.configured = True
        self.articles = articles or []
        self.error: Optional[Exception] = None
        self.calls = 0

    async def fetch_latest(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        self.calls += 1
        if self.error:
            raise self.error
        return self.articles[:limit]


class RecordingSleep:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        openai_api_key="sk-test",
        supabase_url="https://storage.test",
        supabase_service_role_key="service-key",
        database_url=f"sqlite+aiosqlite:///{tmp_path}/cache.db",
        external_news_api_url="https://news.test/v2/top-headlines?country=us",
        external_news_api_key="news-key",
        cache_ttl=3600,
        batch_delay=0.5,
        ai_retry_delay=0.0,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def text_provider():
    return FakeTextProvider()


@pytest.fixture
def speech_provider():
    return FakeSpeechProvider()


@pytest.fixture
def image_provider():
    return FakeImageProvider()


@pytest.fixture
def speech_storage():
    return FakeStorage("tts-cache")


@pytest.fixture
def image_storage():
    return FakeStorage("story-images")


@pytest.fixture
def news_source():
    return FakeNewsSource()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def build_pipeline(settings, clock):
    """Build a pipeline over a fresh MemoryCacheStore."""
    def build(domain, generation_timeout=None, in_flight=None, store=None):
        return ContentPipeline(
            domain,
            store if store is not None else MemoryCacheStore(domain.namespace, clock=clock),
            ttl=settings.cache_ttl,
            generation_timeout=generation_timeout,
            in_flight=in_flight,
            clock=clock,
        )
    return build


@pytest.fixture
def extractor(settings, text_provider):
    return VocabularyExtractor(text_provider, settings.vocab_min_source_words,
                               settings.vocab_max_items)


@pytest.fixture
def speech_domain(speech_provider, speech_storage):
    return SpeechDomain(SpeechGenerator(speech_provider, speech_storage))


@pytest.fixture
def news_domain(settings, text_provider, extractor):
    gate = QualityGate(text_provider, settings.summary_min_words, settings.summary_max_tokens)
    return NewsDomain(NewsGenerator(text_provider, gate, extractor, settings.fallback_vocab_size))


@pytest.fixture
def vocabulary_domain(settings, text_provider, extractor):
    return VocabularyDomain(VocabularyGenerator(text_provider, extractor),
                            default_limit=settings.vocab_max_items,
                            fallback_size=settings.fallback_vocab_size)


@pytest.fixture
def image_domain(settings, image_provider, image_storage):
    return ImageDomain(ImageGenerator(image_provider, image_storage, settings), settings)


@pytest.fixture
def topics_domain(settings, text_provider, sleep, clock):
    generator = TopicArticlesGenerator(text_provider, count=settings.topic_article_count,
                                       delay=settings.batch_delay, sleep=sleep, clock=clock)
    return TopicArticlesDomain(generator, default_count=settings.topic_article_count)


@pytest.fixture
def service(settings, build_pipeline, speech_domain, news_domain, vocabulary_domain,
            image_domain, topics_domain, speech_storage, image_storage, news_source, sleep):
    in_flight = InFlightRegistry()
    return ContentService(
        settings,
        speech=build_pipeline(speech_domain, in_flight=in_flight),
        news=build_pipeline(news_domain, in_flight=in_flight),
        vocabulary=build_pipeline(vocabulary_domain, in_flight=in_flight),
        images=build_pipeline(image_domain, in_flight=in_flight),
        topics=build_pipeline(topics_domain, in_flight=in_flight),
        speech_storage=speech_storage,
        image_storage=image_storage,
        news_source=news_source,
        sleep=sleep,
    )
