"""HTTP providers against httpx.MockTransport."""

import base64
import json

import httpx
import pytest

from core.exceptions import ConfigurationError, ProviderError, ValidationError
from services.news_source import NewsSource
from services.providers import ImageProvider, ObjectStorage, SpeechProvider
from services.retry import RetryPolicy, call_with_retry


class Recorder:
    """MockTransport handler replaying canned responses in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def transport(*responses):
    recorder = Recorder(*responses)
    return recorder, httpx.MockTransport(recorder)


async def test_transient_status_is_retried(settings):
    recorder, mock = transport(
        httpx.Response(503, json={"error": {"message": "overloaded"}}),
        httpx.Response(200, content=b"ID3audio"),
    )
    provider = SpeechProvider(settings, transport=mock)

    audio = await provider.generate_speech("  hello  ", "alloy", 0.85)

    assert audio == b"ID3audio"
    assert len(recorder.requests) == 2
    body = json.loads(recorder.requests[0].content)
    assert body == {"model": "tts-1", "voice": "alloy", "input": "  hello  ",
                    "response_format": "mp3", "speed": 0.85}
    assert recorder.requests[0].headers["Authorization"] == "Bearer sk-test"


async def test_client_errors_are_not_retried(settings):
    recorder, mock = transport(
        httpx.Response(400, json={"error": {"message": "bad voice", "code": "invalid_voice"}}),
    )
    provider = SpeechProvider(settings, transport=mock)

    with pytest.raises(ProviderError) as excinfo:
        await provider.generate_speech("hello", "robot", 1.0)

    assert excinfo.value.status_code == 400
    assert excinfo.value.code == "invalid_voice"
    assert not excinfo.value.retryable
    assert len(recorder.requests) == 1


async def test_network_errors_exhaust_retry_budget(settings):
    recorder, mock = transport(*(httpx.ConnectError("refused") for _ in range(3)))
    provider = SpeechProvider(settings, transport=mock)

    with pytest.raises(ProviderError) as excinfo:
        await provider.generate_speech("hello", "alloy", 1.0)

    assert excinfo.value.kind == "network"
    assert len(recorder.requests) == settings.ai_max_retries + 1


async def test_backoff_delays_grow_and_cap():
    policy = RetryPolicy(max_attempts=3, initial_delay=1.0, max_delay=3.0)
    delays = []
    attempts = []

    async def sleep(delay):
        delays.append(delay)

    async def flaky():
        attempts.append(1)
        if len(attempts) < 4:
            raise ProviderError("openai", "timeout", "slow")
        return "ok"

    assert await call_with_retry(policy, "test", flaky, sleep=sleep) == "ok"
    assert delays == [1.0, 2.0, 3.0]


async def test_image_payload_is_decoded(settings):
    encoded = base64.b64encode(b"\x89PNGdata").decode()
    recorder, mock = transport(httpx.Response(200, json={"data": [{"b64_json": encoded}]}))
    provider = ImageProvider(settings, transport=mock)

    image = await provider.generate_image("a prompt", "1024x1024", "low", "webp")

    assert image == b"\x89PNGdata"
    body = json.loads(recorder.requests[0].content)
    assert body["output_compression"] == 80
    assert body["model"] == "gpt-image-1-mini"


async def test_image_response_without_data_is_invalid(settings):
    _, mock = transport(httpx.Response(200, json={"data": []}))
    with pytest.raises(ValidationError):
        await ImageProvider(settings, transport=mock).generate_image("p", "auto", "low")


async def test_storage_upload_and_signed_url(settings):
    recorder, mock = transport(
        httpx.Response(200, json={"Key": "tts-cache/tts/abc.mp3"}),
        httpx.Response(200, json={"signedURL": "/object/sign/tts-cache/tts/abc.mp3?token=t"}),
    )
    storage = ObjectStorage(settings, "tts-cache", transport=mock)

    assert await storage.put_object("tts/abc.mp3", b"ID3", "audio/mpeg") == "tts/abc.mp3"
    url = await storage.get_signed_url("tts/abc.mp3", 3600)

    upload, sign = recorder.requests
    assert str(upload.url) == "https://storage.test/storage/v1/object/tts-cache/tts/abc.mp3"
    assert upload.headers["x-upsert"] == "true"
    assert json.loads(sign.content) == {"expiresIn": 3600}
    assert url == "https://storage.test/storage/v1/object/sign/tts-cache/tts/abc.mp3?token=t"


async def test_news_source_maps_feed_items(settings):
    recorder, mock = transport(httpx.Response(200, json={"articles": [{
        "url": "https://news.example.com/a",
        "title": "Harbor reopens",
        "description": "Ships return.",
        "publishedAt": "2024-05-01T10:00:00Z",
        "urlToImage": "https://img.example.com/a.jpg",
    }]}))
    source = NewsSource(settings, transport=mock)

    articles = await source.fetch_latest(5)

    assert articles[0]["published_at"] == "2024-05-01T10:00:00Z"
    assert articles[0]["image"] == "https://img.example.com/a.jpg"
    request = recorder.requests[0]
    assert request.url.params["pageSize"] == "5"
    assert request.url.params["country"] == "us"
    assert request.headers["X-Api-Key"] == "news-key"


async def test_news_source_requires_configuration(settings):
    settings.external_news_api_key = None
    with pytest.raises(ConfigurationError):
        await NewsSource(settings).fetch_latest(5)


async def test_empty_feed_is_invalid(settings):
    _, mock = transport(httpx.Response(200, json={"articles": []}))
    with pytest.raises(ValidationError):
        await NewsSource(settings, transport=mock).fetch_latest(5)
