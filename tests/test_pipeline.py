"""Cache-aside behavior shared by every domain."""

import asyncio

import pytest

from core.cache import MemoryCacheStore
from core.exceptions import ConfigurationError, ProviderError, RequestShapeError
from models.cache import GenerationStatus
from models.content import SpeechRequest
from services.pipeline import InFlightRegistry


def hello(**kwargs):
    return SpeechRequest(text="hello", voice="alloy", rate=0.85, **kwargs)


async def test_second_request_is_served_from_cache(build_pipeline, speech_domain, speech_provider):
    pipeline = build_pipeline(speech_domain)

    first = await pipeline.get_or_generate(hello())
    second = await pipeline.get_or_generate(hello())

    assert first.generation_status == GenerationStatus.AI_GENERATED
    assert second.generation_status == GenerationStatus.CACHE_HIT
    assert second.key == first.key
    assert second.payload == first.payload
    assert second.entry.generated_at == first.entry.generated_at
    assert len(speech_provider.calls) == 1


async def test_expired_entry_is_regenerated(build_pipeline, speech_domain, speech_provider,
                                            settings, clock):
    pipeline = build_pipeline(speech_domain)
    await pipeline.get_or_generate(hello())

    clock.advance(settings.cache_ttl - 1)
    assert (await pipeline.get_or_generate(hello())).cache_hit

    clock.advance(1)
    result = await pipeline.get_or_generate(hello())
    assert result.generation_status == GenerationStatus.AI_GENERATED
    assert len(speech_provider.calls) == 2


async def test_force_refresh_skips_lookup_but_writes(build_pipeline, speech_domain,
                                                     speech_provider, clock):
    pipeline = build_pipeline(speech_domain)
    first = await pipeline.get_or_generate(hello())

    clock.advance(60)
    refreshed = await pipeline.get_or_generate(hello(), force_refresh=True)
    assert refreshed.generation_status == GenerationStatus.AI_GENERATED
    assert refreshed.entry.created_at == first.entry.created_at + 60

    served = await pipeline.get_or_generate(hello())
    assert served.cache_hit
    assert served.entry.created_at == refreshed.entry.created_at
    assert len(speech_provider.calls) == 2


async def test_provider_failure_serves_and_stores_fallback(build_pipeline, speech_domain,
                                                           speech_provider):
    speech_provider.error = ProviderError("openai_speech", "status", "overloaded", status_code=503)
    pipeline = build_pipeline(speech_domain)

    result = await pipeline.get_or_generate(hello())
    assert result.generation_status == GenerationStatus.FALLBACK_SOURCE
    assert result.payload["playback"] == "device"
    assert "ProviderError" in result.to_response()["generation_note"]

    # The fallback entry is cached like any other
    speech_provider.error = None
    again = await pipeline.get_or_generate(hello())
    assert again.cache_hit
    assert again.entry.generation_status == GenerationStatus.FALLBACK_SOURCE.value
    assert len(speech_provider.calls) == 1


async def test_unexpected_generator_error_still_falls_back(build_pipeline, speech_domain,
                                                           speech_provider):
    speech_provider.error = KeyError("boom")
    result = await build_pipeline(speech_domain).get_or_generate(hello())
    assert result.generation_status == GenerationStatus.FALLBACK_SOURCE
    assert result.generation_note.startswith("KeyError")


async def test_missing_credentials_fail_before_lookup(build_pipeline, speech_domain,
                                                      speech_provider, clock):
    class CountingStore(MemoryCacheStore):
        reads = 0

        async def _read(self, key):
            CountingStore.reads += 1
            return await super()._read(key)

    pipeline = build_pipeline(speech_domain, store=CountingStore("speech", clock=clock))
    speech_provider.configured = False

    with pytest.raises(ConfigurationError, match="openai_speech"):
        await pipeline.get_or_generate(hello())
    assert CountingStore.reads == 0


async def test_missing_text_is_a_request_shape_error(build_pipeline, speech_domain):
    with pytest.raises(RequestShapeError):
        await build_pipeline(speech_domain).get_or_generate(SpeechRequest(text="   "))


async def test_unavailable_store_degrades_to_regeneration(build_pipeline, speech_domain,
                                                          speech_provider, clock):
    class BrokenStore(MemoryCacheStore):
        async def _read(self, key):
            raise ConnectionError("store down")

        async def _write(self, entry):
            raise ConnectionError("store down")

    pipeline = build_pipeline(speech_domain, store=BrokenStore("speech", clock=clock))
    first = await pipeline.get_or_generate(hello())
    second = await pipeline.get_or_generate(hello())

    assert first.generation_status == GenerationStatus.AI_GENERATED
    assert second.generation_status == GenerationStatus.AI_GENERATED
    assert len(speech_provider.calls) == 2


async def test_concurrent_misses_share_one_generation(build_pipeline, speech_domain,
                                                      speech_provider):
    speech_provider.delay = 0.05
    registry = InFlightRegistry()
    pipeline = build_pipeline(speech_domain, in_flight=registry)

    results = await asyncio.gather(*(pipeline.get_or_generate(hello()) for _ in range(5)))

    assert len(speech_provider.calls) == 1
    assert {result.key for result in results} == {results[0].key}
    assert len(registry) == 0


async def test_cancelled_waiter_does_not_cancel_shared_generation(build_pipeline, speech_domain,
                                                                 speech_provider):
    speech_provider.delay = 0.05
    pipeline = build_pipeline(speech_domain, in_flight=InFlightRegistry())

    abandoned = asyncio.ensure_future(pipeline.get_or_generate(hello()))
    await asyncio.sleep(0)
    survivor = asyncio.ensure_future(pipeline.get_or_generate(hello()))
    await asyncio.sleep(0.01)
    abandoned.cancel()

    result = await survivor
    assert result.generation_status == GenerationStatus.AI_GENERATED
    assert len(speech_provider.calls) == 1


async def test_generation_deadline_falls_back(build_pipeline, speech_domain, speech_provider):
    speech_provider.delay = 1.0
    pipeline = build_pipeline(speech_domain, generation_timeout=0.05)

    result = await pipeline.get_or_generate(hello())
    assert result.generation_status == GenerationStatus.FALLBACK_SOURCE
    assert "timeout" in result.generation_note


def test_ttl_must_be_positive(build_pipeline, speech_domain, settings, clock):
    from services.pipeline import ContentPipeline
    with pytest.raises(ValueError):
        ContentPipeline(speech_domain, MemoryCacheStore("speech", clock=clock), ttl=0)
