"""SQL-backed cache store on a temporary SQLite file."""

import asyncio

import pytest

from core.cache import CacheService, SQLCacheStore
from core.database import Database
from models.cache import CacheEntry, GenerationStatus
from tests.conftest import START


@pytest.fixture
async def database(settings):
    db = Database(settings)
    await db.startup()
    yield db
    await db.shutdown()


def entry(key, created_at=START, ttl=3600, namespace="news", **payload):
    return CacheEntry.create(key=key, namespace=namespace, payload=payload or {"title": key},
                             ttl=ttl, source_identifier=f"https://example.com/{key}",
                             category="news", now=created_at)


async def test_upsert_then_get(database, clock):
    store = SQLCacheStore("news", database, clock=clock)
    assert await store.upsert(entry("a" * 64, title="Harbor reopens"))

    found = await store.get("a" * 64)
    assert found.payload == {"title": "Harbor reopens"}
    assert found.generation_status == GenerationStatus.AI_GENERATED.value
    assert found.source_identifier == "https://example.com/" + "a" * 64


async def test_upsert_replaces_existing_entry(database, clock):
    store = SQLCacheStore("news", database, clock=clock)
    await store.upsert(entry("k1", title="first"))
    replacement = CacheEntry.create(key="k1", namespace="news", payload={"title": "second"},
                                    ttl=3600, status=GenerationStatus.FALLBACK_SOURCE,
                                    now=START + 10)
    await store.upsert(replacement)

    found = await store.get("k1")
    assert found.payload == {"title": "second"}
    assert found.generation_status == GenerationStatus.FALLBACK_SOURCE.value
    assert found.created_at == START + 10


async def test_concurrent_upserts_of_one_key_all_succeed(database, clock):
    store = SQLCacheStore("news", database, clock=clock)
    writers = [entry("k1", title=f"writer {n}") for n in range(4)]

    results = await asyncio.gather(*(store.upsert(item) for item in writers))

    assert results == [True, True, True, True]
    found = await store.get("k1")
    assert found.payload in [item.payload for item in writers]
    assert len(await store.get_recent(10)) == 1


async def test_upsert_of_missing_key_inserts_once(database, clock):
    await database.upsert_content_entry(entry("k1"))
    await database.upsert_content_entry(entry("k1", title="again"))

    rows = await database.get_recent_content_entries("news", clock(), 10)
    assert [(row.key, row.payload) for row in rows] == [("k1", {"title": "again"})]


async def test_expired_entries_are_misses(database, clock):
    store = SQLCacheStore("news", database, clock=clock)
    await store.upsert(entry("k1", ttl=60))
    clock.advance(60)
    assert await store.get("k1") is None


async def test_namespaces_are_isolated(database, clock):
    await SQLCacheStore("news", database, clock=clock).upsert(entry("k1"))
    assert await SQLCacheStore("vocabulary", database, clock=clock).get("k1") is None


async def test_recent_entries_are_fresh_and_newest_first(database, clock):
    store = SQLCacheStore("news", database, clock=clock)
    await store.upsert(entry("old", created_at=START - 100))
    await store.upsert(entry("new", created_at=START))
    await store.upsert(entry("gone", created_at=START - 5000, ttl=100))

    recent = await store.get_recent(10)
    assert [item.key for item in recent] == ["new", "old"]
    assert [item.key for item in await store.get_recent(1)] == ["new"]


async def test_cache_service_selects_sql_when_redis_is_disabled(settings, database, clock):
    cache = CacheService(settings, database, clock=clock)
    await cache.startup()

    assert cache.backend == "sql"
    assert isinstance(cache.store("news"), SQLCacheStore)
    assert cache.store("news") is cache.store("news")
    assert await cache.ping()
    await cache.shutdown()


async def test_cache_service_without_database_uses_memory(settings, clock):
    cache = CacheService(settings, None, clock=clock)
    await cache.startup()
    assert cache.backend == "memory"
    await cache.store("speech").upsert(entry("k1", namespace="speech"))
    assert await cache.store("speech").get("k1") is not None
