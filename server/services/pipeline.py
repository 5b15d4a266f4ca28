"""Cache-aside get-or-generate pipeline.

Per request:

    NORMALIZE -> DERIVE_KEY -> LOOKUP -> HIT  -> respond(cache_hit)
                                      -> MISS -> GENERATE -> OK   -> WRITE -> respond(ai_generated)
                                                          -> FAIL -> FALLBACK -> WRITE -> respond(fallback_source)

force_refresh skips LOOKUP but still writes, so later requests get the
refreshed entry. Only configuration and request-shape errors escape; every
generation failure degrades to the domain's fallback payload.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from core.cache import CacheStore
from core.exceptions import (
    ConfigurationError, GenerationError, ProviderError, RequestShapeError,
)
from core.logging import get_logger, log_execution_time
from models.cache import CacheEntry, GenerationStatus
from models.content import ContentRequest
from services.domains.base import ContentDomain, Identity
from services.keys import derive_key, normalize

logger = get_logger(__name__)


@dataclass
class PipelineResult:
    key: str
    entry: CacheEntry
    generation_status: GenerationStatus
    generation_note: Optional[str] = None

    @property
    def cache_hit(self) -> bool:
        return self.generation_status == GenerationStatus.CACHE_HIT

    @property
    def payload(self) -> Dict[str, Any]:
        return self.entry.payload

    def to_response(self) -> Dict[str, Any]:
        response = {
            "payload": self.payload,
            "cache_hit": self.cache_hit,
            "generation_status": self.generation_status.value,
            "generated_at": self.entry.generated_at,
            "cache_key": self.key,
        }
        if self.generation_note:
            response["generation_note"] = self.generation_note
        return response


class InFlightRegistry:
    """Single-flight: concurrent misses for one key share one generation.

    The shared task is shielded, so a caller that goes away does not cancel
    the work other callers are waiting on.
    """

    def __init__(self):
        self._pending: Dict[str, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._pending)

    async def run(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._pending[key] = task
            task.add_done_callback(lambda done, key=key: self._release(key, done))
        else:
            logger.debug("Joining in-flight generation", cache_key=key)
        return await asyncio.shield(task)

    def _release(self, key: str, task: asyncio.Task) -> None:
        if self._pending.get(key) is task:
            del self._pending[key]


class ContentPipeline:
    """get_or_generate for one content domain."""

    def __init__(self, domain: ContentDomain, store: CacheStore, ttl: float,
                 generation_timeout: Optional[float] = None,
                 in_flight: Optional[InFlightRegistry] = None,
                 clock: Callable[[], float] = time.time):
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self.domain = domain
        self.store = store
        self.ttl = ttl
        self.generation_timeout = generation_timeout
        self.in_flight = in_flight
        self.clock = clock

    @property
    def namespace(self) -> str:
        return self.domain.namespace

    def cache_key(self, request: ContentRequest) -> tuple:
        """Return (key, identity) without touching the store."""
        identity = self.domain.identify(request)
        if identity.key:
            return identity.key, identity
        normalized = normalize(identity.raw, identity.kind)
        return derive_key(self.namespace, normalized, identity.context, self.domain.key_length), identity

    async def get_or_generate(self, request: ContentRequest,
                              force_refresh: bool = False) -> PipelineResult:
        self.domain.ensure_configured()
        key, identity = self.cache_key(request)

        if force_refresh:
            logger.info("Forced refresh, skipping lookup", namespace=self.namespace, cache_key=key)
        else:
            entry = await self.store.get(key)
            if entry is not None:
                logger.info("Serving cached content", namespace=self.namespace, cache_key=key)
                return PipelineResult(key, entry, GenerationStatus.CACHE_HIT)

        if self.in_flight is None:
            return await self._generate_and_store(request, key, identity)
        return await self.in_flight.run(
            f"{self.namespace}:{key}",
            lambda: self._generate_and_store(request, key, identity),
        )

    async def _generate(self, request: ContentRequest, key: str):
        call = self.domain.generator.generate(request, key)
        if self.generation_timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=self.generation_timeout)
        except asyncio.TimeoutError as e:
            raise ProviderError("pipeline", "timeout",
                                f"generation exceeded {self.generation_timeout}s") from e

    async def _generate_and_store(self, request: ContentRequest, key: str,
                                  identity: Identity) -> PipelineResult:
        start_time = time.time()
        try:
            generated = await self._generate(request, key)
            payload = generated.payload
            status = GenerationStatus.AI_GENERATED
            note = generated.note
        except (ConfigurationError, RequestShapeError):
            raise
        except GenerationError as e:
            logger.warning("Generation failed, using fallback", namespace=self.namespace,
                           cache_key=key, error_type=type(e).__name__, error=str(e))
            payload = self.domain.fallback(request)
            status = GenerationStatus.FALLBACK_SOURCE
            note = f"{type(e).__name__}: {e}"
        except Exception as e:
            logger.error("Generator raised unexpectedly, using fallback", namespace=self.namespace,
                         cache_key=key, error=str(e), exc_info=True)
            payload = self.domain.fallback(request)
            status = GenerationStatus.FALLBACK_SOURCE
            note = f"{type(e).__name__}: {e}"

        entry = CacheEntry.create(
            key=key,
            namespace=self.namespace,
            payload=payload,
            ttl=self.ttl,
            source_identifier=identity.raw,
            category=self.domain.category_for(request),
            status=status,
            now=self.clock(),
        )
        await self.store.upsert(entry)

        log_execution_time(logger, f"{self.namespace}.generate", start_time, time.time(),
                           cache_key=key, generation_status=status.value)
        return PipelineResult(key, entry, status, note)
