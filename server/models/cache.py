"""Content cache entry model.

One table holds every content domain; rows are partitioned by namespace and
addressed by a content hash key. Timestamps are unix seconds, matching the
Redis backend which stores the same shape as JSON.
"""

import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from sqlmodel import SQLModel, Field, Column, JSON


class GenerationStatus(str, Enum):
    """How the payload served to a caller was obtained.

    Stored entries carry AI_GENERATED or FALLBACK_SOURCE; CACHE_HIT only
    appears on responses served from a stored entry.
    """
    AI_GENERATED = "ai_generated"
    FALLBACK_SOURCE = "fallback_source"
    CACHE_HIT = "cache_hit"


class CacheEntry(SQLModel, table=True):
    """Generated content keyed by a deterministic content hash."""

    __tablename__ = "content_cache"

    key: str = Field(primary_key=True, max_length=64)
    namespace: str = Field(index=True, max_length=32)
    source_identifier: str = Field(default="", max_length=4096)
    payload: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    category: Optional[str] = Field(default=None, max_length=64)
    generation_status: str = Field(default=GenerationStatus.AI_GENERATED.value, max_length=32)
    created_at: float = Field(default_factory=time.time, index=True)
    expires_at: float = Field(index=True)

    @classmethod
    def create(cls, key: str, namespace: str, payload: Dict[str, Any], ttl: float,
               source_identifier: str = "", category: Optional[str] = None,
               status: GenerationStatus = GenerationStatus.AI_GENERATED,
               now: Optional[float] = None) -> "CacheEntry":
        """Build an entry expiring ttl seconds after creation."""
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        created_at = time.time() if now is None else now
        return cls(
            key=key,
            namespace=namespace,
            source_identifier=source_identifier[:4096],
            payload=payload,
            category=category,
            generation_status=status.value,
            created_at=created_at,
            expires_at=created_at + ttl,
        )

    def is_readable(self, now: float) -> bool:
        return now < self.expires_at

    @property
    def generated_at(self) -> str:
        """Creation time as ISO-8601 UTC."""
        return datetime.fromtimestamp(self.created_at, tz=timezone.utc).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "key": self.key,
            "namespace": self.namespace,
            "source_identifier": self.source_identifier,
            "payload": self.payload,
            "category": self.category,
            "generation_status": self.generation_status,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheEntry":
        """Create from dict."""
        return cls(
            key=data["key"],
            namespace=data["namespace"],
            source_identifier=data.get("source_identifier", ""),
            payload=data.get("payload") or {},
            category=data.get("category"),
            generation_status=data.get("generation_status", GenerationStatus.AI_GENERATED.value),
            created_at=float(data["created_at"]),
            expires_at=float(data["expires_at"]),
        )
