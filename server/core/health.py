"""Health check utilities.

Provides uptime tracking and the status document served by /health.
"""
import time
from datetime import datetime, timezone
from typing import Dict, Any, TYPE_CHECKING

if TYPE_CHECKING:
    from core.config import Settings
    from core.database import Database
    from core.cache import CacheService

# Module-level startup time tracking
_startup_time: float = 0.0


def set_startup_time() -> None:
    """Record the application startup time. Call once during lifespan startup."""
    global _startup_time
    _startup_time = time.time()


def get_uptime() -> float:
    """Get uptime in seconds since startup."""
    return time.time() - _startup_time if _startup_time else 0.0


async def get_health_status(
    database: "Database",
    cache: "CacheService",
    settings: "Settings"
) -> Dict[str, Any]:
    """Get health status for the /health endpoint.

    The service stays usable without a reachable cache (every request
    regenerates), so an unhealthy check reports "degraded" rather than failing.
    """
    db_healthy = await database.ping()
    cache_healthy = await cache.ping()

    return {
        "status": "healthy" if (db_healthy and cache_healthy) else "degraded",
        "uptime_seconds": round(get_uptime(), 1),
        "checks": {
            "database": db_healthy,
            "cache": cache_healthy,
        },
        "cache_backend": cache.backend,
        "features": {
            "redis": settings.redis_enabled,
            "single_flight": settings.single_flight_enabled,
            "text_generation": bool(settings.openai_api_key),
            "object_storage": settings.storage_configured,
            "news_feed": bool(settings.external_news_api_url and settings.external_news_api_key),
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
