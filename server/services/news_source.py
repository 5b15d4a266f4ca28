"""External news feed client (NewsAPI-compatible)."""

from typing import Any, Dict, List, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx

from core.config import Settings
from core.exceptions import ConfigurationError, ValidationError
from services.providers import HTTPProvider
from services.retry import RetryPolicy


def _with_page_size(url: str, page_size: int) -> str:
    """Add pageSize to the feed URL unless it already sets one."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    query = parse_qsl(parts.query, keep_blank_values=True)
    if any(name == "pageSize" for name, _ in query):
        return url
    query.append(("pageSize", str(page_size)))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def to_article(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Map a feed item onto the article request shape."""
    return {
        "url": raw.get("url"),
        "id": raw.get("id"),
        "title": raw.get("title") or raw.get("description") or "",
        "description": raw.get("description"),
        "content": raw.get("content"),
        "published_at": raw.get("publishedAt") or raw.get("published_at"),
        "image": raw.get("urlToImage") or raw.get("image"),
        "category": raw.get("category"),
    }


class NewsSource(HTTPProvider):
    """Fetches the latest raw articles from the configured feed."""

    name = "news_feed"

    def __init__(self, settings: Settings, retry_policy: Optional[RetryPolicy] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(settings, retry_policy, transport)

    @property
    def configured(self) -> bool:
        return bool(self.settings.external_news_api_url and self.settings.external_news_api_key)

    async def fetch_latest(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        if not self.configured:
            raise ConfigurationError("EXTERNAL_NEWS_API_URL and EXTERNAL_NEWS_API_KEY are required")

        page_size = limit or self.settings.news_page_size
        response = await self._request(
            "fetch_latest", "GET",
            _with_page_size(self.settings.external_news_api_url, page_size),
            headers={"X-Api-Key": self.settings.external_news_api_key},
        )
        try:
            articles = response.json().get("articles")
        except (ValueError, AttributeError) as e:
            raise ValidationError("news feed returned invalid JSON") from e
        if not isinstance(articles, list) or not articles:
            raise ValidationError("news feed returned no articles")

        return [to_article(item) for item in articles[:page_size] if isinstance(item, dict)]
