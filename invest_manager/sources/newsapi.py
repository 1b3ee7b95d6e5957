from datetime import datetime
from typing import Any

import httpx
import structlog

from invest_manager.config import Settings
from invest_manager.errors import NewsError
from invest_manager.sources.base import Article, NewsSource

logger = structlog.get_logger()

DEFAULT_QUERY = "Russia stocks"
DEFAULT_LIMIT = 5


class NewsApiSource(NewsSource):
    def __init__(self, settings: Settings) -> None:
        self.api_key = settings.newsapi_token
        self.base_url = settings.newsapi_url
        self.timeout = settings.news_timeout

    async def fetch_news(self, query: str, limit: int) -> list[Article]:
        query = query or DEFAULT_QUERY
        if limit <= 0:
            limit = DEFAULT_LIMIT

        params = {
            "q": query,
            "language": "en",
            "sortBy": "publishedAt",
            "pageSize": str(limit),
        }
        headers = {"X-Api-Key": self.api_key}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(self.base_url, params=params, headers=headers)
        except httpx.HTTPError as exc:
            raise NewsError(f"error fetching news: {exc}") from exc

        if response.status_code != httpx.codes.OK:
            raise NewsError(f"news API returned non-OK status: {response.status_code}")
        try:
            data: dict[str, Any] = response.json()
        except ValueError as exc:
            raise NewsError(f"error parsing news response: {exc}") from exc
        if data.get("status") != "ok":
            raise NewsError(f"news API returned error status: {data.get('status')}")

        articles = [self._to_article(raw) for raw in data.get("articles", [])]
        logger.info("news_fetched", query=query, count=len(articles))
        return articles[:limit]

    @staticmethod
    def _to_article(raw: dict[str, Any]) -> Article:
        source = raw.get("source") or {}
        return Article(
            title=str(raw.get("title") or ""),
            url=str(raw.get("url") or ""),
            source=str(source.get("name") or ""),
            published_at=_parse_timestamp(raw.get("publishedAt")),
            description=str(raw.get("description") or ""),
        )


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
