import asyncio
from calendar import timegm
from datetime import UTC, datetime
from typing import Any

import feedparser
import httpx
import structlog

from invest_manager.errors import NewsError
from invest_manager.sources.base import Article, NewsSource

logger = structlog.get_logger()

FEED_HEADERS = {
    "User-Agent": "invest-manager/0.1 (+rss)",
    "Accept": "application/rss+xml, application/atom+xml, application/xml;q=0.9, */*;q=0.8",
}


def entry_to_article(entry: Any, source: str) -> Article:
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    return Article(
        title=entry.get("title", ""),
        url=entry.get("link", ""),
        source=source,
        published_at=datetime.fromtimestamp(timegm(parsed), tz=UTC) if parsed else None,
        description=entry.get("summary", ""),
    )


def matches_query(article: Article, query: str) -> bool:
    """True when the title or description mentions any word of ``query``."""
    words = query.lower().split()
    if not words:
        return True
    haystack = f"{article.title} {article.description}".lower()
    return any(word in haystack for word in words)


class RssNewsSource(NewsSource):
    """Alternative news backend that reads plain RSS/Atom feeds.

    Feeds are fetched concurrently. A feed that fails is logged and skipped;
    only when every feed fails is the fetch treated as an error. Matching
    articles are returned newest first, undated ones last.
    """

    def __init__(self, feed_urls: list[str], timeout: float = 30.0) -> None:
        self.feed_urls = feed_urls
        self.timeout = timeout

    async def fetch_news(self, query: str, limit: int) -> list[Article]:
        if not self.feed_urls:
            return []

        async with httpx.AsyncClient(
            timeout=self.timeout, headers=FEED_HEADERS, follow_redirects=True
        ) as client:
            results = await asyncio.gather(
                *(self._read_feed(client, url) for url in self.feed_urls),
                return_exceptions=True,
            )

        articles: list[Article] = []
        for url, result in zip(self.feed_urls, results):
            if isinstance(result, Exception):
                logger.error("rss_feed_error", url=url, error=str(result))
                continue
            articles.extend(result)

        if all(isinstance(r, Exception) for r in results):
            raise NewsError("all RSS feeds failed")

        matched = [a for a in articles if matches_query(a, query)]
        matched.sort(
            key=lambda a: a.published_at or datetime.min.replace(tzinfo=UTC), reverse=True
        )
        logger.info("rss_news_fetched", feeds=len(self.feed_urls), matched=len(matched))
        return matched[:limit] if limit > 0 else matched

    async def _read_feed(self, client: httpx.AsyncClient, url: str) -> list[Article]:
        response = await client.get(url)
        response.raise_for_status()
        feed = feedparser.parse(response.text)
        source = feed.feed.get("title", url)
        return [entry_to_article(entry, source) for entry in feed.entries]
