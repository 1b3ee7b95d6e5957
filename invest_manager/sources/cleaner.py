import re
from dataclasses import replace
from difflib import SequenceMatcher

import structlog
from bs4 import BeautifulSoup

from invest_manager.sources.base import Article

logger = structlog.get_logger()


def strip_html(text: str) -> str:
    if not text:
        return ""
    soup = BeautifulSoup(text, "lxml")
    return soup.get_text(separator=" ", strip=True)


def normalize_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def clean_article(article: Article) -> Article:
    return replace(
        article,
        title=normalize_whitespace(strip_html(article.title)),
        description=normalize_whitespace(strip_html(article.description)),
    )


def title_similarity(a: str, b: str) -> float:
    return SequenceMatcher(None, a.lower(), b.lower()).ratio()


def deduplicate_articles(
    articles: list[Article], similarity_threshold: float = 0.9
) -> list[Article]:
    seen_urls: set[str] = set()
    unique: list[Article] = []

    for article in articles:
        if article.url and article.url in seen_urls:
            continue

        is_duplicate = any(
            title_similarity(article.title, existing.title) >= similarity_threshold
            for existing in unique
        )
        if not is_duplicate:
            seen_urls.add(article.url)
            unique.append(article)

    if len(unique) != len(articles):
        logger.info(
            "articles_deduplicated",
            total_input=len(articles),
            kept=len(unique),
            removed=len(articles) - len(unique),
        )
    return unique
