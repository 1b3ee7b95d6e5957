import asyncio
import uuid
from typing import Any, Protocol

import structlog

from invest_manager.analysis.parser import PortfolioAnalysis, parse_advisory
from invest_manager.analysis.prompts import render_news, render_portfolio
from invest_manager.config import Settings
from invest_manager.delivery.base import BaseNotifier
from invest_manager.delivery.formatter import format_report, strip_emphasis
from invest_manager.errors import DeliveryError, PipelineStepError, PipelineTimeoutError
from invest_manager.sources.base import Article, NewsSource, Portfolio, PortfolioSource
from invest_manager.sources.cleaner import clean_article, deduplicate_articles

STEP_PORTFOLIO = "portfolio"
STEP_NEWS = "news"
STEP_ADVISORY = "advisory"
STEP_DELIVERY = "delivery"


class Advisor(Protocol):
    async def generate(
        self, portfolio_rendering: str, news_rendering: str, monthly_reminder: bool
    ) -> str: ...


class AnalysisPipeline:
    """Fetch portfolio, fetch news, generate advisory, deliver the report.

    Only one run executes at a time; concurrent callers queue on the guard.
    """

    def __init__(
        self,
        portfolio_source: PortfolioSource,
        news_source: NewsSource,
        advisor: Advisor,
        notifier: BaseNotifier,
        settings: Settings,
        logger: Any = None,
    ) -> None:
        self.portfolio_source = portfolio_source
        self.news_source = news_source
        self.advisor = advisor
        self.notifier = notifier
        self.settings = settings
        self.logger = logger or structlog.get_logger()
        self._guard = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._guard.locked()

    async def run(self, monthly_reminder: bool = False, *, timeout: float | None = None) -> None:
        deadline = timeout or self.settings.pipeline_timeout
        async with self._guard:
            run_id = str(uuid.uuid4())[:8]
            log = self.logger.bind(run_id=run_id)
            state = {"step": STEP_PORTFOLIO}
            log.info("pipeline_start", monthly_reminder=monthly_reminder, timeout=deadline)
            try:
                await asyncio.wait_for(self._execute(monthly_reminder, state, log), deadline)
            except TimeoutError as exc:
                log.error("pipeline_timeout", step=state["step"], timeout=deadline)
                raise PipelineTimeoutError(state["step"], deadline) from exc
            except PipelineStepError:
                log.exception("pipeline_failed", step=state["step"])
                raise
            log.info("pipeline_complete")

    async def _execute(self, monthly_reminder: bool, state: dict[str, str], log: Any) -> None:
        log.info("fetching_portfolio")
        try:
            portfolio = await self.portfolio_source.get_portfolio()
        except Exception as exc:
            raise PipelineStepError(STEP_PORTFOLIO, exc) from exc

        state["step"] = STEP_NEWS
        articles = await self._fetch_news(log)

        state["step"] = STEP_ADVISORY
        log.info("generating_advisory", articles=len(articles))
        try:
            advisory = await self.advisor.generate(
                render_portfolio(portfolio), render_news(articles), monthly_reminder
            )
        except Exception as exc:
            raise PipelineStepError(STEP_ADVISORY, exc) from exc

        state["step"] = STEP_DELIVERY
        analysis = parse_advisory(advisory, portfolio.positions, monthly_reminder=monthly_reminder)
        log.info(
            "advisory_parsed",
            recommendations=len(analysis.recommendations),
            opportunities=len(analysis.opportunities),
            fallback=analysis.is_fallback,
        )
        try:
            await self.deliver(portfolio, analysis, log)
        except Exception as exc:
            raise PipelineStepError(STEP_DELIVERY, exc) from exc

    async def _fetch_news(self, log: Any) -> list[Article]:
        log.info("fetching_news", query=self.settings.news_query, limit=self.settings.news_limit)
        try:
            articles = await self.news_source.fetch_news(
                self.settings.news_query, self.settings.news_limit
            )
        except Exception as exc:
            log.warning("news_fetch_failed", error=str(exc))
            return []
        cleaned = [clean_article(a) for a in articles]
        return deduplicate_articles(cleaned, self.settings.dedup_similarity_threshold)

    async def deliver(self, portfolio: Portfolio, analysis: PortfolioAnalysis, log: Any) -> None:
        chunks = format_report(portfolio, analysis, self.notifier.max_length)
        for i, chunk in enumerate(chunks, start=1):
            try:
                await self.notifier.send(chunk, emphasis=True)
            except DeliveryError as exc:
                log.warning("formatted_send_failed", part=i, total=len(chunks), error=str(exc))
                await self.notifier.send(strip_emphasis(chunk), emphasis=False)
        log.info("report_delivered", parts=len(chunks))
