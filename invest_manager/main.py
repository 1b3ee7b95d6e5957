import argparse
import asyncio
import logging
import signal
import sys

import structlog

from invest_manager.analysis.llm_client import AdvisoryClient
from invest_manager.bot.commands import CommandBot
from invest_manager.config import Settings, get_settings
from invest_manager.delivery.telegram import TelegramNotifier
from invest_manager.errors import InvestManagerError
from invest_manager.pipeline.orchestrator import AnalysisPipeline
from invest_manager.scheduler import Scheduler
from invest_manager.sources.base import NewsSource
from invest_manager.sources.newsapi import NewsApiSource
from invest_manager.sources.rss import RssNewsSource
from invest_manager.sources.tinkoff import TinkoffPortfolioSource

logger = structlog.get_logger()

STARTUP_TEXT = "🤖 Invest Manager Bot started successfully."


def configure_logging(level: str) -> None:
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
    )


def build_news_source(settings: Settings) -> NewsSource:
    registry = {
        "newsapi": lambda: NewsApiSource(settings),
        "rss": lambda: RssNewsSource(settings.rss_feed_urls, timeout=settings.news_timeout),
    }
    factory = registry.get(settings.news_backend)
    if factory is None:
        logger.warning("unknown_news_backend", backend=settings.news_backend, using="newsapi")
        factory = registry["newsapi"]
    return factory()


def build_pipeline(settings: Settings, notifier: TelegramNotifier) -> AnalysisPipeline:
    return AnalysisPipeline(
        portfolio_source=TinkoffPortfolioSource(settings),
        news_source=build_news_source(settings),
        advisor=AdvisoryClient(settings),
        notifier=notifier,
        settings=settings,
    )


async def run_once(settings: Settings, monthly_reminder: bool) -> int:
    notifier = TelegramNotifier(settings)
    scheduler = Scheduler(build_pipeline(settings, notifier), settings)
    logger.info("run_once_start", monthly_reminder=monthly_reminder)
    try:
        await scheduler.run_now(monthly_reminder)
    except InvestManagerError:
        logger.exception("run_once_failed")
        return 1
    logger.info("run_once_complete")
    return 0


async def serve(settings: Settings) -> int:
    notifier = TelegramNotifier(settings)
    pipeline = build_pipeline(settings, notifier)
    scheduler = Scheduler(pipeline, settings)
    bot = CommandBot(notifier, pipeline, settings)

    await scheduler.start()
    listener = asyncio.create_task(bot.listen(), name="command-bot")

    try:
        await notifier.send_text(STARTUP_TEXT)
    except InvestManagerError:
        logger.exception("startup_notification_failed")

    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown.set)

    await shutdown.wait()
    logger.info("shutdown_requested", grace=settings.shutdown_grace)

    listener.cancel()
    try:
        await asyncio.wait_for(
            asyncio.gather(scheduler.stop(), bot.stop()), timeout=settings.shutdown_grace
        )
    except TimeoutError:
        logger.warning("shutdown_timed_out")
    await asyncio.gather(listener, return_exceptions=True)
    logger.info("bot_stopped")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Daily portfolio analysis bot")
    parser.add_argument("--run-once", action="store_true", help="Run analysis once and exit")
    parser.add_argument(
        "--monthly",
        action="store_true",
        help="Include the monthly reminder (only with --run-once)",
    )
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings.log_level)

    missing = settings.missing_required()
    if missing:
        logger.error("configuration_incomplete", missing=missing)
        return 1

    if args.run_once:
        return asyncio.run(run_once(settings, args.monthly))
    return asyncio.run(serve(settings))


if __name__ == "__main__":
    sys.exit(main())
