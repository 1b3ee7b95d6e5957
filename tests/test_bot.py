import asyncio
from typing import Any

import pytest

from invest_manager.bot.commands import (
    BUSY_TEXT,
    STARTING_TEXT,
    UNKNOWN_TEXT,
    CommandBot,
    parse_command,
)
from invest_manager.config import Settings
from invest_manager.errors import PipelineStepError, PortfolioError


class FakeNotifier:
    def __init__(self, updates: list[dict[str, Any]] | None = None) -> None:
        self.texts: list[str] = []
        self.updates = updates or []
        self.offsets: list[int] = []

    async def send_text(self, text: str) -> None:
        self.texts.append(text)

    async def get_updates(self, offset: int, poll_timeout: int = 60) -> list[dict[str, Any]]:
        self.offsets.append(offset)
        updates, self.updates = self.updates, []
        return updates


class FakePipeline:
    def __init__(self, error: Exception | None = None, running: bool = False) -> None:
        self.error = error
        self.is_running = running
        self.calls: list[tuple[bool, float | None]] = []

    async def run(self, monthly_reminder: bool = False, *, timeout: float | None = None) -> None:
        self.calls.append((monthly_reminder, timeout))
        if self.error:
            raise self.error


def _bot(notifier: FakeNotifier, pipeline: FakePipeline) -> CommandBot:
    settings = Settings(telegram_chat_id="42", command_timeout=60.0, schedule_hour=7)
    return CommandBot(notifier, pipeline, settings)  # type: ignore[arg-type]


def _message(text: str, chat_id: int = 42) -> dict[str, Any]:
    return {"chat": {"id": chat_id}, "text": text}


def test_parse_command() -> None:
    assert parse_command("/analyze") == "analyze"
    assert parse_command("/Status@InvestBot extra") == "status"
    assert parse_command("hello") is None
    assert parse_command("/") is None
    assert parse_command("/   ") is None


@pytest.mark.asyncio
async def test_analyze_runs_pipeline_with_command_deadline() -> None:
    notifier, pipeline = FakeNotifier(), FakePipeline()
    bot = _bot(notifier, pipeline)

    await bot.dispatch(_message("/analyze"))
    await bot.stop()

    assert notifier.texts == [STARTING_TEXT]
    assert pipeline.calls == [(False, 60.0)]


@pytest.mark.asyncio
async def test_analyze_while_busy_is_queued() -> None:
    notifier, pipeline = FakeNotifier(), FakePipeline(running=True)
    bot = _bot(notifier, pipeline)

    await bot.dispatch(_message("/analyze"))
    await bot.stop()

    assert notifier.texts[0] == BUSY_TEXT
    assert len(pipeline.calls) == 1


@pytest.mark.asyncio
async def test_analyze_failure_is_reported() -> None:
    error = PipelineStepError("portfolio", PortfolioError("no accounts found"))
    notifier, pipeline = FakeNotifier(), FakePipeline(error=error)
    bot = _bot(notifier, pipeline)

    await bot.dispatch(_message("/analyze"))
    await bot.stop()

    assert "no accounts found" in notifier.texts[-1]


@pytest.mark.asyncio
async def test_status_and_help_mention_schedule() -> None:
    notifier = FakeNotifier()
    bot = _bot(notifier, FakePipeline())

    await bot.dispatch(_message("/status"))
    await bot.dispatch(_message("/help"))

    assert all("07:00" in text for text in notifier.texts)
    assert "/analyze" in notifier.texts[1]


@pytest.mark.asyncio
async def test_unknown_command() -> None:
    notifier = FakeNotifier()
    await _bot(notifier, FakePipeline()).dispatch(_message("/portfolio"))
    assert notifier.texts == [UNKNOWN_TEXT]


@pytest.mark.asyncio
async def test_unauthorized_chat_ignored() -> None:
    notifier, pipeline = FakeNotifier(), FakePipeline()
    bot = _bot(notifier, pipeline)

    await bot.dispatch(_message("/analyze", chat_id=7))
    await asyncio.sleep(0)

    assert notifier.texts == []
    assert pipeline.calls == []


@pytest.mark.asyncio
async def test_plain_text_ignored() -> None:
    notifier = FakeNotifier()
    await _bot(notifier, FakePipeline()).dispatch(_message("how is my portfolio?"))
    assert notifier.texts == []


@pytest.mark.asyncio
async def test_poll_once_advances_offset() -> None:
    notifier = FakeNotifier(
        updates=[
            {"update_id": 10, "message": _message("/status")},
            {"update_id": 11, "edited_message": _message("/status")},
        ]
    )
    bot = _bot(notifier, FakePipeline())

    await bot.poll_once()
    await bot.poll_once()

    assert notifier.offsets == [0, 12]
    assert len(notifier.texts) == 1
