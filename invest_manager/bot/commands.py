import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from invest_manager.config import Settings
from invest_manager.delivery.telegram import TelegramNotifier
from invest_manager.errors import DeliveryError
from invest_manager.pipeline.orchestrator import AnalysisPipeline

logger = structlog.get_logger()

Handler = Callable[[dict[str, Any]], Awaitable[None]]

HELP_TEXT = """\
🤖 Доступные команды:

/analyze - запустить анализ портфеля прямо сейчас
/status - проверить статус бота
/help - показать это сообщение

Бот также автоматически анализирует ваш портфель каждый день в {time} ({tz})."""

STATUS_TEXT = "✅ Бот работает нормально. Ежедневный анализ портфеля выполняется в {time} ({tz})."
BUSY_TEXT = "⏳ Анализ уже выполняется, запрос поставлен в очередь."
STARTING_TEXT = "🔄 Запускаю анализ вашего портфеля..."
UNKNOWN_TEXT = "Неизвестная команда. Используйте /help для списка доступных команд."
FAILED_TEXT = "Ошибка при анализе портфеля: {error}"


def parse_command(text: str) -> str | None:
    """Return the command name of ``/name[@bot] args``, or None for plain text."""
    if not text.startswith("/"):
        return None
    parts = text[1:].split(maxsplit=1)
    if not parts:
        return None
    return parts[0].split("@", 1)[0].lower() or None


class CommandBot:
    """Listens for commands from the authorized chat and dispatches them."""

    def __init__(
        self, notifier: TelegramNotifier, pipeline: AnalysisPipeline, settings: Settings
    ) -> None:
        self.notifier = notifier
        self.pipeline = pipeline
        self.chat_id = str(settings.telegram_chat_id)
        self.command_timeout = settings.command_timeout
        self.schedule_label = {
            "time": f"{settings.schedule_hour:02d}:{settings.schedule_minute:02d}",
            "tz": settings.timezone,
        }
        self.handlers: dict[str, Handler] = {
            "analyze": self.handle_analyze,
            "status": self.handle_status,
            "help": self.handle_help,
        }
        self._offset = 0
        self._stop_event = asyncio.Event()
        self._tasks: set[asyncio.Task[None]] = set()

    async def dispatch(self, message: dict[str, Any]) -> None:
        chat_id = str((message.get("chat") or {}).get("id", ""))
        if chat_id != self.chat_id:
            logger.warning("unauthorized_chat", chat_id=chat_id)
            return
        command = parse_command(str(message.get("text") or ""))
        if command is None:
            return
        logger.info("command_received", command=command)
        handler = self.handlers.get(command, self.handle_unknown)
        await handler(message)

    async def handle_analyze(self, message: dict[str, Any]) -> None:
        await self._reply(BUSY_TEXT if self.pipeline.is_running else STARTING_TEXT)
        task = asyncio.create_task(self._run_analysis())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def handle_status(self, message: dict[str, Any]) -> None:
        await self._reply(STATUS_TEXT.format(**self.schedule_label))

    async def handle_help(self, message: dict[str, Any]) -> None:
        await self._reply(HELP_TEXT.format(**self.schedule_label))

    async def handle_unknown(self, message: dict[str, Any]) -> None:
        await self._reply(UNKNOWN_TEXT)

    async def _run_analysis(self) -> None:
        try:
            await self.pipeline.run(False, timeout=self.command_timeout)
        except Exception as exc:
            logger.exception("command_analysis_failed")
            await self._reply(FAILED_TEXT.format(error=exc))

    async def _reply(self, text: str) -> None:
        try:
            await self.notifier.send_text(text)
        except DeliveryError:
            logger.exception("command_reply_failed")

    async def poll_once(self, poll_timeout: int = 60) -> None:
        updates = await self.notifier.get_updates(self._offset, poll_timeout)
        for update in updates:
            self._offset = max(self._offset, int(update.get("update_id", 0)) + 1)
            message = update.get("message")
            if message:
                await self.dispatch(message)

    async def listen(self) -> None:
        logger.info("command_bot_started")
        while not self._stop_event.is_set():
            try:
                await self.poll_once()
            except DeliveryError:
                logger.exception("command_poll_failed")
                await asyncio.sleep(5)
        logger.info("command_bot_stopped")

    async def stop(self) -> None:
        self._stop_event.set()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
