from typing import Any

import httpx
import structlog

from invest_manager.analysis.prompts import SYSTEM_PROMPT, build_user_prompt
from invest_manager.config import Settings
from invest_manager.errors import AdvisoryError

logger = structlog.get_logger()


class AdvisoryClient:
    """Generates the free-text advisory through an OpenAI-compatible chat API."""

    def __init__(self, settings: Settings) -> None:
        self.api_key = settings.openai_api_key
        self.base_url = settings.openai_base_url.rstrip("/")
        self.model = settings.openai_model
        self.temperature = settings.openai_temperature
        self.timeout = settings.pipeline_timeout

    async def generate(
        self, portfolio_rendering: str, news_rendering: str, monthly_reminder: bool
    ) -> str:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": build_user_prompt(
                        portfolio_rendering, news_rendering, monthly_reminder
                    ),
                },
            ],
            "temperature": self.temperature,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions", json=payload, headers=headers
                )
                response.raise_for_status()
                data: dict[str, Any] = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise AdvisoryError(f"error calling advisory API: {exc}") from exc

        choices = data.get("choices") or []
        if not choices:
            raise AdvisoryError("no response from advisory API")

        content = str((choices[0].get("message") or {}).get("content") or "")
        logger.info(
            "advisory_generated",
            model=self.model,
            chars=len(content),
            monthly_reminder=monthly_reminder,
        )
        return content
