from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", frozen=True
    )

    # Tinkoff Invest
    tinkoff_token: str = ""
    tinkoff_account_id: str = ""
    tinkoff_endpoint: str = "https://invest-public-api.tinkoff.ru/rest"
    portfolio_currency: str = "RUB"

    # Advisory model (OpenAI-compatible chat completions API)
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o"
    openai_temperature: float = 0.3

    # Telegram
    telegram_token: str = ""
    telegram_chat_id: str = ""

    # News
    news_backend: str = "newsapi"
    newsapi_token: str = ""
    newsapi_url: str = "https://newsapi.org/v2/everything"
    news_query: str = "Russia"
    news_limit: int = 5
    rss_feed_urls: list[str] = [
        "https://www.themoscowtimes.com/rss/business",
        "https://search.cnbc.com/rs/search/combinedcms/view.xml?partnerId=wrss01&id=100727362",
    ]
    dedup_similarity_threshold: float = 0.9

    # Schedule
    timezone: str = "Europe/Moscow"
    schedule_hour: int = 7
    schedule_minute: int = 0

    # Deadlines (seconds)
    pipeline_timeout: float = 120.0
    command_timeout: float = 60.0
    shutdown_grace: float = 10.0
    http_timeout: float = 30.0
    news_timeout: float = 10.0

    # Logging
    log_level: str = "INFO"

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def missing_required(self) -> list[str]:
        required = {
            "TINKOFF_TOKEN": self.tinkoff_token,
            "OPENAI_API_KEY": self.openai_api_key,
            "TELEGRAM_TOKEN": self.telegram_token,
            "TELEGRAM_CHAT_ID": self.telegram_chat_id,
        }
        if self.news_backend == "newsapi":
            required["NEWSAPI_TOKEN"] = self.newsapi_token
        return [name for name, value in required.items() if not value]


def get_settings() -> Settings:
    return Settings()
