from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class Position:
    ticker: str
    name: str
    instrument_type: str
    quantity: float
    average_price: float
    current_price: float
    expected_yield: float
    currency: str
    figi: str = ""


@dataclass(frozen=True)
class Portfolio:
    positions: tuple[Position, ...] = ()
    currency: str = "RUB"

    @property
    def total_value(self) -> float:
        return sum(p.quantity * p.current_price for p in self.positions)

    @property
    def expected_yield(self) -> float:
        return sum(p.expected_yield for p in self.positions)


@dataclass(frozen=True)
class Article:
    title: str
    url: str
    source: str
    published_at: datetime | None = None
    description: str = ""


class PortfolioSource(ABC):
    @abstractmethod
    async def get_portfolio(self) -> Portfolio: ...


class NewsSource(ABC):
    @abstractmethod
    async def fetch_news(self, query: str, limit: int) -> list[Article]: ...
