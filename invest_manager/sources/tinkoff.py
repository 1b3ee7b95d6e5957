"""Tinkoff Invest portfolio source.

Talks to the REST gateway of the Tinkoff Invest API. Each call is a POST to
``{endpoint}/tinkoff.public.invest.api.contract.v1.<Service>/<Method>`` with a
JSON body and a bearer token.

Setup:
    1. Issue a read-only API token in the Tinkoff Invest settings.
    2. Set TINKOFF_TOKEN (and optionally TINKOFF_ACCOUNT_ID) in your .env file.
       Without an account id the first account returned by the API is used.
"""

from typing import Any

import httpx
import structlog

from invest_manager.config import Settings
from invest_manager.errors import PortfolioError
from invest_manager.sources.base import Portfolio, PortfolioSource, Position

logger = structlog.get_logger()

API_PREFIX = "tinkoff.public.invest.api.contract.v1"


def money_to_float(value: dict[str, Any] | None) -> float:
    """Convert a MoneyValue/Quotation payload (units + nano) to a float."""
    if not value:
        return 0.0
    units = int(value.get("units", 0) or 0)
    nano = int(value.get("nano", 0) or 0)
    return units + nano / 1e9


class TinkoffPortfolioSource(PortfolioSource):
    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        self.token = settings.tinkoff_token
        self.account_id = settings.tinkoff_account_id
        self.endpoint = settings.tinkoff_endpoint.rstrip("/")
        self.currency = settings.portfolio_currency
        self.timeout = settings.http_timeout
        self._client = client

    async def get_portfolio(self) -> Portfolio:
        if not self.token:
            raise PortfolioError("TINKOFF_TOKEN is not configured")

        try:
            if self._client is not None:
                return await self._load(self._client)
            async with httpx.AsyncClient(timeout=self.timeout, headers=self._headers()) as client:
                return await self._load(client)
        except (httpx.HTTPError, ValueError) as exc:
            raise PortfolioError(f"failed to get portfolio: {exc}") from exc

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/json",
        }

    async def _call(
        self, client: httpx.AsyncClient, service: str, method: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        url = f"{self.endpoint}/{API_PREFIX}.{service}/{method}"
        response = await client.post(url, json=body, headers=self._headers())
        response.raise_for_status()
        data: dict[str, Any] = response.json()
        return data

    async def _load(self, client: httpx.AsyncClient) -> Portfolio:
        account_id = self.account_id or await self._first_account(client)
        data = await self._call(
            client,
            "OperationsService",
            "GetPortfolio",
            {"accountId": account_id, "currency": self.currency},
        )

        positions: list[Position] = []
        for raw in data.get("positions", []):
            figi = str(raw.get("figi", ""))
            instrument_type = str(raw.get("instrumentType", ""))
            ticker, name = await self._resolve_instrument(client, figi, instrument_type)
            current = raw.get("currentPrice") or {}
            currency = str(current.get("currency") or self.currency).upper()
            positions.append(
                Position(
                    ticker=ticker,
                    name=name,
                    instrument_type=instrument_type,
                    quantity=money_to_float(raw.get("quantity")),
                    average_price=money_to_float(raw.get("averagePositionPrice")),
                    current_price=money_to_float(current),
                    expected_yield=money_to_float(raw.get("expectedYield")),
                    currency=currency,
                    figi=figi,
                )
            )

        portfolio = Portfolio(positions=tuple(positions), currency=self.currency)
        logger.info(
            "portfolio_fetched",
            account_id=account_id,
            positions=len(positions),
            total_value=round(portfolio.total_value, 2),
        )
        return portfolio

    async def _first_account(self, client: httpx.AsyncClient) -> str:
        data = await self._call(client, "UsersService", "GetAccounts", {})
        accounts = data.get("accounts", [])
        if not accounts:
            raise PortfolioError("no accounts found")
        return str(accounts[0].get("id", ""))

    async def _resolve_instrument(
        self, client: httpx.AsyncClient, figi: str, instrument_type: str
    ) -> tuple[str, str]:
        """Look up ticker and display name; fall back to FIGI and type."""
        try:
            data = await self._call(
                client,
                "InstrumentsService",
                "GetInstrumentBy",
                {"idType": "INSTRUMENT_ID_TYPE_FIGI", "id": figi},
            )
        except httpx.HTTPError:
            logger.warning("instrument_lookup_failed", figi=figi)
            return figi, instrument_type
        instrument = data.get("instrument") or {}
        return (
            str(instrument.get("ticker") or figi),
            str(instrument.get("name") or instrument_type),
        )
