"""Binance Futures REST access: exchange metadata and per-instrument kline requests."""

import asyncio
import json
import logging
from typing import Any, Sequence

import httpx

from kline_movers.core.config import Settings
from kline_movers.core.types import KLINE_FIELDS, FetchResult, Instrument
from kline_movers.market.backoff import (
    RATE_LIMIT_STATUSES,
    BanGate,
    ClockMs,
    Sleep,
    handle_rate_limited,
)

EXCHANGE_INFO_PATH = "/fapi/v1/exchangeInfo"
KLINES_PATH = "/fapi/v1/klines"
DEFAULT_MAX_IN_FLIGHT = 50


def build_client(settings: Settings) -> httpx.AsyncClient:
    """Return the pooled client shared by every fetch of a run."""

    limits = httpx.Limits(
        max_connections=settings.HTTP_MAX_CONNECTIONS,
        max_keepalive_connections=settings.HTTP_MAX_CONNECTIONS,
    )
    return httpx.AsyncClient(
        base_url=settings.BINANCE_FUTURES_REST_URL,
        timeout=settings.HTTP_TIMEOUT_S,
        limits=limits,
    )


async def fetch_exchange_info(client: httpx.AsyncClient) -> dict[str, Any]:
    """Fetch exchange metadata, raising on transport or HTTP status failure."""

    response = await client.get(EXCHANGE_INFO_PATH)
    response.raise_for_status()
    payload = response.json()
    if not isinstance(payload, dict):
        raise ValueError("exchange info response is not an object")
    return payload


def rows_to_klines(rows: Sequence[Sequence[Any]]) -> tuple[dict[str, Any], ...]:
    """Name each positional kline row with the fixed wire field list."""

    return tuple(dict(zip(KLINE_FIELDS, row)) for row in rows)


def _is_kline_payload(payload: Any) -> bool:
    return isinstance(payload, list) and all(isinstance(row, list) for row in payload)


class KlineFetcher:
    """Fetch one instrument's candles, turning every failure into a missing result.

    At most `max_in_flight` requests are outstanding at once, matching the
    client's connection pool. The ban gate is checked after a slot is taken,
    immediately before sending, so fetches queued behind the pool still stop
    when a sibling observes a ban.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        interval: str,
        limit: int,
        gate: BanGate,
        clock_ms: ClockMs,
        sleep: Sleep,
        logger: logging.Logger,
        max_in_flight: int = DEFAULT_MAX_IN_FLIGHT,
    ) -> None:
        self.client = client
        self.interval = interval
        self.limit = limit
        self.gate = gate
        self._clock_ms = clock_ms
        self._sleep = sleep
        self._logger = logger
        self._slots = asyncio.Semaphore(max(1, max_in_flight))

    async def fetch(self, instrument: Instrument) -> FetchResult | None:
        symbol = instrument.symbol
        params = {"interval": self.interval, "limit": str(self.limit), "symbol": symbol}

        async with self._slots:
            await self.gate.wait_until_clear()

            try:
                response = await self.client.get(KLINES_PATH, params=params)
            except httpx.HTTPError as exc:
                self._logger.warning(
                    "kline_fetch_transport_error", extra={"symbol": symbol, "error": str(exc)}
                )
                return None

            # Handled while still holding the slot so the gate closes before a waiter can send.
            if response.status_code in RATE_LIMIT_STATUSES:
                await handle_rate_limited(
                    symbol,
                    response.status_code,
                    response.text,
                    gate=self.gate,
                    clock_ms=self._clock_ms,
                    sleep=self._sleep,
                    logger=self._logger,
                )
                return None

        if not response.is_success:
            self._logger.warning(
                "kline_fetch_bad_status", extra={"symbol": symbol, "status": response.status_code}
            )
            return None

        try:
            payload = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            self._logger.warning(
                "kline_fetch_invalid_json", extra={"symbol": symbol, "error": str(exc)}
            )
            return None

        if not _is_kline_payload(payload):
            self._logger.warning("kline_fetch_unexpected_payload", extra={"symbol": symbol})
            return None

        return FetchResult(
            symbol=symbol,
            sub_types=instrument.sub_types,
            klines=rows_to_klines(payload),
        )
