"""Per-instrument kline requests against a mocked exchange."""

import asyncio
import logging

import httpx
import pytest

from kline_movers.core.types import KLINE_FIELDS, Instrument
from kline_movers.market.backoff import BanGate
from kline_movers.market.fetcher import (
    DEFAULT_MAX_IN_FLIGHT,
    KlineFetcher,
    fetch_exchange_info,
    rows_to_klines,
)

_LOGGER = logging.getLogger("tests.fetcher")
_ROW = [1700000000000, "100.0", "101.0", "99.0", "100.5", "10", 1700003599999, "1000", 42, "5", "500", "0"]
_BAN_BODY = '{"code":-1003,"msg":"Way too many requests; IP banned until 1700000100000."}'


def _instrument(symbol: str) -> Instrument:
    return Instrument.from_mapping({"symbol": symbol, "underlyingSubType": ["Layer-1"]})


def _fetcher(
    handler, fake_clock, max_in_flight: int = DEFAULT_MAX_IN_FLIGHT
) -> tuple[KlineFetcher, httpx.AsyncClient]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://fapi.test")
    gate = BanGate(clock_ms=fake_clock.clock_ms, sleep=fake_clock.sleep)
    fetcher = KlineFetcher(
        client,
        interval="1h",
        limit=500,
        gate=gate,
        clock_ms=fake_clock.clock_ms,
        sleep=fake_clock.sleep,
        logger=_LOGGER,
        max_in_flight=max_in_flight,
    )
    return fetcher, client


async def _fetch_all(fetcher: KlineFetcher, client: httpx.AsyncClient, symbols: list[str]):
    async with client:
        return await asyncio.gather(*(fetcher.fetch(_instrument(symbol)) for symbol in symbols))


def test_rows_are_named_positionally() -> None:
    """Each row maps onto the twelve kline field names in order."""

    (kline,) = rows_to_klines([_ROW])

    assert list(kline) == list(KLINE_FIELDS)
    assert kline["close"] == "100.5"
    assert kline["closeTime"] == 1700003599999


def test_successful_fetch_sends_params_and_names_rows(fake_clock) -> None:
    """A 200 response becomes a FetchResult carrying the instrument sub types."""

    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[_ROW, _ROW])

    fetcher, client = _fetcher(handler, fake_clock)
    (result,) = asyncio.run(_fetch_all(fetcher, client, ["BTCUSDT"]))

    assert result is not None
    assert result.symbol == "BTCUSDT"
    assert result.sub_types == ("Layer-1",)
    assert len(result.klines) == 2
    assert seen[0].url.path == "/fapi/v1/klines"
    assert dict(seen[0].url.params) == {"interval": "1h", "limit": "500", "symbol": "BTCUSDT"}


def test_failures_are_discarded_without_raising(fake_clock) -> None:
    """Transport errors, bad statuses and malformed bodies each yield None."""

    def handler(request: httpx.Request) -> httpx.Response:
        symbol = request.url.params["symbol"]
        if symbol == "DOWNUSDT":
            raise httpx.ConnectError("connection refused", request=request)
        if symbol == "GONEUSDT":
            return httpx.Response(400, json={"code": -1121, "msg": "Invalid symbol."})
        if symbol == "TEXTUSDT":
            return httpx.Response(200, text="<html>maintenance</html>")
        if symbol == "OBJUSDT":
            return httpx.Response(200, json={"rows": []})
        return httpx.Response(200, json=[_ROW])

    fetcher, client = _fetcher(handler, fake_clock)
    results = asyncio.run(
        _fetch_all(fetcher, client, ["DOWNUSDT", "GONEUSDT", "TEXTUSDT", "OBJUSDT", "OKUSDT"])
    )

    assert [result.symbol if result else None for result in results] == [None, None, None, None, "OKUSDT"]
    assert fake_clock.sleeps == []


def test_ban_response_sleeps_and_later_fetches_wait_for_gate(fake_clock) -> None:
    """A banned fetch sleeps past the ban; a fetch started afterwards waits on the shared gate."""

    request_times: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        request_times.append(fake_clock.now_ms)
        if request.url.params["symbol"] == "BANUSDT":
            return httpx.Response(418, text=_BAN_BODY)
        return httpx.Response(200, json=[_ROW])

    fetcher, client = _fetcher(handler, fake_clock)

    async def scenario():
        async with client:
            banned = await fetcher.fetch(_instrument("BANUSDT"))
            # A sibling that reaches the gate 50s into the ban.
            fake_clock.now_ms = 1_700_000_050_000
            later = await fetcher.fetch(_instrument("ETHUSDT"))
            return banned, later

    banned, later = asyncio.run(scenario())

    assert banned is None
    assert later is not None
    assert fake_clock.sleeps[0] == 105.0
    assert fake_clock.sleeps[1] == 55.0
    assert request_times[1] >= 1_700_000_105_000


def test_ban_holds_queued_siblings_in_the_same_batch(fake_clock) -> None:
    """Fetches waiting for a connection slot do not send until the ban and grace period pass."""

    ban_until = fake_clock.now_ms + 300_000
    ban_body = f'{{"code":-1003,"msg":"Way too many requests; IP banned until {ban_until}."}}'
    sent: list[tuple[str, int]] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        symbol = request.url.params["symbol"]
        sent.append((symbol, fake_clock.now_ms))
        await asyncio.sleep(0)
        if symbol == "BANUSDT":
            return httpx.Response(418, text=ban_body)
        return httpx.Response(200, json=[_ROW])

    fetcher, client = _fetcher(handler, fake_clock, max_in_flight=1)
    results = asyncio.run(_fetch_all(fetcher, client, ["BANUSDT", "AUSDT", "BUSDT", "CUSDT"]))

    assert fetcher.gate.resume_at_ms == ban_until + 5_000
    assert [symbol for symbol, _ in sent] == ["BANUSDT", "AUSDT", "BUSDT", "CUSDT"]
    assert [symbol for symbol, sent_at in sent[1:] if sent_at < fetcher.gate.resume_at_ms] == []
    assert results[0] is None
    assert [result.symbol for result in results[1:]] == ["AUSDT", "BUSDT", "CUSDT"]
    assert fake_clock.sleeps == [305.0]


def test_exchange_info_request_raises_on_error_status() -> None:
    """Metadata failures propagate so the run can abort before fetching."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    async def scenario():
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(handler), base_url="https://fapi.test"
        ) as client:
            return await fetch_exchange_info(client)

    with pytest.raises(httpx.HTTPStatusError) as excinfo:
        asyncio.run(scenario())

    assert excinfo.value.response.status_code == 503
