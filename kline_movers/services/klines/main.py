"""Kline collector: fetches candles for every filtered instrument in weight-budgeted batches."""

import asyncio
import logging
import time
from typing import Callable

import httpx

from kline_movers.core.config import RunConfig, get_settings, load_run_config
from kline_movers.core.errors import SetupError, StorageError
from kline_movers.core.logging import configure_logging, run_context
from kline_movers.core.storage import JsonStorage
from kline_movers.core.time_utils import utc_now_ms
from kline_movers.core.types import FetchResult
from kline_movers.market.backoff import BanGate, ClockMs, Sleep
from kline_movers.market.budget import request_weight, safe_batch_size
from kline_movers.market.fetcher import DEFAULT_MAX_IN_FLIGHT, KlineFetcher, build_client
from kline_movers.market.filters import filter_instruments
from kline_movers.market.scheduler import run_batches
from kline_movers.services.exchange_info.main import load_exchange_info

KLINES_RECORD = "klines"


async def collect_klines(
    run_config: RunConfig,
    storage: JsonStorage,
    client: httpx.AsyncClient,
    logger: logging.Logger,
    *,
    sleep: Sleep = asyncio.sleep,
    monotonic: Callable[[], float] = time.monotonic,
    clock_ms: ClockMs = utc_now_ms,
    max_in_flight: int = DEFAULT_MAX_IN_FLIGHT,
) -> list[FetchResult]:
    """Fetch and persist the raw kline capture for all instruments matching the run filters."""

    info = load_exchange_info(storage)
    instruments = filter_instruments(info.instruments, run_config.filters)
    limit = run_config.klines.limit
    weight_limit = info.request_weight_limit()
    batch_size = safe_batch_size(limit, weight_limit)

    logger.info(
        "klines_plan",
        extra={
            "matching_instruments": len(instruments),
            "total_instruments": len(info.instruments),
            "interval": run_config.klines.interval,
            "limit": limit,
            "weight_per_request": request_weight(limit),
            "request_weight_limit": weight_limit,
            "batch_size": batch_size,
        },
    )

    gate = BanGate(clock_ms=clock_ms, sleep=sleep)
    fetcher = KlineFetcher(
        client,
        interval=run_config.klines.interval,
        limit=limit,
        gate=gate,
        clock_ms=clock_ms,
        sleep=sleep,
        logger=logger,
        max_in_flight=max_in_flight,
    )
    results = await run_batches(
        instruments,
        batch_size,
        fetcher.fetch,
        logger=logger,
        sleep=sleep,
        monotonic=monotonic,
    )

    storage.save(KLINES_RECORD, [result.to_record() for result in results])
    logger.info(
        "klines_saved",
        extra={
            "fetched": len(results),
            "requested": len(instruments),
            "path": str(storage.path_for(KLINES_RECORD)),
        },
    )
    return results


async def _run() -> int:
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL, service="klines")
    logger = logging.getLogger(__name__)
    storage = JsonStorage(settings.STORAGE_DIR)

    try:
        run_config = load_run_config(storage, settings)
    except SetupError as exc:
        logger.error("klines_invalid_config", extra={"error": str(exc)})
        return 1

    async with build_client(settings) as client:
        try:
            await collect_klines(
                run_config,
                storage,
                client,
                logger,
                max_in_flight=settings.HTTP_MAX_CONNECTIONS,
            )
        except (SetupError, StorageError) as exc:
            logger.error("klines_failed", extra={"error": str(exc)})
            return 1
    return 0


def main() -> int:
    """Collect klines for the configured instrument universe once."""

    with run_context():
        try:
            return asyncio.run(_run())
        except KeyboardInterrupt:
            return 0


if __name__ == "__main__":
    raise SystemExit(main())
