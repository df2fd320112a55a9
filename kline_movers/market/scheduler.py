"""Sequential batch scheduling of concurrent kline fetches under a per-minute weight budget."""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Iterator, Sequence, TypeVar

from kline_movers.core.types import FetchResult, Instrument
from kline_movers.market.backoff import Sleep

BATCH_WINDOW_S = 60.0
BATCH_PACING_S = 62.0

T = TypeVar("T")
FetchOne = Callable[[Instrument], Awaitable[FetchResult | None]]


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of `items`; the last one may be shorter."""

    size = max(1, size)
    for start in range(0, len(items), size):
        yield items[start : start + size]


def pacing_delay(elapsed_s: float) -> float:
    """Return how long to wait after a batch that took `elapsed_s` seconds."""

    if elapsed_s >= BATCH_WINDOW_S:
        return 0.0
    return BATCH_PACING_S - elapsed_s


async def _fetch_batch(
    batch: Sequence[Instrument], fetch: FetchOne, logger: logging.Logger
) -> list[FetchResult]:
    outcomes = await asyncio.gather(*(fetch(item) for item in batch), return_exceptions=True)

    results: list[FetchResult] = []
    for instrument, outcome in zip(batch, outcomes):
        if isinstance(outcome, BaseException):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            logger.warning(
                "kline_fetch_failed",
                extra={"symbol": instrument.symbol, "error": repr(outcome)},
            )
            continue
        if outcome is not None:
            results.append(outcome)
    return results


async def run_batches(
    instruments: Sequence[Instrument],
    batch_size: int,
    fetch: FetchOne,
    *,
    logger: logging.Logger,
    sleep: Sleep = asyncio.sleep,
    monotonic: Callable[[], float] = time.monotonic,
) -> list[FetchResult]:
    """Fetch every instrument, one batch at a time, returning successes in input order."""

    batch_size = max(1, batch_size)
    total = len(instruments)
    collected: list[FetchResult] = []

    for index, batch in enumerate(chunked(instruments, batch_size)):
        start_index = index * batch_size
        started = monotonic()
        logger.info(
            "klines_batch_start",
            extra={"batch": index, "first_index": start_index, "size": len(batch), "total": total},
        )

        batch_results = await _fetch_batch(batch, fetch, logger)
        collected.extend(batch_results)

        elapsed = monotonic() - started
        logger.info(
            "klines_batch_done",
            extra={
                "batch": index,
                "fetched": len(batch_results),
                "requested": len(batch),
                "elapsed_s": round(elapsed, 3),
            },
        )

        if start_index + len(batch) >= total:
            break

        delay = pacing_delay(elapsed)
        if delay > 0.0:
            logger.info("klines_batch_pacing", extra={"batch": index, "wait_s": round(delay, 3)})
            await sleep(delay)

    return collected
