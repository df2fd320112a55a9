"""Full run: exchange metadata, kline collection and snapshot publishing in sequence."""

import asyncio
import logging

import httpx

from kline_movers.core.config import Settings, get_settings, load_run_config
from kline_movers.core.errors import SetupError, StorageError
from kline_movers.core.logging import configure_logging, run_context
from kline_movers.core.storage import JsonStorage
from kline_movers.core.types import AnalysisSnapshot
from kline_movers.market.fetcher import build_client
from kline_movers.services.exchange_info.main import refresh_exchange_info
from kline_movers.services.klines.main import collect_klines
from kline_movers.services.movers.main import publish_movers


async def run_pipeline(
    settings: Settings,
    logger: logging.Logger,
    client: httpx.AsyncClient | None = None,
) -> AnalysisSnapshot:
    """Run one end-to-end refresh and return the published snapshot.

    Raises SetupError before any kline is fetched when configuration or
    metadata is unusable, and StorageError when a record cannot be written.
    """

    storage = JsonStorage(settings.STORAGE_DIR)
    run_config = load_run_config(storage, settings)

    owns_client = client is None
    http_client = build_client(settings) if client is None else client
    try:
        await refresh_exchange_info(http_client, storage, logger)
        await collect_klines(
            run_config,
            storage,
            http_client,
            logger,
            max_in_flight=settings.HTTP_MAX_CONNECTIONS,
        )
    finally:
        if owns_client:
            await http_client.aclose()

    return publish_movers(storage, logger, rsi_period=run_config.rsi_period)


async def _run() -> int:
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL, service="pipeline")
    logger = logging.getLogger(__name__)
    logger.info(
        "pipeline_startup",
        extra={"app": settings.APP_NAME, "version": settings.VERSION, "storage": settings.STORAGE_DIR},
    )

    try:
        snapshot = await run_pipeline(settings, logger)
    except (SetupError, StorageError) as exc:
        logger.error("pipeline_failed", extra={"error": str(exc)})
        return 1

    logger.info(
        "pipeline_done",
        extra={
            "ranked": len(snapshot.results),
            "last_updated_timestamp": snapshot.last_updated_timestamp,
        },
    )
    return 0


def main() -> int:
    """Run one full refresh of the movers snapshot."""

    with run_context():
        try:
            return asyncio.run(_run())
        except KeyboardInterrupt:
            return 0


if __name__ == "__main__":
    raise SystemExit(main())
