"""Exchange metadata refresh: captures tradable instruments and advertised rate limits."""

import asyncio
import logging

import httpx

from kline_movers.core.config import get_settings
from kline_movers.core.errors import SetupError, StorageError
from kline_movers.core.logging import configure_logging, run_context
from kline_movers.core.storage import JsonStorage
from kline_movers.core.types import ExchangeInfo
from kline_movers.market.fetcher import build_client, fetch_exchange_info

EXCHANGE_INFO_RECORD = "exchange_info"


async def refresh_exchange_info(
    client: httpx.AsyncClient, storage: JsonStorage, logger: logging.Logger
) -> ExchangeInfo:
    """Fetch, validate and persist the exchange metadata capture."""

    try:
        payload = await fetch_exchange_info(client)
    except (httpx.HTTPError, ValueError) as exc:
        raise SetupError(f"exchange info request failed: {exc}") from exc

    info = ExchangeInfo.from_mapping(payload)
    storage.save(EXCHANGE_INFO_RECORD, payload)
    logger.info(
        "exchange_info_saved",
        extra={
            "instruments": len(info.instruments),
            "request_weight_limit": info.request_weight_limit(),
            "path": str(storage.path_for(EXCHANGE_INFO_RECORD)),
        },
    )
    return info


def load_exchange_info(storage: JsonStorage) -> ExchangeInfo:
    """Read the persisted metadata capture; any failure is a setup failure."""

    try:
        raw = storage.load(EXCHANGE_INFO_RECORD)
    except StorageError as exc:
        raise SetupError(str(exc)) from exc
    return ExchangeInfo.from_mapping(raw)


async def _run() -> int:
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL, service="exchange_info")
    logger = logging.getLogger(__name__)
    storage = JsonStorage(settings.STORAGE_DIR)

    async with build_client(settings) as client:
        try:
            await refresh_exchange_info(client, storage, logger)
        except (SetupError, StorageError) as exc:
            logger.error("exchange_info_failed", extra={"error": str(exc)})
            return 1
    return 0


def main() -> int:
    """Refresh the exchange metadata capture once."""

    with run_context():
        try:
            return asyncio.run(_run())
        except KeyboardInterrupt:
            return 0


if __name__ == "__main__":
    raise SystemExit(main())
