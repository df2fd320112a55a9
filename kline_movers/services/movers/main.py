"""Movers analysis: reduces the raw kline capture to a ranked movement snapshot."""

import logging
from typing import Any

from kline_movers.core.config import get_settings, load_run_config
from kline_movers.core.errors import SetupError, StorageError, StorageParseError
from kline_movers.core.logging import configure_logging, run_context
from kline_movers.core.storage import JsonStorage
from kline_movers.core.types import AnalysisSnapshot, FetchResult
from kline_movers.market.ranking import build_snapshot
from kline_movers.market.reducer import reduce_result
from kline_movers.services.klines.main import KLINES_RECORD

RESULTS_RECORD = "results"


def _parse_captures(raw: Any, logger: logging.Logger) -> list[FetchResult]:
    if not isinstance(raw, list):
        raise SetupError(f"{KLINES_RECORD} record is not a list")

    captures: list[FetchResult] = []
    for item in raw:
        try:
            captures.append(FetchResult.from_record(item))
        except (KeyError, TypeError, AttributeError) as exc:
            logger.warning("movers_invalid_capture", extra={"error": repr(exc)})
    return captures


def load_captures(storage: JsonStorage, logger: logging.Logger) -> list[FetchResult]:
    try:
        raw = storage.load(KLINES_RECORD)
    except StorageError as exc:
        raise SetupError(str(exc)) from exc
    return _parse_captures(raw, logger)


def publish_movers(
    storage: JsonStorage,
    logger: logging.Logger,
    rsi_period: int | None = None,
) -> AnalysisSnapshot:
    """Reduce, rank and atomically publish the movement snapshot."""

    captures = load_captures(storage, logger)

    results = []
    for capture in captures:
        result = reduce_result(capture, rsi_period)
        if result is None:
            logger.debug("movers_no_valid_series", extra={"symbol": capture.symbol})
            continue
        results.append(result)

    snapshot = build_snapshot(results)
    storage.save(RESULTS_RECORD, snapshot.to_record())
    logger.info(
        "movers_snapshot_published",
        extra={
            "instruments": len(captures),
            "ranked": len(snapshot.results),
            "last_updated_timestamp": snapshot.last_updated_timestamp,
            "path": str(storage.path_for(RESULTS_RECORD)),
        },
    )
    return snapshot


def load_snapshot(storage: JsonStorage) -> AnalysisSnapshot:
    """Return the last published snapshot for display consumers."""

    raw = storage.load(RESULTS_RECORD)
    try:
        return AnalysisSnapshot.from_record(raw)
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise StorageParseError(RESULTS_RECORD, f"malformed snapshot: {exc}") from exc


def main() -> int:
    """Publish a snapshot from the last kline capture."""

    settings = get_settings()
    configure_logging(settings.LOG_LEVEL, service="movers")
    logger = logging.getLogger(__name__)
    storage = JsonStorage(settings.STORAGE_DIR)

    with run_context():
        try:
            run_config = load_run_config(storage, settings)
            publish_movers(storage, logger, rsi_period=run_config.rsi_period)
        except (SetupError, StorageError) as exc:
            logger.error("movers_failed", extra={"error": str(exc)})
            return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
