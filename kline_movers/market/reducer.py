"""Reduction of one instrument's raw kline capture to a cumulative movement percentage."""

import math
from typing import Any, Mapping, Sequence

from kline_movers.core.types import Candle, FetchResult, MovementResult
from kline_movers.market.indicators import closes_of, relative_strength_index


def lenient_float(value: Any) -> float | None:
    """Coerce a number or numeric string to float; blanks and garbage become None."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        numeric_value = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(numeric_value):
        return None
    return numeric_value


def lenient_int(value: Any) -> int | None:
    numeric_value = lenient_float(value)
    if numeric_value is None or not numeric_value.is_integer():
        return None
    return int(numeric_value)


def parse_candle(kline: Mapping[str, Any]) -> Candle:
    return Candle(
        open_time=lenient_int(kline.get("openTime")),
        open=lenient_float(kline.get("open")),
        high=lenient_float(kline.get("high")),
        low=lenient_float(kline.get("low")),
        close=lenient_float(kline.get("close")),
        volume=lenient_float(kline.get("volume")),
        close_time=lenient_int(kline.get("closeTime")),
        quote_asset_volume=lenient_float(kline.get("quoteAssetVolume")),
        number_of_trades=lenient_int(kline.get("numberOfTrades")),
        taker_buy_base_asset_volume=lenient_float(kline.get("takerBuyBaseAssetVolume")),
        taker_buy_quote_asset_volume=lenient_float(kline.get("takerBuyQuoteAssetVolume")),
        ignore=kline.get("ignore"),
    )


def cumulative_movement(candles: Sequence[Candle]) -> tuple[float, int] | None:
    """Return (movement %, last valid close time) between the first and last complete candles."""

    first = next((candle for candle in candles if candle.is_complete), None)
    last = next((candle for candle in reversed(candles) if candle.is_complete), None)
    if first is None or last is None:
        return None

    first_close, last_close, close_time = first.close, last.close, last.close_time
    if first_close is None or last_close is None or close_time is None:
        return None
    if first_close == 0.0:
        return None

    movement_pct = ((last_close / first_close) - 1.0) * 100.0
    if not math.isfinite(movement_pct):
        return None
    return movement_pct, close_time


def reduce_result(record: FetchResult, rsi_period: int | None = None) -> MovementResult | None:
    candles = [parse_candle(kline) for kline in record.klines]
    movement = cumulative_movement(candles)
    if movement is None:
        return None

    movement_pct, close_time_ms = movement
    rsi = relative_strength_index(closes_of(candles), rsi_period) if rsi_period else None
    return MovementResult(
        symbol=record.symbol,
        sub_types=record.sub_types,
        movement_pct=movement_pct,
        close_time_ms=close_time_ms,
        rsi=rsi,
    )
