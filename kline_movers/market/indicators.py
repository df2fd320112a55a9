"""Bounded momentum oscillators computed over a chronological close series."""

from typing import Iterable, Sequence

from kline_movers.core.types import Candle

# Both averages start here on the first close so the ratio is never 0/0.
_RSI_SEED = 0.1


def closes_of(candles: Iterable[Candle]) -> list[float]:
    return [candle.close for candle in candles if candle.close is not None]


class _Ema:
    """Exponential moving average with k = 2 / (period + 1), seeded by its first input."""

    def __init__(self, period: int) -> None:
        self.k = 2.0 / (period + 1.0)
        self.current: float | None = None

    def next(self, value: float) -> float:
        if self.current is None:
            self.current = value
        else:
            self.current = self.k * value + (1.0 - self.k) * self.current
        return self.current


def relative_strength_index(closes: Sequence[float], period: int) -> float | None:
    """Return the RSI after consuming every close, or None with fewer than `period` closes.

    Upward and downward moves are each tracked by an EMA of `period`; the value
    is 100 * up / (up + down).
    """

    if period < 1 or len(closes) < period:
        return None

    up_ema = _Ema(period)
    down_ema = _Ema(period)
    value = 50.0
    previous: float | None = None

    for close in closes:
        if previous is None:
            up, down = _RSI_SEED, _RSI_SEED
        elif close > previous:
            up, down = close - previous, 0.0
        else:
            up, down = 0.0, previous - close
        previous = close

        avg_up = up_ema.next(up)
        avg_down = down_ema.next(down)
        total = avg_up + avg_down
        # A period of 1 forgets the seed, so a flat step leaves nothing to divide by.
        value = 100.0 * avg_up / total if total > 0.0 else 50.0

    return value
