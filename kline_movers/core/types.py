"""Shared record types flowing from exchange metadata to the published snapshot."""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from kline_movers.core.errors import SetupError

KLINE_FIELDS: tuple[str, ...] = (
    "openTime",
    "open",
    "high",
    "low",
    "close",
    "volume",
    "closeTime",
    "quoteAssetVolume",
    "numberOfTrades",
    "takerBuyBaseAssetVolume",
    "takerBuyQuoteAssetVolume",
    "ignore",
)

_SUB_TYPE_KEY = "underlyingSubType"


def _string_items(value: Any) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(item for item in value if isinstance(item, str))


@dataclass(frozen=True, slots=True)
class Instrument:
    """Tradable symbol plus its open-ended exchange attributes."""

    symbol: str
    attributes: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "Instrument":
        symbol = raw.get("symbol")
        if not isinstance(symbol, str) or not symbol:
            raise ValueError("instrument entry has no symbol")
        return cls(symbol=symbol, attributes=MappingProxyType(dict(raw)))

    @property
    def sub_types(self) -> tuple[str, ...]:
        return _string_items(self.attributes.get(_SUB_TYPE_KEY))


@dataclass(frozen=True, slots=True)
class RateLimitDescriptor:
    """One advertised request ceiling for a time window."""

    limit_type: str
    interval: str
    limit: int

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "RateLimitDescriptor":
        return cls(
            limit_type=str(raw["rateLimitType"]),
            interval=str(raw["interval"]),
            limit=int(raw["limit"]),
        )


@dataclass(frozen=True, slots=True)
class ExchangeInfo:
    """Parsed exchange metadata capture."""

    instruments: tuple[Instrument, ...]
    rate_limits: tuple[RateLimitDescriptor, ...]

    @classmethod
    def from_mapping(cls, raw: Any) -> "ExchangeInfo":
        if not isinstance(raw, Mapping):
            raise SetupError("exchange info is not an object")

        symbols = raw.get("symbols")
        rate_limits = raw.get("rateLimits")
        if not isinstance(symbols, list) or not isinstance(rate_limits, list):
            raise SetupError("exchange info lacks symbols or rateLimits")

        try:
            return cls(
                instruments=tuple(Instrument.from_mapping(item) for item in symbols),
                rate_limits=tuple(RateLimitDescriptor.from_mapping(item) for item in rate_limits),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise SetupError(f"malformed exchange info: {exc}") from exc

    def request_weight_limit(self) -> int | None:
        """Return the REQUEST_WEIGHT per MINUTE ceiling if the exchange advertises one."""

        for descriptor in self.rate_limits:
            if descriptor.limit_type == "REQUEST_WEIGHT" and descriptor.interval == "MINUTE":
                return descriptor.limit
        return None


@dataclass(frozen=True, slots=True)
class Candle:
    """Typed candle decoded from a named kline mapping."""

    open_time: int | None
    open: float | None
    high: float | None
    low: float | None
    close: float | None
    volume: float | None
    close_time: int | None
    quote_asset_volume: float | None = None
    number_of_trades: int | None = None
    taker_buy_base_asset_volume: float | None = None
    taker_buy_quote_asset_volume: float | None = None
    ignore: Any = None

    @property
    def is_complete(self) -> bool:
        return self.open is not None and self.close is not None and self.close_time is not None


@dataclass(frozen=True, slots=True)
class FetchResult:
    """Raw candle capture for one instrument."""

    symbol: str
    sub_types: tuple[str, ...]
    klines: tuple[dict[str, Any], ...]

    def to_record(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            _SUB_TYPE_KEY: list(self.sub_types),
            "klines": [dict(kline) for kline in self.klines],
        }

    @classmethod
    def from_record(cls, raw: Mapping[str, Any]) -> "FetchResult":
        klines = raw.get("klines") or []
        return cls(
            symbol=str(raw["symbol"]),
            sub_types=_string_items(raw.get(_SUB_TYPE_KEY)),
            klines=tuple(dict(kline) for kline in klines if isinstance(kline, Mapping)),
        )


@dataclass(frozen=True, slots=True)
class MovementResult:
    """Cumulative movement for one instrument over the fetched window."""

    symbol: str
    sub_types: tuple[str, ...]
    movement_pct: float
    close_time_ms: int
    rsi: float | None = None

    def to_record(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "movement_pct": self.movement_pct,
            "subType": list(self.sub_types),
            "rsi": self.rsi,
            "close_time_ms": self.close_time_ms,
        }

    @classmethod
    def from_record(cls, raw: Mapping[str, Any]) -> "MovementResult":
        rsi = raw.get("rsi")
        return cls(
            symbol=str(raw["symbol"]),
            sub_types=_string_items(raw.get("subType")),
            movement_pct=float(raw["movement_pct"]),
            close_time_ms=int(raw.get("close_time_ms") or 0),
            rsi=float(rsi) if rsi is not None else None,
        )


@dataclass(frozen=True, slots=True)
class AnalysisSnapshot:
    """Ranked movement results with the latest close time they cover."""

    last_updated_timestamp: int
    results: tuple[MovementResult, ...]

    def to_record(self) -> dict[str, Any]:
        return {
            "last_updated_timestamp": self.last_updated_timestamp,
            "results": [result.to_record() for result in self.results],
        }

    @classmethod
    def from_record(cls, raw: Mapping[str, Any]) -> "AnalysisSnapshot":
        return cls(
            last_updated_timestamp=int(raw["last_updated_timestamp"]),
            results=tuple(MovementResult.from_record(item) for item in raw.get("results") or []),
        )
