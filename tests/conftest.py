"""Shared fakes for time-dependent pipeline code."""

import pytest


class FakeClock:
    """Deterministic wall/monotonic clock that advances only when something sleeps."""

    def __init__(self, start_ms: int) -> None:
        self.now_ms = start_ms
        self.sleeps: list[float] = []

    def clock_ms(self) -> int:
        return self.now_ms

    def monotonic(self) -> float:
        return self.now_ms / 1000.0

    def advance(self, seconds: float) -> None:
        self.now_ms += round(seconds * 1000)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock(start_ms=1_700_000_000_000)
