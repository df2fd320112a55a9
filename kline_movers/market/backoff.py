"""Detection of exchange rate-limit and IP-ban responses, and the shared resume gate."""

import logging
import re
from typing import Awaitable, Callable

BAN_MARKER = "-1003"
BAN_GRACE_S = 5.0
RATE_LIMIT_STATUSES = frozenset({418, 429})

_BAN_UNTIL_RE = re.compile(r"until\s+(\d+)")

ClockMs = Callable[[], int]
Sleep = Callable[[float], Awaitable[None]]


def parse_ban_until(body: str) -> int | None:
    """Return the epoch-ms resume time from an IP-ban body, or None if there is none."""

    if BAN_MARKER not in body:
        return None
    match = _BAN_UNTIL_RE.search(body)
    if match is None:
        return None
    return int(match.group(1))


class BanGate:
    """Run-wide resume-not-before timestamp consulted before every kline request.

    A ban observed by one fetch closes the gate for every sibling that has not
    yet sent its request. Requests already in flight are not recalled.
    """

    def __init__(self, clock_ms: ClockMs, sleep: Sleep) -> None:
        self._clock_ms = clock_ms
        self._sleep = sleep
        self._resume_at_ms = 0

    @property
    def resume_at_ms(self) -> int:
        return self._resume_at_ms

    def note_ban(self, resume_at_ms: int) -> None:
        if resume_at_ms > self._resume_at_ms:
            self._resume_at_ms = resume_at_ms

    def remaining_s(self) -> float:
        return max(0.0, (self._resume_at_ms - self._clock_ms()) / 1000.0)

    async def wait_until_clear(self) -> None:
        # Re-check after waking: another fetch may have extended the ban meanwhile.
        while True:
            remaining = self.remaining_s()
            if remaining <= 0.0:
                return
            await self._sleep(remaining)


async def handle_rate_limited(
    symbol: str,
    status: int,
    body: str,
    *,
    gate: BanGate,
    clock_ms: ClockMs,
    sleep: Sleep,
    logger: logging.Logger,
) -> None:
    """Back off after a 418/429 response. The caller yields no result for `symbol`."""

    ban_until = parse_ban_until(body)
    now_ms = clock_ms()

    if ban_until is None or ban_until <= now_ms:
        logger.warning(
            "kline_fetch_rate_limited",
            extra={"symbol": symbol, "status": status, "ban_until_ms": ban_until},
        )
        return

    wait_s = (ban_until - now_ms) / 1000.0 + BAN_GRACE_S
    gate.note_ban(ban_until + int(BAN_GRACE_S * 1000))
    logger.warning(
        "kline_fetch_ip_banned",
        extra={"symbol": symbol, "status": status, "ban_until_ms": ban_until, "sleep_s": wait_s},
    )
    await sleep(wait_s)
