"""Ordering of movement results and assembly of the published snapshot."""

import functools
from typing import Iterable

from kline_movers.core.types import AnalysisSnapshot, MovementResult


def _descending(left: MovementResult, right: MovementResult) -> int:
    # NaN fails both comparisons and therefore ranks as equal.
    if left.movement_pct > right.movement_pct:
        return -1
    if left.movement_pct < right.movement_pct:
        return 1
    return 0


def rank_results(results: Iterable[MovementResult]) -> list[MovementResult]:
    """Sort by movement, largest first; equal movements keep their input order."""

    return sorted(results, key=functools.cmp_to_key(_descending))


def build_snapshot(results: Iterable[MovementResult]) -> AnalysisSnapshot:
    ranked = rank_results(results)
    last_updated = max((result.close_time_ms for result in ranked), default=0)
    return AnalysisSnapshot(last_updated_timestamp=last_updated, results=tuple(ranked))
