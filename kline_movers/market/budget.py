"""Request-weight accounting used to size concurrent kline batches."""

DEFAULT_REQUEST_WEIGHT_LIMIT = 2400
SAFETY_MARGIN_PCT = 90


def request_weight(limit: int) -> int:
    """Return the weight the exchange charges for one kline call of `limit` candles."""

    if limit <= 99:
        return 1
    if limit <= 499:
        return 2
    if limit <= 1000:
        return 5
    return 10


def safe_batch_size(limit: int, weight_limit: int | None = None) -> int:
    """Return how many kline calls fit in one minute's weight budget, never less than one."""

    ceiling = DEFAULT_REQUEST_WEIGHT_LIMIT if weight_limit is None else weight_limit
    safe_capacity = ceiling * SAFETY_MARGIN_PCT // 100
    return max(1, safe_capacity // request_weight(limit))
