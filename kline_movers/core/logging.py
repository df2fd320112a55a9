"""Structured JSON logging helpers for pipeline runs.

Every line carries the emitting service and, inside `run_context()`, the id of
the refresh it belongs to, so the batch and ban lines of one run can be
grouped after the fact. The id lives in a context variable and therefore
follows every fetch task spawned from the run.
"""

import json
import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator

_RESERVED = set(logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys())
_RUN_ID: ContextVar[str | None] = ContextVar("kline_movers_run_id", default=None)


def new_run_id() -> str:
    return uuid.uuid4().hex[:12]


def current_run_id() -> str | None:
    return _RUN_ID.get()


@contextmanager
def run_context(run_id: str | None = None) -> Iterator[str]:
    """Tag every log line emitted inside the block with one run id."""

    run_id = run_id or new_run_id()
    token = _RUN_ID.set(run_id)
    try:
        yield run_id
    finally:
        _RUN_ID.reset(token)


class JsonFormatter(logging.Formatter):
    """Serialize log records as compact JSON lines."""

    def __init__(self, service: str | None = None) -> None:
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self.service:
            payload["service"] = self.service

        run_id = current_run_id()
        if run_id is not None:
            payload["run_id"] = run_id

        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED and not key.startswith("_")
        }
        if extras:
            payload["context"] = extras

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        # Context values such as paths or exceptions fall back to their str().
        return json.dumps(payload, ensure_ascii=True, separators=(",", ":"), default=str)


def configure_logging(level: str = "INFO", service: str | None = None) -> None:
    """Configure process-wide JSON logging once."""

    root = logging.getLogger()
    if getattr(root, "_kline_movers_configured", False):
        return

    root.handlers.clear()
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonFormatter(service=service))

    root.addHandler(handler)
    root.setLevel(level.upper())
    setattr(root, "_kline_movers_configured", True)
