"""
Logging setup for the payroll backend.

Saga and recovery log lines carry the transaction or recovery session id
they belong to, which is also the ``reference_id`` of their audit records,
so a failed liquidation can be traced from the log to the sync log table.
"""

import json
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Iterator, Optional

# Saga transaction id or recovery session id of the running unit of work
correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Attributes every LogRecord has; anything else arrived through ``extra=``
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}

_NOISY_LOGGERS = ("sqlalchemy.engine", "httpx", "uvicorn.access")


class StructuredFormatter(logging.Formatter):
    """One JSON object per line, with the correlation id and any ``extra`` fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        current = correlation_id.get()
        if current:
            entry["correlation_id"] = current
        entry.update(
            (key, value) for key, value in vars(record).items()
            if key not in _STANDARD_ATTRS and key not in entry
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(log_level: str = "INFO", structured: bool = True) -> None:
    """Install a single stderr handler on the root logger, replacing any others."""
    handler = logging.StreamHandler()
    handler.setFormatter(
        StructuredFormatter() if structured
        else logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        handlers=[handler],
        force=True,
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_correlation_id() -> Optional[str]:
    return correlation_id.get()


@contextmanager
def correlation_scope(corr_id: str) -> Iterator[str]:
    """Tag log lines written inside the block with ``corr_id``."""
    token = correlation_id.set(corr_id)
    try:
        yield corr_id
    finally:
        correlation_id.reset(token)
