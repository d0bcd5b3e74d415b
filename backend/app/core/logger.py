"""
Application logger.

Every record carries the correlation id of the request that produced it
("-" outside of a request).
"""
from __future__ import annotations

import logging
import sys
from contextvars import ContextVar

from app.core.config import settings

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="-")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] [cid=%(correlation_id)s] %(message)s"


class CorrelationIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = correlation_id_var.get()
        return True


def configure_logging(level: str = settings.LOG_LEVEL) -> logging.Logger:
    root = logging.getLogger()
    if not any(getattr(h, "_aidflow", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.addFilter(CorrelationIdFilter())
        handler._aidflow = True
        root.addHandler(handler)
    root.setLevel(level)
    return logging.getLogger("aidflow")


logger = configure_logging()
