import logging
from contextvars import ContextVar
from typing import Optional

# Request-Id header of the QBO call in flight in the current task.
current_request_id: ContextVar[Optional[str]] = ContextVar("current_request_id", default=None)


class RequestIdFilter(logging.Filter):
    """Stamp ``record.request_id`` so formatters can use ``%(request_id)s``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = current_request_id.get() or "-"
        return True
