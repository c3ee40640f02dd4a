"""
Logging setup: stdout, tagged with the current request id.

The request id is kept in a ContextVar set by the request-id middleware, so
every log record emitted while serving a request carries it. Records emitted
outside a request are tagged "-".
"""

import logging
import sys
from contextvars import ContextVar

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(request_id)s] %(name)s: %(message)s"


class RequestIdFilter(logging.Filter):
    """Attach ``request_id`` to every record passing through the handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


def configure_logging(level: str = "info") -> None:
    """Send logs to stdout at ``level`` (an unknown level name means INFO)."""
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    # No-op when the root logger already has handlers
    logging.basicConfig(level=numeric_level, handlers=[handler])
    logging.getLogger().setLevel(numeric_level)
