"""Logging setup and filters for enriching log records with request context.

``RequestIdFilter`` injects the current request id into log records using
the ContextVar set by the request id middleware, so formatters can
reference ``%(request_id)s`` without touching individual log statements.
"""

import logging
from logging import Filter, LogRecord

from pythonjsonlogger import jsonlogger

from .middleware import REQUEST_ID_CTX

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"


class RequestIdFilter(Filter):
    """Attach a ``request_id`` attribute to log records.

    Outside a request the ContextVar default, a hyphen ("-"), is used.
    """

    def filter(self, record: LogRecord) -> bool:
        record.request_id = REQUEST_ID_CTX.get()
        return True


def build_handler(stream=None) -> logging.Handler:
    """Return a stream handler emitting JSON lines tagged with the request id."""
    h = logging.StreamHandler(stream)
    h.setFormatter(jsonlogger.JsonFormatter(LOG_FORMAT))
    h.addFilter(RequestIdFilter())
    return h


def configure_logging(level: str = "info") -> logging.Logger:
    """Attach a JSON stream handler to the ``order_service`` logger once.

    Args:
        level: Logging level name, case-insensitive.

    Returns:
        logging.Logger: The configured package logger.
    """
    logger = logging.getLogger("order_service")
    if not logger.handlers:
        logger.addHandler(build_handler())
    logger.setLevel(level.upper())
    return logger
