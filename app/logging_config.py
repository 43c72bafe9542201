"""
Application logging setup.

Every record is tagged with the id of the request being served (taken
from ``request_id_var``, populated by ``RequestContextMiddleware``) so
log lines from services can be correlated with the access line.
"""
import logging
import sys
from contextvars import ContextVar

from app.config import settings

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(request_id)s] %(name)s: %(message)s"


class RequestIdFilter(logging.Filter):
    """Attach the current request id to every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


def _resolve_level(level_name: str) -> int:
    level = logging.getLevelName(level_name.upper()) if level_name else None
    if isinstance(level, int):
        return level
    return logging.DEBUG if settings.APP_ENV == "development" else logging.INFO


def setup_logging() -> None:
    """Configure the root logger.  Safe to call more than once."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(RequestIdFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(_resolve_level(settings.LOG_LEVEL))
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    # Statement echo is driven by SQL_ECHO on the engine; keep the logger quiet otherwise.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
