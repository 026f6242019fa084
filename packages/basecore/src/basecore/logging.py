"""
Logging setup for gateway services.

Call setup_logging() once at process start. Modules keep using
logging.getLogger(__name__) and pass context through ``extra={...}``;
the JSON formatter writes those extras as top-level fields.
"""

import logging
import sys

from pythonjsonlogger.json import JsonFormatter

from basecore.settings import get_settings

LOG_FIELDS = ("asctime", "levelname", "name", "message")

FIELD_RENAME_MAP = {
    "asctime": "timestamp",
    "levelname": "level",
    "name": "logger",
}

TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def create_json_formatter() -> JsonFormatter:
    """
    JSON formatter with the standard field names.

    Output: {"timestamp": ..., "level": "INFO", "logger": "...", "message": "...", <extras>}
    """
    return JsonFormatter(
        " ".join(f"%({field})s" for field in LOG_FIELDS),
        rename_fields=FIELD_RENAME_MAP,
    )


def setup_logging(level: str | None = None, fmt: str | None = None) -> None:
    """
    Configure the root logger.

    Args:
        level: Log level name (defaults to LOG_LEVEL setting)
        fmt: "json" or "text" (defaults to LOG_FORMAT setting)
    """
    settings = get_settings()
    level = (level or settings.LOG_LEVEL).upper()
    fmt = (fmt or settings.LOG_FORMAT).lower()

    handler = logging.StreamHandler(sys.stdout)
    if fmt == "json":
        handler.setFormatter(create_json_formatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
