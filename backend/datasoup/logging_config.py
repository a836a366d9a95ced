"""JSON structured logging configuration."""
from __future__ import annotations

import logging
import sys

from pythonjsonlogger.json import JsonFormatter

from datasoup.config import Settings, settings as default_settings


def setup_logging(settings: Settings | None = None) -> None:
    """Configure root logger with JSON output for production observability."""
    settings = settings or default_settings
    handler = logging.StreamHandler(sys.stdout)

    formatter = JsonFormatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
        rename_fields={
            "asctime": "timestamp",
            "levelname": "level",
            "name": "logger",
        },
        json_ensure_ascii=False,
    )
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(settings.APP_LOG_LEVEL)

    # Quieten noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(
        logging.INFO if settings.APP_ENV == "development" else logging.WARNING
    )
    logging.getLogger("httpcore").setLevel(logging.WARNING)
