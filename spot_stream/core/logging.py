from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from spot_stream.config.models import LoggingSettings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"


def setup_logging(settings: LoggingSettings) -> None:
    level = getattr(logging, settings.level.upper(), logging.INFO)
    handlers = []

    if settings.log_file:
        Path(settings.log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(settings.log_file, maxBytes=5_000_000, backupCount=3)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        file_handler.setLevel(level)
        handlers.append(file_handler)

    if settings.console or not handlers:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        console_handler.setLevel(level)
        handlers.append(console_handler)

    logging.basicConfig(level=level, handlers=handlers, format=LOG_FORMAT, force=True)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name)
