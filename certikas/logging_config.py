"""Logging setup shared by the CLI and embedding applications."""

import logging
import sys
from typing import Optional

from certikas.settings import Settings, get_settings

JSON_FORMAT = (
    '{"time": "%(asctime)s", "level": "%(levelname)s", '
    '"message": "%(message)s", "module": "%(name)s"}'
)
TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Install the root handler using the configured level and format."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format=JSON_FORMAT if settings.log_format == "json" else TEXT_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
