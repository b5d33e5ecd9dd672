"""Logging setup for the command line.

Library modules only ever call ``logging.getLogger(__name__)``; handlers
are installed here, once, from :class:`LoggingConfig`.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from rich.console import Console
from rich.logging import RichHandler

from brutus.core.errors import ConfigError

if TYPE_CHECKING:
    from brutus.config.schema import LoggingConfig

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class JsonLineFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def configure_logging(config: LoggingConfig, *, console: Console | None = None) -> None:
    """Install a handler on the ``brutus`` logger.

    Raises:
        ConfigError: If the level name is unknown.
    """
    level = logging.getLevelName(config.level.upper())
    if not isinstance(level, int):
        msg = f"Unknown log level: {config.level}"
        raise ConfigError(msg)

    handler: logging.Handler
    if config.file:
        handler = logging.FileHandler(config.file, encoding="utf-8")
        handler.setFormatter(
            JsonLineFormatter() if config.structured else logging.Formatter(_FORMAT)
        )
    elif config.structured:
        handler = logging.StreamHandler()
        handler.setFormatter(JsonLineFormatter())
    else:
        handler = RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        )

    root = logging.getLogger("brutus")
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)
