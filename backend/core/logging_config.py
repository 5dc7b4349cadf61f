"""Structured logging configuration using structlog.

Engine and API events are key/value pairs. Run and workflow ids are bound
through structlog contextvars while a run executes, so every event emitted
by a step carries them. Output is JSON unless running in development or
LOG_FORMAT=text.
"""

import logging
import sys
from typing import Optional

import structlog
from app.config import get_settings

# Libraries whose INFO output drowns out step events
QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "asyncio")


def select_renderer(log_format: str, development: bool = False):
    """Pick the final processor for the given format name."""
    if development or log_format.lower() == "text":
        return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    return structlog.processors.JSONRenderer()


def setup_logging(level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """Route structlog and stdlib logging through one stdout handler.

    Args:
        level: Overrides LOG_LEVEL when given
        log_format: Overrides LOG_FORMAT ("json" or "text") when given
    """
    settings = get_settings()
    level = (level or settings.LOG_LEVEL).upper()
    renderer = select_renderer(log_format or settings.LOG_FORMAT, settings.is_development)

    pre_chain: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
            foreign_pre_chain=pre_chain,
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level, logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
