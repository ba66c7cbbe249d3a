"""
Structured logging configuration using structlog.

Human-readable console logs at DEBUG, JSON lines otherwise. The SDK only
calls this when ``configure_logging`` is enabled; applications that manage
logging themselves leave it alone.
"""

import logging
import sys
from typing import Optional

import structlog


def setup_logging(log_level: Optional[str] = None) -> None:
    """Configure structlog for structured logging.

    Args:
        log_level: Level name (default: INFO)
    """
    level = getattr(logging, (log_level or "INFO").upper(), logging.INFO)
    is_dev = level == logging.DEBUG

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if is_dev:
        renderer = structlog.dev.ConsoleRenderer()
    else:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Route the SDK's stdlib loggers through the same renderer
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    sdk_logger = logging.getLogger("zuno_sdk")
    sdk_logger.handlers.clear()
    sdk_logger.addHandler(handler)
    sdk_logger.setLevel(level)
    sdk_logger.propagate = False

    for name in ("httpcore", "httpx"):
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = "zuno_sdk", **context) -> structlog.stdlib.BoundLogger:
    """Bound structlog logger with ``context`` attached to every event."""
    return structlog.stdlib.get_logger(name).bind(**context)
