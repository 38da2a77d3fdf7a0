"""Structured logging configuration."""
import logging
import sys

from tubeproxy.core.config import settings

_NOISY_LOGGERS = ("uvicorn", "uvicorn.access", "fastapi", "sse_starlette")


def setup_logging() -> None:
    """Configure structured logging for the proxy service."""
    log_level = getattr(logging, settings.LOG_LEVEL.upper())

    if settings.is_production:
        # JSON lines for log aggregators
        log_format = '{"time":"%(asctime)s","level":"%(levelname)s","name":"%(name)s","message":"%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for the given name.

    Args:
        name: Logger name (typically __name__ of the module)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)
