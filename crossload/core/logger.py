"""
Centralized logger configuration for crossload.

By default, uses Python's standard logging under the 'crossload' namespace.

Usage:
    # Use default logger
    from crossload.core.logger import get_logger
    logger = get_logger(__name__)
    logger.info("Message")

    # Set custom logger (e.g., structlog, loguru)
    from crossload.core.logger import set_logger
    import structlog
    set_logger(structlog.get_logger())
"""

import logging
from typing import Any

_custom_logger: Any = None

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def set_logger(logger: Any) -> None:
    """
    Set a custom logger for all crossload components.

    Args:
        logger: Any object with debug/info/warning/error/exception methods.
                Pass None to go back to standard logging.
    """
    global _custom_logger
    _custom_logger = logger


def get_logger(name: str = "crossload") -> Any:
    """
    Get a logger instance.

    Returns the custom logger if one was set via set_logger(), otherwise
    a standard logger with a NullHandler attached.
    """
    if _custom_logger is not None:
        return _custom_logger

    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())
    return logger


def configure_default_logging(
    level: int = logging.INFO,
    format_string: str = DEFAULT_FORMAT,
    json_output: bool = False,
) -> None:
    """
    Configure console logging for the crossload namespace.

    Args:
        level: Logging level (default: INFO)
        format_string: Log message format for plain-text output
        json_output: Emit one JSON object per record instead
    """
    from crossload.monitoring.logging import TransferContextFilter, TransferJsonFormatter

    handler = logging.StreamHandler()
    handler.setFormatter(
        TransferJsonFormatter() if json_output else logging.Formatter(format_string)
    )
    handler.addFilter(TransferContextFilter())

    root = logging.getLogger("crossload")
    root.handlers = [h for h in root.handlers if not isinstance(h, logging.StreamHandler)]
    root.addHandler(handler)
    root.setLevel(level)
