"""
Centralized logging configuration for StampOrderWeb.

Every record carries the thread that produced it and, when it was logged
through an order logger, the order it belongs to. Several people edit the
same order table at once, so both are needed to follow one order's
transitions through interleaved request threads.

Log Format:
    2025-12-03 10:15:30 [INFO    ] [MainThread] [-       ] stamp_order_web.app - Starting
    2025-12-03 10:15:31 [INFO    ] [Thread-3  ] [5f2c9a1e] stamp_order_web.order - Stamp 9d1e...: sale_state -> 'TRANSFERIDO'

Usage:
    from logging_config import setup_logging, get_logger, get_order_logger

    setup_logging(log_level=logging.INFO, enable_file_logging=True)

    logger = get_logger(__name__)
    get_order_logger(order_id).info("Order created with 2 stamps")
"""

import logging
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


APP_NAMESPACE = "stamp_order_web"
ORDER_LOGGER_NAME = f"{APP_NAMESPACE}.order"

LOG_FORMAT = (
    "%(asctime)s [%(levelname)-8s] [%(thread_name)s] [%(order_ref)-8s] "
    "%(name)s - %(message)s"
)
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5


# =============================================================================
# CONTEXT FILTER
# =============================================================================

class ContextFilter(logging.Filter):
    """
    Adds ``thread_name`` and ``order_ref`` to every record.

    ``order_ref`` is the short order id passed by ``OrderLoggerAdapter``,
    or "-" for records that do not belong to an order.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.thread_name = threading.current_thread().name
        if not getattr(record, "order_ref", None):
            record.order_ref = "-"
        return True


class OrderLoggerAdapter(logging.LoggerAdapter):
    """Logger bound to one order; the full id travels in ``extra``."""

    def process(self, msg, kwargs):
        extra = dict(kwargs.get("extra") or {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        return msg, kwargs


# =============================================================================
# LOGGING SETUP
# =============================================================================

def setup_logging(
    app_name: str = APP_NAMESPACE,
    log_level: int = logging.INFO,
    log_dir: Optional[Path] = None,
    enable_file_logging: bool = True,
) -> logging.Logger:
    """
    Configure the application logger tree.

    Console output is always on. With ``enable_file_logging`` two rotating
    files are added under ``log_dir``: ``<app_name>.log`` for everything and
    ``<app_name>_error.log`` for ERROR and above. Calling this again
    replaces the previous handlers.

    Args:
        app_name: Name of the root logger (default: "stamp_order_web")
        log_level: Minimum log level (default: INFO)
        log_dir: Directory for log files (default: ./logs next to this file)
        enable_file_logging: Whether to write log files

    Returns:
        Configured root logger instance
    """
    logger = logging.getLogger(app_name)
    logger.setLevel(log_level)
    logger.propagate = False
    logger.handlers.clear()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    context = ContextFilter()

    console_handler = logging.StreamHandler(sys.stdout)
    _attach(logger, console_handler, log_level, formatter, context)

    if enable_file_logging:
        log_dir = Path(log_dir) if log_dir else Path(__file__).parent / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)

        app_log_file = log_dir / f"{app_name}.log"
        _attach(logger, _rotating(app_log_file), log_level, formatter, context)
        _attach(logger, _rotating(log_dir / f"{app_name}_error.log"), logging.ERROR,
                formatter, context)

        logger.info(f"File logging enabled: {app_log_file}")

    logger.info(f"Logging configured at level {logging.getLevelName(log_level)}")
    return logger


def _rotating(path: Path) -> RotatingFileHandler:
    return RotatingFileHandler(
        filename=path, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8"
    )


def _attach(logger: logging.Logger, handler: logging.Handler, level: int,
            formatter: logging.Formatter, context: logging.Filter) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(context)
    logger.addHandler(handler)


# =============================================================================
# LOGGER FACTORY FUNCTIONS
# =============================================================================

def get_logger(name: str) -> logging.Logger:
    """
    Get a child logger under the application namespace.

    Args:
        name: Module name (typically __name__)

    Returns:
        Logger instance, e.g. "stamp_order_web.modules.transitions"
    """
    if not name.startswith(APP_NAMESPACE):
        name = f"{APP_NAMESPACE}.{name}"

    return logging.getLogger(name)


def get_order_logger(order_id: str) -> OrderLoggerAdapter:
    """
    Get a logger for one order's history.

    Every record goes to the shared "stamp_order_web.order" logger and is
    tagged with the first 8 characters of ``order_id`` (shown in the
    ``order_ref`` column) and the full id (``record.order_id``).

    Args:
        order_id: Order identifier

    Returns:
        Logger adapter bound to the order
    """
    return OrderLoggerAdapter(
        logging.getLogger(ORDER_LOGGER_NAME),
        {"order_id": order_id, "order_ref": order_id[:8]},
    )
