"""
Logging setup for the checkout backend.

All loggers live under the ``shop_checkout`` namespace. Records are tagged
with the producing thread, and records emitted through a session logger are
also tagged with the tail of the provider session id, so one checkout can be
followed across the request thread, the validation pool and the webhook.

    2026-03-02 10:15:30 INFO     [MainThread] shop_checkout.app: Starting checkout backend
    2026-03-02 10:15:31 INFO     [Catalog] shop_checkout.services.catalog_service: Catalog refreshed
    2026-03-02 10:15:32 WARNING  [Validate_0] shop_checkout.services.cart_validator: Retrying ring-black
    2026-03-02 10:15:40 INFO     [Thread-7] <cs_test_a1b2> shop_checkout.fulfillment: Order created

Usage:
    setup_logging(log_level=logging.INFO, enable_file_logging=True)
    logger = get_logger(__name__)
    session_log = get_session_logger(session_id)
"""

import logging
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


APP_NAMESPACE = "shop_checkout"

LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(thread_name)s]%(session_tag)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5

# Provider session ids share a long common prefix; the tail identifies them
SESSION_TAG_LENGTH = 12


class ContextFilter(logging.Filter):
    """Fill in the thread and session fields used by LOG_FORMAT."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.thread_name = threading.current_thread().name
        if not hasattr(record, "session_tag"):
            record.session_tag = ""
        return True


def _attach(logger: logging.Logger, handler: logging.Handler, level: int) -> None:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    handler.addFilter(ContextFilter())
    logger.addHandler(handler)


def _rotating(path: Path) -> RotatingFileHandler:
    return RotatingFileHandler(path, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8")


def setup_logging(
    app_name: str = APP_NAMESPACE,
    log_level: int = logging.INFO,
    log_dir: Optional[Path] = None,
    enable_file_logging: bool = True,
) -> logging.Logger:
    """
    Configure the application logger.

    Console output always goes to stdout. With file logging enabled, a
    rotating ``<app_name>.log`` receives everything at ``log_level`` and a
    separate ``<app_name>_error.log`` keeps only ERROR and above, so payment
    and fulfillment failures are not rotated away by routine traffic.

    Calling this again replaces the previous handlers.

    Args:
        app_name: Logger namespace to configure
        log_level: Minimum level for console and main log file
        log_dir: Directory for log files (default: ./logs beside this module)
        enable_file_logging: Write log files in addition to the console

    Returns:
        The configured namespace logger
    """
    logger = logging.getLogger(app_name)
    logger.setLevel(log_level)
    logger.propagate = False
    logger.handlers.clear()

    _attach(logger, logging.StreamHandler(sys.stdout), log_level)

    if enable_file_logging:
        log_dir = Path(log_dir) if log_dir else Path(__file__).parent / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)

        _attach(logger, _rotating(log_dir / f"{app_name}.log"), log_level)
        _attach(logger, _rotating(log_dir / f"{app_name}_error.log"), logging.ERROR)
        logger.info(f"Writing logs to {log_dir}")

    logger.debug(f"Log level {logging.getLevelName(log_level)}")
    return logger


def get_logger(name: str) -> logging.Logger:
    """Logger for a module, placed under the application namespace."""
    if not name.startswith(APP_NAMESPACE):
        name = f"{APP_NAMESPACE}.{name}"
    return logging.getLogger(name)


def get_session_logger(session_id: str) -> logging.LoggerAdapter:
    """
    Logger whose records are tagged with a provider checkout session.

    Args:
        session_id: Provider checkout session id

    Returns:
        Adapter over the ``shop_checkout.fulfillment`` logger
    """
    tag = session_id[-SESSION_TAG_LENGTH:]
    return logging.LoggerAdapter(
        logging.getLogger(f"{APP_NAMESPACE}.fulfillment"),
        {"session_tag": f" <{tag}>"},
    )


def set_thread_name(name: str) -> None:
    """Rename the current thread, as shown in the [thread] log field."""
    threading.current_thread().name = name
