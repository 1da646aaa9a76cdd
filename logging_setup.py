"""
Logging configuration for the sensor recorder.

Subsystems tag their messages ([BLE], [RECORDER], [API]) so a plain
console log is still easy to scan.
"""
import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s"
LOG_FORMAT_SIMPLE = "%(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    verbose: bool = False,
    log_file: Optional[str] = None,
    simple_format: bool = False,
) -> None:
    """
    Configure the root logger.

    Args:
        verbose: Enable DEBUG level logging (default: INFO)
        log_file: Optional file path for log output
        simple_format: Drop timestamps on the console
    """
    level = logging.DEBUG if verbose else logging.INFO
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    fmt = LOG_FORMAT_SIMPLE if simple_format else LOG_FORMAT

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(fmt, datefmt=DATE_FORMAT))
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        root_logger.addHandler(file_handler)

    # bleak is chatty at DEBUG (every D-Bus / CoreBluetooth callback)
    logging.getLogger("bleak").setLevel(logging.DEBUG if verbose else logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Usage:
        logger = get_logger(__name__)
        logger.info("[BLE] Connected to %s", address)
    """
    return logging.getLogger(name)
