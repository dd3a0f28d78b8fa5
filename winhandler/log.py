"""
Logging for the WinHandler bridge.

Every component logs through ``log_event()``: the message goes to the
shared ``winhandler`` logger and, when a UI queue is attached, is also
posted as ``('log', name, msg)`` for the console to display.

Author: WinHandler Project
License: MIT
"""

from __future__ import annotations

import sys
import time
import queue
import logging
import threading
from typing import Optional, Dict

LOGGER_NAME            = "winhandler"
LOG_FORMAT             = "%(asctime)s [%(levelname)s] %(message)s"
LOG_DATEFMT            = "%Y-%m-%d %H:%M:%S"

# Minimum interval between debug logs per component
DEBUG_LOG_INTERVAL_S   = 2.0

# Set by configure_logging() before the logger is first used
_log_path: Optional[str] = None
_log_stdout = False

_logger: Optional[logging.Logger] = None
_logger_lock = threading.Lock()

_debug_log_times: Dict[str, float] = {}
_debug_log_lock = threading.Lock()


def configure_logging(log_path: Optional[str], stdout: bool = False) -> logging.Logger:
    """
    Set log destinations and (re)build the application logger.

    Args:
        log_path: File to append to, or None for no file logging
        stdout: Also echo records to stdout
    """
    global _log_path, _log_stdout, _logger
    with _logger_lock:
        _log_path = log_path
        _log_stdout = stdout
        if _logger is not None:
            for handler in list(_logger.handlers):
                _logger.removeHandler(handler)
                handler.close()
            _logger = None
    return get_logger()


def get_logger() -> logging.Logger:
    """Get or create the application logger (lazy initialization)."""
    global _logger
    if _logger is not None:
        return _logger

    with _logger_lock:
        if _logger is not None:
            return _logger

        logger = logging.getLogger(LOGGER_NAME)
        logger.setLevel(logging.DEBUG)
        logger.propagate = False

        formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

        if not logger.handlers:
            if _log_path:
                file_handler = logging.FileHandler(_log_path, encoding="utf-8")
                file_handler.setFormatter(formatter)
                logger.addHandler(file_handler)

            if _log_stdout:
                stream_handler = logging.StreamHandler(stream=sys.stdout)
                stream_handler.setFormatter(formatter)
                logger.addHandler(stream_handler)

            if not logger.handlers:
                logger.addHandler(logging.NullHandler())

        _logger = logger
        return _logger


def log_event(uiq: Optional[queue.Queue], name: str, msg: str, level: str = "info") -> None:
    """
    Log to file/console and enqueue for UI display.

    Debug-level messages are rate-limited per component name so a flood
    of identical conditions (dropped mouse events, bad datagrams) does
    not swamp the log.
    """
    if level == "debug" and DEBUG_LOG_INTERVAL_S > 0:
        now = time.monotonic()
        with _debug_log_lock:
            last_time = _debug_log_times.get(name, 0.0)
            if now - last_time < DEBUG_LOG_INTERVAL_S:
                return
            _debug_log_times[name] = now

    logger = get_logger()
    log_fn = getattr(logger, level, logger.info)
    log_fn(f"[{name}] {msg}")

    if uiq is not None:
        try:
            uiq.put_nowait(('log', name, msg))
        except queue.Full:
            pass
