# -*- coding: utf-8 -*-
"""
Logging configuration for the bot process.

Severity routing for container log classification:
- DEBUG..WARNING -> STDOUT
- ERROR, CRITICAL -> STDERR

Records are pushed through a QueueHandler; a QueueListener thread does the
stream I/O so a blocked stdout never stalls the event loop.
"""

import atexit
import logging
import os
import queue
import sys
from logging.handlers import QueueHandler, QueueListener

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class MaxLevelFilter(logging.Filter):
    """Pass only records up to max_level (inclusive)."""

    def __init__(self, max_level):
        super().__init__()
        self.max_level = max_level

    def filter(self, record):
        return record.levelno <= self.max_level


_log_listener: QueueListener | None = None


def _resolve_level() -> int:
    name = os.getenv("LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def setup_logging():
    """
    Install the queue-based root handler and start the listener thread.

    Call once at process start, before the first logger is used.
    Calling it again replaces the previous listener.
    """
    global _log_listener

    if _log_listener is not None:
        _stop_log_listener()

    level = _resolve_level()
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT)

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setLevel(level)
    stdout_handler.addFilter(MaxLevelFilter(logging.WARNING))
    stdout_handler.setFormatter(formatter)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.ERROR)
    stderr_handler.setFormatter(formatter)

    log_queue = queue.Queue()
    root_logger.addHandler(QueueHandler(log_queue))

    _log_listener = QueueListener(
        log_queue,
        stdout_handler,
        stderr_handler,
        respect_handler_level=True,
    )
    _log_listener.start()
    atexit.register(_stop_log_listener)

    # aiogram logs every handled update at INFO
    logging.getLogger("aiogram.event").setLevel(logging.WARNING)


def _stop_log_listener():
    global _log_listener
    if _log_listener is not None:
        _log_listener.stop()
        _log_listener = None
