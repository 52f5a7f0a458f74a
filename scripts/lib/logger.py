"""
Centralized logging for MarginDesk.
Provides consistent logging across all modules with console + daily file output.

Every line carries the sync (or background job) it was written under, so
interleaved runs can be told apart in one log file:

    2025-10-15 09:00:01 | INFO     | sync_zoho_books | zoho_bills | Loaded 3 rules

Usage:
    from scripts.lib.logger import setup_logger, sync_context
    logger = setup_logger(__name__)
    with sync_context("zoho_bills"):
        logger.info("Sync started")
"""
import contextvars
import logging
import os
import sys
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

# Project root (margindesk/)
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
LOG_DIR = PROJECT_ROOT / "logs"

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(sync_type)s | %(message)s"

_current_sync = contextvars.ContextVar("sync_type", default="-")


@contextmanager
def sync_context(sync_type: str):
    """Tag log lines emitted inside the block (and tasks spawned from it) with ``sync_type``."""
    token = _current_sync.set(sync_type)
    try:
        yield
    finally:
        _current_sync.reset(token)


def current_sync() -> str:
    return _current_sync.get()


class SyncContextFilter(logging.Filter):
    """Adds ``record.sync_type`` from the active sync context."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.sync_type = _current_sync.get()
        return True


def setup_logger(
    name: str,
    level: str = None,
    log_to_file: bool = None,
    log_dir: Path = None,
) -> logging.Logger:
    """
    Configure and return a logger instance.

    Args:
        name: Logger name (typically __name__ from calling module).
        level: Logging level (default: LOG_LEVEL env var, else INFO).
        log_to_file: Whether to also log to a file (default: LOG_TO_FILE env var).
        log_dir: Directory for log files (default: project_root/logs).

    Returns:
        Configured logger instance.
    """
    logger = logging.getLogger(name)

    # Avoid adding handlers multiple times
    if logger.handlers:
        return logger

    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")
    if log_to_file is None:
        log_to_file = os.getenv("LOG_TO_FILE", "false").lower() == "true"

    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    context_filter = SyncContextFilter()

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_to_file:
        target_dir = Path(log_dir) if log_dir else LOG_DIR
        target_dir.mkdir(parents=True, exist_ok=True)
        log_file = target_dir / f"{datetime.now().strftime('%Y%m%d')}_margindesk.log"
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    for handler in handlers:
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(formatter)
        handler.addFilter(context_filter)
        logger.addHandler(handler)

    return logger
