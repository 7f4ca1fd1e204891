"""
Log setup for the iwmenu command.

Modules log through `logging.getLogger(__name__)`, which places them under the
"iwmenu" logger; `configure_logging` attaches the handlers once at start-up.
Chooser output goes through pipes, so stderr carries only log lines.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


def configure_logging(
    log_level: str = "WARNING",
    log_file: Optional[str] = None,
    console_output: bool = True
) -> logging.Logger:
    """
    Attach handlers for daemon calls, chooser runs and notification failures.

    Args:
        log_level: --log-level value; unknown names fall back to WARNING
        log_file: --log-file path, rotated at 10 MB with five backups
        console_output: Write to stderr as well

    Returns:
        The "iwmenu" logger
    """
    level = getattr(logging, log_level.upper(), logging.WARNING)
    logger = logging.getLogger("iwmenu")
    logger.setLevel(level)

    # Reconfiguring replaces handlers
    logger.handlers.clear()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=LOG_FILE_BACKUPS
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Logger for a part of iwmenu that has no module of its own, e.g. "cli"."""
    return logging.getLogger(f"iwmenu.{name}")
