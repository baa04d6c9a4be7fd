"""Logging bootstrap for the agent process.

Writes to a size-rotated ``agent.log`` in the log directory and mirrors
everything to the console.
"""

import logging
import logging.handlers
import sys
import time
from pathlib import Path

from anywhere_agent.config import LogConfig

LOG_FILE_NAME = "agent.log"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def resolve_level(level: str) -> int:
    """Map a config level name to a logging level (unknown names mean INFO)."""
    return _LEVELS.get(level.lower(), logging.INFO)


def prune_old_backups(log_dir: Path, max_age_days: int) -> list[Path]:
    """Delete rotated log backups older than ``max_age_days``.

    Args:
        log_dir: Directory holding ``agent.log`` and its backups
        max_age_days: Maximum backup age in days

    Returns:
        Paths that were removed
    """
    cutoff = time.time() - max_age_days * 86400
    removed: list[Path] = []
    for backup in log_dir.glob(f"{LOG_FILE_NAME}.*"):
        try:
            if backup.stat().st_mtime < cutoff:
                backup.unlink()
                removed.append(backup)
        except OSError:
            continue
    return removed


def setup_logging(log_dir: Path | str, log_config: LogConfig) -> Path:
    """Configure the root logger for the agent process.

    Args:
        log_dir: Directory for ``agent.log`` (created if missing)
        log_config: Level and rotation settings

    Returns:
        Path of the active log file
    """
    log_dir = Path(log_dir).expanduser()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    removed = prune_old_backups(log_dir, log_config.max_age)

    file_handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=log_config.max_size * 1024 * 1024,
        backupCount=log_config.max_backups,
        encoding="utf-8",
    )
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    logging.basicConfig(
        level=resolve_level(log_config.level),
        handlers=[file_handler, console_handler],
        force=True,
    )

    logger = logging.getLogger(__name__)
    for path in removed:
        logger.debug(f"Pruned expired log backup: {path}")
    return log_file
