"""Logging configuration for the procurement service.

``build_logging_config`` produces the ``LOGGING`` dict used by settings: a
size-rotated file plus the console, both on the root logger. Rotated files
older than ``LOG_RETENTION_DAYS`` are removed by ``purge_old_logs`` once the
app registry is ready.
"""

import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_MAX_BYTES = 1_000_000
LOG_BACKUP_COUNT = 3

logger = logging.getLogger(__name__)


def build_logging_config(log_file: Union[str, Path], level: str = "INFO") -> Dict[str, Any]:
    level = (level or "INFO").upper()
    if not isinstance(logging.getLevelName(level), int):
        level = "INFO"
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"standard": {"format": LOG_FORMAT}},
        "handlers": {
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "filename": str(log_file),
                "maxBytes": LOG_MAX_BYTES,
                "backupCount": LOG_BACKUP_COUNT,
                "formatter": "standard",
                "delay": True,
            },
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
            },
        },
        "root": {"handlers": ["console", "file"], "level": level},
    }


def purge_old_logs(
    log_file: Union[str, Path], retention_days: int, now: Optional[datetime] = None
) -> List[Path]:
    """Delete rotated siblings of ``log_file`` last modified before the cutoff.

    The live log file is never touched. A retention of zero or less keeps
    everything. Returns the removed paths.
    """

    if retention_days <= 0:
        return []
    log_path = Path(log_file).resolve()
    cutoff = (now or datetime.now()) - timedelta(days=retention_days)
    removed = []
    for rotated in sorted(log_path.parent.glob(f"{log_path.name}.*")):
        try:
            modified = datetime.fromtimestamp(rotated.stat().st_mtime)
            if modified < cutoff:
                rotated.unlink()
                removed.append(rotated)
        except FileNotFoundError:
            continue
    return removed


def configure_logging() -> None:
    """Apply the retention policy configured in Django settings."""

    from django.conf import settings

    removed = purge_old_logs(settings.LOG_FILE, settings.LOG_RETENTION_DAYS)
    if removed:
        logger.info("Removed %s expired log file(s)", len(removed))


__all__ = ["build_logging_config", "configure_logging", "purge_old_logs"]
