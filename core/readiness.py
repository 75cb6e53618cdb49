"""Process-level readiness gate.

The schema is provisioned by Django migrations in an explicit startup phase.
``ensure_schema`` is idempotent and cheap after the first successful call;
``is_ready`` lets the health check report whether that phase has completed.
"""

import logging
import threading

from django.conf import settings
from django.core.management import call_command
from django.db.utils import OperationalError

logger = logging.getLogger(__name__)

_lock = threading.Lock()
_ready = threading.Event()


def is_ready() -> bool:
    return _ready.is_set()


def mark_ready() -> None:
    _ready.set()


def reset() -> None:
    """Clear the readiness flag (used by tests)."""
    _ready.clear()


def ensure_schema() -> bool:
    """Run the migration phase once per process.

    Returns ``True`` when the schema is known to be current. A database that
    is unavailable at startup leaves the process not-ready instead of failing.
    """

    if _ready.is_set():
        return True
    with _lock:
        if _ready.is_set():
            return True
        if getattr(settings, "PROCUREMENT_RUN_MIGRATIONS_ON_STARTUP", True):
            try:
                call_command("migrate", interactive=False, verbosity=0)
            except OperationalError as exc:
                logger.error("Schema phase failed, database unavailable: %s", exc)
                return False
        _ready.set()
        logger.info("Schema ready")
        return True
