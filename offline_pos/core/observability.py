"""
Logging setup and sync-run correlation.

Provides:
- A sync run ID context variable, set for the duration of each sweep
- A logging filter that stamps every record with the current run ID
- ``configure_logging`` for hosts that do not configure logging themselves

All log lines emitted while one sweep is in progress carry the same
``sync_run_id``, so a sweep can be followed across the queue manager,
the orchestrator and the API client.
"""

import logging
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional


sync_run_id_var: ContextVar[Optional[str]] = ContextVar("sync_run_id", default=None)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(sync_run_id)s] %(name)s: %(message)s"

logger = logging.getLogger("offline_pos")


def get_sync_run_id() -> Optional[str]:
    """Get current sync run ID from context."""
    return sync_run_id_var.get()


@contextmanager
def sync_run(run_id: Optional[str] = None) -> Iterator[str]:
    """Bind a sync run ID for the duration of the block."""
    run_id = run_id or uuid.uuid4().hex[:12]
    token = sync_run_id_var.set(run_id)
    try:
        yield run_id
    finally:
        sync_run_id_var.reset(token)


class SyncRunFilter(logging.Filter):
    """Attach ``sync_run_id`` to every record passing through a handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "sync_run_id"):
            record.sync_run_id = get_sync_run_id() or "-"
        return True


def configure_logging(level: str = "INFO") -> None:
    """Install a stream handler on the package logger.

    Idempotent: calling it twice does not duplicate handlers.
    """
    logger.setLevel(level)
    for handler in logger.handlers:
        if getattr(handler, "_offline_pos", False):
            handler.setLevel(level)
            return

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(SyncRunFilter())
    handler._offline_pos = True
    logger.addHandler(handler)
