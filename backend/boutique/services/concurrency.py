# Overview: Row locks and the retry loop wrapped around checkout, layaway and purchasing writes.

from __future__ import annotations

import logging
import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Lock the rows a write is about to change (inventory records, orders,
    purchase orders, document sequences).

    SQLite ignores FOR UPDATE; there the version_id columns catch lost
    updates and run_with_retry() replays the write.
    """
    return query.with_for_update()


def run_with_retry(func, *, label: str = "write", attempts: int | None = None, backoff_base: float | None = None):
    """
    Run a whole unit of work, replaying it on lock or version conflicts.

    func must redo all of its reads: the session is rolled back between
    attempts. Attempts and backoff default to WRITE_RETRY_ATTEMPTS and
    WRITE_RETRY_BACKOFF_SECONDS.
    """
    config = current_app.config
    if attempts is None:
        attempts = int(config.get("WRITE_RETRY_ATTEMPTS", 3))
    if backoff_base is None:
        backoff_base = float(config.get("WRITE_RETRY_BACKOFF_SECONDS", 0.1))
    attempts = max(1, attempts)

    for attempt in range(1, attempts + 1):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt == attempts:
                logger.warning("%s gave up after %s attempts: %s", label, attempts, exc)
                raise
            logger.warning("%s hit a concurrency conflict (attempt %s of %s): %s", label, attempt, attempts, exc)
            if backoff_base:
                time.sleep(backoff_base * (2 ** (attempt - 1)))
