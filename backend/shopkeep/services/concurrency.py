# Overview: Row locking and retry helpers for writes that must be applied as one unit.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Lock the selected rows until the transaction ends.

    SQLite ignores SELECT ... FOR UPDATE; there the first UPDATE in the
    transaction takes the database write lock instead.
    """
    return query.with_for_update()


def run_with_retry(func, *, label: str = "database operation", attempts: int = 3, backoff_base: float = 0.1):
    """
    Run func, retrying when the database reports a lock conflict.

    The session is rolled back before each retry, so func must redo all of
    its work (re-read rows, re-apply changes). Domain errors raised by func
    are never retried.
    """
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except RETRYABLE_ERRORS:
            db.session.rollback()
            if attempt == attempts:
                current_app.logger.error("%s failed after %d attempts", label, attempts)
                raise
            current_app.logger.warning("Retrying %s after lock conflict (attempt %d/%d)", label, attempt, attempts)
            time.sleep(backoff_base * (2 ** (attempt - 1)))
