# Overview: Row locking and retry helpers shared by every mutating service.

"""
Serialized updates on orders and cash sessions

Every command loads its aggregate (a service order or a cash session) with
SELECT ... FOR UPDATE and commits once. Both tables carry a version_id
column, so a write based on a stale read fails with StaleDataError instead
of overwriting a concurrent change. The command is then rolled back and run
again from a fresh read.

SQLite ignores FOR UPDATE; there the version column alone does the work.
"""

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from oficina.validation import Conflict


RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """Lock the aggregate row read by `query` until the command commits."""
    return query.with_for_update()


def _command_name(func) -> str:
    name = getattr(func, "__qualname__", repr(func))
    return name.replace(".<locals>._op", "")


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Run one command (a closure that reads, mutates and commits) with retry.

    Storage conflicts (lock timeouts, deadlocks, version mismatches) roll the
    session back and run the command again. Domain errors are never retried.
    A version mismatch that survives every attempt is reported as Conflict.
    """
    config = current_app.config
    if attempts is None:
        attempts = config.get("DB_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = config.get("DB_RETRY_BACKOFF", 0.1)

    for attempt in range(1, attempts + 1):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt >= attempts:
                current_app.logger.error(
                    "%s gave up after %s attempts: %s",
                    _command_name(func), attempts, exc.__class__.__name__,
                )
                if isinstance(exc, StaleDataError):
                    raise Conflict("The record was changed by another user; try again") from exc
                raise
            current_app.logger.warning(
                "%s hit a storage conflict (attempt %s/%s): %s",
                _command_name(func), attempt, attempts, exc.__class__.__name__,
            )
            if backoff_base:
                time.sleep(backoff_base * (2 ** (attempt - 1)))
