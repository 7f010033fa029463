# Overview: Service-layer helpers for row locking and retrying concurrent writes.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Use begin_write_lock() first so SQLite serializes the whole transaction.
    """
    return query.with_for_update()


def begin_write_lock() -> None:
    """
    Take SQLite's database write lock before reading state we are about to change.

    Two concurrent shift opens (or a close racing a sale) then run one after
    the other instead of both passing their checks.
    """
    if db.engine.dialect.name != "sqlite":
        return
    dbapi_connection = db.session.connection().connection.dbapi_connection
    if not getattr(dbapi_connection, "in_transaction", False):
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Business errors raised by func are not
    retried; the session is rolled back and they propagate.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Concurrent write conflict (%s), retrying (attempt %d/%d)",
                type(exc).__name__, attempt + 1, attempts,
            )
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    if last_exc:
        raise last_exc
