# Overview: Service-layer helpers for row locking and retrying contended transactions.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking to a query (SELECT ... FOR UPDATE).

    NOTE: SQLite ignores FOR UPDATE; begin_write_transaction() covers it there.
    """
    return query.with_for_update()


def begin_write_transaction() -> None:
    """
    Take the database write lock up front on SQLite.

    SQLite has no row locks, so stock-mutating transactions escalate to
    BEGIN IMMEDIATE before their first read. Other dialects rely on
    lock_for_update() and this is a no-op.
    """
    if db.engine.dialect.name != "sqlite":
        return
    # An implicit transaction may already be open from earlier reads
    db.session.rollback()
    db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a unit of DB work, retrying on concurrency failures.

    Retries OperationalError (database locked, deadlock) and StaleDataError
    (optimistic version conflict). func must be safe to re-run from scratch:
    the session is rolled back before every retry.
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
            current_app.logger.warning("Retrying contended transaction (attempt %s/%s): %s", attempt + 1, attempts, exc)
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
