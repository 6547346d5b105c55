# Overview: Transaction helpers shared by the sale engine and catalog writes.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import PersistenceError, PosError
from ..extensions import db
from ..validation import ValidationError

TRANSIENT_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write() covers it there.
    """
    return query.with_for_update()


def begin_write() -> None:
    """
    Take the database write lock up front on SQLite.

    pysqlite defers BEGIN until the first DML statement, which lets two
    connections read the same stock and then race on the write. BEGIN
    IMMEDIATE serializes writers for the whole transaction.
    """
    if db.engine.dialect.name != "sqlite":
        return
    # Work already flushed on this connection means pysqlite has begun for us
    raw = db.session.connection().connection.dbapi_connection
    if not raw.in_transaction:
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None, retry_on=TRANSIENT_ERRORS):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts) by default.
    """
    if attempts is None:
        attempts = current_app.config.get("DB_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("DB_RETRY_BACKOFF", 0.1)

    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def run_atomic(func, *, retry_on=TRANSIENT_ERRORS + (IntegrityError,)):
    """
    Run `func` as one all-or-nothing unit of work and commit it.

    `func` stages its changes on db.session; this helper commits, retries
    transient conflicts, and rolls back on any failure so no partial effect
    survives. Domain and validation errors propagate unchanged; storage
    failures that outlive the retries become PersistenceError.
    """
    def _op():
        begin_write()
        result = func()
        db.session.commit()
        return result

    try:
        return run_with_retry(_op, retry_on=retry_on)
    except (PosError, ValidationError):
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise PersistenceError(
            "Transaction aborted; no changes were saved",
            details={"cause": exc.__class__.__name__},
        ) from exc
