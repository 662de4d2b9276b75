# Overview: Unit-of-work, row locking and retry helpers shared by the ledger services.

from __future__ import annotations

import logging
import time
from contextlib import contextmanager

from flask import current_app, has_app_context
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

logger = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 3


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    populate_existing() makes sure rows already in the session identity map
    are refreshed from the locked read instead of reusing stale state.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; unit_of_work() serializes
    SQLite writers with BEGIN IMMEDIATE instead.
    """
    return query.with_for_update().populate_existing()


def _config_value(key: str, default):
    if has_app_context():
        return current_app.config.get(key, default)
    return default


@contextmanager
def unit_of_work(session, *, timeout_ms: int | None = None):
    """
    Run a block as one all-or-nothing database transaction.

    - SQLite: the transaction is opened with BEGIN IMMEDIATE so concurrent
      writers queue on the database lock before reading stock or balances.
    - PostgreSQL: statement_timeout is applied for the transaction only.
    - Any exception rolls back everything written in the block and is
      re-raised unchanged. A clean exit commits.

    The session must not hold uncommitted writes when the block starts.
    """
    dialect = session.get_bind().dialect.name
    if timeout_ms is None:
        timeout_ms = _config_value("LEDGER_STATEMENT_TIMEOUT_MS", None)

    if dialect == "sqlite":
        session.execute(text("BEGIN IMMEDIATE"))
    elif dialect == "postgresql" and timeout_ms:
        session.execute(text(f"SET LOCAL statement_timeout = {int(timeout_ms)}"))

    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise


def run_with_retry(func, *, session, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks, timeouts) and StaleDataError
    (optimistic locking conflicts). Business errors propagate immediately.
    """
    if attempts is None:
        attempts = _config_value("LEDGER_RETRY_ATTEMPTS", DEFAULT_ATTEMPTS)

    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            logger.warning("Retrying after concurrency conflict (attempt %d/%d): %s", attempt + 1, attempts, exc)
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
