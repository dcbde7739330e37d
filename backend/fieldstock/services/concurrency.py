# Overview: Transaction boundary and retry helpers shared by every mutating workflow.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query, *, skip_locked: bool = False):
    """
    Apply row-level locking to a candidate query.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the conditional update in
    ledger_service.transition_unit is what detects lost races.
    """
    if skip_locked:
        return query.with_for_update(skip_locked=True)
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, "database is locked") and
    StaleDataError (optimistic locking conflicts). The session is rolled back
    before every retry so the operation starts from committed state.
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
                "Transaction retry %d/%d after %s", attempt + 1, attempts, type(exc).__name__
            )
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def run_in_transaction(func):
    """
    Run one workflow submission as a single all-or-nothing transaction.

    `func` performs every header, line and ledger write; on success the session
    is committed, on any exception it is rolled back and the exception re-raised.
    Database lock errors restart `func` from scratch with backoff.
    """
    attempts = current_app.config.get("WORKFLOW_RETRY_ATTEMPTS", 3)
    backoff = current_app.config.get("WORKFLOW_RETRY_BACKOFF", 0.1)

    def _op():
        try:
            result = func()
            db.session.commit()
            return result
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_op, attempts=attempts, backoff_base=backoff)
