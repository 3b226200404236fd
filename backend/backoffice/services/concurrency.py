# Overview: Unit-of-work helpers for row locking, rollback and retry on concurrency failures.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import ConcurrentUpdateError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB unit of work with all-or-nothing semantics.

    func must do its own commit. Any exception rolls the session back
    before it propagates, so no partial state survives a failure.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts via version_id). An optimistic conflict
    that survives every attempt becomes ConcurrentUpdateError; other
    errors are re-raised unchanged.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                if isinstance(exc, StaleDataError):
                    raise ConcurrentUpdateError(
                        "Record was modified by another request; please retry"
                    ) from exc
                raise
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
