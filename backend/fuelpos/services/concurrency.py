# Overview: Transaction, locking and retry helpers shared by the services.

from __future__ import annotations

import logging
import time
from contextlib import contextmanager

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Lock the selected rows (closures, readings, allocations, registers)
    until the surrounding transaction ends.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; PostgreSQL and MySQL honor it.
    """
    return query.with_for_update()


@contextmanager
def atomic():
    """
    Run the block as one all-or-nothing unit of work.

    Commits on success; any exception rolls back every mutation made
    inside the block and propagates.
    """
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run a whole unit of work again when another writer got there first.

    OperationalError covers lock timeouts and deadlocks; StaleDataError is a
    version_id mismatch on a closure, reading or register row. The session
    is rolled back before each new attempt. DomainError is never retried.
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
            logger.warning("Concurrent update detected, retrying (attempt %s/%s): %s", attempt + 1, attempts, exc)
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
