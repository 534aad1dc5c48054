# Overview: Row locking and the bounded-retry transaction runner used by every ledger mutation.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import IntegrityError
from ..extensions import db


logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; version_id_col optimistic
    locking on the aggregates covers it there (conflicts raise StaleDataError
    and are retried).

    Eager joins are dropped: FOR UPDATE cannot apply to the nullable side
    of an outer join on PostgreSQL.
    """
    return query.enable_eagerloads(False).with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Any other exception rolls the session
    back and propagates unchanged. Exhausting the retry budget raises the
    ledger IntegrityError.
    """
    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                logger.warning("Transaction aborted after %d attempts: %s", attempts, exc)
                raise IntegrityError(
                    "Transaction aborted due to a concurrent update; please retry",
                    {"attempts": attempts},
                ) from exc
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise


def run_in_transaction(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run func and commit its work as one transaction.

    The whole unit (func + commit) is retried, so func must re-read
    everything it mutates. Returns whatever func returned.
    """
    def _op():
        result = func()
        db.session.commit()
        return result
    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)
