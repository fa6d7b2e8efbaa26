# hostel_allocation/services/unit_of_work.py
"""
Transaction boundary for every allocation write.

unit_of_work() commits everything done inside it or nothing: capacity counter
updates and ledger rows share one transaction, so a failure after a successful
reservation rolls the reservation back too. run_with_retry() wraps it with the
bounded retry used for optimistic-lock conflicts.
"""

import random
import time
from contextlib import contextmanager
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from hostel_allocation.config import settings
from hostel_allocation.errors import Contention, Timeout
from hostel_allocation.utils.logger import get_logger

logger = get_logger(__name__)

# lock_not_available, query_canceled (statement_timeout)
_PG_TIMEOUT_CODES = {"55P03", "57014"}

_clock = time.monotonic


class RetryableConflict(Exception):
    """Another transaction changed the same row first. Safe to re-run the whole unit."""


def _is_pg_timeout(exc: OperationalError) -> bool:
    return getattr(exc.orig, "pgcode", None) in _PG_TIMEOUT_CODES


def _is_sqlite_busy(exc: OperationalError) -> bool:
    return "database is locked" in str(exc.orig).lower()


def _apply_lock_timeouts(db: Session, limit_seconds: float):
    if db.get_bind().dialect.name != "postgresql":
        return
    db.execute(text(f"SET LOCAL lock_timeout = {int(settings.LOCK_TIMEOUT_MS)}"))
    db.execute(text(f"SET LOCAL statement_timeout = {max(1, int(limit_seconds * 1000))}"))


@contextmanager
def unit_of_work(db: Session, operation: str, target_id: str = None, timeout: float = None):
    """Run the block as one transaction with a deadline. Commits on success, rolls back on any error."""
    limit = settings.UNIT_OF_WORK_TIMEOUT_SECONDS if timeout is None else timeout
    started = _clock()
    try:
        _apply_lock_timeouts(db, limit)
        yield
        db.flush()
        if _clock() - started > limit:
            raise Timeout(operation, limit, target_id)
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        raise RetryableConflict(f"{operation}: {exc}") from exc
    except OperationalError as exc:
        db.rollback()
        if _is_pg_timeout(exc):
            raise Timeout(operation, limit, target_id) from exc
        if _is_sqlite_busy(exc):
            if _clock() - started > limit:
                raise Timeout(operation, limit, target_id) from exc
            raise RetryableConflict(f"{operation}: database busy") from exc
        raise
    except Exception:
        db.rollback()
        raise


def _backoff(attempt: int) -> float:
    base = settings.CONTENTION_BACKOFF_SECONDS
    return base * attempt + random.uniform(0, base)


def run_with_retry(db: Session, operation: str, work, target_id: str = None):
    """
    Execute work() inside unit_of_work(), retrying on RetryableConflict.
    Each attempt starts from fresh database state; after the last attempt
    Contention is raised.
    """
    attempts = max(1, settings.CONTENTION_MAX_ATTEMPTS)
    for attempt in range(1, attempts + 1):
        try:
            with unit_of_work(db, operation, target_id):
                result = work()
            return result
        except RetryableConflict as exc:
            logger.warning(f"[UoW] {operation} conflict on attempt {attempt}/{attempts}: {exc}")
            if attempt < attempts:
                time.sleep(_backoff(attempt))

    logger.error(f"[UoW] {operation} gave up after {attempts} attempts (target={target_id})")
    raise Contention(operation, attempts, target_id)
