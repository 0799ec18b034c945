"""
Module: ledger_kernel.db.transaction
Responsibility: The one transactional scope every ledger write runs in.
    Applies the transaction timeout, commits on success, rolls back on any
    failure, and translates driver errors into the kernel's infrastructure
    exceptions.
Architecture position: Kernel > DB.  Imports exceptions and logging only.

Invariants enforced:
    - All-or-nothing: on any exception the session is rolled back before the
      exception leaves the scope.  No partial ledger write is observable.
    - Explicit deadline: the timeout is pushed to the store where the dialect
      supports it (PostgreSQL statement_timeout / lock_timeout) and is also
      checked against the wall clock before commit.
    - No retries: a timeout or serialization failure is reported, never
      replayed here.  Retrying is the caller's policy.
    - Every record logged while the scope is open carries the operation
      name through the log context.

Failure modes:
    - TransactionTimeout: deadline exceeded, lock wait timed out, or SQLite
      reported "database is locked".
    - ConcurrencyConflict: PostgreSQL serialization failure or deadlock.
    - Any other exception propagates unchanged after rollback.
"""

import time
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from ledger_kernel.exceptions import (
    ConcurrencyConflict,
    InfrastructureError,
    TransactionTimeout,
)
from ledger_kernel.logging_config import LogContext, get_logger

logger = get_logger("db.transaction")

_PG_CONFLICT_CODES = frozenset({"40001", "40P01"})
_PG_TIMEOUT_CODES = frozenset({"57014", "55P03"})
_SQLITE_LOCKED_MARKERS = ("database is locked", "database table is locked")


def translate_db_error(
    exc: DBAPIError,
    operation: str,
    timeout_seconds: float,
) -> InfrastructureError | None:
    """Map a driver error onto a retryable kernel error, or None if unrelated."""
    orig = getattr(exc, "orig", None)
    pgcode = getattr(orig, "pgcode", None)
    if pgcode in _PG_CONFLICT_CODES:
        return ConcurrencyConflict(operation, detail=pgcode)
    if pgcode in _PG_TIMEOUT_CODES:
        return TransactionTimeout(operation, timeout_seconds)
    message = str(orig).lower() if orig is not None else str(exc).lower()
    if any(marker in message for marker in _SQLITE_LOCKED_MARKERS):
        return TransactionTimeout(operation, timeout_seconds)
    return None


def _apply_store_timeout(session: Session, timeout_seconds: float) -> None:
    if session.get_bind().dialect.name != "postgresql":
        # SQLite bounds lock waits through the connection busy timeout.
        return
    millis = max(1, int(timeout_seconds * 1000))
    session.execute(text(f"SET LOCAL statement_timeout = {millis}"))
    session.execute(text(f"SET LOCAL lock_timeout = {millis}"))


@contextmanager
def transaction_scope(
    session: Session,
    operation: str,
    timeout_seconds: float,
) -> Generator[Session, None, None]:
    """
    Run one ledger operation as a single timed transaction.

    Preconditions: ``session`` has no uncommitted work the caller wants to
        keep separate -- it becomes part of this transaction.
    Postconditions: On normal exit inside the deadline, the session is
        committed.  Otherwise it is rolled back and an exception is raised.

    Usage:
        with transaction_scope(session, "record_payment", 10.0):
            ...
    """
    started = time.monotonic()
    with LogContext.bind(operation=operation):
        logger.debug("transaction_started")
        try:
            _apply_store_timeout(session, timeout_seconds)
            yield session
            elapsed = time.monotonic() - started
            if elapsed > timeout_seconds:
                logger.warning(
                    "transaction_deadline_exceeded",
                    extra={
                        "elapsed_seconds": round(elapsed, 3),
                        "timeout_seconds": timeout_seconds,
                    },
                )
                raise TransactionTimeout(operation, timeout_seconds)
            session.commit()
            logger.debug("transaction_committed")
        except DBAPIError as exc:
            session.rollback()
            translated = translate_db_error(exc, operation, timeout_seconds)
            if translated is None:
                logger.error("transaction_failed", exc_info=True)
                raise
            logger.warning(
                "transaction_rolled_back", extra={"error_code": translated.code},
            )
            raise translated from exc
        except Exception:
            session.rollback()
            logger.info("transaction_rolled_back")
            raise
