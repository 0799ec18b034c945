"""
BaseService -- abstract base for the ledger's write services.

Responsibility:
    Provides the common constructor and the unit-of-work contract for every
    service that mutates ledger state.  Each public mutating method of a
    subclass is ONE ledger operation: it runs inside ``self._transaction()``,
    which commits on success and rolls back on any failure.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - All-or-nothing: a public operation either commits every write it made
      or none of them.
    - Explicit deadline: every operation carries the service's transaction
      timeout.
    - Explicit actor: the acting identity is a parameter, never ambient.

Failure modes:
    - TransactionTimeout / ConcurrencyConflict from ``transaction_scope``.
"""

from abc import ABC
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Generator
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.db.transaction import transaction_scope
from ledger_kernel.db.types import ZERO, round_money, to_decimal
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.collaborators import CacheInvalidator, NullCacheInvalidator
from ledger_kernel.exceptions import ValidationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("services.base")

DEFAULT_TRANSACTION_TIMEOUT_SECONDS = 10.0


class BaseService(ABC):
    """
    Abstract base class for the ledger write services.

    Contract:
        Accepts a SQLAlchemy ``Session`` and owns its transaction for the
        duration of each public operation.

    Non-goals:
        - Does NOT retry.  Timeouts and conflicts go back to the caller.
        - Does NOT provide read methods -- those belong in
          ``ledger_kernel/selectors/``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        transaction_timeout_seconds: float = DEFAULT_TRANSACTION_TIMEOUT_SECONDS,
        cache_invalidator: CacheInvalidator | None = None,
    ):
        self.session = session
        self._clock = clock or SystemClock()
        self._timeout = transaction_timeout_seconds
        self._cache = cache_invalidator or NullCacheInvalidator()

    @contextmanager
    def _transaction(self, operation: str) -> Generator[Session, None, None]:
        with transaction_scope(self.session, operation, self._timeout) as session:
            yield session

    def _invalidate_receivables(self, party_id: UUID) -> None:
        """Tell the receivables cache about a committed money write.

        Runs after commit.  A failure is logged and never propagates.
        """
        try:
            self._cache.invalidate_party(party_id)
        except Exception:
            logger.warning(
                "cache_invalidation_failed",
                extra={"party_id": str(party_id)},
                exc_info=True,
            )


# -----------------------------------------------------------------------------
# Input validation shared by the write services
# -----------------------------------------------------------------------------


def require_positive_amount(field: str, value: Any) -> Decimal:
    """Coerce ``value`` to Decimal and require 0 < value with at most two
    decimal places."""
    try:
        amount = to_decimal(value)
    except ValueError as exc:
        raise ValidationError(field, str(exc)) from exc
    if amount <= ZERO:
        raise ValidationError(field, f"must be greater than zero, got {amount}")
    if round_money(amount) != amount:
        raise ValidationError(field, f"must have at most 2 decimal places, got {amount}")
    return round_money(amount)


def require_actor(actor_id: UUID | None) -> UUID:
    if actor_id is None:
        raise ValidationError("actor_id", "is required")
    return actor_id


def require_text(field: str, value: str | None) -> str:
    if value is None or not value.strip():
        raise ValidationError(field, "cannot be empty")
    return value.strip()
