"""
SequenceService -- document number allocation via locked counter rows.

Responsibility:
    Provides strictly increasing sequence numbers for payment, refund and
    return order numbers.  Uses the ``sequence_counters`` table with
    row-level locking (``SELECT ... FOR UPDATE``) to guarantee uniqueness
    under concurrent access.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by PaymentLedgerService, RefundService and ReturnOrderService.

Invariants enforced:
    - Monotonicity: the locked counter row is the sole source of truth for
      the next value.  Aggregate-max-plus-one and timestamp-derived numbers
      are FORBIDDEN.
    - Transactional: the increment is only visible after the caller's
      transaction commits.  Rollback returns the value.

Failure modes:
    - IntegrityError: concurrent counter creation race (handled via
      savepoint rollback and retry).
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Non-goals:
        - Does NOT call ``session.commit()`` -- the calling operation
          controls the transaction.

    Usage:
        with transaction_scope(session, "record_payment", 10.0):
            number = SequenceService(session).next_number(
                SequenceService.PAYMENT, "PAY",
            )
    """

    # Well-known sequence names
    PAYMENT = "payment"
    REFUND = "refund"
    RETURN_ORDER = "return_order"

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Get the next value for a named sequence.

        Preconditions:
            - The caller is within an active database transaction.

        Postconditions:
            - Returns an integer > 0 strictly greater than any previously
              committed value for this sequence name.
            - The counter row is locked until the transaction completes.
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            # First use.  Another transaction may create the row at the same
            # time, so insert inside a savepoint.
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def next_number(self, sequence_name: str, prefix: str) -> str:
        """Allocate the next value and format it as a document number."""
        return format_document_number(prefix, self.next_value(sequence_name))

    def current_value(self, sequence_name: str) -> int | None:
        """Current value of a sequence without incrementing, or None."""
        counter = self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()

        return counter.current_value if counter else None


def format_document_number(prefix: str, value: int) -> str:
    """``PAY`` and 42 -> ``PAY-00000042``."""
    return f"{prefix}-{value:08d}"
