"""
Module: ledger_kernel.models.sequence
Responsibility: Named counter rows backing document number allocation.
Architecture position: Kernel > Models.  Written only by SequenceService.

Invariants enforced:
    - One row per sequence name (uq_sequence_name).
    - current_value only increases, and only under a row lock.
"""

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence with its current value.
    Row-level locking ensures monotonicity under concurrency.
    """

    __tablename__ = "sequence_counters"

    __table_args__ = (
        UniqueConstraint("name", name="uq_sequence_name"),
    )

    # Sequence name ("payment", "refund", "return_order")
    name: Mapped[str] = mapped_column(String(50), nullable=False)

    current_value: Mapped[int] = mapped_column(nullable=False, default=0)
