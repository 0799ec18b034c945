"""
Module: ledger_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors.  Selectors
    form the "Q" side of the ledger: receivables, statements, payments and
    return orders are read through them, never through the write services.
Architecture position: Kernel > Selectors.  May import from db/, models/,
    domain/ and ledger_engines.  MUST NOT import from services/.

Invariants enforced:
    - Read-only access: selectors MUST NOT call session.add(),
      session.delete(), session.commit(), or session.flush().
    - DTO return convention: selectors return frozen dataclasses or computed
      results, NOT raw ORM model instances.
    - Derived state is recomputed on every read.  No stored status column is
      trusted as the source of a payment status.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only queries,
        and return DTOs or computed results.
    """

    def __init__(self, session: Session):
        self.session = session
