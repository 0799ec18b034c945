"""
Collaborator protocols.

The ledger depends on two things it does not own: the order lifecycle and
whatever caches the receivables view.  Both are expressed as protocols so the
write services can be wired to real implementations or test doubles.
"""

from typing import Protocol
from uuid import UUID

from ledger_kernel.domain.dtos import OrderInfo
from ledger_kernel.logging_config import get_logger

logger = get_logger("domain.collaborators")


class OrderGateway(Protocol):
    """Access to orders owned by the order lifecycle."""

    def get_order(self, order_id: UUID, *, for_update: bool = False) -> OrderInfo:
        """Return the order, optionally locking it for the current transaction.

        Raises:
            OrderNotFoundError: If no order has this id.
        """
        ...

    def transition_order_status(
        self,
        order_id: UUID,
        new_status: str,
        actor_id: UUID,
    ) -> None:
        """Move the order to ``new_status`` inside the current transaction."""
        ...


class CacheInvalidator(Protocol):
    """Drops any cached receivables view for a party."""

    def invalidate_party(self, party_id: UUID) -> None:
        ...


class NullCacheInvalidator:
    """Used when nothing caches receivables."""

    def invalidate_party(self, party_id: UUID) -> None:
        logger.debug("cache_invalidation_skipped", extra={"party_id": str(party_id)})
