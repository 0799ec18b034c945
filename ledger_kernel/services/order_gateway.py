"""
SqlOrderGateway -- order access backed by the ledger store's ``orders`` table.

Responsibility:
    Implements the ``OrderGateway`` protocol for deployments where orders
    live in the same database as the ledger.  ``get_order(for_update=True)``
    is how the write services serialize money writes per order.

Architecture position:
    Kernel > Services.

Invariants enforced:
    - Never writes ``total_amount``.
    - Status changes carry the acting identity in ``updated_by_id``.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.dtos import OrderInfo
from ledger_kernel.exceptions import OrderNotFoundError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.order import Order

logger = get_logger("services.order_gateway")


class SqlOrderGateway:
    def __init__(self, session: Session):
        self._session = session

    def _load(self, order_id: UUID, for_update: bool) -> Order:
        stmt = select(Order).where(Order.id == order_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        order = self._session.execute(stmt).scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(str(order_id))
        return order

    def get_order(self, order_id: UUID, *, for_update: bool = False) -> OrderInfo:
        return OrderInfo.from_model(self._load(order_id, for_update))

    def transition_order_status(
        self,
        order_id: UUID,
        new_status: str,
        actor_id: UUID,
    ) -> None:
        order = self._load(order_id, for_update=False)
        previous = order.status
        order.status = new_status
        order.updated_by_id = actor_id
        self._session.flush()
        logger.info(
            "order_status_transitioned",
            extra={
                "order_id": str(order_id),
                "from_status": previous,
                "to_status": new_status,
            },
        )
