"""
Module: ledger_kernel.selectors.return_order_selector
Responsibility: Read-only access to return orders: filtered, paginated
    listings, single lookups with items and refund, and per-status
    statistics.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Read-only.  Returns ``ReturnOrderInfo`` DTOs, never ORM instances.
    - Listings order by created_at descending, then return_number
      descending, so pages are stable.

Failure modes:
    - ReturnOrderNotFoundError from ``get_return_order``.
    - ValidationError for bad page values.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from uuid import UUID

from sqlalchemy import func, or_, select

from ledger_kernel.db.types import ZERO, round_money, to_decimal
from ledger_kernel.domain.dtos import ReturnOrderInfo, ReturnOrderStatistics
from ledger_kernel.exceptions import ReturnOrderNotFoundError, ValidationError
from ledger_kernel.models.order import Order
from ledger_kernel.models.refund import RefundRecord, RefundStatus
from ledger_kernel.models.return_order import ReturnOrder, ReturnOrderStatus
from ledger_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class ReturnOrderFilter:
    party_id: UUID | None = None
    order_id: UUID | None = None
    status: str | None = None
    return_type: str | None = None
    process_type: str | None = None
    # Matches the return number or the original order number.
    search: str | None = None
    created_from: date | None = None
    created_to: date | None = None


@dataclass(frozen=True)
class ReturnOrderPage:
    items: tuple[ReturnOrderInfo, ...]
    total: int
    page: int
    page_size: int


def _start_of(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


class ReturnOrderSelector(BaseSelector):
    """Return orders with their items and refunds."""

    def get_return_order(self, return_order_id: UUID) -> ReturnOrderInfo:
        model = self.session.get(ReturnOrder, return_order_id)
        if model is None:
            raise ReturnOrderNotFoundError(str(return_order_id))
        return ReturnOrderInfo.from_model(model, self._refunds_by_return([model.id]).get(model.id))

    def list_return_orders(
        self,
        filter: ReturnOrderFilter | None = None,
        page: int = 1,
        page_size: int = 10,
    ) -> ReturnOrderPage:
        if page < 1:
            raise ValidationError("page", "must be >= 1")
        if page_size < 1:
            raise ValidationError("page_size", "must be >= 1")

        query = self._filtered(filter or ReturnOrderFilter())
        total = self.session.execute(
            select(func.count()).select_from(query.subquery())
        ).scalar_one()
        models = self.session.execute(
            query.order_by(ReturnOrder.created_at.desc(), ReturnOrder.return_number.desc())
            .limit(page_size)
            .offset((page - 1) * page_size)
        ).scalars().all()

        refunds = self._refunds_by_return([m.id for m in models])
        return ReturnOrderPage(
            items=tuple(ReturnOrderInfo.from_model(m, refunds.get(m.id)) for m in models),
            total=total,
            page=page,
            page_size=page_size,
        )

    def statistics(self, party_id: UUID | None = None) -> ReturnOrderStatistics:
        """Counts per status and the total refunded through completed
        returns, for one party or overall."""
        counts_query = select(ReturnOrder.status, func.count()).group_by(ReturnOrder.status)
        refunded_query = (
            select(
                func.coalesce(
                    func.sum(func.coalesce(RefundRecord.processed_amount, RefundRecord.amount)),
                    ZERO,
                )
            )
            .join(ReturnOrder, ReturnOrder.id == RefundRecord.return_order_id)
            .where(RefundRecord.status == RefundStatus.COMPLETED.value)
            .where(ReturnOrder.status == ReturnOrderStatus.COMPLETED.value)
        )
        if party_id is not None:
            counts_query = counts_query.where(ReturnOrder.party_id == party_id)
            refunded_query = refunded_query.where(ReturnOrder.party_id == party_id)

        counts = {status: count for status, count in self.session.execute(counts_query).all()}
        refunded = self.session.execute(refunded_query).scalar_one()
        return ReturnOrderStatistics(
            total_count=sum(counts.values()),
            count_by_status=counts,
            total_refunded=round_money(to_decimal(refunded)),
        )

    def _filtered(self, f: ReturnOrderFilter):
        query = select(ReturnOrder)
        if f.party_id is not None:
            query = query.where(ReturnOrder.party_id == f.party_id)
        if f.order_id is not None:
            query = query.where(ReturnOrder.order_id == f.order_id)
        if f.status is not None:
            query = query.where(ReturnOrder.status == f.status)
        if f.return_type is not None:
            query = query.where(ReturnOrder.return_type == f.return_type)
        if f.process_type is not None:
            query = query.where(ReturnOrder.process_type == f.process_type)
        if f.created_from is not None:
            query = query.where(ReturnOrder.created_at >= _start_of(f.created_from))
        if f.created_to is not None:
            query = query.where(
                ReturnOrder.created_at < _start_of(f.created_to + timedelta(days=1))
            )
        if f.search:
            pattern = f"%{f.search.strip()}%"
            order_numbers = select(Order.id).where(Order.order_number.ilike(pattern))
            query = query.where(
                or_(
                    ReturnOrder.return_number.ilike(pattern),
                    ReturnOrder.order_id.in_(order_numbers),
                )
            )
        return query

    def _refunds_by_return(self, return_order_ids: list[UUID]) -> dict[UUID, RefundRecord]:
        if not return_order_ids:
            return {}
        refunds = self.session.execute(
            select(RefundRecord).where(RefundRecord.return_order_id.in_(return_order_ids))
        ).scalars().all()
        return {r.return_order_id: r for r in refunds}
