"""
Module: ledger_kernel.selectors.receivables_selector
Responsibility: Receivables listing.  For each order in a receivable status
    it derives paid amount, remaining amount, overdue days and payment
    status, and supports search, filtering, sorting and pagination over
    stored and derived fields alike, plus a summary over the filtered set.
Architecture position: Kernel > Selectors.  Executes plans produced by
    ``ledger_engines.query_plan`` and derives positions with
    ``ledger_engines.payment_status``.

Invariants enforced:
    - Payment status is derived on every read from confirmed payments; no
      stored status column is consulted for it.
    - Store path: stored-field predicates, ordering and LIMIT/OFFSET run in
      the database.  In-memory path: the full stored-field result set is
      fetched, derived fields computed for every row, then filtered, sorted
      and paginated in memory.  Both paths order identically.
    - The summary covers the whole filtered set, never just the page.
    - Listings cover customer orders unless the filter names another party
      type.  Single-order and per-party reads cover every party.

Failure modes:
    - ValidationError from the query plan types for bad sort fields, statuses
      or page values.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from ledger_engines.payment_status import (
    PAYMENT_STATUS_RANK,
    DerivedPaymentStatus,
    compute_due_date,
    compute_payment_position,
)
from ledger_engines.query_plan import (
    PageRequest,
    QueryPath,
    QueryPlan,
    ReceivablesFilter,
    SortSpec,
    plan_receivables_query,
)
from ledger_kernel.db.types import ZERO, round_money, to_decimal
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.order import Order, OrderStatus
from ledger_kernel.models.party import Party
from ledger_kernel.models.payment import PaymentRecord, PaymentStatus
from ledger_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.receivables")

DEFAULT_RECEIVABLE_STATUSES = (
    OrderStatus.CONFIRMED.value,
    OrderStatus.SHIPPED.value,
    OrderStatus.COMPLETED.value,
    OrderStatus.PAID.value,
)


@dataclass(frozen=True)
class ReceivableItem:
    """One order with its derived payment position."""

    order_id: UUID
    order_number: str
    order_status: str
    party_id: UUID
    party_name: str
    party_phone: str | None
    order_date: date
    due_date: date
    total_amount: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    payment_status: DerivedPaymentStatus
    overdue_days: int


@dataclass(frozen=True)
class ReceivablesSummary:
    total_receivable: Decimal = ZERO
    total_overdue: Decimal = ZERO
    receivable_count: int = 0
    overdue_count: int = 0
    paid_count: int = 0
    unpaid_count: int = 0
    partial_count: int = 0

    @classmethod
    def of(cls, items: Sequence[ReceivableItem]) -> "ReceivablesSummary":
        """Summary over ``items``.  Overdue orders also count as unpaid or
        partial according to what they have received."""
        total_receivable = ZERO
        total_overdue = ZERO
        counts = dict.fromkeys(("receivable", "overdue", "paid", "unpaid", "partial"), 0)
        for item in items:
            total_receivable += item.remaining_amount
            if item.remaining_amount > ZERO:
                counts["receivable"] += 1
            if item.payment_status == DerivedPaymentStatus.OVERDUE:
                counts["overdue"] += 1
                total_overdue += item.remaining_amount
            if item.remaining_amount == ZERO:
                counts["paid"] += 1
            elif item.paid_amount == ZERO:
                counts["unpaid"] += 1
            else:
                counts["partial"] += 1
        return cls(
            total_receivable=round_money(total_receivable),
            total_overdue=round_money(total_overdue),
            receivable_count=counts["receivable"],
            overdue_count=counts["overdue"],
            paid_count=counts["paid"],
            unpaid_count=counts["unpaid"],
            partial_count=counts["partial"],
        )


@dataclass(frozen=True)
class ReceivablesPage:
    items: tuple[ReceivableItem, ...]
    total: int
    page: int
    page_size: int
    path: QueryPath
    summary: ReceivablesSummary = field(default_factory=ReceivablesSummary)

    @property
    def page_count(self) -> int:
        return (self.total + self.page_size - 1) // self.page_size


_STORED_SORT_COLUMNS = {
    "order_date": Order.order_date,
    "order_number": Order.order_number,
    "total_amount": Order.total_amount,
    "party_name": Party.name,
}


def _sort_value(item: ReceivableItem, sort_field: str):
    if sort_field == "payment_status":
        return PAYMENT_STATUS_RANK[item.payment_status.value]
    return getattr(item, sort_field)


def sort_items(items: Sequence[ReceivableItem], sort: SortSpec) -> list[ReceivableItem]:
    """Sort by ``sort`` with ``order_number`` ascending breaking ties."""
    ordered = sorted(items, key=lambda i: i.order_number)
    ordered.sort(key=lambda i: _sort_value(i, sort.field), reverse=sort.descending)
    return ordered


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class ReceivablesSelector(BaseSelector):
    """
    Receivables read model.

    Contract:
        ``list_receivables`` takes an explicit ``as_of`` date; the same data
        and arguments always give the same page.
    """

    def __init__(
        self,
        session: Session,
        receivable_statuses: Sequence[str] = DEFAULT_RECEIVABLE_STATUSES,
        default_payment_terms_days: int = 30,
        grace_period_days: int = 0,
        default_page_size: int = 10,
        max_page_size: int = 100,
    ):
        super().__init__(session)
        self._statuses = tuple(receivable_statuses)
        self._default_terms = default_payment_terms_days
        self._grace = grace_period_days
        self._default_page_size = default_page_size
        self._max_page_size = max_page_size

    def list_receivables(
        self,
        as_of: date,
        filter: ReceivablesFilter | None = None,
        sort: SortSpec | None = None,
        page: PageRequest | None = None,
        include_summary: bool = True,
    ) -> ReceivablesPage:
        plan = plan_receivables_query(
            filter=filter or ReceivablesFilter(),
            sort=sort or SortSpec(),
            page=page or PageRequest(page_size=self._default_page_size),
            max_page_size=self._max_page_size,
        )
        if plan.path == QueryPath.STORE:
            result = self._list_in_store(plan, as_of, include_summary)
        else:
            result = self._list_in_memory(plan, as_of, include_summary)

        logger.debug(
            "receivables_listed",
            extra={
                "path": plan.path.value,
                "reason": plan.reason,
                "total": result.total,
                "page": result.page,
                "page_size": result.page_size,
            },
        )
        return result

    def get_receivable(self, order_id: UUID, as_of: date) -> ReceivableItem | None:
        """Position of one order, or None when it is not a receivable."""
        rows = self.session.execute(
            self._base_query(ReceivablesFilter(party_type=None)).where(Order.id == order_id)
        ).all()
        return self._to_item(rows[0], as_of) if rows else None

    def items_for_party(self, party_id: UUID, as_of: date) -> list[ReceivableItem]:
        """Every receivable order of a party, ordered by order number."""
        rows = self.session.execute(
            self._base_query(ReceivablesFilter(party_id=party_id, party_type=None))
            .order_by(Order.order_number)
        ).all()
        return [self._to_item(row, as_of) for row in rows]

    # -------------------------------------------------------------------------
    # Execution paths
    # -------------------------------------------------------------------------

    def _list_in_store(
        self, plan: QueryPlan, as_of: date, include_summary: bool,
    ) -> ReceivablesPage:
        query = self._base_query(plan.filter)
        total = self.session.execute(
            select(func.count()).select_from(query.subquery())
        ).scalar_one()

        column = _STORED_SORT_COLUMNS[plan.sort.field]
        ordered = query.order_by(
            column.desc() if plan.sort.descending else column.asc(),
            Order.order_number.asc(),
        )
        rows = self.session.execute(
            ordered.limit(plan.page.page_size).offset(plan.page.offset)
        ).all()
        items = tuple(self._to_item(row, as_of) for row in rows)

        summary = ReceivablesSummary()
        if include_summary:
            everything = self.session.execute(query).all()
            summary = ReceivablesSummary.of([self._to_item(r, as_of) for r in everything])

        return ReceivablesPage(
            items=items,
            total=total,
            page=plan.page.page,
            page_size=plan.page.page_size,
            path=QueryPath.STORE,
            summary=summary,
        )

    def _list_in_memory(
        self, plan: QueryPlan, as_of: date, include_summary: bool,
    ) -> ReceivablesPage:
        rows = self.session.execute(self._base_query(plan.filter)).all()
        items = [self._to_item(row, as_of) for row in rows]

        wanted = plan.filter.payment_status
        if wanted is not None:
            items = [i for i in items if i.payment_status == wanted]
        if plan.filter.overdue_only:
            items = [i for i in items if i.overdue_days > 0]

        ordered = sort_items(items, plan.sort)
        start = plan.page.offset
        window = ordered[start:start + plan.page.page_size]

        return ReceivablesPage(
            items=tuple(window),
            total=len(ordered),
            page=plan.page.page,
            page_size=plan.page.page_size,
            path=QueryPath.IN_MEMORY,
            summary=ReceivablesSummary.of(ordered) if include_summary else ReceivablesSummary(),
        )

    # -------------------------------------------------------------------------
    # Query building
    # -------------------------------------------------------------------------

    def _base_query(self, filter: ReceivablesFilter):
        """Receivable orders with their confirmed paid totals, restricted by
        the stored-field predicates of ``filter``."""
        paid = (
            select(
                PaymentRecord.order_id.label("order_id"),
                func.sum(PaymentRecord.amount).label("paid_amount"),
            )
            .where(PaymentRecord.status == PaymentStatus.CONFIRMED.value)
            .group_by(PaymentRecord.order_id)
            .subquery()
        )
        query = (
            select(
                Order.id,
                Order.order_number,
                Order.status,
                Order.party_id,
                Party.name,
                Party.phone,
                Party.payment_terms_days,
                Order.order_date,
                Order.due_date,
                Order.total_amount,
                func.coalesce(paid.c.paid_amount, ZERO).label("paid_amount"),
            )
            .join(Party, Party.id == Order.party_id)
            .outerjoin(paid, paid.c.order_id == Order.id)
            .where(Order.status.in_(self._statuses))
        )

        if filter.party_type is not None:
            query = query.where(Party.party_type == filter.party_type)
        if filter.party_id is not None:
            query = query.where(Order.party_id == filter.party_id)
        if filter.date_from is not None:
            query = query.where(Order.order_date >= filter.date_from)
        if filter.date_to is not None:
            query = query.where(Order.order_date <= filter.date_to)
        if filter.search:
            pattern = f"%{_escape_like(filter.search.strip())}%"
            query = query.where(
                or_(
                    Order.order_number.ilike(pattern, escape="\\"),
                    Party.name.ilike(pattern, escape="\\"),
                    Party.phone.ilike(pattern, escape="\\"),
                )
            )
        return query

    def _to_item(self, row, as_of: date) -> ReceivableItem:
        (
            order_id, order_number, order_status, party_id, party_name,
            party_phone, terms_days, order_date, stored_due_date, total, paid,
        ) = row
        due_date = compute_due_date(
            order_date,
            due_date=stored_due_date,
            payment_terms_days=terms_days,
            default_terms_days=self._default_terms,
            grace_period_days=self._grace,
        )
        position = compute_payment_position(
            total_amount=to_decimal(total),
            paid_amount=to_decimal(paid),
            due_date=due_date,
            as_of=as_of,
        )
        return ReceivableItem(
            order_id=order_id,
            order_number=order_number,
            order_status=order_status,
            party_id=party_id,
            party_name=party_name,
            party_phone=party_phone,
            order_date=order_date,
            due_date=due_date,
            total_amount=position.total_amount,
            paid_amount=position.paid_amount,
            remaining_amount=position.remaining_amount,
            payment_status=position.status,
            overdue_days=position.overdue_days,
        )
