"""
Module: ledger_engines.query_plan
Responsibility:
    Decide how a receivables listing is executed.  Filters and sorts on
    stored order fields can be pushed to the database, paginated there;
    anything that touches a derived field (paid amount, remaining amount,
    overdue days, payment status) needs every candidate row's payment
    position, so those queries are evaluated in memory.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The receivables selector
    executes the plan; this module only decides it.

Invariants enforced:
    - Both paths produce the same rows in the same order for the same
      request.  Sorting always ends with ``order_number`` ascending so that
      equal sort keys still paginate deterministically.
    - Page numbers start at 1; page size is clamped to the configured
      maximum.

Failure modes:
    - ValidationError for unknown sort fields or statuses and for invalid
      page numbers or sizes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from uuid import UUID

from ledger_engines.payment_status import DerivedPaymentStatus
from ledger_engines.tracer import traced_engine
from ledger_kernel.exceptions import ValidationError

STORED_SORT_FIELDS = frozenset({"order_date", "order_number", "total_amount", "party_name"})
DERIVED_SORT_FIELDS = frozenset(
    {"paid_amount", "remaining_amount", "overdue_days", "payment_status"}
)
# Mirrors PartyType.  Receivables are customer orders unless asked otherwise.
PARTY_TYPES = ("customer", "supplier")


class QueryPath(str, Enum):
    STORE = "store"
    IN_MEMORY = "in_memory"


@dataclass(frozen=True)
class ReceivablesFilter:
    """Receivables listing filters.  ``search`` matches order number, party
    name or party phone (case-insensitive substring).  ``party_type`` limits
    the listing to one kind of party; None lists orders of every party."""

    search: str | None = None
    party_id: UUID | None = None
    date_from: date | None = None
    date_to: date | None = None
    payment_status: DerivedPaymentStatus | None = None
    overdue_only: bool = False
    party_type: str | None = "customer"

    def __post_init__(self) -> None:
        if self.party_type is not None and self.party_type not in PARTY_TYPES:
            raise ValidationError(
                "party_type",
                f"must be one of {', '.join(PARTY_TYPES)}, got '{self.party_type}'",
            )
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValidationError("date_to", "must not be before date_from")
        if self.payment_status is not None and not isinstance(
            self.payment_status, DerivedPaymentStatus
        ):
            try:
                object.__setattr__(
                    self, "payment_status", DerivedPaymentStatus(self.payment_status)
                )
            except ValueError as exc:
                valid = ", ".join(s.value for s in DerivedPaymentStatus)
                raise ValidationError(
                    "payment_status", f"must be one of {valid}, got '{self.payment_status}'"
                ) from exc

    @property
    def uses_derived_fields(self) -> bool:
        return self.payment_status is not None or self.overdue_only


@dataclass(frozen=True)
class SortSpec:
    field: str = "order_date"
    descending: bool = True

    def __post_init__(self) -> None:
        if self.field not in STORED_SORT_FIELDS | DERIVED_SORT_FIELDS:
            valid = ", ".join(sorted(STORED_SORT_FIELDS | DERIVED_SORT_FIELDS))
            raise ValidationError("sort", f"must be one of {valid}, got '{self.field}'")

    @property
    def is_derived(self) -> bool:
        return self.field in DERIVED_SORT_FIELDS


@dataclass(frozen=True)
class PageRequest:
    page: int = 1
    page_size: int = 10

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValidationError("page", "must be >= 1")
        if self.page_size < 1:
            raise ValidationError("page_size", "must be >= 1")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    def clamp(self, max_page_size: int) -> PageRequest:
        if self.page_size <= max_page_size:
            return self
        return PageRequest(page=self.page, page_size=max_page_size)


@dataclass(frozen=True)
class QueryPlan:
    path: QueryPath
    filter: ReceivablesFilter
    sort: SortSpec
    page: PageRequest
    reason: str


@traced_engine("receivables_query_plan", "1.0", fingerprint_fields=("sort", "page"))
def plan_receivables_query(
    *,
    filter: ReceivablesFilter,
    sort: SortSpec,
    page: PageRequest,
    max_page_size: int = 100,
) -> QueryPlan:
    """Choose the store or in-memory path for a receivables request."""
    page = page.clamp(max_page_size)
    if filter.uses_derived_fields:
        path, reason = QueryPath.IN_MEMORY, "filter on derived payment fields"
    elif sort.is_derived:
        path, reason = QueryPath.IN_MEMORY, f"sort on derived field {sort.field}"
    else:
        path, reason = QueryPath.STORE, "stored fields only"
    return QueryPlan(path=path, filter=filter, sort=sort, page=page, reason=reason)
