"""
Module: ledger_engines
Responsibility:
    Re-exports the pure calculation engines: derived payment status, aging,
    receivables query planning and statement assembly.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May import ledger_kernel value helpers and exceptions only.
    MUST NOT import ledger_kernel.services, selectors or ledger_services.

Invariants enforced:
    - Purity: engines never read the clock.  Dates are explicit arguments.
    - Decimal-only arithmetic.
    - Determinism: identical inputs produce identical outputs.
"""

from ledger_engines.aging import (
    STANDARD_BUCKETS,
    AgeBucket,
    AgingCalculator,
    AgingInput,
    BucketTotal,
    buckets_from_bounds,
)
from ledger_engines.payment_status import (
    PAYMENT_STATUS_RANK,
    DerivedPaymentStatus,
    PaymentPosition,
    compute_due_date,
    compute_payment_position,
)
from ledger_engines.query_plan import (
    DERIVED_SORT_FIELDS,
    STORED_SORT_FIELDS,
    PageRequest,
    QueryPath,
    QueryPlan,
    ReceivablesFilter,
    SortSpec,
    plan_receivables_query,
)
from ledger_engines.statement import (
    KIND_RANK,
    AgingLine,
    EntryKind,
    Statement,
    StatementEntry,
    StatementEvent,
    build_statement,
)
from ledger_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "AgeBucket",
    "AgingCalculator",
    "AgingInput",
    "AgingLine",
    "BucketTotal",
    "DERIVED_SORT_FIELDS",
    "DerivedPaymentStatus",
    "EntryKind",
    "KIND_RANK",
    "PAYMENT_STATUS_RANK",
    "PageRequest",
    "PaymentPosition",
    "QueryPath",
    "QueryPlan",
    "ReceivablesFilter",
    "STANDARD_BUCKETS",
    "STORED_SORT_FIELDS",
    "SortSpec",
    "Statement",
    "StatementEntry",
    "StatementEvent",
    "build_statement",
    "buckets_from_bounds",
    "compute_due_date",
    "compute_input_fingerprint",
    "compute_payment_position",
    "plan_receivables_query",
    "traced_engine",
]
