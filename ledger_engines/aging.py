"""
Module: ledger_engines.aging
Responsibility:
    Classify outstanding orders into aging buckets by days overdue and total
    them per bucket.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Purity: no clock access, no I/O.
    - Partition: buckets built by ``buckets_from_bounds`` are contiguous from
      0 and the last is unbounded, so every non-negative age falls in
      exactly one bucket.
    - Decimal-only arithmetic.

Failure modes:
    - ValueError when an age does not fall into any configured bucket
      (only possible with hand-built, non-contiguous buckets).

Usage:
    buckets = buckets_from_bounds((30, 60, 90))
    # 0-30, 31-60, 61-90, 90+
    AgingCalculator(buckets).classify(45).name  # "31-60"
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from ledger_kernel.db.types import ZERO, round_money
from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.aging")


@dataclass(frozen=True)
class AgeBucket:
    """
    Definition of an aging bucket.

    Guarantees:
        - min_days >= 0.
        - max_days >= min_days (when bounded).
    """

    name: str
    min_days: int
    max_days: int | None  # None = unbounded (e.g., 90+)

    def __post_init__(self) -> None:
        if self.min_days < 0:
            raise ValueError("min_days cannot be negative")
        if self.max_days is not None and self.max_days < self.min_days:
            raise ValueError("max_days cannot be less than min_days")

    def contains(self, age_days: int) -> bool:
        """Check if age falls within this bucket."""
        if age_days < self.min_days:
            return False
        if self.max_days is None:
            return True
        return age_days <= self.max_days

    @property
    def is_unbounded(self) -> bool:
        return self.max_days is None


def buckets_from_bounds(bounds: Sequence[int]) -> tuple[AgeBucket, ...]:
    """Build contiguous buckets from ascending upper bounds.

    ``(30, 60, 90)`` gives ``0-30``, ``31-60``, ``61-90`` and ``90+``
    (91 days and more).
    """
    if not bounds:
        raise ValueError("bounds cannot be empty")
    if list(bounds) != sorted(set(bounds)) or bounds[0] <= 0:
        raise ValueError("bounds must be positive, unique and ascending")
    buckets = []
    lower = 0
    for upper in bounds:
        buckets.append(AgeBucket(f"{lower}-{upper}", lower, upper))
        lower = upper + 1
    buckets.append(AgeBucket(f"{bounds[-1]}+", lower, None))
    return tuple(buckets)


STANDARD_BUCKETS: tuple[AgeBucket, ...] = buckets_from_bounds((30, 60, 90))


@dataclass(frozen=True)
class AgingInput:
    """An outstanding order to be aged."""

    order_id: UUID
    order_number: str
    remaining_amount: Decimal
    overdue_days: int


@dataclass(frozen=True)
class BucketTotal:
    """Orders and remaining amount that fell in one bucket."""

    bucket: AgeBucket
    order_ids: tuple[UUID, ...]
    amount: Decimal

    @property
    def name(self) -> str:
        return self.bucket.name

    @property
    def order_count(self) -> int:
        return len(self.order_ids)


class AgingCalculator:
    """
    Classifies ages into a fixed bucket sequence.

    Non-goals:
        - Does not compute ages; overdue days come from
          ``ledger_engines.payment_status``.
    """

    def __init__(self, buckets: Sequence[AgeBucket] = STANDARD_BUCKETS):
        self.buckets = tuple(buckets)

    def classify(self, age_days: int) -> AgeBucket:
        # Negative ages (not yet due) go in the first bucket.
        age = max(0, age_days)
        for bucket in self.buckets:
            if bucket.contains(age):
                return bucket
        raise ValueError(f"Age {age_days} does not fall into any bucket")

    def age(self, items: Sequence[AgingInput]) -> tuple[BucketTotal, ...]:
        """
        Partition outstanding items into the buckets.

        Items with nothing remaining are not outstanding and are skipped.

        Postconditions:
            - Every outstanding item appears in exactly one BucketTotal.
            - Every bucket appears in the result, in bucket order, even when
              empty.
        """
        grouped: dict[str, list[AgingInput]] = {b.name: [] for b in self.buckets}
        for item in items:
            if item.remaining_amount <= ZERO:
                continue
            grouped[self.classify(item.overdue_days).name].append(item)

        totals = tuple(
            BucketTotal(
                bucket=bucket,
                order_ids=tuple(
                    i.order_id
                    for i in sorted(grouped[bucket.name], key=lambda i: i.order_number)
                ),
                amount=round_money(
                    sum((i.remaining_amount for i in grouped[bucket.name]), ZERO)
                ),
            )
            for bucket in self.buckets
        )
        logger.debug(
            "aging_computed",
            extra={
                "item_count": len(items),
                "buckets": {t.name: t.order_count for t in totals},
            },
        )
        return totals
