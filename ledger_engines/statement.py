"""
Module: ledger_engines.statement
Responsibility:
    Assemble a party's reconciliation statement from its ledger events:
    opening balance, the dated entries inside the requested range with a
    running balance, closing balance and an aging breakdown of what is
    still outstanding.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The statement selector
    gathers events from the database and calls ``build_statement``.

Invariants enforced:
    - Reproducibility: the output depends only on the arguments.  Entries
      are ordered by (entry date, kind rank, reference), so equal inputs
      give byte-identical ``to_canonical_json()`` output.
    - opening_balance == sum of deltas dated before ``date_from``.
    - closing_balance == opening_balance + sum of entry deltas.
    - Each entry's running balance equals the previous balance plus its
      delta.

Failure modes:
    - ValidationError when ``date_from`` is after ``date_to``.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from ledger_engines.aging import BucketTotal
from ledger_engines.tracer import traced_engine
from ledger_kernel.db.types import ZERO, round_money
from ledger_kernel.exceptions import ValidationError


class EntryKind(str, Enum):
    ORDER = "order"
    RETURN = "return"
    PAYMENT = "payment"
    REFUND = "refund"


# Same-day ordering: the debit first, then what settles it.
KIND_RANK: dict[EntryKind, int] = {
    EntryKind.ORDER: 0,
    EntryKind.RETURN: 1,
    EntryKind.PAYMENT: 2,
    EntryKind.REFUND: 3,
}


@dataclass(frozen=True)
class StatementEvent:
    """A dated ledger event.  ``delta`` is signed: orders increase what the
    party owes, payments and refunds decrease it, returns carry zero."""

    entry_date: date
    kind: EntryKind
    reference: str
    document_id: UUID
    amount: Decimal
    delta: Decimal
    order_number: str | None = None
    description: str = ""

    @property
    def sort_key(self) -> tuple[date, int, str]:
        return (self.entry_date, KIND_RANK[self.kind], self.reference)


@dataclass(frozen=True)
class StatementEntry:
    entry_date: date
    kind: EntryKind
    reference: str
    document_id: UUID
    order_number: str | None
    description: str
    amount: Decimal
    delta: Decimal
    balance: Decimal

    @property
    def debit(self) -> Decimal:
        return self.delta if self.delta > ZERO else ZERO

    @property
    def credit(self) -> Decimal:
        return -self.delta if self.delta < ZERO else ZERO


@dataclass(frozen=True)
class AgingLine:
    bucket: str
    min_days: int
    max_days: int | None
    order_count: int
    amount: Decimal


@dataclass(frozen=True)
class Statement:
    """A party's reconciliation statement for a date range."""

    party_id: UUID
    party_name: str
    date_from: date
    date_to: date
    as_of_date: date
    opening_balance: Decimal
    closing_balance: Decimal
    total_debits: Decimal
    total_credits: Decimal
    entries: tuple[StatementEntry, ...]
    aging: tuple[AgingLine, ...]

    @property
    def total_outstanding(self) -> Decimal:
        return round_money(sum((line.amount for line in self.aging), ZERO))

    def to_dict(self) -> dict[str, Any]:
        return {
            "party_id": str(self.party_id),
            "party_name": self.party_name,
            "date_from": self.date_from.isoformat(),
            "date_to": self.date_to.isoformat(),
            "as_of_date": self.as_of_date.isoformat(),
            "opening_balance": _money(self.opening_balance),
            "closing_balance": _money(self.closing_balance),
            "total_debits": _money(self.total_debits),
            "total_credits": _money(self.total_credits),
            "entries": [
                {
                    "date": e.entry_date.isoformat(),
                    "kind": e.kind.value,
                    "reference": e.reference,
                    "document_id": str(e.document_id),
                    "order_number": e.order_number,
                    "description": e.description,
                    "amount": _money(e.amount),
                    "delta": _money(e.delta),
                    "balance": _money(e.balance),
                }
                for e in self.entries
            ],
            "aging": [
                {
                    "bucket": a.bucket,
                    "min_days": a.min_days,
                    "max_days": a.max_days,
                    "order_count": a.order_count,
                    "amount": _money(a.amount),
                }
                for a in self.aging
            ],
        }

    def to_canonical_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))

    def fingerprint(self) -> str:
        """SHA-256 of the canonical JSON form."""
        return hashlib.sha256(self.to_canonical_json().encode("utf-8")).hexdigest()


def _money(value: Decimal) -> str:
    return str(round_money(value))


@traced_engine(
    "statement", "1.0",
    fingerprint_fields=("party_id", "date_from", "date_to", "as_of_date"),
)
def build_statement(
    *,
    party_id: UUID,
    party_name: str,
    events: Iterable[StatementEvent],
    date_from: date,
    date_to: date,
    as_of_date: date,
    aging: Sequence[BucketTotal] = (),
) -> Statement:
    """
    Build a statement from a party's events.

    Events after ``date_to`` are ignored.  Events before ``date_from`` only
    contribute to the opening balance.
    """
    if date_from > date_to:
        raise ValidationError("date_to", "must not be before date_from")

    opening = ZERO
    in_range: list[StatementEvent] = []
    for event in events:
        if event.entry_date < date_from:
            opening += event.delta
        elif event.entry_date <= date_to:
            in_range.append(event)
    in_range.sort(key=lambda e: e.sort_key)

    balance = round_money(opening)
    debits = ZERO
    credits = ZERO
    entries: list[StatementEntry] = []
    for event in in_range:
        delta = round_money(event.delta)
        balance = round_money(balance + delta)
        if delta > ZERO:
            debits += delta
        else:
            credits -= delta
        entries.append(
            StatementEntry(
                entry_date=event.entry_date,
                kind=event.kind,
                reference=event.reference,
                document_id=event.document_id,
                order_number=event.order_number,
                description=event.description,
                amount=round_money(event.amount),
                delta=delta,
                balance=balance,
            )
        )

    return Statement(
        party_id=party_id,
        party_name=party_name,
        date_from=date_from,
        date_to=date_to,
        as_of_date=as_of_date,
        opening_balance=round_money(opening),
        closing_balance=balance,
        total_debits=round_money(debits),
        total_credits=round_money(credits),
        entries=tuple(entries),
        aging=tuple(
            AgingLine(
                bucket=t.name,
                min_days=t.bucket.min_days,
                max_days=t.bucket.max_days,
                order_count=t.order_count,
                amount=t.amount,
            )
            for t in aging
        ),
    )
