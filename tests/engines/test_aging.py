"""
Tests for the aging engine.

Covers:
- Bucket construction from bounds
- Classification at bucket edges
- Partition of outstanding orders (property test)
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import given
from hypothesis import strategies as st

from ledger_engines.aging import (
    STANDARD_BUCKETS,
    AgeBucket,
    AgingCalculator,
    AgingInput,
    buckets_from_bounds,
)


class TestBuckets:
    """Tests for bucket definitions."""

    def test_standard_buckets(self):
        assert [b.name for b in STANDARD_BUCKETS] == ["0-30", "31-60", "61-90", "90+"]
        assert STANDARD_BUCKETS[-1].is_unbounded
        assert STANDARD_BUCKETS[-1].min_days == 91

    def test_custom_bounds(self):
        buckets = buckets_from_bounds((15, 45))
        assert [(b.min_days, b.max_days) for b in buckets] == [(0, 15), (16, 45), (46, None)]

    @pytest.mark.parametrize("bounds", [(), (60, 30), (0, 30), (30, 30)])
    def test_invalid_bounds_rejected(self, bounds):
        with pytest.raises(ValueError):
            buckets_from_bounds(bounds)

    def test_bucket_rejects_negative_min(self):
        with pytest.raises(ValueError):
            AgeBucket("bad", -1, 10)

    def test_bucket_rejects_inverted_range(self):
        with pytest.raises(ValueError):
            AgeBucket("bad", 10, 5)


class TestClassification:
    """Tests for classify() at the edges."""

    def setup_method(self):
        self.calculator = AgingCalculator()

    @pytest.mark.parametrize(
        "days,bucket",
        [
            (0, "0-30"),
            (30, "0-30"),
            (31, "31-60"),
            (60, "31-60"),
            (61, "61-90"),
            (90, "61-90"),
            (91, "90+"),
            (5000, "90+"),
        ],
    )
    def test_edges(self, days, bucket):
        assert self.calculator.classify(days).name == bucket

    def test_negative_age_goes_to_first_bucket(self):
        assert self.calculator.classify(-5).name == "0-30"

    def test_gap_in_custom_buckets_raises(self):
        calculator = AgingCalculator([AgeBucket("a", 0, 10), AgeBucket("b", 20, None)])
        with pytest.raises(ValueError):
            calculator.classify(15)


class TestAging:
    """Tests for age()."""

    def test_totals_per_bucket(self):
        items = [
            AgingInput(uuid4(), "SO-1", Decimal("100"), 0),
            AgingInput(uuid4(), "SO-2", Decimal("50.50"), 45),
            AgingInput(uuid4(), "SO-3", Decimal("25"), 45),
            AgingInput(uuid4(), "SO-4", Decimal("10"), 120),
        ]
        totals = {t.name: t for t in AgingCalculator().age(items)}

        assert totals["0-30"].amount == Decimal("100.00")
        assert totals["31-60"].amount == Decimal("75.50")
        assert totals["31-60"].order_count == 2
        assert totals["61-90"].order_count == 0
        assert totals["61-90"].amount == Decimal("0.00")
        assert totals["90+"].order_count == 1

    def test_settled_items_skipped(self):
        items = [AgingInput(uuid4(), "SO-1", Decimal("0"), 100)]
        totals = AgingCalculator().age(items)
        assert sum(t.order_count for t in totals) == 0

    def test_every_bucket_reported_in_order(self):
        totals = AgingCalculator().age([])
        assert [t.name for t in totals] == ["0-30", "31-60", "61-90", "90+"]


aging_items = st.lists(
    st.tuples(
        st.decimals(
            min_value=Decimal("0"), max_value=Decimal("100000"), places=2,
            allow_nan=False, allow_infinity=False,
        ),
        st.integers(min_value=0, max_value=2000),
    ),
    max_size=40,
)


class TestPartitionProperty:

    @given(raw=aging_items)
    def test_buckets_partition_outstanding_orders(self, raw):
        items = [
            AgingInput(uuid4(), f"SO-{i:04d}", amount, days)
            for i, (amount, days) in enumerate(raw)
        ]
        totals = AgingCalculator().age(items)

        seen = [order_id for t in totals for order_id in t.order_ids]
        outstanding = {i.order_id for i in items if i.remaining_amount > 0}

        # Disjoint and exhaustive
        assert len(seen) == len(set(seen))
        assert set(seen) == outstanding
        assert sum(t.amount for t in totals) == sum(
            (i.remaining_amount for i in items if i.remaining_amount > 0), Decimal("0")
        )
