"""
Property-based tests for the payment ledger against a real database.

Random sequences of record / confirm / void operations are applied to a
fresh order and mirrored in a small in-memory model.  After every step:

- sum(confirmed payments) <= order total
- the service rejected an operation exactly when the model says the amount
  did not fit the outstanding balance
- the derived receivable position matches the model
"""

from datetime import date
from decimal import Decimal

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from ledger_engines.payment_status import DerivedPaymentStatus
from ledger_kernel.exceptions import OverpaymentError

ORDER_TOTAL = Decimal("500.00")

cents = st.integers(min_value=1, max_value=30_000).map(lambda c: Decimal(c) / 100)

operations = st.lists(
    st.one_of(
        st.tuples(st.just("pay"), cents, st.booleans()),
        st.tuples(st.just("confirm"), st.integers(min_value=0, max_value=20)),
        st.tuples(st.just("void"), st.integers(min_value=0, max_value=20)),
    ),
    min_size=1,
    max_size=12,
)

DB_SETTINGS = settings(
    max_examples=25,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture, HealthCheck.too_slow],
)


class TestOverpaymentInvariant:

    @DB_SETTINGS
    @given(ops=operations)
    def test_confirmed_total_never_exceeds_order_total(
        self, services, create_order, party, actor_id, ops,
    ):
        order = create_order(party, total=ORDER_TOTAL)
        model: list[dict] = []

        def confirmed_sum():
            return sum((p["amount"] for p in model if p["status"] == "confirmed"), Decimal("0"))

        for op in ops:
            if op[0] == "pay":
                _, amount, confirmed = op
                fits = amount <= ORDER_TOTAL - confirmed_sum()
                try:
                    payment = services.payments.record_payment(
                        order_id=order.id,
                        party_id=party.id,
                        method="cash",
                        amount=amount,
                        payment_date=date(2024, 1, 1),
                        actor_id=actor_id,
                        confirmed=confirmed,
                    )
                except OverpaymentError:
                    assert not fits
                else:
                    assert fits
                    model.append({
                        "id": payment.id,
                        "amount": amount,
                        "status": "confirmed" if confirmed else "pending",
                    })

            elif op[0] == "confirm":
                pending = [p for p in model if p["status"] == "pending"]
                if not pending:
                    continue
                target = pending[op[1] % len(pending)]
                fits = target["amount"] <= ORDER_TOTAL - confirmed_sum()
                try:
                    services.payments.confirm_payment(target["id"], actor_id)
                except OverpaymentError:
                    assert not fits
                else:
                    assert fits
                    target["status"] = "confirmed"

            else:
                live = [p for p in model if p["status"] != "voided"]
                if not live:
                    continue
                target = live[op[1] % len(live)]
                services.payments.void_payment(target["id"], actor_id, reason="fuzz")
                target["status"] = "voided"

            stored = services.payment_reader.confirmed_paid_total(order.id)
            assert stored == confirmed_sum()
            assert stored <= ORDER_TOTAL

        item = services.receivables.get_receivable(order.id, as_of=date(2024, 1, 1))
        assert item.paid_amount == confirmed_sum()
        assert item.remaining_amount == ORDER_TOTAL - confirmed_sum()
        if confirmed_sum() == ORDER_TOTAL:
            assert item.payment_status == DerivedPaymentStatus.PAID
        elif confirmed_sum() == 0:
            assert item.payment_status == DerivedPaymentStatus.UNPAID
        else:
            assert item.payment_status == DerivedPaymentStatus.PARTIAL
