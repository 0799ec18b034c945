"""
Tests for the receivables read model.

Covers:
- Derived status, remaining amount and overdue days per order
- Which order statuses count as receivable
- Search, party, party type and date filters
- Store and in-memory paths return the same rows in the same order
- Summary totals over the full filtered set
- Pagination and determinism
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_engines.payment_status import DerivedPaymentStatus
from ledger_engines.query_plan import (
    STORED_SORT_FIELDS,
    PageRequest,
    QueryPath,
    QueryPlan,
    ReceivablesFilter,
    SortSpec,
)
from ledger_kernel.exceptions import ValidationError
from ledger_kernel.models.order import OrderStatus
from ledger_kernel.models.party import PartyType
from ledger_kernel.selectors.receivables_selector import ReceivablesSelector

AS_OF = date(2024, 3, 1)


@pytest.fixture
def book(services, create_party, create_order, actor_id):
    """Three parties, five receivable orders, one draft and one cancelled.

    SO-00001  Acme    1000.00  2024-01-05  600 paid   due 02-04  overdue 26
    SO-00002  Acme     500.00  2024-02-20  unpaid     due 03-21
    SO-00003  Bolt     300.00  2024-01-10  paid       due 01-25
    SO-00004  Bolt     200.00  2024-02-01  unpaid     due 02-16  overdue 14
    SO-00005  Cobalt   700.00  2023-12-01  unpaid     due 01-15  overdue 46
    """
    acme = create_party(name="Acme Trading", phone="555-0100")
    bolt = create_party(name="Bolt & Nut Co", phone="555-0199", payment_terms_days=15)
    cobalt = create_party(name="Cobalt_Works", payment_terms_days=0)

    orders = {
        "SO-00001": create_order(acme, total="1000", order_date=date(2024, 1, 5)),
        "SO-00002": create_order(acme, total="500", order_date=date(2024, 2, 20)),
        "SO-00003": create_order(bolt, total="300", order_date=date(2024, 1, 10)),
        "SO-00004": create_order(bolt, total="200", order_date=date(2024, 2, 1)),
        "SO-00005": create_order(
            cobalt, total="700", order_date=date(2023, 12, 1), due_date=date(2024, 1, 15),
        ),
        "SO-00006": create_order(
            cobalt, total="50", order_date=date(2024, 1, 2), status=OrderStatus.DRAFT,
        ),
        "SO-00007": create_order(
            acme, total="80", order_date=date(2024, 1, 3), status=OrderStatus.CANCELLED,
        ),
    }
    for number, amount in (("SO-00001", "600"), ("SO-00003", "300")):
        order = orders[number]
        services.payments.record_payment(
            order_id=order.id,
            party_id=order.party_id,
            method="cash",
            amount=amount,
            payment_date=date(2024, 2, 1),
            actor_id=actor_id,
        )
    return {"acme": acme, "bolt": bolt, "cobalt": cobalt, "orders": orders}


def _numbers(page):
    return [item.order_number for item in page.items]


def _list(services, **kwargs):
    return services.receivables.list_receivables(as_of=AS_OF, **kwargs)


class TestDerivedPositions:

    def test_positions(self, services, book):
        items = {i.order_number: i for i in _list(services).items}

        assert items["SO-00001"].payment_status == DerivedPaymentStatus.OVERDUE
        assert items["SO-00001"].remaining_amount == Decimal("400.00")
        assert items["SO-00001"].overdue_days == 26
        assert items["SO-00001"].due_date == date(2024, 2, 4)

        assert items["SO-00002"].payment_status == DerivedPaymentStatus.UNPAID
        assert items["SO-00002"].overdue_days == 0

        assert items["SO-00003"].payment_status == DerivedPaymentStatus.PAID
        assert items["SO-00003"].order_status == "paid"
        assert items["SO-00003"].due_date == date(2024, 1, 25)

        assert items["SO-00004"].overdue_days == 14
        assert items["SO-00005"].overdue_days == 46

    def test_non_receivable_statuses_excluded(self, services, book):
        page = _list(services)
        assert page.total == 5
        assert "SO-00006" not in _numbers(page)
        assert "SO-00007" not in _numbers(page)
        draft = book["orders"]["SO-00006"]
        assert services.receivables.get_receivable(draft.id, AS_OF) is None

    def test_grace_period_delays_overdue(self, session, book):
        selector = ReceivablesSelector(session, grace_period_days=30)
        item = selector.get_receivable(book["orders"]["SO-00001"].id, AS_OF)
        assert item.due_date == date(2024, 3, 5)
        assert item.payment_status == DerivedPaymentStatus.PARTIAL

    def test_voided_payment_no_longer_counts(self, services, book, actor_id):
        order = book["orders"]["SO-00003"]
        payment = services.payment_reader.list_payments(order_id=order.id)[0]
        services.payments.void_payment(payment.id, actor_id, reason="bounced")
        item = services.receivables.get_receivable(order.id, AS_OF)
        assert item.remaining_amount == Decimal("300.00")
        assert item.payment_status == DerivedPaymentStatus.OVERDUE


class TestFilters:

    def test_default_sort_is_order_date_desc(self, services, book):
        page = _list(services)
        assert page.path == QueryPath.STORE
        assert _numbers(page) == ["SO-00002", "SO-00004", "SO-00003", "SO-00001", "SO-00005"]

    @pytest.mark.parametrize(
        "term,expected",
        [
            ("bolt", ["SO-00004", "SO-00003"]),
            ("555-0100", ["SO-00002", "SO-00001"]),
            ("so-00005", ["SO-00005"]),
            ("_", ["SO-00005"]),
            ("%", []),
        ],
    )
    def test_search(self, services, book, term, expected):
        assert _numbers(_list(services, filter=ReceivablesFilter(search=term))) == expected

    def test_party_filter(self, services, book):
        page = _list(services, filter=ReceivablesFilter(party_id=book["bolt"].id))
        assert _numbers(page) == ["SO-00004", "SO-00003"]

    def test_date_range(self, services, book):
        page = _list(
            services,
            filter=ReceivablesFilter(date_from=date(2024, 1, 1), date_to=date(2024, 1, 31)),
        )
        assert _numbers(page) == ["SO-00003", "SO-00001"]

    def test_payment_status_filter(self, services, book):
        page = _list(services, filter=ReceivablesFilter(payment_status="overdue"))
        assert page.path == QueryPath.IN_MEMORY
        assert _numbers(page) == ["SO-00004", "SO-00001", "SO-00005"]

    def test_overdue_only(self, services, book):
        page = _list(
            services,
            filter=ReceivablesFilter(party_id=book["acme"].id, overdue_only=True),
        )
        assert _numbers(page) == ["SO-00001"]

    def test_supplier_orders_are_not_receivables(
        self, services, book, create_party, create_order,
    ):
        supplier = create_party(name="Acme Supplies", party_type=PartyType.SUPPLIER)
        bought = create_order(supplier, total="400", order_date=date(2024, 2, 10))

        page = _list(services)
        assert bought.order_number not in _numbers(page)
        assert page.total == 5
        assert page.summary.total_receivable == Decimal("1800.00")
        assert _numbers(_list(services, filter=ReceivablesFilter(search="acme"))) == [
            "SO-00002", "SO-00001",
        ]

        supplier_page = _list(services, filter=ReceivablesFilter(party_type="supplier"))
        assert _numbers(supplier_page) == [bought.order_number]

        everyone = _list(services, filter=ReceivablesFilter(party_type=None))
        assert everyone.total == 6

    def test_unknown_party_type_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            ReceivablesFilter(party_type="employee")
        assert exc_info.value.field == "party_type"


class TestDerivedSorts:

    def test_sort_by_remaining_amount(self, services, book):
        page = _list(services, sort=SortSpec("remaining_amount"))
        assert page.path == QueryPath.IN_MEMORY
        assert _numbers(page) == ["SO-00005", "SO-00002", "SO-00001", "SO-00004", "SO-00003"]

    def test_sort_by_payment_status_ascending(self, services, book):
        page = _list(services, sort=SortSpec("payment_status", descending=False))
        assert _numbers(page) == ["SO-00001", "SO-00004", "SO-00005", "SO-00002", "SO-00003"]

    def test_sort_by_overdue_days(self, services, book):
        page = _list(services, sort=SortSpec("overdue_days"))
        assert _numbers(page)[:3] == ["SO-00005", "SO-00001", "SO-00004"]


class TestPathParity:
    """Both execution paths must agree for stored-field queries."""

    @pytest.mark.parametrize("descending", [True, False])
    @pytest.mark.parametrize("field", sorted(STORED_SORT_FIELDS))
    @pytest.mark.parametrize(
        "filter",
        [
            ReceivablesFilter(),
            ReceivablesFilter(search="co"),
            ReceivablesFilter(date_from=date(2024, 1, 6)),
        ],
    )
    def test_same_rows_same_order(self, services, book, field, descending, filter):
        plan = QueryPlan(
            path=QueryPath.STORE,
            filter=filter,
            sort=SortSpec(field, descending=descending),
            page=PageRequest(page=1, page_size=3),
            reason="parity",
        )
        selector = services.receivables
        in_store = selector._list_in_store(plan, AS_OF, True)
        in_memory = selector._list_in_memory(plan, AS_OF, True)

        assert in_store.items == in_memory.items
        assert in_store.total == in_memory.total
        assert in_store.summary == in_memory.summary


class TestSummaryAndPaging:

    def test_summary_over_all_rows(self, services, book):
        summary = _list(services, page=PageRequest(page=1, page_size=2)).summary
        assert summary.total_receivable == Decimal("1800.00")
        assert summary.total_overdue == Decimal("1300.00")
        assert summary.receivable_count == 4
        assert summary.overdue_count == 3
        assert summary.paid_count == 1
        assert summary.unpaid_count == 3
        assert summary.partial_count == 1

    def test_summary_can_be_skipped(self, services, book):
        page = services.receivables.list_receivables(AS_OF, include_summary=False)
        assert page.summary.receivable_count == 0

    def test_last_page(self, services, book):
        page = _list(services, page=PageRequest(page=3, page_size=2))
        assert _numbers(page) == ["SO-00005"]
        assert page.total == 5
        assert page.page_count == 3

    def test_page_past_end_is_empty(self, services, book):
        page = _list(services, sort=SortSpec("remaining_amount"), page=PageRequest(page=9))
        assert page.items == ()
        assert page.total == 5

    def test_page_size_clamped_to_max(self, services, book):
        page = _list(services, page=PageRequest(page=1, page_size=10_000))
        assert page.page_size == services.config.max_page_size

    def test_repeatable(self, services, book):
        args = dict(filter=ReceivablesFilter(search="o"), sort=SortSpec("paid_amount"))
        assert _list(services, **args) == _list(services, **args)


class TestReadAPI:

    def test_defaults_to_clock_today(self, read_api, services, book, clock):
        clock.set_time(clock.now().replace(year=2024, month=3, day=1))
        assert read_api.list_receivables() == services.receivables.list_receivables(AS_OF)
