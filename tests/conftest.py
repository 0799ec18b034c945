"""
Pytest fixtures for the ledger test suite.

Provides:
- A fresh database per test (SQLite file under tmp_path, or PostgreSQL when
  LEDGER_TEST_DATABASE_URL is set)
- Sessions and a session factory for multi-threaded tests
- Deterministic clock, actor id, and party/order factories
- Structured log capture

Environment Variables:
- LEDGER_TEST_DATABASE_URL: PostgreSQL connection URL.  Tests marked
  ``postgres`` are skipped without it.
"""

import json
import logging
import os
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from ledger_config import LedgerConfig
from ledger_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ledger_kernel.models.order import Order, OrderLine, OrderStatus
from ledger_kernel.models.party import Party, PartyType
from ledger_services import LedgerReadAPI, LedgerServices

TEST_DATABASE_URL_ENV = "LEDGER_TEST_DATABASE_URL"

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

# Every test starts on this day unless it moves the clock.
TEST_NOW = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
TEST_TODAY = TEST_NOW.date()


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture ledger_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, services):
            services.payments.record_payment(...)
            logs = captured_logs()
            assert any(r["message"] == "payment_recorded" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ledger_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


def pytest_collection_modifyitems(config, items):
    if os.environ.get(TEST_DATABASE_URL_ENV):
        return
    skip_pg = pytest.mark.skip(reason=f"{TEST_DATABASE_URL_ENV} not set")
    for item in items:
        if "postgres" in item.keywords:
            item.add_marker(skip_pg)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_engine(tmp_path):
    """Engine on a fresh database with all ledger tables.

    SQLite gets a new file per test.  On PostgreSQL the tables are dropped
    and recreated around each test.
    """
    url = os.environ.get(TEST_DATABASE_URL_ENV) or f"sqlite:///{tmp_path / 'ledger.db'}"
    eng = init_engine_from_url(url, pool_size=30, max_overflow=20, busy_timeout_seconds=10.0)
    drop_tables()
    create_tables()
    yield eng
    drop_tables()
    reset_engine()


@pytest.fixture
def session_factory(db_engine):
    """Session factory for tests that need one session per thread."""
    return get_session_factory()


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    sess = session_factory()
    try:
        yield sess
    finally:
        sess.rollback()
        sess.close()


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(TEST_NOW)


@pytest.fixture
def actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


@pytest.fixture
def ledger_config() -> LedgerConfig:
    return LedgerConfig.with_defaults()


class RecordingCacheInvalidator:
    """Remembers which parties were invalidated; optionally fails."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[UUID] = []

    def invalidate_party(self, party_id: UUID) -> None:
        self.calls.append(party_id)
        if self.fail:
            raise RuntimeError("cache backend unavailable")


@pytest.fixture
def cache_invalidator() -> RecordingCacheInvalidator:
    return RecordingCacheInvalidator()


@pytest.fixture
def services(session, ledger_config, clock, cache_invalidator) -> LedgerServices:
    return LedgerServices(
        session,
        config=ledger_config,
        clock=clock,
        cache_invalidator=cache_invalidator,
    )


@pytest.fixture
def read_api(services) -> LedgerReadAPI:
    return LedgerReadAPI(services)


# =============================================================================
# Data factories
# =============================================================================


@pytest.fixture
def create_party(session, actor_id):
    """Factory for committed parties."""
    counter = {"n": 0}

    def _create(
        name: str | None = None,
        phone: str | None = None,
        payment_terms_days: int | None = None,
        party_type: PartyType = PartyType.CUSTOMER,
    ) -> Party:
        counter["n"] += 1
        party = Party(
            party_code=f"P{counter['n']:04d}",
            party_type=party_type.value,
            name=name or f"Party {counter['n']}",
            phone=phone,
            payment_terms_days=payment_terms_days,
            created_by_id=actor_id,
        )
        session.add(party)
        session.commit()
        return party

    return _create


@pytest.fixture
def create_order(session, actor_id):
    """Factory for committed orders.

    ``lines`` is a sequence of (quantity, unit_price); without lines the
    order gets a single line of quantity 1 at the total.
    """
    counter = {"n": 0}

    def _create(
        party: Party,
        total: Decimal | str | None = None,
        lines: list[tuple] | None = None,
        status: OrderStatus = OrderStatus.CONFIRMED,
        order_date: date = TEST_TODAY,
        due_date: date | None = None,
        order_number: str | None = None,
    ) -> Order:
        counter["n"] += 1
        if lines is None:
            lines = [(Decimal("1"), Decimal(str(total if total is not None else "1000")))]
        lines = [(Decimal(str(q)), Decimal(str(p))) for q, p in lines]
        computed = sum((q * p for q, p in lines), Decimal("0"))
        order = Order(
            order_number=order_number or f"SO-{counter['n']:05d}",
            party_id=party.id,
            total_amount=Decimal(str(total)) if total is not None else computed,
            status=status.value,
            order_date=order_date,
            due_date=due_date,
            created_by_id=actor_id,
        )
        for i, (quantity, price) in enumerate(lines, start=1):
            order.lines.append(
                OrderLine(
                    line_number=i,
                    product_id=f"SKU-{i:03d}",
                    quantity=quantity,
                    unit_price=price,
                    subtotal=quantity * price,
                    created_by_id=actor_id,
                )
            )
        session.add(order)
        session.commit()
        return order

    return _create


@pytest.fixture
def party(create_party) -> Party:
    return create_party(name="Acme Trading", phone="555-0100")


@pytest.fixture
def order(create_order, party) -> Order:
    """A confirmed order for 1000.00 with one line."""
    return create_order(party, total="1000")
