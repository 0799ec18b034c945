"""
Tests for the transaction scope.

Covers:
- Commit on success, rollback on any exception
- Driver error translation (PostgreSQL SQLSTATEs, SQLite lock messages)
- The wall-clock deadline checked before commit
- The operation name carried in the log context while the scope is open
"""

import itertools

import pytest
from sqlalchemy.exc import DBAPIError, OperationalError

from ledger_kernel.db.transaction import transaction_scope, translate_db_error
from ledger_kernel.exceptions import ConcurrencyConflict, TransactionTimeout, ValidationError
from ledger_kernel.logging_config import LogContext
from ledger_kernel.models.party import Party, PartyType


class _DriverError(Exception):
    def __init__(self, message="driver failure", pgcode=None):
        super().__init__(message)
        self.pgcode = pgcode


def _dbapi_error(message="driver failure", pgcode=None):
    return DBAPIError("SELECT 1", {}, _DriverError(message, pgcode))


def _party(actor_id, code="P9000"):
    return Party(
        party_code=code,
        party_type=PartyType.CUSTOMER.value,
        name="Scoped",
        created_by_id=actor_id,
    )


class TestTranslation:

    @pytest.mark.parametrize("pgcode", ["40001", "40P01"])
    def test_serialization_and_deadlock(self, pgcode):
        translated = translate_db_error(_dbapi_error(pgcode=pgcode), "record_payment", 5.0)
        assert isinstance(translated, ConcurrencyConflict)
        assert translated.detail == pgcode
        assert translated.retryable

    @pytest.mark.parametrize("pgcode", ["57014", "55P03"])
    def test_statement_and_lock_timeouts(self, pgcode):
        translated = translate_db_error(_dbapi_error(pgcode=pgcode), "record_payment", 5.0)
        assert isinstance(translated, TransactionTimeout)
        assert translated.timeout_seconds == 5.0

    def test_sqlite_locked(self):
        translated = translate_db_error(_dbapi_error("database is locked"), "submit", 2.0)
        assert isinstance(translated, TransactionTimeout)
        assert translated.operation == "submit"

    def test_unrelated_error_not_translated(self):
        assert translate_db_error(_dbapi_error("syntax error", pgcode="42601"), "x", 1.0) is None


class TestScope:

    def test_commit_on_success(self, session, session_factory, actor_id):
        with transaction_scope(session, "create_party", 5.0):
            session.add(_party(actor_id))

        other = session_factory()
        try:
            assert other.query(Party).filter_by(party_code="P9000").count() == 1
        finally:
            other.close()

    def test_rollback_on_domain_error(self, session, actor_id):
        with pytest.raises(ValidationError):
            with transaction_scope(session, "create_party", 5.0):
                session.add(_party(actor_id))
                session.flush()
                raise ValidationError("name", "rejected")
        assert session.query(Party).count() == 0

    def test_driver_error_translated_and_rolled_back(self, session, actor_id):
        with pytest.raises(TransactionTimeout) as exc_info:
            with transaction_scope(session, "create_party", 5.0):
                session.add(_party(actor_id))
                session.flush()
                raise OperationalError("BEGIN", {}, _DriverError("database is locked"))
        assert isinstance(exc_info.value.__cause__, OperationalError)
        assert session.query(Party).count() == 0

    def test_untranslated_driver_error_propagates(self, session):
        with pytest.raises(DBAPIError):
            with transaction_scope(session, "noop", 5.0):
                raise _dbapi_error("disk I/O error")

    def test_deadline_exceeded_rolls_back(self, session, actor_id, monkeypatch, captured_logs):
        ticks = itertools.count(100.0, 100.0)
        monkeypatch.setattr("ledger_kernel.db.transaction.time.monotonic", lambda: next(ticks))

        with pytest.raises(TransactionTimeout):
            with transaction_scope(session, "slow", 5.0):
                session.add(_party(actor_id))
                session.flush()

        monkeypatch.undo()
        assert session.query(Party).count() == 0
        deadline = [
            r for r in captured_logs() if r["message"] == "transaction_deadline_exceeded"
        ]
        assert deadline[0]["operation"] == "slow"
        assert deadline[0]["timeout_seconds"] == 5.0

    def test_operation_bound_for_the_scope(self, session, captured_logs):
        with transaction_scope(session, "post_statement", 5.0):
            assert LogContext.get_all()["operation"] == "post_statement"
        assert "operation" not in LogContext.get_all()

        records = [r for r in captured_logs() if r["logger"] == "ledger_kernel.db.transaction"]
        assert [r["message"] for r in records] == ["transaction_started", "transaction_committed"]
        assert all(r["operation"] == "post_statement" for r in records)

    def test_operation_unbound_after_failure(self, session):
        with pytest.raises(ValidationError):
            with transaction_scope(session, "doomed", 5.0):
                raise ValidationError("name", "rejected")
        assert LogContext.get_all() == {}
