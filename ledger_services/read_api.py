"""
ledger_services.read_api -- Read surface for the presentation layer.

Responsibility:
    ``LedgerReadAPI`` exposes receivables listings, reconciliation
    statements and return-order lookups.  Every call is read-only and
    returns frozen DTOs with derived fields already computed.

Architecture position:
    Services -- facade over ``ledger_kernel.selectors``.

Invariants enforced:
    - Page sizes default to ``default_page_size`` and are clamped to
      ``max_page_size``.
    - The only clock read is the default ``as_of`` of
      ``list_receivables``; statements default to the end of their range.

Failure modes:
    - ValidationError, PartyNotFoundError, ReturnOrderNotFoundError from
      the selectors.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from ledger_engines.query_plan import PageRequest, ReceivablesFilter, SortSpec
from ledger_engines.statement import Statement
from ledger_kernel.domain.dtos import ReturnOrderInfo, ReturnOrderStatistics
from ledger_kernel.logging_config import get_logger
from ledger_kernel.selectors.receivables_selector import ReceivablesPage
from ledger_kernel.selectors.return_order_selector import ReturnOrderFilter, ReturnOrderPage
from ledger_services.container import LedgerServices

logger = get_logger("services.read_api")


class LedgerReadAPI:
    """Read-only facade over a ``LedgerServices`` container."""

    def __init__(self, services: LedgerServices) -> None:
        self._services = services
        self._config = services.config

    def list_receivables(
        self,
        filter: ReceivablesFilter | None = None,
        sort: SortSpec | None = None,
        page: PageRequest | None = None,
        as_of: date | None = None,
    ) -> ReceivablesPage:
        return self._services.receivables.list_receivables(
            as_of=as_of or self._services.clock.today(),
            filter=filter,
            sort=sort,
            page=page,
        )

    def get_statement(
        self,
        party_id: UUID,
        date_from: date,
        date_to: date,
        as_of_date: date | None = None,
    ) -> Statement:
        statement = self._services.statements.get_statement(
            party_id, date_from, date_to, as_of_date=as_of_date,
        )
        logger.info(
            "statement_generated",
            extra={
                "party_id": str(party_id),
                "date_from": date_from.isoformat(),
                "date_to": date_to.isoformat(),
                "entry_count": len(statement.entries),
                "fingerprint": statement.fingerprint(),
            },
        )
        return statement

    def list_return_orders(
        self,
        filter: ReturnOrderFilter | None = None,
        page: int = 1,
        page_size: int | None = None,
    ) -> ReturnOrderPage:
        size = min(page_size or self._config.default_page_size, self._config.max_page_size)
        return self._services.return_orders.list_return_orders(
            filter=filter, page=page, page_size=size,
        )

    def get_return_order(self, return_order_id: UUID) -> ReturnOrderInfo:
        return self._services.return_orders.get_return_order(return_order_id)

    def return_order_statistics(self, party_id: UUID | None = None) -> ReturnOrderStatistics:
        return self._services.return_orders.statistics(party_id)
