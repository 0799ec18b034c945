"""
ledger_services.container -- Wires kernel services from a LedgerConfig.

Responsibility:
    Creates every write service and selector exactly once per session and
    passes each the configuration values it needs.  The kernel never reads
    ``ledger_config`` itself; this module is the bridge.

Architecture position:
    Services -- top of the stack.  May import ledger_config, ledger_kernel
    and ledger_engines.

Invariants enforced:
    - All services share one Session, one Clock, one order gateway and one
      cache invalidator.
    - DI transparency: all wiring is visible in ``__init__``.

Non-goals:
    - Does NOT own the Session lifecycle.  Each service operation commits
      or rolls back its own transaction.

Usage:
    services = LedgerServices(session, config=get_active_config())
    services.payments.record_payment(...)
    services.returns.submit(return_order_id, actor_id)
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from ledger_config import LedgerConfig, get_active_config
from ledger_engines.aging import buckets_from_bounds
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.collaborators import CacheInvalidator, NullCacheInvalidator
from ledger_kernel.selectors.payment_selector import PaymentSelector
from ledger_kernel.selectors.receivables_selector import ReceivablesSelector
from ledger_kernel.selectors.return_order_selector import ReturnOrderSelector
from ledger_kernel.selectors.statement_selector import StatementSelector
from ledger_kernel.services.order_gateway import SqlOrderGateway
from ledger_kernel.services.payment_ledger import PaymentLedgerService
from ledger_kernel.services.refund_service import RefundService
from ledger_kernel.services.return_order_service import ReturnOrderService


class LedgerServices:
    """Per-session container for the ledger's services and selectors.

    Contract:
        Receives a Session and optionally a LedgerConfig, Clock and
        CacheInvalidator.  Without a config the active configuration is
        loaded through ``get_active_config()``.
    """

    def __init__(
        self,
        session: Session,
        config: LedgerConfig | None = None,
        clock: Clock | None = None,
        cache_invalidator: CacheInvalidator | None = None,
    ) -> None:
        self.session = session
        self.config = config or get_active_config()
        self.clock = clock or SystemClock()
        self.cache_invalidator = cache_invalidator or NullCacheInvalidator()
        self.order_gateway = SqlOrderGateway(session)

        cfg = self.config
        shared = dict(
            clock=self.clock,
            order_gateway=self.order_gateway,
            cache_invalidator=self.cache_invalidator,
            transaction_timeout_seconds=cfg.transaction_timeout_seconds,
        )

        # --- Write side ---
        self.payments = PaymentLedgerService(
            session,
            fully_paid_status=cfg.fully_paid_status,
            fully_paid_from_statuses=cfg.fully_paid_from_statuses,
            blocked_order_statuses=cfg.payment_blocked_order_statuses,
            number_prefix=cfg.payment_number_prefix,
            **shared,
        )
        self.refunds = RefundService(
            session,
            number_prefix=cfg.refund_number_prefix,
            **shared,
        )
        self.returns = ReturnOrderService(
            session,
            items_limit=cfg.return_order_items_limit,
            blocked_order_statuses=cfg.payment_blocked_order_statuses,
            return_number_prefix=cfg.return_number_prefix,
            refund_number_prefix=cfg.refund_number_prefix,
            **shared,
        )

        # --- Read side ---
        self.payment_reader = PaymentSelector(session)
        self.receivables = ReceivablesSelector(
            session,
            receivable_statuses=cfg.receivable_order_statuses,
            default_payment_terms_days=cfg.default_payment_terms_days,
            grace_period_days=cfg.grace_period_days,
            default_page_size=cfg.default_page_size,
            max_page_size=cfg.max_page_size,
        )
        self.statements = StatementSelector(
            session,
            receivable_statuses=cfg.receivable_order_statuses,
            default_payment_terms_days=cfg.default_payment_terms_days,
            grace_period_days=cfg.grace_period_days,
            aging_buckets=buckets_from_bounds(cfg.aging_bucket_bounds),
        )
        self.return_orders = ReturnOrderSelector(session)
