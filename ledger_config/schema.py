"""
Ledger configuration schema.

Defines the settings the ledger runs with and their defaults.  Values are
loaded from YAML by ``ledger_config.get_active_config()``.
"""

from dataclasses import asdict, dataclass, fields
from typing import Any, Self

from ledger_kernel.logging_config import get_logger

logger = get_logger("config.schema")

_KNOWN_ORDER_STATUSES = frozenset(
    {"draft", "confirmed", "shipped", "completed", "paid", "cancelled"}
)


@dataclass(frozen=True)
class LedgerConfig:
    """Settings for the payment ledger, returns and receivables."""

    database_url: str = "sqlite:///ledger.db"
    transaction_timeout_seconds: float = 10.0
    echo_sql: bool = False

    # Due dates: order_date + party terms (or this default) + grace.
    default_payment_terms_days: int = 30
    grace_period_days: int = 0

    # Orders that appear in receivables.
    receivable_order_statuses: tuple[str, ...] = (
        "confirmed",
        "shipped",
        "completed",
        "paid",
    )
    # Orders that may not take payments.
    payment_blocked_order_statuses: tuple[str, ...] = ("draft", "cancelled")

    # Status the order moves to once fully paid, and the states it may
    # move from.
    fully_paid_status: str = "paid"
    fully_paid_from_statuses: tuple[str, ...] = ("confirmed", "shipped")

    # Upper bounds of the bounded aging buckets; the last bucket is open.
    aging_bucket_bounds: tuple[int, ...] = (30, 60, 90)

    default_page_size: int = 10
    max_page_size: int = 100

    return_order_items_limit: int = 50

    payment_number_prefix: str = "PAY"
    refund_number_prefix: str = "RFD"
    return_number_prefix: str = "RET"

    def __post_init__(self):
        if not self.database_url or not self.database_url.strip():
            raise ValueError("database_url cannot be empty")
        if self.transaction_timeout_seconds <= 0:
            raise ValueError("transaction_timeout_seconds must be positive")
        if self.default_payment_terms_days < 0:
            raise ValueError("default_payment_terms_days cannot be negative")
        if self.grace_period_days < 0:
            raise ValueError("grace_period_days cannot be negative")

        for name in (
            "receivable_order_statuses",
            "payment_blocked_order_statuses",
            "fully_paid_from_statuses",
        ):
            unknown = set(getattr(self, name)) - _KNOWN_ORDER_STATUSES
            if unknown:
                raise ValueError(f"{name} contains unknown statuses: {sorted(unknown)}")
        if self.fully_paid_status not in _KNOWN_ORDER_STATUSES:
            raise ValueError(f"fully_paid_status '{self.fully_paid_status}' is not an order status")
        overlap = set(self.receivable_order_statuses) & set(self.payment_blocked_order_statuses)
        if overlap:
            raise ValueError(
                f"statuses cannot be both receivable and payment-blocked: {sorted(overlap)}"
            )

        if not self.aging_bucket_bounds:
            raise ValueError("aging_bucket_bounds cannot be empty")
        if list(self.aging_bucket_bounds) != sorted(self.aging_bucket_bounds):
            raise ValueError("aging_bucket_bounds must be sorted ascending")
        if len(self.aging_bucket_bounds) != len(set(self.aging_bucket_bounds)):
            raise ValueError("aging_bucket_bounds must be unique")
        if any(b <= 0 for b in self.aging_bucket_bounds):
            raise ValueError("aging_bucket_bounds must contain positive values")

        if self.default_page_size <= 0:
            raise ValueError("default_page_size must be positive")
        if self.max_page_size < self.default_page_size:
            raise ValueError(
                f"max_page_size ({self.max_page_size}) cannot be less than "
                f"default_page_size ({self.default_page_size})"
            )
        if self.return_order_items_limit <= 0:
            raise ValueError("return_order_items_limit must be positive")

        prefixes = (
            self.payment_number_prefix,
            self.refund_number_prefix,
            self.return_number_prefix,
        )
        if any(not p or not p.strip() for p in prefixes):
            raise ValueError("number prefixes cannot be empty")
        if len(set(prefixes)) != len(prefixes):
            raise ValueError("number prefixes must be distinct")

        logger.debug(
            "ledger_config_initialized",
            extra={
                "transaction_timeout_seconds": self.transaction_timeout_seconds,
                "default_payment_terms_days": self.default_payment_terms_days,
                "aging_bucket_bounds": list(self.aging_bucket_bounds),
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Create config from a mapping, e.g. parsed YAML.

        Lists become tuples; unknown keys are rejected.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")
        values = {
            key: tuple(value) if isinstance(value, list) else value
            for key, value in data.items()
        }
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
