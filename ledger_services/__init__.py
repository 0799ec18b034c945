"""
ledger_services -- service wiring and the read API.

``LedgerServices`` builds the kernel services and selectors for one session
from a ``LedgerConfig``; ``LedgerReadAPI`` is the read surface consumed by
a presentation layer.
"""

from ledger_services.container import LedgerServices
from ledger_services.read_api import LedgerReadAPI

__all__ = ["LedgerReadAPI", "LedgerServices"]
