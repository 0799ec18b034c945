"""
Ledger Kernel

Transactional core of the order ledger:
- Payment recording with a write-time overpayment guard
- Refunds and return orders driven by explicit transition tables
- Derived payment status, recomputed on every read
- Reconciliation statements with aging buckets
"""

__version__ = "0.1.0"
