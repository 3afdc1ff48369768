"""
Storage Models Package.

This package contains all ORM models for the ledger database.
Models are organized by domain for clarity and maintainability.

============================================================
MODEL ORGANIZATION
============================================================

Domain 1: Ledger (ledger.py)
- AccountBalance
- TradeRecord
- Portfolio
- WatchListEntry

Domain 2: Reference & Audit (reference.py)
- IsoCurrency
- BankAccount
- AccountTransaction
- BankAccountTransaction

============================================================
DESIGN PRINCIPLES
============================================================

- All models use explicit column definitions
- All timestamps are timezone-aware (TIMESTAMPTZ)
- Money columns are NUMERIC(20, 4), never floats
- Mutable ledger rows carry a version counter
- No business logic in models

============================================================
"""

from storage.models.base import Base, LastUpdatedMixin, Money, MONEY_SCALE

from storage.models.ledger import (
    AccountBalance,
    Portfolio,
    TradeRecord,
    WatchListEntry,
)

from storage.models.reference import (
    AccountTransaction,
    BankAccount,
    BankAccountTransaction,
    IsoCurrency,
)

__all__ = [
    # Base
    "Base",
    "LastUpdatedMixin",
    "Money",
    "MONEY_SCALE",
    # Ledger
    "AccountBalance",
    "Portfolio",
    "TradeRecord",
    "WatchListEntry",
    # Reference & Audit
    "AccountTransaction",
    "BankAccount",
    "BankAccountTransaction",
    "IsoCurrency",
]
