"""
Repository Layer Package.

============================================================
PURPOSE
============================================================
The Repository Layer is the ONLY gateway to persistent storage.
All database access MUST go through repository classes.

============================================================
ARCHITECTURE PRINCIPLES
============================================================
1. DAO Pattern: One repository per table (or tightly related set)
2. Session Injection: Sessions are injected, not created internally
3. Explicit Methods: No generic 'execute', clear method names
4. No Commits: The ledger service owns the transaction boundary
5. Exception Handling: All DB errors wrapped in repository exceptions

============================================================
REPOSITORY GROUPS
============================================================

LEDGER
------
- BalanceRepository: Cash balances per (member, currency)
- TradeRecordRepository: Trade blotter
- PortfolioRepository: Portfolio aggregates
- WatchListRepository: Followed instruments

REFERENCE & AUDIT
-----------------
- CurrencyRepository: ISO currencies
- BankAccountRepository: Members' bank accounts
- AccountTransactionRepository: Account history
- BankTransferRepository: Transfers to bank accounts

============================================================
USAGE
============================================================

    from storage.database import transaction_scope
    from storage.repositories import BalanceRepository

    with transaction_scope(session_factory) as session:
        balances = BalanceRepository(session)
        balance = balances.get_for_update("alice", "USD")
        balance.non_trading_amount += amount
        balances.save(balance)

============================================================
"""

# =============================================================
# EXCEPTIONS
# =============================================================
from storage.repositories.exceptions import (
    RepositoryException,
    DuplicateRecordError,
    IntegrityError,
    ConnectionError,
    QueryError,
    ConcurrentModificationError,
    LockTimeoutError,
)

# =============================================================
# BASE REPOSITORY
# =============================================================
from storage.repositories.base import BaseRepository

# =============================================================
# LEDGER REPOSITORIES
# =============================================================
from storage.repositories.ledger import (
    BalanceRepository,
    PortfolioRepository,
    TradeRecordRepository,
    WatchListRepository,
)

# =============================================================
# REFERENCE & AUDIT REPOSITORIES
# =============================================================
from storage.repositories.reference import (
    AccountTransactionRepository,
    BankAccountRepository,
    BankTransferRepository,
    CurrencyRepository,
)


__all__ = [
    # Exceptions
    "RepositoryException",
    "DuplicateRecordError",
    "IntegrityError",
    "ConnectionError",
    "QueryError",
    "ConcurrentModificationError",
    "LockTimeoutError",
    # Base
    "BaseRepository",
    # Ledger
    "BalanceRepository",
    "PortfolioRepository",
    "TradeRecordRepository",
    "WatchListRepository",
    # Reference & Audit
    "AccountTransactionRepository",
    "BankAccountRepository",
    "BankTransferRepository",
    "CurrencyRepository",
]
