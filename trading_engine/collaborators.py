"""
Trading Engine - External Collaborators.

============================================================
PURPOSE
============================================================
Interfaces to the data the ledger consults but does not own.

- CurrencyRegistry: active currency allow-list
- BankAccountDirectory: bank account lookup by id
- AuditLog: user-visible account history, best effort

============================================================
SESSIONS
============================================================
Collaborators backed by the database are handed the session of
the running operation, so their reads and writes belong to the
operation's transaction.

============================================================
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import FrozenSet, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storage.repositories import (
    AccountTransactionRepository,
    BankAccountRepository,
    CurrencyRepository,
    RepositoryException,
)

logger = logging.getLogger(__name__)


# ============================================================
# CURRENCY REGISTRY
# ============================================================

class CurrencyRegistry(ABC):
    """Active currency allow-list."""

    @abstractmethod
    def active_currencies(self, session: Session) -> FrozenSet[str]:
        """Upper-case codes of currencies currently active."""
        pass


class IsoCurrencyRegistry(CurrencyRegistry):
    """Reads active rows of the iso_currencies table."""

    def active_currencies(self, session: Session) -> FrozenSet[str]:
        return frozenset(CurrencyRepository(session).list_active_codes())


class StaticCurrencyRegistry(CurrencyRegistry):
    """Fixed allow-list."""

    def __init__(self, codes: Iterable[str]):
        self.codes = frozenset(code.upper() for code in codes)

    def active_currencies(self, session: Session) -> FrozenSet[str]:
        return self.codes


# ============================================================
# BANK ACCOUNT DIRECTORY
# ============================================================

@dataclass(frozen=True)
class BankAccountInfo:
    """What the ledger needs to know about a bank account."""

    bank_account_id: int
    owner: str
    currency: str
    active: bool


class BankAccountDirectory:
    """Bank account lookup backed by the bank_accounts table."""

    def lookup(self, session: Session, bank_account_id: int) -> Optional[BankAccountInfo]:
        account = BankAccountRepository(session).get(bank_account_id)
        if account is None:
            return None
        return BankAccountInfo(
            bank_account_id=account.bank_account_id,
            owner=account.member,
            currency=account.currency,
            active=account.active,
        )


# ============================================================
# AUDIT LOG
# ============================================================

class AuditLog(ABC):
    """
    Account history append.

    Fire-and-forget: implementations must not raise.
    """

    @abstractmethod
    def record(self, session: Session, member: str, currency: str, description: str) -> bool:
        """
        Append one entry.

        Returns:
            True if the entry was written
        """
        pass


class AccountTransactionAuditLog(AuditLog):
    """
    Appends to account_transactions inside a SAVEPOINT.

    A failed append rolls back only the savepoint; the ledger
    mutation around it still commits.
    """

    def record(self, session: Session, member: str, currency: str, description: str) -> bool:
        try:
            with session.begin_nested():
                AccountTransactionRepository(session).append(member, currency, description)
            return True
        except (RepositoryException, SQLAlchemyError) as e:
            logger.warning(f"Audit entry dropped for {member}/{currency} ({description}): {e}")
            return False
