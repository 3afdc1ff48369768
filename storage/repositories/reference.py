"""
Reference and Audit Repositories.

============================================================
PURPOSE
============================================================
Repositories for tables the ledger consults or appends to:
ISO currencies, bank accounts, the account history and the
bank-transfer ledger.

============================================================
REPOSITORIES
============================================================
- CurrencyRepository: ISO 4217 table and active flags
- BankAccountRepository: Members' bank accounts
- AccountTransactionRepository: Account history (append-only)
- BankTransferRepository: Transfers out (append-only)

============================================================
"""

from decimal import Decimal
from typing import Collection, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from storage.models.reference import (
    AccountTransaction,
    BankAccount,
    BankAccountTransaction,
    IsoCurrency,
)
from storage.repositories.base import BaseRepository


class CurrencyRepository(BaseRepository[IsoCurrency]):
    """Repository for ISO currencies."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, IsoCurrency, "CurrencyRepository")

    def get(self, alpha_code: str) -> Optional[IsoCurrency]:
        """Get currency by alpha code."""
        return self._get_by_id(alpha_code)

    def list_active_codes(self) -> List[str]:
        """List alpha codes of active currencies, sorted."""
        stmt = (
            select(IsoCurrency)
            .where(IsoCurrency.active.is_(True))
            .order_by(IsoCurrency.alpha_code)
        )
        return [currency.alpha_code for currency in self._execute_query(stmt)]

    def upsert(
        self,
        alpha_code: str,
        name: str,
        minor_units: int = 2,
        active: bool = False,
    ) -> IsoCurrency:
        """
        Insert a currency or update an existing one.

        Used by database bootstrap to seed the table.
        """
        existing = self.get(alpha_code)
        if existing is None:
            return self._add(IsoCurrency(
                alpha_code=alpha_code,
                name=name,
                minor_units=minor_units,
                active=active,
            ))
        existing.name = name
        existing.minor_units = minor_units
        existing.active = active
        self._flush("upsert_currency")
        return existing


class BankAccountRepository(BaseRepository[BankAccount]):
    """Repository for bank accounts."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, BankAccount, "BankAccountRepository")

    def get(self, bank_account_id: int) -> Optional[BankAccount]:
        """Get bank account by ID."""
        return self._get_by_id(bank_account_id)

    def create(
        self,
        member: str,
        currency: str,
        bank_name: str,
        account_number: str,
        active: bool = True,
    ) -> BankAccount:
        """Register a bank account for a member."""
        return self._add(BankAccount(
            member=member,
            currency=currency,
            bank_name=bank_name,
            account_number=account_number,
            active=active,
        ))

    def list_for_member(self, member: str) -> List[BankAccount]:
        """List a member's bank accounts ordered by id."""
        stmt = (
            select(BankAccount)
            .where(BankAccount.member == member)
            .order_by(BankAccount.bank_account_id)
        )
        return self._execute_query(stmt)


class AccountTransactionRepository(BaseRepository[AccountTransaction]):
    """
    Repository for account history entries.

    APPEND-ONLY. Entries are removed only by a reset.
    """

    def __init__(self, session: Session) -> None:
        super().__init__(session, AccountTransaction, "AccountTransactionRepository")

    def append(self, member: str, currency: str, description: str) -> AccountTransaction:
        """Append one history entry."""
        return self._add(AccountTransaction(
            member=member,
            currency=currency,
            description=description,
        ))

    def list_for_member(self, member: str, currency: Optional[str] = None) -> List[AccountTransaction]:
        """List history entries ordered by id."""
        stmt = select(AccountTransaction).where(AccountTransaction.member == member)
        if currency is not None:
            stmt = stmt.where(AccountTransaction.currency == currency)
        stmt = stmt.order_by(AccountTransaction.account_transaction_id)
        return self._execute_query(stmt)

    def list_in_currencies(self, member: str, currencies: Collection[str]) -> List[AccountTransaction]:
        """List history entries in any of the given currencies, oldest first."""
        stmt = (
            select(AccountTransaction)
            .where(AccountTransaction.member == member)
            .where(AccountTransaction.currency.in_(list(currencies)))
            .order_by(AccountTransaction.account_transaction_id)
        )
        return self._execute_query(stmt)

    def delete_for_member(self, member: str, currency: Optional[str] = None) -> int:
        """Delete history entries (all, or one currency)."""
        criteria = [AccountTransaction.member == member]
        if currency is not None:
            criteria.append(AccountTransaction.currency == currency)
        return self._delete_where("delete_account_transactions", *criteria)


class BankTransferRepository(BaseRepository[BankAccountTransaction]):
    """
    Repository for transfers to bank accounts.

    APPEND-ONLY. One row per transfer.
    """

    def __init__(self, session: Session) -> None:
        super().__init__(session, BankAccountTransaction, "BankTransferRepository")

    def append(
        self,
        member: str,
        bank_account_id: int,
        currency: str,
        amount: Decimal,
        description: str,
    ) -> BankAccountTransaction:
        """Record a transfer out."""
        return self._add(BankAccountTransaction(
            member=member,
            bank_account_id=bank_account_id,
            currency=currency,
            amount=amount,
            description=description,
        ))

    def list_for_member(
        self,
        member: str,
        bank_account_id: Optional[int] = None,
    ) -> List[BankAccountTransaction]:
        """List transfers ordered by id."""
        stmt = select(BankAccountTransaction).where(BankAccountTransaction.member == member)
        if bank_account_id is not None:
            stmt = stmt.where(BankAccountTransaction.bank_account_id == bank_account_id)
        stmt = stmt.order_by(BankAccountTransaction.bank_account_transaction_id)
        return self._execute_query(stmt)

    def list_in_currencies(self, member: str, currencies: Collection[str]) -> List[BankAccountTransaction]:
        """List transfers in any of the given currencies, oldest first."""
        stmt = (
            select(BankAccountTransaction)
            .where(BankAccountTransaction.member == member)
            .where(BankAccountTransaction.currency.in_(list(currencies)))
            .order_by(BankAccountTransaction.bank_account_transaction_id)
        )
        return self._execute_query(stmt)

    def delete_for_member(self, member: str, currency: Optional[str] = None) -> int:
        """Delete transfers (all, or one currency)."""
        criteria = [BankAccountTransaction.member == member]
        if currency is not None:
            criteria.append(BankAccountTransaction.currency == currency)
        return self._delete_where("delete_bank_transfers", *criteria)
