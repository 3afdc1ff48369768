"""
Trading Engine - Funds Service.

============================================================
PURPOSE
============================================================
Cash in and out of the ledger, and balance reads.

- deposit: active currency only; creates the balance on first use
- transfer_to_bank: owned, active, same-currency bank account;
  one bank-transfer record per transfer
- history reads: account transactions and bank transfers, in
  active currencies (or one active currency), oldest first

============================================================
"""

import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from storage.repositories import AccountTransactionRepository, BalanceRepository, BankTransferRepository
from trading_engine.authorization import AuthorizationContext
from trading_engine.fees import to_money
from trading_engine.schemas import CurrencyFilter, DepositRequest, TransferRequest
from trading_engine.service_base import BaseLedgerService
from trading_engine.trading_service import check_bank_account
from trading_engine.types import (
    AccountTransactionView,
    BalanceSnapshot,
    BankTransferView,
    LedgerResult,
    TransferConfirmation,
)

logger = logging.getLogger(__name__)


class FundsService(BaseLedgerService):
    """Deposits, transfers to bank accounts, balance and history reads."""

    def deposit(
        self,
        ctx: AuthorizationContext,
        currency: str,
        amount: Decimal,
    ) -> LedgerResult[BalanceSnapshot]:
        """Add free cash in an active currency."""
        return self._execute(
            "deposit", ctx, self._deposit, DepositRequest,
            currency=currency, amount=amount,
        )

    def transfer_to_bank(
        self,
        ctx: AuthorizationContext,
        currency: str,
        bank_account_id: int,
        amount: Decimal,
    ) -> LedgerResult[TransferConfirmation]:
        """Move free cash out to one of the caller's bank accounts."""
        return self._execute(
            "transfer_to_bank", ctx, self._transfer, TransferRequest,
            currency=currency, bank_account_id=bank_account_id, amount=amount,
        )

    def list_balances(
        self,
        ctx: AuthorizationContext,
        currency: Optional[str] = None,
    ) -> LedgerResult[List[BalanceSnapshot]]:
        """Balances in active currencies (or one active currency), by currency."""
        return self._execute(
            "list_balances", ctx, self._list, CurrencyFilter, read_only=True,
            currency=currency,
        )

    def list_account_transactions(
        self,
        ctx: AuthorizationContext,
        currency: Optional[str] = None,
    ) -> LedgerResult[List[AccountTransactionView]]:
        """Account history in active currencies (or one active currency)."""
        return self._execute(
            "list_account_transactions", ctx, self._list_account_transactions, CurrencyFilter,
            read_only=True, currency=currency,
        )

    def list_bank_transfers(
        self,
        ctx: AuthorizationContext,
        currency: Optional[str] = None,
    ) -> LedgerResult[List[BankTransferView]]:
        """Transfers to bank accounts in active currencies (or one active currency)."""
        return self._execute(
            "list_bank_transfers", ctx, self._list_bank_transfers, CurrencyFilter,
            read_only=True, currency=currency,
        )

    # =========================================================
    # HANDLERS
    # =========================================================

    def _deposit(self, session: Session, ctx: AuthorizationContext, request: DepositRequest) -> LedgerResult:
        self._require_active(self._active_currencies(session), request.currency)
        balance = self._deps.balance_ledger.deposit(session, ctx.member, request.currency, request.amount)
        self._audit(session, ctx.member, request.currency, f"Deposited {request.amount}")
        return LedgerResult.success(BalanceSnapshot.from_model(balance))

    def _transfer(self, session: Session, ctx: AuthorizationContext, request: TransferRequest) -> LedgerResult:
        check_bank_account(
            self._deps.bank_accounts.lookup(session, request.bank_account_id),
            request.bank_account_id,
            ctx.member,
            request.currency,
        )

        ledger = self._deps.balance_ledger
        balance = ledger.load_for_update(session, ctx.member, request.currency)
        ledger.withdraw(session, balance, request.amount)

        amount = to_money(request.amount, self._config.balance.money_scale)
        BankTransferRepository(session).append(
            member=ctx.member,
            bank_account_id=request.bank_account_id,
            currency=request.currency,
            amount=amount,
            description=f"Transfer to bank account {request.bank_account_id}",
        )
        logger.info(
            f"Transferred {amount} {request.currency} of {ctx.member} "
            f"to bank account {request.bank_account_id}"
        )
        self._audit(
            session, ctx.member, request.currency,
            f"Transferred {amount} to bank account {request.bank_account_id}",
        )
        return LedgerResult.success(TransferConfirmation(
            bank_account_id=request.bank_account_id,
            currency=request.currency,
            amount=amount,
            balance=BalanceSnapshot.from_model(balance),
        ))

    def _list(self, session: Session, ctx: AuthorizationContext, request: CurrencyFilter) -> LedgerResult:
        scope = self._currency_scope(session, request.currency)
        balances = BalanceRepository(session).list_for_member(ctx.member, scope)
        return LedgerResult.success([BalanceSnapshot.from_model(balance) for balance in balances])

    def _list_account_transactions(
        self, session: Session, ctx: AuthorizationContext, request: CurrencyFilter,
    ) -> LedgerResult:
        scope = self._currency_scope(session, request.currency)
        entries = AccountTransactionRepository(session).list_in_currencies(ctx.member, scope)
        return LedgerResult.success([AccountTransactionView.from_model(entry) for entry in entries])

    def _list_bank_transfers(
        self, session: Session, ctx: AuthorizationContext, request: CurrencyFilter,
    ) -> LedgerResult:
        scope = self._currency_scope(session, request.currency)
        transfers = BankTransferRepository(session).list_in_currencies(ctx.member, scope)
        return LedgerResult.success([BankTransferView.from_model(transfer) for transfer in transfers])
