"""
Trading Engine - Balance Ledger.

============================================================
RESPONSIBILITY
============================================================
Applies every mutation of a (member, currency) cash balance.

- Trade settlement (buy and sell)
- Deposits, creating the row on first use
- Withdrawals to a bank account

============================================================
RULES
============================================================
- Balances are loaded FOR UPDATE before any change
- non_trading_amount never goes below zero
- Deposit/withdrawal amounts and resulting balances stay
  strictly below the configured ceiling (sale proceeds
  transferred out by a sell are exempt)
- A sell debits trading_amount by the sale proceeds, so
  trading_amount can drop below zero

All checks run before the row is touched. Violations raise
LedgerError and the enclosing transaction rolls back.

============================================================
"""

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from core.clock import now_utc
from storage.models import AccountBalance
from storage.repositories import BalanceRepository
from trading_engine.config import BalanceConfig
from trading_engine.errors import LedgerError
from trading_engine.fees import to_money

logger = logging.getLogger(__name__)


class BalanceLedger:
    """Cash balance mutations."""

    def __init__(self, config: Optional[BalanceConfig] = None):
        self.config = config or BalanceConfig()

    def _money(self, value: Decimal) -> Decimal:
        return to_money(value, self.config.money_scale)

    # =========================================================
    # LOADING
    # =========================================================

    def load_for_update(self, session: Session, member: str, currency: str) -> AccountBalance:
        """
        Lock the balance of a member in a currency.

        Raises:
            LedgerError: NF_BALANCE if the member never funded the currency
        """
        balance = BalanceRepository(session).get_for_update(member, currency)
        if balance is None:
            raise LedgerError(
                "NF_BALANCE",
                f"{member} has no {currency} balance",
                {"member": member, "currency": currency},
            )
        return balance

    # =========================================================
    # TRADE SETTLEMENT
    # =========================================================

    def settle_buy(self, session: Session, balance: AccountBalance, total_cost: Decimal) -> AccountBalance:
        """
        Move a buy's total cost from free cash to trading cash.

        Raises:
            LedgerError: NA_INSUFFICIENT_FUNDS, no partial fills
        """
        total_cost = self._money(total_cost)
        if balance.non_trading_amount - total_cost < 0:
            raise LedgerError(
                "NA_INSUFFICIENT_FUNDS",
                f"Cost {total_cost} exceeds free cash {balance.non_trading_amount}",
                {"required": str(total_cost), "available": str(balance.non_trading_amount)},
            )
        balance.non_trading_amount = self._money(balance.non_trading_amount - total_cost)
        balance.trading_amount = self._money(balance.trading_amount + total_cost)
        return self._save(session, balance, f"buy settled -{total_cost}")

    def settle_sell(self, session: Session, balance: AccountBalance, proceeds: Decimal) -> AccountBalance:
        """Move a sell's proceeds from trading cash to free cash."""
        proceeds = self._money(proceeds)
        balance.trading_amount = self._money(balance.trading_amount - proceeds)
        balance.non_trading_amount = self._money(balance.non_trading_amount + proceeds)
        return self._save(session, balance, f"sell settled +{proceeds}")

    # =========================================================
    # DEPOSIT / WITHDRAWAL
    # =========================================================

    def _check_amount(self, amount: Decimal) -> Decimal:
        amount = self._money(amount)
        if amount <= 0 or amount >= self.config.balance_ceiling:
            raise LedgerError(
                "VAL_INVALID_REQUEST",
                f"Amount must be positive and below {self.config.balance_ceiling}",
                {"amount": str(amount)},
            )
        return amount

    def deposit(self, session: Session, member: str, currency: str, amount: Decimal) -> AccountBalance:
        """
        Add free cash, creating the balance row on first use.

        Raises:
            LedgerError: VAL_INVALID_REQUEST for a bad amount,
                NA_BALANCE_CEILING if the result would reach the ceiling
        """
        amount = self._check_amount(amount)
        repository = BalanceRepository(session)
        balance = repository.get_for_update(member, currency)

        current = balance.non_trading_amount if balance is not None else Decimal("0")
        if current + amount >= self.config.balance_ceiling:
            raise LedgerError(
                "NA_BALANCE_CEILING",
                f"Balance would reach the ceiling {self.config.balance_ceiling}",
                {"current": str(current), "amount": str(amount)},
            )

        if balance is None:
            balance = repository.create(member, currency, non_trading_amount=amount)
            logger.info(f"Balance created for {member}/{currency} with deposit {amount}")
            return balance

        balance.non_trading_amount = self._money(balance.non_trading_amount + amount)
        return self._save(session, balance, f"deposit +{amount}")

    def withdraw(
        self,
        session: Session,
        balance: AccountBalance,
        amount: Decimal,
        enforce_ceiling: bool = True,
    ) -> AccountBalance:
        """
        Remove free cash (transfer to bank).

        Args:
            session: Operation session
            balance: Locked balance
            amount: Amount to move out
            enforce_ceiling: Apply the request amount limits; sale
                proceeds moved out by a sell skip them

        Raises:
            LedgerError: VAL_INVALID_REQUEST for a bad amount,
                NA_INSUFFICIENT_FUNDS if free cash does not cover it
        """
        amount = self._check_amount(amount) if enforce_ceiling else self._money(amount)
        if balance.non_trading_amount - amount < 0:
            raise LedgerError(
                "NA_INSUFFICIENT_FUNDS",
                f"Transfer {amount} exceeds free cash {balance.non_trading_amount}",
                {"required": str(amount), "available": str(balance.non_trading_amount)},
            )
        balance.non_trading_amount = self._money(balance.non_trading_amount - amount)
        return self._save(session, balance, f"withdrawal -{amount}")

    def _save(self, session: Session, balance: AccountBalance, action: str) -> AccountBalance:
        balance.last_updated = now_utc()
        BalanceRepository(session).save(balance)
        logger.info(
            f"Balance updated {balance.member}/{balance.currency} ({action}): "
            f"trading={balance.trading_amount} non_trading={balance.non_trading_amount}"
        )
        return balance
