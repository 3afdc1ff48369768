"""
Trading Engine - Reset Service.

============================================================
PURPOSE
============================================================
Explicit reset of a member's ledger state.

Deletes trade records, portfolios, balances, audit entries,
bank-transfer records and watch list entries, for every currency
or for one active currency. Bank accounts belong to an external directory and are
left alone.

Trade records go first so no row still points at a portfolio
being deleted.

============================================================
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from storage.repositories import (
    AccountTransactionRepository,
    BalanceRepository,
    BankTransferRepository,
    PortfolioRepository,
    TradeRecordRepository,
    WatchListRepository,
)
from trading_engine.authorization import AuthorizationContext, resolve_target_member
from trading_engine.schemas import ResetRequest
from trading_engine.service_base import BaseLedgerService
from trading_engine.types import LedgerResult, ResetSummary

logger = logging.getLogger(__name__)


class ResetService(BaseLedgerService):
    """Wipes a member's ledger state."""

    def reset(
        self,
        ctx: AuthorizationContext,
        currency: Optional[str] = None,
        member: Optional[str] = None,
    ) -> LedgerResult[ResetSummary]:
        """
        Reset a member's ledger.

        Args:
            ctx: Caller
            currency: Only this (active) currency; None = everything
            member: Member to reset; anyone but the caller needs admin rights
        """
        return self._execute(
            "reset", ctx, self._reset, ResetRequest,
            currency=currency, member=member,
        )

    def _reset(self, session: Session, ctx: AuthorizationContext, request: ResetRequest) -> LedgerResult:
        target = resolve_target_member(ctx, request.member)
        if request.currency is not None:
            self._require_active(self._active_currencies(session), request.currency)

        summary = ResetSummary(
            member=target,
            currency=request.currency,
            trade_records=TradeRecordRepository(session).delete_for_member(target, request.currency),
            portfolios=PortfolioRepository(session).delete_for_member(target, request.currency),
            balances=BalanceRepository(session).delete_for_member(target, request.currency),
            account_transactions=AccountTransactionRepository(session).delete_for_member(
                target, request.currency
            ),
            bank_transfers=BankTransferRepository(session).delete_for_member(target, request.currency),
            watch_list_entries=WatchListRepository(session).delete_for_member(target, request.currency),
        )

        if summary.total == 0:
            return LedgerResult.no_change(summary, message="Nothing to reset")

        scope = request.currency or "all currencies"
        logger.warning(
            f"Ledger of {target} reset by {ctx.member} ({scope}): "
            f"{summary.trade_records} trades, {summary.portfolios} portfolios, "
            f"{summary.balances} balances, {summary.account_transactions} audit entries, "
            f"{summary.bank_transfers} bank transfers, {summary.watch_list_entries} watch list entries"
        )
        return LedgerResult.success(summary)
