"""
Trading Engine - Portfolio Aggregator.

============================================================
RESPONSIBILITY
============================================================
Recomputes a portfolio's aggregates from the trade records
currently linked to it.

- invested = sum(BUY total cost) - sum(SELL total cost)
- current = value of outstanding positions of the linked set
- profit/loss = current - invested

Runs after every successful link/unlink, never after a trade.

============================================================
"""

import logging
from decimal import Decimal
from typing import Mapping

from sqlalchemy.orm import Session

from core.clock import now_utc
from storage.models import Portfolio
from storage.repositories import PortfolioRepository, TradeRecordRepository
from trading_engine.fees import to_money
from trading_engine.positions import PositionCalculator, net_invested
from trading_engine.types import Quote

logger = logging.getLogger(__name__)


class PortfolioAggregator:
    """Keeps portfolio aggregate columns consistent with their linked trades."""

    def __init__(self, calculator: PositionCalculator, scale: int = 4):
        self._calculator = calculator
        self._scale = scale

    def recalculate(
        self,
        session: Session,
        portfolio: Portfolio,
        quotes: Mapping[str, Quote],
    ) -> Portfolio:
        """
        Recompute and persist aggregates of a loaded portfolio.

        Args:
            session: Session of the running operation
            portfolio: Portfolio row (locked by the caller)
            quotes: Upper-cased symbol to live quote

        Returns:
            The updated portfolio
        """
        linked = TradeRecordRepository(session).list_by_portfolio(
            portfolio.member, portfolio.portfolio_id
        )

        invested = to_money(net_invested(linked), self._scale)
        positions = self._calculator.derive(linked, quotes)
        current = to_money(sum((p.current_amount for p in positions), Decimal("0")), self._scale)

        portfolio.invested_amount = invested
        portfolio.current_amount = current
        portfolio.profit_loss = current - invested
        portfolio.last_updated = now_utc()
        PortfolioRepository(session).save(portfolio)

        logger.info(
            f"Portfolio {portfolio.portfolio_id} recalculated: "
            f"{len(linked)} trades, invested={invested} current={current} "
            f"profit_loss={portfolio.profit_loss}"
        )
        return portfolio
