"""
Trading Engine - Portfolio Service.

============================================================
PURPOSE
============================================================
Portfolio creation, linking trade records into portfolios and
unlinking them, and portfolio reads.

============================================================
LINK WORKFLOW
============================================================
1. Empty id list -> NO_CHANGE
2. Resolve the caller's records (NF_TRADE_RECORD if none)
3. All records in one currency (NA_CURRENCY_MISMATCH)
4. Target:
   - new: currency active (NF_CURRENCY) and equal to the
     records' currency (NA_CURRENCY_MISMATCH)
   - existing: exists (NF_PORTFOLIO), owned (NA_OWNERSHIP),
     same currency (NA_CURRENCY_MISMATCH)
5. Link only records not already in the target
   (none -> NO_CHANGE)
6. Recalculate the target, and any portfolio a record left

============================================================
LOCK ORDER
============================================================
Link and unlink lock portfolio rows (ascending id) before
trade rows. A record that moved to another portfolio between
the two steps restarts the operation.

============================================================
"""

import logging
from typing import Collection, Dict, Iterable, List, Optional, Set, Union

from sqlalchemy.orm import Session

from storage.models import Portfolio
from storage.repositories import (
    ConcurrentModificationError,
    PortfolioRepository,
    TradeRecordRepository,
)
from trading_engine.authorization import AuthorizationContext
from trading_engine.errors import LedgerError
from trading_engine.schemas import (
    CreatePortfolioRequest,
    CurrencyFilter,
    ExistingPortfolioTarget,
    LinkRequest,
    NewPortfolioTarget,
    PortfolioQuery,
    PortfolioTarget,
    UnlinkRequest,
)
from trading_engine.service_base import BaseLedgerService
from trading_engine.types import (
    LedgerResult,
    LinkOutcome,
    PortfolioDetail,
    PortfolioView,
    TradeRecordView,
)

logger = logging.getLogger(__name__)


def _check_owned(portfolio: Optional[Portfolio], portfolio_id: int, member: str) -> Portfolio:
    if portfolio is None:
        raise LedgerError(
            "NF_PORTFOLIO",
            f"Portfolio {portfolio_id} not found",
            {"portfolio_id": portfolio_id},
        )
    if portfolio.member != member:
        raise LedgerError(
            "NA_OWNERSHIP",
            f"Portfolio {portfolio_id} does not belong to {member}",
            {"portfolio_id": portfolio_id},
        )
    return portfolio


def _lock_portfolios(
    portfolios: PortfolioRepository,
    portfolio_ids: Collection[Optional[int]],
) -> Dict[int, Optional[Portfolio]]:
    """Lock portfolios in ascending id order; missing ids map to None."""
    return {
        portfolio_id: portfolios.get_for_update(portfolio_id)
        for portfolio_id in sorted(pid for pid in portfolio_ids if pid is not None)
    }


class PortfolioService(BaseLedgerService):
    """
    Portfolio membership and aggregates.
    """

    # =========================================================
    # PUBLIC OPERATIONS
    # =========================================================

    def create_portfolio(self, ctx: AuthorizationContext, name: str, currency: str) -> LedgerResult[PortfolioView]:
        """Create an empty portfolio in an active currency."""
        return self._execute(
            "create_portfolio", ctx, self._create, CreatePortfolioRequest,
            name=name, currency=currency,
        )

    def link_to_portfolio(
        self,
        ctx: AuthorizationContext,
        trade_ids: Iterable[int],
        target: Union[PortfolioTarget, dict],
    ) -> LedgerResult[LinkOutcome]:
        """
        Link trade records to a portfolio.

        Args:
            ctx: Caller
            trade_ids: Trade record ids
            target: NewPortfolioTarget, ExistingPortfolioTarget or an
                equivalent dict ({"kind": "new", ...})
        """
        return self._execute(
            "link_to_portfolio", ctx, self._link, LinkRequest,
            trade_ids=list(trade_ids), target=target,
        )

    def unlink_from_portfolio(
        self,
        ctx: AuthorizationContext,
        portfolio_id: int,
        trade_ids: Iterable[int],
    ) -> LedgerResult[LinkOutcome]:
        """Unlink trade records currently in a portfolio."""
        return self._execute(
            "unlink_from_portfolio", ctx, self._unlink, UnlinkRequest,
            portfolio_id=portfolio_id, trade_ids=list(trade_ids),
        )

    def portfolio_detail(self, ctx: AuthorizationContext, portfolio_id: int) -> LedgerResult[PortfolioDetail]:
        """A portfolio and its linked trade records."""
        return self._execute(
            "portfolio_detail", ctx, self._detail, PortfolioQuery, read_only=True,
            portfolio_id=portfolio_id,
        )

    def list_portfolios(
        self,
        ctx: AuthorizationContext,
        currency: Optional[str] = None,
    ) -> LedgerResult[List[PortfolioView]]:
        """Portfolios in active currencies (or one active currency), by id."""
        return self._execute(
            "list_portfolios", ctx, self._list, CurrencyFilter, read_only=True,
            currency=currency,
        )

    # =========================================================
    # HANDLERS
    # =========================================================

    def _create(self, session: Session, ctx: AuthorizationContext, request: CreatePortfolioRequest) -> LedgerResult:
        self._require_active(self._active_currencies(session), request.currency)
        portfolio = PortfolioRepository(session).create(ctx.member, request.name, request.currency)
        logger.info(
            f"Portfolio {portfolio.portfolio_id} created for {ctx.member}: "
            f"{request.name!r} {request.currency}"
        )
        return LedgerResult.success(PortfolioView.from_model(portfolio))

    def _link(self, session: Session, ctx: AuthorizationContext, request: LinkRequest) -> LedgerResult:
        if not request.trade_ids:
            return LedgerResult.no_change(message="No trade records given")

        trades = TradeRecordRepository(session)
        portfolios = PortfolioRepository(session)
        target = request.target
        requested = set(request.trade_ids)

        # Portfolio rows before trade rows, as in unlink.
        involved = {record.portfolio_id for record in trades.get_owned(ctx.member, requested)}
        if isinstance(target, ExistingPortfolioTarget):
            involved.add(target.portfolio_id)
        locked = _lock_portfolios(portfolios, involved)

        records = trades.get_owned(ctx.member, requested, for_update=True)
        if not records:
            raise LedgerError(
                "NF_TRADE_RECORD",
                "None of the trade records exist",
                {"trade_ids": list(request.trade_ids)},
            )
        moved = {record.portfolio_id for record in records} - set(locked) - {None}
        if moved:
            raise ConcurrentModificationError(
                repository_name="PortfolioService",
                operation="link",
                original_error=f"trade records moved to portfolios {sorted(moved)} while locking",
            )

        currencies = sorted({record.currency for record in records})
        if len(currencies) > 1:
            raise LedgerError(
                "NA_CURRENCY_MISMATCH",
                f"Trade records span several currencies: {', '.join(currencies)}",
                {"currencies": currencies},
            )
        currency = currencies[0]

        if isinstance(target, NewPortfolioTarget):
            self._require_active(self._active_currencies(session), target.currency)
            if target.currency != currency:
                raise LedgerError(
                    "NA_CURRENCY_MISMATCH",
                    f"Trade records are in {currency}, portfolio would be {target.currency}",
                    {"trade_currency": currency, "portfolio_currency": target.currency},
                )
            portfolio = portfolios.create(ctx.member, target.name, target.currency)
            logger.info(
                f"Portfolio {portfolio.portfolio_id} created for {ctx.member} "
                f"while linking: {target.name!r} {target.currency}"
            )
        else:
            portfolio = _check_owned(locked.get(target.portfolio_id), target.portfolio_id, ctx.member)
            if portfolio.currency != currency:
                raise LedgerError(
                    "NA_CURRENCY_MISMATCH",
                    f"Trade records are in {currency}, portfolio is {portfolio.currency}",
                    {"trade_currency": currency, "portfolio_currency": portfolio.currency},
                )

        to_link = [record for record in records if record.portfolio_id != portfolio.portfolio_id]
        if not to_link:
            return LedgerResult.no_change(
                LinkOutcome(portfolio=PortfolioView.from_model(portfolio), count=0),
                message="Trade records already linked",
            )

        previous: Set[int] = {record.portfolio_id for record in to_link if record.portfolio_id is not None}
        trades.set_portfolio(to_link, portfolio.portfolio_id)

        quotes = self._load_quotes()
        self._deps.aggregator.recalculate(session, portfolio, quotes)
        for portfolio_id in sorted(previous):
            left = locked.get(portfolio_id)
            if left is not None:
                self._deps.aggregator.recalculate(session, left, quotes)

        linked_ids = tuple(record.trade_id for record in to_link)
        logger.info(f"Linked {len(linked_ids)} trades of {ctx.member} to portfolio {portfolio.portfolio_id}")
        return LedgerResult.success(LinkOutcome(
            portfolio=PortfolioView.from_model(portfolio),
            count=len(linked_ids),
            trade_ids=linked_ids,
        ))

    def _unlink(self, session: Session, ctx: AuthorizationContext, request: UnlinkRequest) -> LedgerResult:
        portfolios = PortfolioRepository(session)
        portfolio = _check_owned(
            portfolios.get_for_update(request.portfolio_id), request.portfolio_id, ctx.member
        )
        view = PortfolioView.from_model(portfolio)
        if not request.trade_ids:
            return LedgerResult.no_change(LinkOutcome(portfolio=view, count=0), message="No trade records given")

        trades = TradeRecordRepository(session)
        matched = [
            record
            for record in trades.get_owned(ctx.member, set(request.trade_ids), for_update=True)
            if record.portfolio_id == portfolio.portfolio_id
        ]
        if not matched:
            return LedgerResult.no_change(
                LinkOutcome(portfolio=view, count=0),
                message="Trade records not linked to this portfolio",
            )

        trades.set_portfolio(matched, None)
        self._deps.aggregator.recalculate(session, portfolio, self._load_quotes())

        unlinked_ids = tuple(record.trade_id for record in matched)
        logger.info(f"Unlinked {len(unlinked_ids)} trades of {ctx.member} from portfolio {portfolio.portfolio_id}")
        return LedgerResult.success(LinkOutcome(
            portfolio=PortfolioView.from_model(portfolio),
            count=len(unlinked_ids),
            trade_ids=unlinked_ids,
        ))

    def _detail(self, session: Session, ctx: AuthorizationContext, request: PortfolioQuery) -> LedgerResult:
        portfolio = _check_owned(
            PortfolioRepository(session).get(request.portfolio_id), request.portfolio_id, ctx.member
        )
        linked = TradeRecordRepository(session).list_by_portfolio(ctx.member, portfolio.portfolio_id)
        return LedgerResult.success(PortfolioDetail(
            portfolio=PortfolioView.from_model(portfolio),
            linked_trades=[TradeRecordView.from_model(record) for record in linked],
        ))

    def _list(self, session: Session, ctx: AuthorizationContext, request: CurrencyFilter) -> LedgerResult:
        scope = self._currency_scope(session, request.currency)
        portfolios = PortfolioRepository(session).list_for_member(ctx.member, scope)
        return LedgerResult.success([PortfolioView.from_model(portfolio) for portfolio in portfolios])
