"""
Ledger Repositories.

============================================================
PURPOSE
============================================================
Repositories for the state owned by the ledger engine: cash
balances, the trade blotter and portfolios.

============================================================
DATA LIFECYCLE
============================================================
- Balances: MUTABLE, always loaded FOR UPDATE before a write
- Trade records: APPEND-ONLY, portfolio_id is the one mutable field
- Portfolios: MUTABLE aggregates
- Watch list: soft-deleted entries
- Everything here is deleted only by an explicit reset

============================================================
REPOSITORIES
============================================================
- BalanceRepository: Balance rows per (member, currency)
- TradeRecordRepository: The trade blotter
- PortfolioRepository: Portfolio headers and aggregates
- WatchListRepository: Instruments a member follows

============================================================
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Collection, Iterable, List, Optional

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session

from storage.models.base import ZERO
from storage.models.ledger import AccountBalance, Portfolio, TradeRecord, WatchListEntry
from storage.repositories.base import BaseRepository


class BalanceRepository(BaseRepository[AccountBalance]):
    """
    Repository for account balances.

    ============================================================
    LOCKING
    ============================================================
    get_for_update() issues SELECT ... FOR UPDATE and refreshes
    the identity map, so the returned row reflects the latest
    committed state. The version counter on the row catches any
    racing write on dialects without row locks.

    ============================================================
    """

    def __init__(self, session: Session) -> None:
        super().__init__(session, AccountBalance, "BalanceRepository")

    def get(self, member: str, currency: str) -> Optional[AccountBalance]:
        """Get balance without locking (read paths)."""
        return self._get_by_id((member, currency))

    def get_for_update(self, member: str, currency: str) -> Optional[AccountBalance]:
        """
        Get balance with a row lock for a read-modify-write cycle.

        Args:
            member: Owning member
            currency: ISO currency code

        Returns:
            The locked balance, or None if the member has none
        """
        stmt = (
            select(AccountBalance)
            .where(and_(
                AccountBalance.member == member,
                AccountBalance.currency == currency,
            ))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self._execute_scalar(stmt)

    def create(
        self,
        member: str,
        currency: str,
        trading_amount: Decimal = ZERO,
        non_trading_amount: Decimal = ZERO,
    ) -> AccountBalance:
        """Create the balance row for a currency the member funds for the first time."""
        entity = AccountBalance(
            member=member,
            currency=currency,
            trading_amount=trading_amount,
            non_trading_amount=non_trading_amount,
        )
        return self._add(entity, {"field": "member,currency", "value": f"{member},{currency}"})

    def save(self, balance: AccountBalance) -> AccountBalance:
        """Flush pending changes to a loaded balance."""
        self._flush("save_balance")
        return balance

    def list_for_member(
        self,
        member: str,
        currencies: Optional[Collection[str]] = None,
    ) -> List[AccountBalance]:
        """
        List a member's balances ordered by currency.

        Args:
            member: Owning member
            currencies: Restrict to these currency codes (None = all)
        """
        stmt = select(AccountBalance).where(AccountBalance.member == member)
        if currencies is not None:
            stmt = stmt.where(AccountBalance.currency.in_(list(currencies)))
        stmt = stmt.order_by(AccountBalance.currency)
        return self._execute_query(stmt)

    def delete_for_member(self, member: str, currency: Optional[str] = None) -> int:
        """Delete a member's balances (all, or one currency)."""
        criteria = [AccountBalance.member == member]
        if currency is not None:
            criteria.append(AccountBalance.currency == currency)
        return self._delete_where("delete_balances", *criteria)


class TradeRecordRepository(BaseRepository[TradeRecord]):
    """
    Repository for the trade blotter.

    ============================================================
    IMMUTABILITY
    ============================================================
    Trade records are APPEND-ONLY. The only update is setting or
    clearing portfolio_id, which bumps the row version.

    ============================================================
    """

    def __init__(self, session: Session) -> None:
        super().__init__(session, TradeRecord, "TradeRecordRepository")

    # =========================================================
    # WRITE OPERATIONS
    # =========================================================

    def append(
        self,
        member: str,
        symbol: str,
        symbol_name: str,
        trade_date: date,
        side: str,
        quantity: int,
        currency: str,
        unit_price: Decimal,
        total_cost: Decimal,
    ) -> TradeRecord:
        """
        Append an executed trade.

        Args:
            member: Owning member
            symbol: Instrument symbol as known to the quote catalog
            symbol_name: Display name at execution time
            trade_date: Execution date (UTC)
            side: BUY or SELL
            quantity: Positive number of shares
            currency: Settlement currency
            unit_price: Execution price
            total_cost: Signed total cost (see TradeRecord)

        Returns:
            Created TradeRecord, unlinked
        """
        entity = TradeRecord(
            member=member,
            symbol=symbol,
            symbol_name=symbol_name,
            trade_date=trade_date,
            side=side,
            quantity=quantity,
            currency=currency,
            unit_price=unit_price,
            total_cost=total_cost,
            portfolio_id=None,
        )
        return self._add(entity)

    def set_portfolio(
        self,
        records: Iterable[TradeRecord],
        portfolio_id: Optional[int],
    ) -> int:
        """
        Set (or clear, with None) the portfolio of loaded records.

        Returns:
            Number of records updated
        """
        count = 0
        for record in records:
            record.portfolio_id = portfolio_id
            count += 1
        if count:
            self._flush("set_portfolio")
        return count

    def delete_for_member(self, member: str, currency: Optional[str] = None) -> int:
        """Delete a member's trade records (all, or one currency)."""
        criteria = [TradeRecord.member == member]
        if currency is not None:
            criteria.append(TradeRecord.currency == currency)
        return self._delete_where("delete_trade_records", *criteria)

    # =========================================================
    # READ OPERATIONS
    # =========================================================

    def list_for_member(
        self,
        member: str,
        currencies: Optional[Collection[str]] = None,
    ) -> List[TradeRecord]:
        """List a member's trades ordered by id, optionally currency-scoped."""
        stmt = select(TradeRecord).where(TradeRecord.member == member)
        if currencies is not None:
            stmt = stmt.where(TradeRecord.currency.in_(list(currencies)))
        stmt = stmt.order_by(TradeRecord.trade_id)
        return self._execute_query(stmt)

    def list_for_symbol(self, member: str, symbol: str) -> List[TradeRecord]:
        """
        List every trade of a member in one symbol.

        Symbol match is case-insensitive. Portfolio linkage and
        currency status are ignored; this is the set outstanding
        quantity is computed over.
        """
        stmt = (
            select(TradeRecord)
            .where(and_(
                TradeRecord.member == member,
                func.upper(TradeRecord.symbol) == symbol.upper(),
            ))
            .order_by(TradeRecord.trade_id)
        )
        return self._execute_query(stmt)

    def list_by_portfolio(self, member: str, portfolio_id: int) -> List[TradeRecord]:
        """List trades linked to a portfolio, restricted to its owner."""
        stmt = (
            select(TradeRecord)
            .where(and_(
                TradeRecord.member == member,
                TradeRecord.portfolio_id == portfolio_id,
            ))
            .order_by(TradeRecord.trade_id)
        )
        return self._execute_query(stmt)

    def get_owned(
        self,
        member: str,
        trade_ids: Collection[int],
        for_update: bool = False,
    ) -> List[TradeRecord]:
        """
        Resolve trade ids owned by a member.

        Ids that do not exist or belong to someone else are silently
        absent from the result.

        Args:
            member: Caller
            trade_ids: Requested ids
            for_update: Lock the rows for a portfolio change
        """
        if not trade_ids:
            return []
        stmt = (
            select(TradeRecord)
            .where(and_(
                TradeRecord.member == member,
                TradeRecord.trade_id.in_(list(trade_ids)),
            ))
            .order_by(TradeRecord.trade_id)
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self._execute_query(stmt)


class PortfolioRepository(BaseRepository[Portfolio]):
    """
    Repository for portfolios.

    A portfolio is a header row with aggregate columns. Membership
    lives on TradeRecord.portfolio_id.
    """

    def __init__(self, session: Session) -> None:
        super().__init__(session, Portfolio, "PortfolioRepository")

    def create(self, member: str, name: str, currency: str) -> Portfolio:
        """Create an empty portfolio."""
        entity = Portfolio(
            member=member,
            name=name,
            currency=currency,
            invested_amount=ZERO,
            current_amount=ZERO,
            profit_loss=ZERO,
        )
        return self._add(entity)

    def get(self, portfolio_id: int) -> Optional[Portfolio]:
        """Get portfolio by ID."""
        return self._get_by_id(portfolio_id)

    def get_for_update(self, portfolio_id: int) -> Optional[Portfolio]:
        """Get portfolio with a row lock ahead of a recalculation."""
        stmt = (
            select(Portfolio)
            .where(Portfolio.portfolio_id == portfolio_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self._execute_scalar(stmt)

    def save(self, portfolio: Portfolio) -> Portfolio:
        """Flush pending changes to a loaded portfolio."""
        self._flush("save_portfolio")
        return portfolio

    def list_for_member(
        self,
        member: str,
        currencies: Optional[Collection[str]] = None,
    ) -> List[Portfolio]:
        """List a member's portfolios ordered by id."""
        stmt = select(Portfolio).where(Portfolio.member == member)
        if currencies is not None:
            stmt = stmt.where(Portfolio.currency.in_(list(currencies)))
        stmt = stmt.order_by(Portfolio.portfolio_id)
        return self._execute_query(stmt)

    def delete_for_member(self, member: str, currency: Optional[str] = None) -> int:
        """Delete a member's portfolios (all, or one currency)."""
        criteria = [Portfolio.member == member]
        if currency is not None:
            criteria.append(Portfolio.currency == currency)
        return self._delete_where("delete_portfolios", *criteria)


class WatchListRepository(BaseRepository[WatchListEntry]):
    """
    Repository for watch list entries.

    Only active rows (removed_at IS NULL) are visible through the
    list methods; removal stamps removed_at.
    """

    def __init__(self, session: Session) -> None:
        super().__init__(session, WatchListEntry, "WatchListRepository")

    def add(self, member: str, symbol: str, symbol_name: str, currency: str) -> WatchListEntry:
        """Start following an instrument."""
        entity = WatchListEntry(
            member=member,
            symbol=symbol,
            symbol_name=symbol_name,
            currency=currency,
        )
        return self._add(entity, {"field": "member,symbol", "value": f"{member},{symbol}"})

    def list_active(
        self,
        member: str,
        currencies: Optional[Collection[str]] = None,
    ) -> List[WatchListEntry]:
        """List a member's active entries ordered by symbol."""
        stmt = select(WatchListEntry).where(and_(
            WatchListEntry.member == member,
            WatchListEntry.removed_at.is_(None),
        ))
        if currencies is not None:
            stmt = stmt.where(WatchListEntry.currency.in_(list(currencies)))
        stmt = stmt.order_by(WatchListEntry.symbol)
        return self._execute_query(stmt)

    def mark_removed(self, entries: Iterable[WatchListEntry], removed_at: datetime) -> int:
        """Soft-delete loaded entries."""
        count = 0
        for entry in entries:
            entry.removed_at = removed_at
            count += 1
        if count:
            self._flush("remove_watch_list_entries")
        return count

    def delete_for_member(self, member: str, currency: Optional[str] = None) -> int:
        """Delete a member's entries, removed ones included (all, or one currency)."""
        criteria = [WatchListEntry.member == member]
        if currency is not None:
            criteria.append(WatchListEntry.currency == currency)
        return self._delete_where("delete_watch_list", *criteria)
