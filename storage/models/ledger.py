"""
Ledger Domain ORM Models.

============================================================
PURPOSE
============================================================
Models for the state owned by the trading ledger: cash
balances, the trade blotter and portfolios.

============================================================
DATA LIFECYCLE ROLE
============================================================
- AccountBalance: MUTABLE, serialized per (member, currency)
- TradeRecord: APPEND-ONLY, only portfolio_id is ever updated
- Portfolio: MUTABLE aggregates, recomputed on link/unlink
- WatchListEntry: soft-deleted on removal
- Deleted only by an explicit reset

============================================================
MODELS
============================================================
- AccountBalance: Cash per member and currency
- TradeRecord: Executed buy/sell rows
- Portfolio: Named, single-currency grouping of trade records
- WatchListEntry: Instruments a member follows

============================================================
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from core.clock import now_utc
from storage.models.base import Base, IdType, LastUpdatedMixin, Money, ZERO


class AccountBalance(Base, LastUpdatedMixin):
    """
    Cash balance of one member in one currency.

    ============================================================
    FIELDS
    ============================================================
    - trading_amount: cash deployed to open positions' cost basis
    - non_trading_amount: free cash, the fund for buys/transfers

    ============================================================
    CONCURRENCY
    ============================================================
    Read with SELECT ... FOR UPDATE and versioned through
    version_id_col, so a racing read-modify-write fails with
    StaleDataError instead of losing an update.

    ============================================================
    """

    __tablename__ = "account_balances"

    member: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
        comment="Owning member"
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        primary_key=True,
        comment="ISO 4217 alpha code"
    )

    trading_amount: Mapped[Decimal] = mapped_column(
        Money(),
        nullable=False,
        default=ZERO,
        comment="Cumulative cost basis of open positions"
    )

    non_trading_amount: Mapped[Decimal] = mapped_column(
        Money(),
        nullable=False,
        default=ZERO,
        comment="Free cash"
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Optimistic lock counter"
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("non_trading_amount >= 0", name="ck_balance_non_trading_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"<AccountBalance {self.member} {self.currency} "
            f"trading={self.trading_amount} non_trading={self.non_trading_amount}>"
        )


class Portfolio(Base, LastUpdatedMixin):
    """
    Reporting group of trade records.

    Trade records point at their portfolio; the portfolio never
    holds a collection of trades.
    Invariant: profit_loss == current_amount - invested_amount.
    """

    __tablename__ = "portfolios"

    portfolio_id: Mapped[int] = mapped_column(
        IdType,
        primary_key=True,
        autoincrement=True,
    )

    member: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Owning member"
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
        comment="Fixed at creation"
    )

    invested_amount: Mapped[Decimal] = mapped_column(
        Money(),
        nullable=False,
        default=ZERO,
        comment="Sum of BUY total cost minus sum of SELL total cost"
    )

    current_amount: Mapped[Decimal] = mapped_column(
        Money(),
        nullable=False,
        default=ZERO,
        comment="Live value of outstanding positions"
    )

    profit_loss: Mapped[Decimal] = mapped_column(
        Money(),
        nullable=False,
        default=ZERO,
    )

    __table_args__ = (
        Index("ix_portfolios_member_currency", "member", "currency"),
    )

    def __repr__(self) -> str:
        return f"<Portfolio {self.portfolio_id} {self.member} {self.name!r} {self.currency}>"


class TradeRecord(Base, LastUpdatedMixin):
    """
    Executed trade (the blotter).

    ============================================================
    IMMUTABILITY
    ============================================================
    Rows are appended by trade execution. The only column that
    changes afterwards is portfolio_id (link/unlink), guarded by
    the version counter.

    ============================================================
    SIGN CONVENTION
    ============================================================
    BUY total_cost = notional + fee
    SELL total_cost = notional - fee

    ============================================================
    """

    __tablename__ = "trade_records"

    trade_id: Mapped[int] = mapped_column(
        IdType,
        primary_key=True,
        autoincrement=True,
    )

    member: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    symbol: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
    )

    symbol_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    trade_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    side: Mapped[str] = mapped_column(
        String(4),
        nullable=False,
        comment="BUY or SELL"
    )

    quantity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
    )

    unit_price: Mapped[Decimal] = mapped_column(
        Money(),
        nullable=False,
    )

    total_cost: Mapped[Decimal] = mapped_column(
        Money(),
        nullable=False,
    )

    portfolio_id: Mapped[Optional[int]] = mapped_column(
        IdType,
        ForeignKey("portfolios.portfolio_id", ondelete="SET NULL"),
        nullable=True,
        comment="Weak back-reference, null when unlinked"
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_trade_quantity_positive"),
        CheckConstraint("side IN ('BUY', 'SELL')", name="ck_trade_side"),
        Index("ix_trade_records_member_symbol", "member", "symbol"),
        Index("ix_trade_records_member_portfolio", "member", "portfolio_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<TradeRecord {self.trade_id} {self.member} {self.side} "
            f"{self.quantity} {self.symbol} @ {self.unit_price}>"
        )


class WatchListEntry(Base):
    """
    Instrument a member follows.

    Removal is soft: removed_at is set and the row stays. At most
    one active (not removed) row per member and symbol.
    """

    __tablename__ = "watch_list"

    watch_list_id: Mapped[int] = mapped_column(
        IdType,
        primary_key=True,
        autoincrement=True,
    )

    member: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    symbol: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="Catalog spelling"
    )

    symbol_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
    )

    added_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=now_utc,
    )

    removed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        Index(
            "ux_watch_list_active_symbol", "member", "symbol",
            unique=True,
            sqlite_where=text("removed_at IS NULL"),
            postgresql_where=text("removed_at IS NULL"),
        ),
        Index("ix_watch_list_member_currency", "member", "currency"),
    )

    def __repr__(self) -> str:
        return f"<WatchListEntry {self.watch_list_id} {self.member} {self.symbol}>"
