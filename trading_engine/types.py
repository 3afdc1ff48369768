"""
Trading Engine - Types.

============================================================
PURPOSE
============================================================
All type definitions for the ledger engine.

- Enums for trade side, instrument type and result status
- The Quote handed out by the quote catalog
- LedgerResult, the typed outcome of every public operation
- Immutable snapshots returned to callers (never ORM rows)

============================================================
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, Tuple, TypeVar

from trading_engine.errors import ErrorCategory, LedgerError, get_error_info


# ============================================================
# TRADE TYPES
# ============================================================

class TradeSide(Enum):
    """Trade side."""

    BUY = "BUY"
    SELL = "SELL"


class QuoteType(Enum):
    """Instrument type in the quote catalog."""

    EQUITY = "EQUITY"
    """Tradable stock."""

    INDEX = "INDEX"
    """Market index; quoted but never tradable."""

    @classmethod
    def parse(cls, value: str) -> "QuoteType":
        """Parse catalog spellings (equity, EQUITY, Index...)."""
        return cls(str(value).strip().upper())


@dataclass(frozen=True)
class Quote:
    """Ephemeral instrument quote, sourced fresh per operation."""

    symbol: str
    name: str
    quote_type: QuoteType
    currency: str
    price: Decimal

    @property
    def is_tradable(self) -> bool:
        return self.quote_type is QuoteType.EQUITY


# ============================================================
# RESULT TYPES
# ============================================================

class ResultStatus(Enum):
    """Outcome of a public ledger operation."""

    SUCCESS = "SUCCESS"
    """State changed (or data read) as requested."""

    NO_CHANGE = "NO_CHANGE"
    """Well-formed request that changed nothing."""

    FAILED = "FAILED"
    """Rejected; nothing was changed."""


@dataclass(frozen=True)
class ErrorDetail:
    """Typed failure description carried by a FAILED result."""

    code: str
    category: ErrorCategory
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_error(cls, error: LedgerError) -> "ErrorDetail":
        return cls(
            code=error.code,
            category=error.category,
            message=error.message,
            details=dict(error.details),
        )

    @classmethod
    def of(cls, code: str, message: Optional[str] = None, **details: Any) -> "ErrorDetail":
        info = get_error_info(code)
        return cls(
            code=code,
            category=info.category,
            message=message or info.description,
            details=details,
        )


T = TypeVar("T")


@dataclass(frozen=True)
class LedgerResult(Generic[T]):
    """
    Result of a ledger operation.

    This is the OUTPUT of every public operation. Exceptions do
    not cross the service boundary.
    """

    status: ResultStatus
    """Outcome status."""

    value: Optional[T] = None
    """Payload for SUCCESS (and NO_CHANGE where meaningful)."""

    error: Optional[ErrorDetail] = None
    """Failure description for FAILED."""

    message: str = ""
    """Short human-readable summary."""

    @classmethod
    def success(cls, value: T, message: str = "") -> "LedgerResult[T]":
        return cls(status=ResultStatus.SUCCESS, value=value, message=message)

    @classmethod
    def no_change(cls, value: Optional[T] = None, message: str = "No changes") -> "LedgerResult[T]":
        return cls(status=ResultStatus.NO_CHANGE, value=value, message=message)

    @classmethod
    def failed(cls, error: ErrorDetail) -> "LedgerResult[T]":
        return cls(status=ResultStatus.FAILED, error=error, message=error.message)

    @property
    def is_success(self) -> bool:
        return self.status is ResultStatus.SUCCESS

    @property
    def is_no_change(self) -> bool:
        return self.status is ResultStatus.NO_CHANGE

    @property
    def is_failed(self) -> bool:
        return self.status is ResultStatus.FAILED

    @property
    def error_code(self) -> Optional[str]:
        return self.error.code if self.error else None

    @property
    def error_category(self) -> Optional[ErrorCategory]:
        return self.error.category if self.error else None


# ============================================================
# SNAPSHOTS
# ============================================================

@dataclass(frozen=True)
class BalanceSnapshot:
    """Balance of one member in one currency."""

    member: str
    currency: str
    trading_amount: Decimal
    non_trading_amount: Decimal
    last_updated: Optional[datetime] = None

    @classmethod
    def from_model(cls, balance: Any) -> "BalanceSnapshot":
        return cls(
            member=balance.member,
            currency=balance.currency,
            trading_amount=balance.trading_amount,
            non_trading_amount=balance.non_trading_amount,
            last_updated=balance.last_updated,
        )


@dataclass(frozen=True)
class TradeRecordView:
    """Read-only view of a trade record."""

    trade_id: int
    member: str
    symbol: str
    symbol_name: str
    trade_date: date
    side: TradeSide
    quantity: int
    currency: str
    unit_price: Decimal
    total_cost: Decimal
    portfolio_id: Optional[int] = None
    last_updated: Optional[datetime] = None

    @classmethod
    def from_model(cls, record: Any) -> "TradeRecordView":
        return cls(
            trade_id=record.trade_id,
            member=record.member,
            symbol=record.symbol,
            symbol_name=record.symbol_name,
            trade_date=record.trade_date,
            side=TradeSide(record.side),
            quantity=record.quantity,
            currency=record.currency,
            unit_price=record.unit_price,
            total_cost=record.total_cost,
            portfolio_id=record.portfolio_id,
            last_updated=record.last_updated,
        )


@dataclass(frozen=True)
class PortfolioView:
    """Read-only view of a portfolio."""

    portfolio_id: int
    member: str
    name: str
    currency: str
    invested_amount: Decimal
    current_amount: Decimal
    profit_loss: Decimal
    last_updated: Optional[datetime] = None

    @classmethod
    def from_model(cls, portfolio: Any) -> "PortfolioView":
        return cls(
            portfolio_id=portfolio.portfolio_id,
            member=portfolio.member,
            name=portfolio.name,
            currency=portfolio.currency,
            invested_amount=portfolio.invested_amount,
            current_amount=portfolio.current_amount,
            profit_loss=portfolio.profit_loss,
            last_updated=portfolio.last_updated,
        )


@dataclass(frozen=True)
class OutstandingPosition:
    """Derived, not persisted. Only surfaced with quantity > 0."""

    symbol: str
    symbol_name: str
    currency: str
    outstanding_quantity: int
    current_price: Decimal
    current_amount: Decimal


@dataclass(frozen=True)
class CostEstimate:
    """Preview of a trade's cost without mutating anything."""

    side: TradeSide
    symbol: str
    symbol_name: str
    currency: str
    quantity: int
    unit_price: Decimal
    notional: Decimal
    fee: Decimal
    total_cost: Decimal


@dataclass(frozen=True)
class TransferConfirmation:
    """Cash moved out to a bank account."""

    bank_account_id: int
    currency: str
    amount: Decimal
    balance: BalanceSnapshot


@dataclass(frozen=True)
class TradeConfirmation:
    """Executed trade and the balance after settlement."""

    trade: TradeRecordView
    notional: Decimal
    fee: Decimal
    balance: BalanceSnapshot
    bank_transfer: Optional[TransferConfirmation] = None


@dataclass(frozen=True)
class PortfolioDetail:
    """A portfolio with the trade records linked to it."""

    portfolio: PortfolioView
    linked_trades: List[TradeRecordView]


@dataclass(frozen=True)
class AccountTransactionView:
    """Account history entry."""

    member: str
    currency: str
    description: str
    recorded_at: datetime

    @classmethod
    def from_model(cls, entry: Any) -> "AccountTransactionView":
        return cls(
            member=entry.member,
            currency=entry.currency,
            description=entry.description,
            recorded_at=entry.recorded_at,
        )


@dataclass(frozen=True)
class BankTransferView:
    """Past transfer to a bank account."""

    bank_account_id: int
    currency: str
    amount: Decimal
    description: str
    recorded_at: datetime

    @classmethod
    def from_model(cls, transfer: Any) -> "BankTransferView":
        return cls(
            bank_account_id=transfer.bank_account_id,
            currency=transfer.currency,
            amount=transfer.amount,
            description=transfer.description,
            recorded_at=transfer.recorded_at,
        )


@dataclass(frozen=True)
class WatchListItem:
    """
    Followed instrument with its live price.

    price is None when the catalog no longer lists the symbol.
    """

    symbol: str
    symbol_name: str
    currency: str
    price: Optional[Decimal]


@dataclass(frozen=True)
class WatchListOutcome:
    """Symbols added to or removed from a watch list."""

    count: int
    symbols: Tuple[str, ...] = ()


@dataclass(frozen=True)
class LinkOutcome:
    """Result of a link or unlink."""

    portfolio: PortfolioView
    count: int
    trade_ids: Tuple[int, ...] = ()


@dataclass(frozen=True)
class ResetSummary:
    """Row counts removed by a reset."""

    member: str
    currency: Optional[str]
    trade_records: int = 0
    portfolios: int = 0
    balances: int = 0
    account_transactions: int = 0
    bank_transfers: int = 0
    watch_list_entries: int = 0

    @property
    def total(self) -> int:
        return (
            self.trade_records
            + self.portfolios
            + self.balances
            + self.account_transactions
            + self.bank_transfers
            + self.watch_list_entries
        )
