"""
Trading Engine - Ledger Engine Facade.

============================================================
PURPOSE
============================================================
One object exposing every ledger operation.

The facade owns the shared LedgerDependencies and the five
services built on them. Each method delegates to exactly one
service; there is no logic here beyond wiring.

============================================================
USAGE
============================================================
    engine = create_ledger_engine(config, quote_catalog=catalog)
    ctx = AuthorizationContext.of("alice")
    engine.deposit(ctx, "USD", Decimal("10000"))
    result = engine.buy(ctx, "AAPL", 10)

============================================================
"""

import logging
from decimal import Decimal
from typing import Iterable, List, Optional, Union

from sqlalchemy.engine import Engine

from storage.database import create_all_tables, create_database_engine, create_session_factory
from trading_engine.authorization import AuthorizationContext
from trading_engine.collaborators import (
    AccountTransactionAuditLog,
    AuditLog,
    BankAccountDirectory,
    CurrencyRegistry,
    IsoCurrencyRegistry,
)
from trading_engine.config import TradingEngineConfig
from trading_engine.fees import FeeModel
from trading_engine.funds_service import FundsService
from trading_engine.portfolio_service import PortfolioService
from trading_engine.quotes import JsonQuoteCatalog, QuoteCatalog
from trading_engine.reset_service import ResetService
from trading_engine.schemas import PortfolioTarget
from trading_engine.service_base import LedgerDependencies
from trading_engine.trading_service import TradingService
from trading_engine.watch_list_service import WatchListService
from trading_engine.types import (
    AccountTransactionView,
    BalanceSnapshot,
    BankTransferView,
    CostEstimate,
    LedgerResult,
    LinkOutcome,
    OutstandingPosition,
    PortfolioDetail,
    PortfolioView,
    Quote,
    QuoteType,
    ResetSummary,
    TradeConfirmation,
    TradeRecordView,
    TradeSide,
    TransferConfirmation,
    WatchListItem,
    WatchListOutcome,
)

logger = logging.getLogger(__name__)


class LedgerEngine:
    """
    Facade over the ledger services.

    Attributes:
        trading: Buy/sell and blotter/catalog reads
        portfolios: Portfolio creation, link/unlink, reads
        funds: Deposits, bank transfers, balance and history reads
        watch_list: Followed symbols priced from the catalog
        resets: Explicit ledger reset
    """

    def __init__(self, deps: LedgerDependencies, db_engine: Optional[Engine] = None):
        self._deps = deps
        self._db_engine = db_engine
        self.trading = TradingService(deps)
        self.portfolios = PortfolioService(deps)
        self.funds = FundsService(deps)
        self.watch_list = WatchListService(deps)
        self.resets = ResetService(deps)

    @property
    def dependencies(self) -> LedgerDependencies:
        return self._deps

    # =========================================================
    # TRADING
    # =========================================================

    def buy(self, ctx: AuthorizationContext, symbol: str, quantity: int) -> LedgerResult[TradeConfirmation]:
        return self.trading.buy(ctx, symbol, quantity)

    def sell(
        self,
        ctx: AuthorizationContext,
        symbol: str,
        quantity: int,
        transfer_to_bank_account_id: Optional[int] = None,
    ) -> LedgerResult[TradeConfirmation]:
        return self.trading.sell(ctx, symbol, quantity, transfer_to_bank_account_id)

    def estimate_cost(
        self,
        ctx: AuthorizationContext,
        side: TradeSide,
        symbol: str,
        quantity: int,
    ) -> LedgerResult[CostEstimate]:
        return self.trading.estimate_cost(ctx, side, symbol, quantity)

    def outstanding_positions(
        self,
        ctx: AuthorizationContext,
        currency: Optional[str] = None,
    ) -> LedgerResult[List[OutstandingPosition]]:
        return self.trading.outstanding_positions(ctx, currency)

    def list_trades(
        self,
        ctx: AuthorizationContext,
        currency: Optional[str] = None,
    ) -> LedgerResult[List[TradeRecordView]]:
        return self.trading.list_trades(ctx, currency)

    def list_instruments(
        self,
        ctx: AuthorizationContext,
        quote_type: QuoteType = QuoteType.EQUITY,
        currency: Optional[str] = None,
    ) -> LedgerResult[List[Quote]]:
        return self.trading.list_instruments(ctx, quote_type, currency)

    def search_instruments(self, ctx: AuthorizationContext, by: str, criteria: str) -> LedgerResult[List[Quote]]:
        return self.trading.search_instruments(ctx, by, criteria)

    # =========================================================
    # PORTFOLIOS
    # =========================================================

    def create_portfolio(self, ctx: AuthorizationContext, name: str, currency: str) -> LedgerResult[PortfolioView]:
        return self.portfolios.create_portfolio(ctx, name, currency)

    def link_to_portfolio(
        self,
        ctx: AuthorizationContext,
        trade_ids: Iterable[int],
        target: Union[PortfolioTarget, dict],
    ) -> LedgerResult[LinkOutcome]:
        return self.portfolios.link_to_portfolio(ctx, trade_ids, target)

    def unlink_from_portfolio(
        self,
        ctx: AuthorizationContext,
        portfolio_id: int,
        trade_ids: Iterable[int],
    ) -> LedgerResult[LinkOutcome]:
        return self.portfolios.unlink_from_portfolio(ctx, portfolio_id, trade_ids)

    def portfolio_detail(self, ctx: AuthorizationContext, portfolio_id: int) -> LedgerResult[PortfolioDetail]:
        return self.portfolios.portfolio_detail(ctx, portfolio_id)

    def list_portfolios(
        self,
        ctx: AuthorizationContext,
        currency: Optional[str] = None,
    ) -> LedgerResult[List[PortfolioView]]:
        return self.portfolios.list_portfolios(ctx, currency)

    # =========================================================
    # FUNDS
    # =========================================================

    def deposit(self, ctx: AuthorizationContext, currency: str, amount: Decimal) -> LedgerResult[BalanceSnapshot]:
        return self.funds.deposit(ctx, currency, amount)

    def transfer_to_bank(
        self,
        ctx: AuthorizationContext,
        currency: str,
        bank_account_id: int,
        amount: Decimal,
    ) -> LedgerResult[TransferConfirmation]:
        return self.funds.transfer_to_bank(ctx, currency, bank_account_id, amount)

    def list_balances(
        self,
        ctx: AuthorizationContext,
        currency: Optional[str] = None,
    ) -> LedgerResult[List[BalanceSnapshot]]:
        return self.funds.list_balances(ctx, currency)

    def list_account_transactions(
        self,
        ctx: AuthorizationContext,
        currency: Optional[str] = None,
    ) -> LedgerResult[List[AccountTransactionView]]:
        return self.funds.list_account_transactions(ctx, currency)

    def list_bank_transfers(
        self,
        ctx: AuthorizationContext,
        currency: Optional[str] = None,
    ) -> LedgerResult[List[BankTransferView]]:
        return self.funds.list_bank_transfers(ctx, currency)

    # =========================================================
    # WATCH LIST
    # =========================================================

    def add_to_watch_list(self, ctx: AuthorizationContext, symbols: Iterable[str]) -> LedgerResult[WatchListOutcome]:
        return self.watch_list.add_to_watch_list(ctx, symbols)

    def remove_from_watch_list(
        self,
        ctx: AuthorizationContext,
        symbols: Iterable[str],
    ) -> LedgerResult[WatchListOutcome]:
        return self.watch_list.remove_from_watch_list(ctx, symbols)

    def list_watch_list(
        self,
        ctx: AuthorizationContext,
        currency: Optional[str] = None,
    ) -> LedgerResult[List[WatchListItem]]:
        return self.watch_list.list_watch_list(ctx, currency)

    # =========================================================
    # RESET
    # =========================================================

    def reset(
        self,
        ctx: AuthorizationContext,
        currency: Optional[str] = None,
        member: Optional[str] = None,
    ) -> LedgerResult[ResetSummary]:
        return self.resets.reset(ctx, currency, member)

    # =========================================================
    # LIFECYCLE
    # =========================================================

    def close(self) -> None:
        """Dispose of the database engine, if this facade created it."""
        if self._db_engine is not None:
            self._db_engine.dispose()
            logger.info("Ledger engine closed")


def create_ledger_engine(
    config: Optional[TradingEngineConfig] = None,
    quote_catalog: Optional[QuoteCatalog] = None,
    fee_model: Optional[FeeModel] = None,
    currency_registry: Optional[CurrencyRegistry] = None,
    bank_accounts: Optional[BankAccountDirectory] = None,
    audit_log: Optional[AuditLog] = None,
    engine: Optional[Engine] = None,
) -> LedgerEngine:
    """
    Factory function to create a ledger engine.

    Args:
        config: Configuration (or load from environment)
        quote_catalog: Quote source (or the JSON snapshot at config.quotes.source_path)
        fee_model: Fee policy (default: FeeSchedule from config.fees)
        currency_registry: Active currencies (default: iso_currencies table)
        bank_accounts: Bank account directory (default: bank_accounts table)
        audit_log: Audit sink (default: account_transactions table)
        engine: Existing SQLAlchemy engine (default: built from config.database)

    Returns:
        Configured LedgerEngine with its tables created

    Raises:
        ValueError: Invalid configuration, or no quote source
    """
    if config is None:
        config = TradingEngineConfig.from_env()
    config.validate()

    if quote_catalog is None:
        if not config.quotes.source_path:
            raise ValueError("No quote catalog given and LEDGER_QUOTES_PATH is not set")
        quote_catalog = JsonQuoteCatalog(config.quotes.source_path)

    owned_engine = None
    if engine is None:
        db = config.database
        engine = owned_engine = create_database_engine(
            db.url,
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            pool_timeout=db.pool_timeout,
            pool_recycle=db.pool_recycle,
            echo=db.echo,
        )
    create_all_tables(engine)

    deps = LedgerDependencies(
        session_factory=create_session_factory(engine),
        quote_catalog=quote_catalog,
        config=config,
        fee_model=fee_model,
        currency_registry=currency_registry or IsoCurrencyRegistry(),
        bank_accounts=bank_accounts or BankAccountDirectory(),
        audit_log=audit_log or AccountTransactionAuditLog(),
    )
    logger.info(f"Ledger engine ready (fee model: {type(deps.fee_model).__name__})")
    return LedgerEngine(deps, owned_engine)


# ============================================================
# EXPORTS
# ============================================================

__all__ = [
    "LedgerEngine",
    "create_ledger_engine",
]
