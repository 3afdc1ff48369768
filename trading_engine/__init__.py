"""
Trading Engine Package.

============================================================
PURPOSE
============================================================
Trading & portfolio ledger: multi-currency cash balances,
buy/sell execution against a quote catalog, an append-only
trade blotter, derived open positions and portfolio aggregates.

CRITICAL PRINCIPLE:
    "The trade blotter is the single source of truth."
    "Positions are derived, never stored."

GUARANTEES:
    - One transaction per operation; nothing partial is committed
    - Balance read-modify-write is serialized per (member, currency)
    - Every operation returns a LedgerResult, never raises for
      business or storage failures

============================================================
MODULES
============================================================
- types: Result envelope, quotes, read snapshots
- errors: Error taxonomy and codes
- config: Engine configuration
- schemas: Request validation models
- fees: Fee model
- quotes: Quote catalog implementations
- collaborators: Currency registry, bank accounts, audit log
- authorization: Caller context and admin checks
- balance_ledger: Cash balance mutations
- positions: Outstanding position derivation
- portfolio_aggregator: Portfolio invested/current/profit-loss
- trading_service / portfolio_service / funds_service / reset_service
- watch_list_service: Followed instruments
- engine: LedgerEngine facade
- logging_config: Log setup

============================================================
"""

# ============================================================
# TYPES
# ============================================================
from .types import (
    # Enums
    TradeSide,
    QuoteType,
    ResultStatus,
    # Result envelope
    ErrorDetail,
    LedgerResult,
    # Snapshots
    Quote,
    BalanceSnapshot,
    TradeRecordView,
    PortfolioView,
    OutstandingPosition,
    CostEstimate,
    TransferConfirmation,
    TradeConfirmation,
    PortfolioDetail,
    LinkOutcome,
    ResetSummary,
    AccountTransactionView,
    BankTransferView,
    WatchListItem,
    WatchListOutcome,
)

# ============================================================
# ERRORS
# ============================================================
from .errors import (
    ErrorCategory,
    ErrorCodeInfo,
    ERROR_CODES,
    RETRYABLE_ERROR_CODES,
    LedgerError,
    get_error_info,
    is_retryable,
)

# ============================================================
# CONFIGURATION
# ============================================================
from .config import (
    FeeConfig,
    BalanceConfig,
    ConcurrencyConfig,
    DatabaseConfig,
    QuoteCatalogConfig,
    LoggingConfig,
    TradingEngineConfig,
)

# ============================================================
# REQUESTS
# ============================================================
from .schemas import (
    NewPortfolioTarget,
    ExistingPortfolioTarget,
)

# ============================================================
# COLLABORATORS
# ============================================================
from .fees import FeeModel, FeeSchedule, FlatFee, to_money
from .quotes import (
    QuoteCatalog,
    QuoteCatalogError,
    StaticQuoteCatalog,
    JsonQuoteCatalog,
)
from .collaborators import (
    CurrencyRegistry,
    IsoCurrencyRegistry,
    StaticCurrencyRegistry,
    BankAccountInfo,
    BankAccountDirectory,
    AuditLog,
    AccountTransactionAuditLog,
)
from .authorization import (
    ADMIN_ROLE,
    AuthorizationContext,
    has_admin_rights,
)

# ============================================================
# COMPONENTS
# ============================================================
from .balance_ledger import BalanceLedger
from .positions import PositionCalculator
from .portfolio_aggregator import PortfolioAggregator

# ============================================================
# SERVICES
# ============================================================
from .service_base import LedgerDependencies
from .trading_service import TradingService
from .portfolio_service import PortfolioService
from .funds_service import FundsService
from .reset_service import ResetService
from .watch_list_service import WatchListService
from .engine import LedgerEngine, create_ledger_engine
from .logging_config import setup_logging


__all__ = [
    # Types
    "TradeSide",
    "QuoteType",
    "ResultStatus",
    "ErrorDetail",
    "LedgerResult",
    "Quote",
    "BalanceSnapshot",
    "TradeRecordView",
    "PortfolioView",
    "OutstandingPosition",
    "CostEstimate",
    "TransferConfirmation",
    "TradeConfirmation",
    "PortfolioDetail",
    "LinkOutcome",
    "ResetSummary",
    "AccountTransactionView",
    "BankTransferView",
    "WatchListItem",
    "WatchListOutcome",
    # Errors
    "ErrorCategory",
    "ErrorCodeInfo",
    "ERROR_CODES",
    "RETRYABLE_ERROR_CODES",
    "LedgerError",
    "get_error_info",
    "is_retryable",
    # Config
    "FeeConfig",
    "BalanceConfig",
    "ConcurrencyConfig",
    "DatabaseConfig",
    "QuoteCatalogConfig",
    "LoggingConfig",
    "TradingEngineConfig",
    # Requests
    "NewPortfolioTarget",
    "ExistingPortfolioTarget",
    # Collaborators
    "FeeModel",
    "FeeSchedule",
    "FlatFee",
    "to_money",
    "QuoteCatalog",
    "QuoteCatalogError",
    "StaticQuoteCatalog",
    "JsonQuoteCatalog",
    "CurrencyRegistry",
    "IsoCurrencyRegistry",
    "StaticCurrencyRegistry",
    "BankAccountInfo",
    "BankAccountDirectory",
    "AuditLog",
    "AccountTransactionAuditLog",
    "ADMIN_ROLE",
    "AuthorizationContext",
    "has_admin_rights",
    # Components
    "BalanceLedger",
    "PositionCalculator",
    "PortfolioAggregator",
    # Services
    "LedgerDependencies",
    "TradingService",
    "PortfolioService",
    "FundsService",
    "ResetService",
    "WatchListService",
    "LedgerEngine",
    "create_ledger_engine",
    "setup_logging",
]
