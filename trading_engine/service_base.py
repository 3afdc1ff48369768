"""
Trading Engine - Service Base.

============================================================
PURPOSE
============================================================
Shared plumbing of every public ledger operation.

- Request validation (pydantic) before any storage access
- Exactly one transaction per operation
- Whole-operation retry on optimistic version conflicts
- Every failure converted into a FAILED LedgerResult

============================================================
ERROR MAPPING
============================================================
- pydantic ValidationError -> VAL_INVALID_REQUEST
- LedgerError -> its own code
- Version conflict (retries exhausted) -> CON_CONCURRENT_MODIFICATION
- Lock timeout -> INT_LOCK_TIMEOUT (no retry)
- Quote catalog failure -> INT_QUOTE_UNAVAILABLE
- Any other storage failure -> INT_STORAGE_FAILURE

============================================================
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from storage.database import DatabasePersistenceError, read_scope, transaction_scope
from storage.repositories import (
    ConcurrentModificationError,
    DuplicateRecordError,
    LockTimeoutError,
    RepositoryException,
)
from trading_engine.authorization import AuthorizationContext
from trading_engine.balance_ledger import BalanceLedger
from trading_engine.collaborators import (
    AccountTransactionAuditLog,
    AuditLog,
    BankAccountDirectory,
    CurrencyRegistry,
    IsoCurrencyRegistry,
)
from trading_engine.config import TradingEngineConfig
from trading_engine.errors import LedgerError
from trading_engine.fees import FeeModel, FeeSchedule
from trading_engine.portfolio_aggregator import PortfolioAggregator
from trading_engine.positions import PositionCalculator
from trading_engine.quotes import QuoteCatalog, QuoteCatalogError, index_by_symbol, resolve_symbol
from trading_engine.types import ErrorDetail, LedgerResult, Quote

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=BaseModel)


@dataclass
class LedgerDependencies:
    """Everything a ledger service needs, built once per engine."""

    session_factory: sessionmaker
    quote_catalog: QuoteCatalog
    config: TradingEngineConfig = field(default_factory=TradingEngineConfig)
    fee_model: Optional[FeeModel] = None
    currency_registry: CurrencyRegistry = field(default_factory=IsoCurrencyRegistry)
    bank_accounts: BankAccountDirectory = field(default_factory=BankAccountDirectory)
    audit_log: AuditLog = field(default_factory=AccountTransactionAuditLog)

    def __post_init__(self) -> None:
        scale = self.config.balance.money_scale
        if self.fee_model is None:
            self.fee_model = FeeSchedule(self.config.fees, scale)
        self.balance_ledger = BalanceLedger(self.config.balance)
        self.positions = PositionCalculator(scale)
        self.aggregator = PortfolioAggregator(self.positions, scale)


def parse_request(model: Type[R], **fields: Any) -> R:
    """
    Validate raw input into a request model.

    Raises:
        LedgerError: VAL_INVALID_REQUEST with pydantic's field errors
    """
    try:
        return model(**fields)
    except ValidationError as e:
        errors = [
            {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        raise LedgerError(
            "VAL_INVALID_REQUEST",
            f"Invalid {model.__name__}: {errors[0]['field']} {errors[0]['message']}" if errors else None,
            {"errors": errors},
        ) from e


class BaseLedgerService:
    """
    Base class for ledger services.

    Subclasses implement handlers of the form
    handler(session, ctx, request) -> LedgerResult and expose them
    through _execute().
    """

    def __init__(self, deps: LedgerDependencies):
        self._deps = deps
        self._config = deps.config
        self._stats: Dict[str, int] = {
            "operations": 0,
            "succeeded": 0,
            "no_change": 0,
            "failed": 0,
            "conflict_retries": 0,
        }

    @property
    def stats(self) -> Dict[str, int]:
        return dict(self._stats)

    # =========================================================
    # OPERATION RUNNER
    # =========================================================

    def _execute(
        self,
        operation: str,
        ctx: AuthorizationContext,
        handler: Callable[[Session, AuthorizationContext, R], LedgerResult],
        request_model: Type[R],
        read_only: bool = False,
        **fields: Any,
    ) -> LedgerResult:
        """
        Run one public operation.

        Args:
            operation: Name for logs
            ctx: Caller
            handler: Business logic, runs inside the transaction
            request_model: Pydantic model the fields are validated into
            read_only: Roll back instead of committing
            **fields: Raw request fields

        Returns:
            LedgerResult; never raises for business or storage failures
        """
        self._stats["operations"] += 1
        try:
            request = parse_request(request_model, **fields)
        except LedgerError as e:
            return self._reject(operation, ctx, e)

        concurrency = self._config.concurrency
        attempts = concurrency.max_conflict_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                if read_only:
                    with read_scope(self._deps.session_factory) as session:
                        result = handler(session, ctx, request)
                else:
                    with transaction_scope(
                        self._deps.session_factory, concurrency.lock_timeout_ms
                    ) as session:
                        result = handler(session, ctx, request)
                return self._finish(operation, ctx, result)

            except LedgerError as e:
                return self._reject(operation, ctx, e)

            except (ConcurrentModificationError, DuplicateRecordError, StaleDataError) as e:
                if attempt < attempts:
                    self._stats["conflict_retries"] += 1
                    logger.info(
                        f"{operation} for {ctx.member}: conflict on attempt "
                        f"{attempt}/{attempts}, retrying ({e})"
                    )
                    if concurrency.retry_backoff_seconds:
                        time.sleep(concurrency.retry_backoff_seconds * attempt)
                    continue
                return self._fail(
                    operation, ctx, ErrorDetail.of("CON_CONCURRENT_MODIFICATION", attempts=attempts)
                )

            except LockTimeoutError as e:
                return self._fail(operation, ctx, ErrorDetail.of("INT_LOCK_TIMEOUT", error=str(e)))

            except QuoteCatalogError as e:
                return self._fail(operation, ctx, ErrorDetail.of("INT_QUOTE_UNAVAILABLE", error=str(e)))

            except (RepositoryException, DatabasePersistenceError, SQLAlchemyError) as e:
                logger.error(f"{operation} for {ctx.member}: storage failure: {e}", exc_info=True)
                return self._fail(operation, ctx, ErrorDetail.of("INT_STORAGE_FAILURE", error=str(e)))

        # Unreachable: the loop always returns.
        return self._fail(operation, ctx, ErrorDetail.of("CON_CONCURRENT_MODIFICATION"))

    def _finish(self, operation: str, ctx: AuthorizationContext, result: LedgerResult) -> LedgerResult:
        if result.is_no_change:
            self._stats["no_change"] += 1
            logger.info(f"{operation} for {ctx.member}: no changes ({result.message})")
        elif result.is_success:
            self._stats["succeeded"] += 1
            logger.debug(f"{operation} for {ctx.member}: success")
        else:
            self._stats["failed"] += 1
        return result

    def _reject(self, operation: str, ctx: AuthorizationContext, error: LedgerError) -> LedgerResult:
        self._stats["failed"] += 1
        logger.info(f"{operation} for {ctx.member} rejected: {error.code} {error.message}")
        return LedgerResult.failed(ErrorDetail.from_error(error))

    def _fail(self, operation: str, ctx: AuthorizationContext, error: ErrorDetail) -> LedgerResult:
        self._stats["failed"] += 1
        logger.warning(f"{operation} for {ctx.member} failed: {error.code} {error.details}")
        return LedgerResult.failed(error)

    # =========================================================
    # SHARED LOOKUPS
    # =========================================================

    def _load_quotes(self) -> Dict[str, Quote]:
        """One catalog read per operation, indexed by upper-cased symbol."""
        return index_by_symbol(self._deps.quote_catalog.list_tradable_instruments())

    def _resolve_tradable(self, quotes: Dict[str, Quote], symbol: str) -> Quote:
        """
        Resolve a symbol to a tradable equity.

        Raises:
            LedgerError: NF_SYMBOL or NA_NOT_TRADABLE
        """
        quote = resolve_symbol(quotes, symbol)
        if quote is None:
            raise LedgerError("NF_SYMBOL", f"Unknown symbol {symbol}", {"symbol": symbol})
        if not quote.is_tradable:
            raise LedgerError(
                "NA_NOT_TRADABLE",
                f"{quote.symbol} is an index and cannot be traded",
                {"symbol": quote.symbol},
            )
        return quote

    def _active_currencies(self, session: Session) -> FrozenSet[str]:
        return self._deps.currency_registry.active_currencies(session)

    @staticmethod
    def _require_active(active: FrozenSet[str], currency: str) -> str:
        """
        Raises:
            LedgerError: NF_CURRENCY if the currency is not active
        """
        if currency not in active:
            raise LedgerError(
                "NF_CURRENCY",
                f"Currency {currency} is not active",
                {"currency": currency},
            )
        return currency

    def _currency_scope(self, session: Session, currency: Optional[str]) -> FrozenSet[str]:
        """Currencies a read is restricted to: the filter (if active) or all active ones."""
        active = self._active_currencies(session)
        if currency is None:
            return active
        return frozenset([self._require_active(active, currency)])

    def _audit(self, session: Session, member: str, currency: str, description: str) -> None:
        self._deps.audit_log.record(session, member, currency, description)
