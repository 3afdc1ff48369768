"""
Shared fixtures for the ledger test suite.

============================================================
PURPOSE
============================================================
Every test runs against a fresh in-memory SQLite database built
through the production engine/session factories, a static quote
catalog, a static currency allow-list (USD, HKD) and a flat fee
of 5 per trade.

============================================================
"""

from decimal import Decimal
from typing import Callable, Optional

import pytest

from storage.database import (
    create_all_tables,
    create_database_engine,
    create_session_factory,
    read_scope,
    transaction_scope,
)
from storage.repositories import BalanceRepository, BankAccountRepository
from trading_engine.authorization import AuthorizationContext
from trading_engine.collaborators import StaticCurrencyRegistry
from trading_engine.config import TradingEngineConfig
from trading_engine.engine import LedgerEngine
from trading_engine.fees import FlatFee
from trading_engine.quotes import StaticQuoteCatalog
from trading_engine.service_base import LedgerDependencies
from trading_engine.types import BalanceSnapshot, Quote, QuoteType


LEDGER_ENV_VARS = (
    "LEDGER_DATABASE_URL",
    "LEDGER_BALANCE_CEILING",
    "LEDGER_LOCK_TIMEOUT_MS",
    "LEDGER_MAX_CONFLICT_RETRIES",
    "LEDGER_QUOTES_PATH",
    "LEDGER_LOG_LEVEL",
    "LEDGER_LOG_FORMAT",
)


# ============================================================
# DATABASE
# ============================================================

@pytest.fixture
def db_engine():
    """Fresh in-memory database with all ledger tables."""
    engine = create_database_engine("sqlite:///:memory:")
    create_all_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


# ============================================================
# COLLABORATORS
# ============================================================

@pytest.fixture
def quote_catalog():
    """USD and HKD equities, one HKD index, one equity in an inactive currency."""
    return StaticQuoteCatalog([
        Quote("AAPL", "Apple Inc.", QuoteType.EQUITY, "USD", Decimal("100")),
        Quote("MSFT", "Microsoft Corp.", QuoteType.EQUITY, "USD", Decimal("50")),
        Quote("0700", "Tencent Holdings", QuoteType.EQUITY, "HKD", Decimal("300")),
        Quote("HSI", "Hang Seng Index", QuoteType.INDEX, "HKD", Decimal("18000")),
        Quote("SAP", "SAP SE", QuoteType.EQUITY, "EUR", Decimal("20")),
    ])


@pytest.fixture
def currency_registry():
    return StaticCurrencyRegistry(["USD", "HKD"])


@pytest.fixture
def config():
    return TradingEngineConfig.for_testing()


@pytest.fixture
def deps(session_factory, quote_catalog, currency_registry, config):
    return LedgerDependencies(
        session_factory=session_factory,
        quote_catalog=quote_catalog,
        config=config,
        fee_model=FlatFee(Decimal("5")),
        currency_registry=currency_registry,
    )


@pytest.fixture
def ledger(deps):
    """LedgerEngine facade over the test dependencies."""
    return LedgerEngine(deps)


# ============================================================
# CALLERS
# ============================================================

@pytest.fixture
def alice():
    return AuthorizationContext.of("alice")


@pytest.fixture
def bob():
    return AuthorizationContext.of("bob")


@pytest.fixture
def admin():
    return AuthorizationContext.admin("root")


# ============================================================
# HELPERS
# ============================================================

@pytest.fixture
def fund(ledger) -> Callable[..., BalanceSnapshot]:
    """Deposit and assert success."""
    def _fund(ctx: AuthorizationContext, currency: str, amount) -> BalanceSnapshot:
        result = ledger.deposit(ctx, currency, Decimal(str(amount)))
        assert result.is_success, result.error
        return result.value
    return _fund


@pytest.fixture
def bank_account(session_factory) -> Callable[..., int]:
    """Register a bank account and return its id."""
    def _bank_account(member: str, currency: str, active: bool = True) -> int:
        with transaction_scope(session_factory) as session:
            account = BankAccountRepository(session).create(
                member=member,
                currency=currency,
                bank_name="Test Bank",
                account_number=f"{member}-{currency}",
                active=active,
            )
            return account.bank_account_id
    return _bank_account


@pytest.fixture
def balance_of(session_factory) -> Callable[[str, str], Optional[BalanceSnapshot]]:
    """Committed balance of a member in a currency, or None."""
    def _balance_of(member: str, currency: str) -> Optional[BalanceSnapshot]:
        with read_scope(session_factory) as session:
            balance = BalanceRepository(session).get(member, currency)
            return BalanceSnapshot.from_model(balance) if balance is not None else None
    return _balance_of


@pytest.fixture
def clean_env(monkeypatch):
    """Unset every LEDGER_* variable for the test, restoring afterwards."""
    for name in LEDGER_ENV_VARS:
        # registered so teardown also removes values set by load_dotenv
        monkeypatch.setenv(name, "placeholder")
        monkeypatch.delenv(name)
    return monkeypatch
