"""
Trading Engine - Configuration.

============================================================
PURPOSE
============================================================
All configuration for the ledger engine.

CRITICAL CONSTRAINTS:
- Money is Decimal, never float
- Bounded retries on version conflicts
- Lock waits are bounded; a timeout fails the operation

============================================================
ENVIRONMENT
============================================================
TradingEngineConfig.from_env() loads a .env file and reads:
- LEDGER_DATABASE_URL
- LEDGER_BALANCE_CEILING
- LEDGER_LOCK_TIMEOUT_MS
- LEDGER_MAX_CONFLICT_RETRIES
- LEDGER_QUOTES_PATH
- LEDGER_LOG_LEVEL
- LEDGER_LOG_FORMAT

============================================================
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from dotenv import load_dotenv


# ============================================================
# FEE CONFIGURATION
# ============================================================

@dataclass
class FeeConfig:
    """
    Default fee schedule rates, applied to the trade notional.

    Rates are fractions (0.00005 == 0.005%).
    """

    transaction_levy_rate: Decimal = Decimal("0.00005")
    """Transaction levy."""

    trading_fee_rate: Decimal = Decimal("0.00005")
    """Exchange trading fee."""

    compensation_levy_rate: Decimal = Decimal("0.00002")
    """Investor compensation levy."""

    stamp_duty_rate: Decimal = Decimal("0.001")
    """Stamp duty, rounded up to a whole currency unit."""

    trading_tariff: Decimal = Decimal("0.50")
    """Fixed per-trade tariff."""

    def validate(self) -> None:
        for name in (
            "transaction_levy_rate",
            "trading_fee_rate",
            "compensation_levy_rate",
            "stamp_duty_rate",
            "trading_tariff",
        ):
            if Decimal(getattr(self, name)) < 0:
                raise ValueError(f"{name} must not be negative")


# ============================================================
# BALANCE CONFIGURATION
# ============================================================

@dataclass
class BalanceConfig:
    """
    Balance limits.
    """

    balance_ceiling: Decimal = Decimal("1000000000000")
    """Exclusive upper bound for deposit/transfer amounts and resulting balances."""

    money_scale: int = 4
    """Decimal places money is rounded to."""

    def validate(self) -> None:
        if Decimal(self.balance_ceiling) <= 0:
            raise ValueError("balance_ceiling must be positive")
        if self.money_scale < 0:
            raise ValueError("money_scale must not be negative")


# ============================================================
# CONCURRENCY CONFIGURATION
# ============================================================

@dataclass
class ConcurrencyConfig:
    """
    Row locking and optimistic retry settings.

    SAFETY: Limited retries, no infinite loops.
    """

    lock_timeout_ms: int = 5000
    """Maximum wait for a row lock (PostgreSQL)."""

    max_conflict_retries: int = 3
    """Retries of a whole operation after a version conflict."""

    retry_backoff_seconds: float = 0.05
    """Linear backoff between retries."""

    def validate(self) -> None:
        if self.lock_timeout_ms < 0:
            raise ValueError("lock_timeout_ms must not be negative")
        if self.max_conflict_retries < 0:
            raise ValueError("max_conflict_retries must not be negative")
        if self.retry_backoff_seconds < 0:
            raise ValueError("retry_backoff_seconds must not be negative")


# ============================================================
# DATABASE CONFIGURATION
# ============================================================

@dataclass
class DatabaseConfig:
    """
    Database connection settings.
    """

    url: str = "sqlite:///ledger.db"
    """SQLAlchemy database URL."""

    pool_size: int = 10
    """Connections kept in the pool."""

    max_overflow: int = 20
    """Connections allowed beyond pool_size."""

    pool_timeout: int = 30
    """Seconds to wait for a free connection."""

    pool_recycle: int = 1800
    """Recycle connections after N seconds."""

    echo: bool = False
    """Log SQL statements."""

    def validate(self) -> None:
        if not self.url:
            raise ValueError("database url must be set")
        if self.pool_size < 1:
            raise ValueError("pool_size must be at least 1")


# ============================================================
# QUOTE CATALOG CONFIGURATION
# ============================================================

@dataclass
class QuoteCatalogConfig:
    """
    Quote catalog source.
    """

    source_path: Optional[str] = None
    """JSON instrument snapshot; None means a catalog is injected."""

    def validate(self) -> None:
        pass


# ============================================================
# LOGGING CONFIGURATION
# ============================================================

@dataclass
class LoggingConfig:
    """Logging output settings."""

    level: str = "INFO"
    log_format: str = "text"

    def validate(self) -> None:
        if self.log_format not in ("json", "text"):
            raise ValueError("log_format must be json or text")


# ============================================================
# MASTER CONFIGURATION
# ============================================================

@dataclass
class TradingEngineConfig:
    """
    Master configuration for the ledger engine.
    """

    fees: FeeConfig = field(default_factory=FeeConfig)
    """Fee schedule."""

    balance: BalanceConfig = field(default_factory=BalanceConfig)
    """Balance limits."""

    concurrency: ConcurrencyConfig = field(default_factory=ConcurrencyConfig)
    """Locking and retries."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    """Database connection."""

    quotes: QuoteCatalogConfig = field(default_factory=QuoteCatalogConfig)
    """Quote catalog source."""

    logging: LoggingConfig = field(default_factory=LoggingConfig)
    """Logging output."""

    def validate(self) -> "TradingEngineConfig":
        """Validate every section; raises ValueError."""
        self.fees.validate()
        self.balance.validate()
        self.concurrency.validate()
        self.database.validate()
        self.quotes.validate()
        self.logging.validate()
        return self

    @classmethod
    def for_testing(cls) -> "TradingEngineConfig":
        """In-memory database, no backoff."""
        return cls(
            database=DatabaseConfig(url="sqlite:///:memory:"),
            concurrency=ConcurrencyConfig(retry_backoff_seconds=0.0),
        )

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "TradingEngineConfig":
        """
        Build configuration from LEDGER_* environment variables.

        Args:
            dotenv_path: Explicit .env file; default search otherwise

        Raises:
            ValueError: If a variable is malformed or out of range
        """
        load_dotenv(dotenv_path)
        config = cls()

        url = os.getenv("LEDGER_DATABASE_URL")
        if url:
            config.database.url = url

        ceiling = os.getenv("LEDGER_BALANCE_CEILING")
        if ceiling:
            config.balance.balance_ceiling = _parse_decimal("LEDGER_BALANCE_CEILING", ceiling)

        lock_timeout = os.getenv("LEDGER_LOCK_TIMEOUT_MS")
        if lock_timeout:
            config.concurrency.lock_timeout_ms = _parse_int("LEDGER_LOCK_TIMEOUT_MS", lock_timeout)

        retries = os.getenv("LEDGER_MAX_CONFLICT_RETRIES")
        if retries:
            config.concurrency.max_conflict_retries = _parse_int("LEDGER_MAX_CONFLICT_RETRIES", retries)

        quotes_path = os.getenv("LEDGER_QUOTES_PATH")
        if quotes_path:
            config.quotes.source_path = quotes_path

        config.logging.level = os.getenv("LEDGER_LOG_LEVEL", config.logging.level)
        config.logging.log_format = os.getenv("LEDGER_LOG_FORMAT", config.logging.log_format).lower()

        return config.validate()


def _parse_int(name: str, raw: str) -> int:
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


def _parse_decimal(name: str, raw: str) -> Decimal:
    try:
        return Decimal(raw)
    except ArithmeticError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e
