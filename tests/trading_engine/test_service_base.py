"""
Tests for the shared operation runner.

============================================================
PURPOSE
============================================================
1. Whole-operation retry on version conflicts
2. Mapping of infrastructure failures to error codes
3. Best-effort audit entries
4. Request validation

============================================================
"""

from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy.orm.exc import StaleDataError

from storage.database import read_scope
from storage.repositories import (
    AccountTransactionRepository,
    ConcurrentModificationError,
    LockTimeoutError,
    QueryError,
    TradeRecordRepository,
)
from trading_engine.balance_ledger import BalanceLedger
from trading_engine.errors import ErrorCategory, LedgerError
from trading_engine.quotes import QuoteCatalogError
from trading_engine.schemas import BuyRequest, DepositRequest
from trading_engine.service_base import parse_request


# ============================================================
# CONFLICT RETRIES
# ============================================================

class TestConflictRetry:
    """Optimistic version conflicts rerun the whole operation."""

    def test_retry_then_success(self, ledger, alice, fund, balance_of, session_factory):
        fund(alice, "USD", 10000)
        original = BalanceLedger.settle_buy
        calls = []

        def flaky_settle(self, session, balance, total_cost):
            calls.append(total_cost)
            if len(calls) == 1:
                raise ConcurrentModificationError("BalanceRepository", "save", "version mismatch")
            return original(self, session, balance, total_cost)

        with patch.object(BalanceLedger, "settle_buy", flaky_settle):
            result = ledger.buy(alice, "AAPL", 10)

        assert result.is_success
        assert len(calls) == 2
        assert ledger.trading.stats["conflict_retries"] == 1
        assert balance_of("alice", "USD").non_trading_amount == Decimal("8995")
        with read_scope(session_factory) as session:
            assert len(TradeRecordRepository(session).list_for_member("alice")) == 1

    def test_retries_exhausted(self, ledger, alice, fund, balance_of, session_factory):
        fund(alice, "USD", 10000)

        with patch.object(BalanceLedger, "settle_buy", side_effect=StaleDataError("stale")) as settle:
            result = ledger.buy(alice, "AAPL", 10)

        assert result.error_code == "CON_CONCURRENT_MODIFICATION"
        assert result.error_category is ErrorCategory.CONFLICT
        assert result.error.details["attempts"] == 4
        assert settle.call_count == 4
        assert ledger.trading.stats["conflict_retries"] == 3
        assert balance_of("alice", "USD").non_trading_amount == Decimal("10000")
        with read_scope(session_factory) as session:
            assert TradeRecordRepository(session).list_for_member("alice") == []

    def test_no_retries_configured(self, ledger, alice, fund, config):
        fund(alice, "USD", 10000)
        config.concurrency.max_conflict_retries = 0

        with patch.object(BalanceLedger, "settle_buy", side_effect=StaleDataError("stale")) as settle:
            result = ledger.buy(alice, "AAPL", 10)

        assert result.error_code == "CON_CONCURRENT_MODIFICATION"
        assert settle.call_count == 1


# ============================================================
# INFRASTRUCTURE FAILURES
# ============================================================

class TestFailureMapping:
    """Infrastructure exceptions never escape an operation."""

    def test_lock_timeout_is_not_retried(self, ledger, alice, fund):
        fund(alice, "USD", 10000)
        timeout = LockTimeoutError("BalanceRepository", "get_for_update", "lock timeout")

        with patch.object(BalanceLedger, "settle_buy", side_effect=timeout) as settle:
            result = ledger.buy(alice, "AAPL", 10)

        assert result.error_code == "INT_LOCK_TIMEOUT"
        assert result.error_category is ErrorCategory.INTERNAL
        assert settle.call_count == 1

    def test_quote_catalog_unavailable(self, ledger, alice, fund, quote_catalog, balance_of):
        fund(alice, "USD", 10000)

        with patch.object(quote_catalog, "list_tradable_instruments", side_effect=QuoteCatalogError("down")):
            buy = ledger.buy(alice, "AAPL", 10)
            catalog = ledger.list_instruments(alice)

        assert buy.error_code == "INT_QUOTE_UNAVAILABLE"
        assert catalog.error_code == "INT_QUOTE_UNAVAILABLE"
        assert balance_of("alice", "USD").non_trading_amount == Decimal("10000")

    def test_storage_failure(self, ledger, alice, fund):
        fund(alice, "USD", 10000)
        failure = QueryError("TradeRecordRepository", "add", "insert trade", "disk full")

        with patch.object(TradeRecordRepository, "append", side_effect=failure):
            result = ledger.buy(alice, "AAPL", 10)

        assert result.error_code == "INT_STORAGE_FAILURE"
        assert ledger.trading.stats["failed"] == 1

    def test_stats(self, ledger, alice, fund):
        fund(alice, "USD", 10000)
        ledger.buy(alice, "AAPL", 10)
        ledger.buy(alice, "NOPE", 1)

        stats = ledger.trading.stats
        assert stats["operations"] == 2
        assert stats["succeeded"] == 1
        assert stats["failed"] == 1


# ============================================================
# AUDIT LOG
# ============================================================

class TestBestEffortAudit:
    """A failed audit append never fails the ledger mutation."""

    def test_audit_failure_keeps_trade(self, ledger, alice, fund, balance_of, session_factory):
        fund(alice, "USD", 10000)
        failure = QueryError("AccountTransactionRepository", "append", "append", "boom")

        with patch.object(AccountTransactionRepository, "append", side_effect=failure):
            result = ledger.buy(alice, "AAPL", 10)

        assert result.is_success
        assert balance_of("alice", "USD").non_trading_amount == Decimal("8995")
        with read_scope(session_factory) as session:
            descriptions = [e.description for e in AccountTransactionRepository(session).list_for_member("alice")]
            trade_count = len(TradeRecordRepository(session).list_for_member("alice"))
        assert descriptions == ["Deposited 10000"]
        assert trade_count == 1


# ============================================================
# REQUEST VALIDATION
# ============================================================

class TestParseRequest:
    """Pydantic validation errors become VAL_INVALID_REQUEST."""

    def test_valid(self):
        request = parse_request(DepositRequest, currency=" usd ", amount="12.5")

        assert request.currency == "USD"
        assert request.amount == Decimal("12.5")

    def test_invalid(self):
        with pytest.raises(LedgerError) as exc_info:
            parse_request(BuyRequest, symbol="AAPL", quantity=0)

        error = exc_info.value
        assert error.code == "VAL_INVALID_REQUEST"
        assert error.category is ErrorCategory.VALIDATION
        assert [e["field"] for e in error.details["errors"]] == ["quantity"]

    def test_missing_field(self):
        with pytest.raises(LedgerError) as exc_info:
            parse_request(BuyRequest, quantity=1)

        assert exc_info.value.details["errors"][0]["field"] == "symbol"
