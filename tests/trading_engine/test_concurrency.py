"""
Tests for concurrent operations against a file-backed database.

============================================================
PURPOSE
============================================================
Real threads hitting the same balance and holding:
1. Every buy settles, none is lost or rejected for contention
2. Concurrent sells never oversell an outstanding quantity

============================================================
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest

from storage.database import create_all_tables, create_database_engine, create_session_factory
from trading_engine.engine import LedgerEngine
from trading_engine.fees import FlatFee
from trading_engine.service_base import LedgerDependencies


THREADS = 8


@pytest.fixture
def file_ledger(tmp_path, quote_catalog, currency_registry, config):
    engine = create_database_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    create_all_tables(engine)
    deps = LedgerDependencies(
        session_factory=create_session_factory(engine),
        quote_catalog=quote_catalog,
        config=config,
        fee_model=FlatFee(Decimal("5")),
        currency_registry=currency_registry,
    )
    yield LedgerEngine(deps)
    engine.dispose()


def _run_parallel(calls):
    with ThreadPoolExecutor(max_workers=THREADS) as pool:
        futures = [pool.submit(call) for call in calls]
        return [future.result() for future in futures]


class TestConcurrentWriters:

    def test_parallel_buys_all_settle(self, file_ledger, alice):
        assert file_ledger.deposit(alice, "USD", Decimal("10000")).is_success

        results = _run_parallel([lambda: file_ledger.buy(alice, "AAPL", 1)] * (THREADS * 5))

        assert [r.error_code for r in results if not r.is_success] == []
        balance = file_ledger.list_balances(alice, "USD").value[0]
        assert balance.trading_amount == Decimal("4200")
        assert balance.non_trading_amount == Decimal("5800")
        assert len(file_ledger.list_trades(alice).value) == THREADS * 5

    def test_parallel_sells_never_oversell(self, file_ledger, alice):
        assert file_ledger.deposit(alice, "USD", Decimal("10000")).is_success
        assert file_ledger.buy(alice, "AAPL", 10).is_success

        results = _run_parallel([lambda: file_ledger.sell(alice, "AAPL", 1)] * 20)

        codes = sorted(r.error_code or "OK" for r in results)
        assert codes == ["OK"] * 10 + ["VAL_QUANTITY_EXCEEDS_OUTSTANDING"] * 10
        positions = file_ledger.outstanding_positions(alice).value
        assert positions == []

    def test_parallel_deposits_by_two_members(self, file_ledger, alice, bob):
        calls = [lambda: file_ledger.deposit(alice, "USD", Decimal("10"))] * 10
        calls += [lambda: file_ledger.deposit(bob, "USD", Decimal("1"))] * 10

        results = _run_parallel(calls)

        assert all(r.is_success for r in results)
        assert file_ledger.list_balances(alice).value[0].non_trading_amount == Decimal("100")
        assert file_ledger.list_balances(bob).value[0].non_trading_amount == Decimal("10")
