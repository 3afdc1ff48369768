"""
Tests for the Trading Service.

============================================================
PURPOSE
============================================================
Buy/sell execution end to end against an in-memory database:
1. Settlement scenarios (buy, then sell at a higher price)
2. Rejections leave balance and blotter untouched
3. Sell auto-transfer to a bank account
4. Read views: positions, trades, estimates, catalog

============================================================
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from core.clock import ClockFactory
from storage.database import read_scope
from storage.repositories import (
    AccountTransactionRepository,
    BankTransferRepository,
    TradeRecordRepository,
)
from trading_engine.errors import ErrorCategory
from trading_engine.types import QuoteType, ResultStatus, TradeRecordView, TradeSide


def _trades(session_factory, member):
    with read_scope(session_factory) as session:
        records = TradeRecordRepository(session).list_for_member(member)
        return [TradeRecordView.from_model(record) for record in records]


# ============================================================
# BUY / SELL SCENARIOS
# ============================================================

class TestSettlementScenarios:
    """Buy then sell with a flat fee of 5."""

    def test_buy_moves_total_cost_to_trading(self, ledger, alice, fund, balance_of, session_factory):
        """Buy 10 @ 100: free cash 10000 -> 8995, trading 0 -> 1005."""
        fund(alice, "USD", 10000)

        result = ledger.buy(alice, "AAPL", 10)

        assert result.status is ResultStatus.SUCCESS
        confirmation = result.value
        assert confirmation.notional == Decimal("1000")
        assert confirmation.fee == Decimal("5")
        assert confirmation.trade.side is TradeSide.BUY
        assert confirmation.trade.quantity == 10
        assert confirmation.trade.total_cost == Decimal("1005")
        assert confirmation.trade.portfolio_id is None

        balance = balance_of("alice", "USD")
        assert balance.non_trading_amount == Decimal("8995")
        assert balance.trading_amount == Decimal("1005")

        trades = _trades(session_factory, "alice")
        assert len(trades) == 1
        assert trades[0].unit_price == Decimal("100")

    def test_sell_moves_proceeds_back(self, ledger, alice, fund, balance_of, quote_catalog):
        """Sell 10 @ 110: proceeds 1095, trading goes to -90, free cash 10090."""
        fund(alice, "USD", 10000)
        assert ledger.buy(alice, "AAPL", 10).is_success

        quote_catalog.set_price("AAPL", "110")
        result = ledger.sell(alice, "AAPL", 10)

        assert result.is_success
        assert result.value.trade.side is TradeSide.SELL
        assert result.value.trade.total_cost == Decimal("1095")
        assert result.value.bank_transfer is None

        balance = balance_of("alice", "USD")
        assert balance.trading_amount == Decimal("-90")
        assert balance.non_trading_amount == Decimal("10090")

    def test_sell_more_than_outstanding_fails_validation(self, ledger, alice, fund, balance_of, session_factory):
        """Sell 11 with 10 outstanding is rejected, nothing changes."""
        fund(alice, "USD", 10000)
        ledger.buy(alice, "AAPL", 10)

        result = ledger.sell(alice, "AAPL", 11)

        assert result.is_failed
        assert result.error_code == "VAL_QUANTITY_EXCEEDS_OUTSTANDING"
        assert result.error_category is ErrorCategory.VALIDATION
        assert result.error.details == {"requested": 11, "outstanding": 10}
        assert balance_of("alice", "USD").non_trading_amount == Decimal("8995")
        assert len(_trades(session_factory, "alice")) == 1

    def test_partial_sells_track_outstanding(self, ledger, alice, fund):
        fund(alice, "USD", 10000)
        ledger.buy(alice, "AAPL", 10)

        assert ledger.sell(alice, "AAPL", 4).is_success
        assert ledger.sell(alice, "AAPL", 6).is_success
        assert ledger.sell(alice, "AAPL", 1).error_code == "VAL_QUANTITY_EXCEEDS_OUTSTANDING"

    def test_sell_without_holding_fails(self, ledger, alice, fund):
        fund(alice, "USD", 10000)

        result = ledger.sell(alice, "AAPL", 1)

        assert result.error_code == "VAL_QUANTITY_EXCEEDS_OUTSTANDING"

    def test_symbol_is_case_insensitive(self, ledger, alice, fund):
        fund(alice, "USD", 10000)

        result = ledger.buy(alice, "aapl", 1)

        assert result.is_success
        assert result.value.trade.symbol == "AAPL"
        assert ledger.sell(alice, "Aapl", 1).is_success

    def test_trade_date_comes_from_clock(self, ledger, alice, fund):
        fund(alice, "USD", 10000)

        with ClockFactory.use_mock(datetime(2024, 3, 1, 23, 30, tzinfo=timezone.utc)):
            result = ledger.buy(alice, "AAPL", 1)

        assert result.value.trade.trade_date == date(2024, 3, 1)

    def test_trades_write_audit_entries(self, ledger, alice, fund, session_factory):
        fund(alice, "USD", 10000)
        ledger.buy(alice, "AAPL", 2)
        ledger.sell(alice, "AAPL", 1)

        with read_scope(session_factory) as session:
            descriptions = [e.description for e in AccountTransactionRepository(session).list_for_member("alice", "USD")]

        assert len(descriptions) == 3
        assert descriptions[1].startswith("Bought 2 AAPL")
        assert descriptions[2].startswith("Sold 1 AAPL")


# ============================================================
# BUY REJECTIONS
# ============================================================

class TestBuyRejections:
    """Every rejection leaves balance and blotter untouched."""

    def test_unknown_symbol(self, ledger, alice, fund):
        fund(alice, "USD", 10000)

        result = ledger.buy(alice, "NOPE", 1)

        assert result.error_code == "NF_SYMBOL"
        assert result.error_category is ErrorCategory.NOT_FOUND

    def test_index_is_not_tradable(self, ledger, alice, fund):
        fund(alice, "HKD", 1000000)

        result = ledger.buy(alice, "HSI", 1)

        assert result.error_code == "NA_NOT_TRADABLE"
        assert result.error_category is ErrorCategory.NOT_ACCEPTABLE

    def test_no_balance_in_currency(self, ledger, bob, session_factory):
        result = ledger.buy(bob, "AAPL", 1)

        assert result.error_code == "NF_BALANCE"
        assert _trades(session_factory, "bob") == []

    def test_insufficient_funds_no_partial_fill(self, ledger, alice, fund, balance_of, session_factory):
        fund(alice, "USD", 1000)

        result = ledger.buy(alice, "AAPL", 10)

        assert result.error_code == "NA_INSUFFICIENT_FUNDS"
        assert Decimal(result.error.details["required"]) == Decimal("1005")
        assert Decimal(result.error.details["available"]) == Decimal("1000")
        balance = balance_of("alice", "USD")
        assert balance.non_trading_amount == Decimal("1000")
        assert balance.trading_amount == Decimal("0")
        assert _trades(session_factory, "alice") == []

    def test_exact_funds_are_enough(self, ledger, alice, fund, balance_of):
        fund(alice, "USD", 1005)

        assert ledger.buy(alice, "AAPL", 10).is_success
        assert balance_of("alice", "USD").non_trading_amount == Decimal("0")

    @pytest.mark.parametrize("quantity", [0, -3])
    def test_non_positive_quantity(self, ledger, alice, fund, quantity):
        fund(alice, "USD", 10000)

        result = ledger.buy(alice, "AAPL", quantity)

        assert result.error_code == "VAL_INVALID_REQUEST"
        assert result.error.details["errors"][0]["field"] == "quantity"

    def test_blank_symbol(self, ledger, alice):
        assert ledger.buy(alice, "   ", 1).error_code == "VAL_INVALID_REQUEST"


# ============================================================
# SELL AUTO-TRANSFER
# ============================================================

class TestSellAutoTransfer:
    """Sale proceeds sent to a bank account in the same transaction."""

    @pytest.fixture
    def holding(self, ledger, alice, fund, quote_catalog):
        fund(alice, "USD", 10000)
        assert ledger.buy(alice, "AAPL", 10).is_success
        quote_catalog.set_price("AAPL", "110")

    def test_proceeds_transferred_once(self, ledger, alice, holding, bank_account, balance_of, session_factory):
        account_id = bank_account("alice", "USD")

        result = ledger.sell(alice, "AAPL", 10, transfer_to_bank_account_id=account_id)

        assert result.is_success
        transfer = result.value.bank_transfer
        assert transfer.bank_account_id == account_id
        assert transfer.amount == Decimal("1095")

        balance = balance_of("alice", "USD")
        assert balance.trading_amount == Decimal("-90")
        assert balance.non_trading_amount == Decimal("8995")

        with read_scope(session_factory) as session:
            amounts = [t.amount for t in BankTransferRepository(session).list_for_member("alice")]
        assert amounts == [Decimal("1095")]

    @pytest.mark.parametrize("owner,currency,active,code", [
        ("bob", "USD", True, "NA_OWNERSHIP"),
        ("alice", "USD", False, "NA_BANK_ACCOUNT_INACTIVE"),
        ("alice", "HKD", True, "NA_CURRENCY_MISMATCH"),
    ])
    def test_bad_destination_rejects_whole_sale(
        self, ledger, alice, holding, bank_account, balance_of, session_factory,
        owner, currency, active, code,
    ):
        account_id = bank_account(owner, currency, active=active)

        result = ledger.sell(alice, "AAPL", 10, transfer_to_bank_account_id=account_id)

        assert result.error_code == code
        assert balance_of("alice", "USD").non_trading_amount == Decimal("8995")
        assert len(_trades(session_factory, "alice")) == 1

    def test_missing_destination(self, ledger, alice, holding):
        result = ledger.sell(alice, "AAPL", 10, transfer_to_bank_account_id=999)

        assert result.error_code == "NF_BANK_ACCOUNT"

    def test_proceeds_above_ceiling_still_transferred(
        self, ledger, alice, holding, bank_account, balance_of, quote_catalog, config,
    ):
        """Sell 10 @ 2500 with a 20000 ceiling: proceeds 24995 leave in one transfer."""
        config.balance.balance_ceiling = Decimal("20000")
        quote_catalog.set_price("AAPL", "2500")
        account_id = bank_account("alice", "USD")

        result = ledger.sell(alice, "AAPL", 10, transfer_to_bank_account_id=account_id)

        assert result.is_success, result.error
        assert result.value.bank_transfer.amount == Decimal("24995")
        balance = balance_of("alice", "USD")
        assert balance.non_trading_amount == Decimal("8995")
        assert balance.trading_amount == Decimal("-23990")


# ============================================================
# READ VIEWS
# ============================================================

class TestPositionsAndTrades:
    """Outstanding positions and the trade list."""

    def test_outstanding_positions(self, ledger, alice, fund, quote_catalog):
        fund(alice, "USD", 10000)
        fund(alice, "HKD", 10000)
        ledger.buy(alice, "MSFT", 4)
        ledger.buy(alice, "AAPL", 10)
        ledger.sell(alice, "AAPL", 3)
        ledger.buy(alice, "0700", 2)
        quote_catalog.set_price("AAPL", "120")

        result = ledger.outstanding_positions(alice)

        assert result.is_success
        positions = {p.symbol: p for p in result.value}
        assert [p.symbol for p in result.value] == ["0700", "AAPL", "MSFT"]
        assert positions["AAPL"].outstanding_quantity == 7
        assert positions["AAPL"].current_price == Decimal("120")
        assert positions["AAPL"].current_amount == Decimal("840")
        assert positions["0700"].current_amount == Decimal("600")

    def test_closed_positions_are_hidden(self, ledger, alice, fund):
        fund(alice, "USD", 10000)
        ledger.buy(alice, "AAPL", 5)
        ledger.sell(alice, "AAPL", 5)

        assert ledger.outstanding_positions(alice).value == []

    def test_currency_filter(self, ledger, alice, fund):
        fund(alice, "USD", 10000)
        fund(alice, "HKD", 10000)
        ledger.buy(alice, "AAPL", 1)
        ledger.buy(alice, "0700", 1)

        result = ledger.outstanding_positions(alice, "hkd")

        assert [p.symbol for p in result.value] == ["0700"]

    def test_inactive_currency_filter(self, ledger, alice):
        assert ledger.outstanding_positions(alice, "EUR").error_code == "NF_CURRENCY"
        assert ledger.list_trades(alice, "EUR").error_code == "NF_CURRENCY"

    def test_inactive_currency_rows_are_hidden(self, ledger, alice, fund, currency_registry):
        fund(alice, "USD", 10000)
        fund(alice, "HKD", 10000)
        ledger.buy(alice, "AAPL", 1)
        ledger.buy(alice, "0700", 1)

        currency_registry.codes = frozenset({"USD"})

        assert [t.currency for t in ledger.list_trades(alice).value] == ["USD"]
        assert [p.symbol for p in ledger.outstanding_positions(alice).value] == ["AAPL"]

    def test_delisted_symbol_valued_at_last_price(self, ledger, alice, fund, quote_catalog):
        fund(alice, "USD", 10000)
        ledger.buy(alice, "MSFT", 3)
        quote_catalog.remove("MSFT")

        position = ledger.outstanding_positions(alice).value[0]

        assert position.current_price == Decimal("50")
        assert position.current_amount == Decimal("150")

    def test_list_trades_sorted_by_id(self, ledger, alice, bob, fund):
        fund(alice, "USD", 10000)
        fund(bob, "USD", 10000)
        ledger.buy(alice, "AAPL", 1)
        ledger.buy(bob, "AAPL", 1)
        ledger.buy(alice, "MSFT", 2)

        trades = ledger.list_trades(alice).value

        assert [t.symbol for t in trades] == ["AAPL", "MSFT"]
        assert trades[0].trade_id < trades[1].trade_id
        assert all(t.member == "alice" for t in trades)


class TestEstimateCost:
    """Cost preview without mutation."""

    def test_buy_estimate(self, ledger, alice, balance_of):
        result = ledger.estimate_cost(alice, TradeSide.BUY, "AAPL", 10)

        assert result.is_success
        assert result.value.notional == Decimal("1000")
        assert result.value.fee == Decimal("5")
        assert result.value.total_cost == Decimal("1005")
        assert balance_of("alice", "USD") is None

    def test_sell_estimate_accepts_plain_strings(self, ledger, alice):
        result = ledger.estimate_cost(alice, "SELL", "msft", 2)

        assert result.value.side is TradeSide.SELL
        assert result.value.total_cost == Decimal("95")

    def test_index_estimate_rejected(self, ledger, alice):
        assert ledger.estimate_cost(alice, TradeSide.BUY, "HSI", 1).error_code == "NA_NOT_TRADABLE"


class TestInstrumentCatalog:
    """Catalog listing and search."""

    def test_list_equities(self, ledger, alice):
        result = ledger.list_instruments(alice)

        assert [q.symbol for q in result.value] == ["0700", "AAPL", "MSFT", "SAP"]

    def test_list_indices_in_currency(self, ledger, alice):
        result = ledger.list_instruments(alice, QuoteType.INDEX, "HKD")

        assert [q.symbol for q in result.value] == ["HSI"]

    def test_search_by_name(self, ledger, alice):
        result = ledger.search_instruments(alice, "name", "tencent")

        assert [q.symbol for q in result.value] == ["0700"]

    def test_search_by_symbol_substring(self, ledger, alice):
        result = ledger.search_instruments(alice, "symbol", "s")

        assert [q.symbol for q in result.value] == ["HSI", "MSFT", "SAP"]

    def test_search_by_unknown_field(self, ledger, alice):
        assert ledger.search_instruments(alice, "price", "1").error_code == "VAL_INVALID_REQUEST"
