"""
Tests for position derivation.
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from trading_engine.positions import PositionCalculator, net_invested, outstanding_quantity
from trading_engine.types import Quote, QuoteType


def _record(trade_id, side, symbol, quantity, price, total_cost=None, currency="USD"):
    return SimpleNamespace(
        trade_id=trade_id,
        side=side,
        symbol=symbol,
        symbol_name=f"{symbol} name",
        quantity=quantity,
        unit_price=Decimal(price),
        total_cost=Decimal(total_cost if total_cost is not None else price),
        currency=currency,
    )


def _quote(symbol, price, currency="USD"):
    return Quote(symbol, f"{symbol} name", QuoteType.EQUITY, currency, Decimal(price))


@pytest.fixture
def calculator():
    return PositionCalculator()


# ============================================================
# QUANTITY AND INVESTMENT
# ============================================================

class TestAggregates:

    def test_no_records(self):
        assert outstanding_quantity([]) == 0
        assert net_invested([]) == Decimal("0")

    def test_outstanding_quantity(self):
        records = [
            _record(1, "BUY", "AAPL", 10, "100"),
            _record(2, "SELL", "aapl", 4, "110"),
            _record(3, "BUY", "MSFT", 5, "50"),
        ]

        assert outstanding_quantity(records) == 11
        assert outstanding_quantity(records, "AAPL") == 6
        assert outstanding_quantity(records, "msft") == 5
        assert outstanding_quantity(records, "TSLA") == 0

    def test_net_invested(self):
        records = [
            _record(1, "BUY", "AAPL", 10, "100", total_cost="1005"),
            _record(2, "SELL", "AAPL", 4, "110", total_cost="435"),
        ]

        assert net_invested(records) == Decimal("570")


# ============================================================
# POSITIONS
# ============================================================

class TestPositionCalculator:

    def test_valued_at_live_price(self, calculator):
        records = [
            _record(1, "BUY", "AAPL", 10, "100"),
            _record(2, "SELL", "AAPL", 3, "100"),
        ]

        [position] = calculator.derive(records, {"AAPL": _quote("AAPL", "120")})

        assert position.symbol == "AAPL"
        assert position.outstanding_quantity == 7
        assert position.current_price == Decimal("120")
        assert position.current_amount == Decimal("840")

    def test_closed_positions_hidden(self, calculator):
        records = [
            _record(1, "BUY", "AAPL", 10, "100"),
            _record(2, "SELL", "AAPL", 10, "100"),
        ]

        assert calculator.derive(records, {"AAPL": _quote("AAPL", "120")}) == []

    def test_order_independent(self, calculator):
        records = [
            _record(1, "BUY", "MSFT", 1, "50"),
            _record(2, "BUY", "AAPL", 2, "100"),
            _record(3, "SELL", "MSFT", 1, "50"),
            _record(4, "BUY", "0700", 3, "300", currency="HKD"),
        ]
        quotes = {
            "AAPL": _quote("AAPL", "100"),
            "MSFT": _quote("MSFT", "50"),
            "0700": _quote("0700", "300", "HKD"),
        }

        forward = calculator.derive(records, quotes)
        backward = calculator.derive(list(reversed(records)), quotes)

        assert [p.symbol for p in forward] == ["0700", "AAPL"]
        assert forward == backward

    def test_symbols_grouped_case_insensitively(self, calculator):
        records = [
            _record(1, "BUY", "AAPL", 2, "100"),
            _record(2, "BUY", "aapl", 3, "100"),
        ]

        [position] = calculator.derive(records, {"AAPL": _quote("AAPL", "100")})

        assert position.outstanding_quantity == 5

    def test_missing_quote_uses_last_traded_price(self, calculator):
        records = [
            _record(2, "BUY", "GONE", 1, "12"),
            _record(1, "BUY", "GONE", 1, "10"),
        ]

        [position] = calculator.derive(records, {})

        assert position.current_price == Decimal("12")
        assert position.current_amount == Decimal("24")
