"""
Tests for the Watch List Service.

============================================================
PURPOSE
============================================================
1. Adding catalog symbols, skipping unknown or followed ones
2. Soft removal and following again
3. Reads priced from the catalog, scoped by active currencies

============================================================
"""

from decimal import Decimal
from unittest.mock import patch

from storage.database import read_scope
from storage.models import WatchListEntry
from trading_engine.quotes import QuoteCatalogError


def _symbols(ledger, ctx, currency=None):
    result = ledger.list_watch_list(ctx, currency)
    assert result.is_success, result.error
    return [item.symbol for item in result.value]


# ============================================================
# ADD
# ============================================================

class TestAddToWatchList:
    """Following catalog instruments."""

    def test_add(self, ledger, alice):
        result = ledger.add_to_watch_list(alice, ["msft", " AAPL "])

        assert result.is_success
        assert result.value.count == 2
        assert result.value.symbols == ("MSFT", "AAPL")
        assert _symbols(ledger, alice) == ["AAPL", "MSFT"]

    def test_index_can_be_followed(self, ledger, alice):
        assert ledger.add_to_watch_list(alice, ["HSI"]).is_success
        assert _symbols(ledger, alice) == ["HSI"]

    def test_unknown_symbols_skipped(self, ledger, alice):
        result = ledger.add_to_watch_list(alice, ["NOPE", "AAPL"])

        assert result.is_success
        assert result.value.symbols == ("AAPL",)

    def test_only_unknown_symbols(self, ledger, alice):
        result = ledger.add_to_watch_list(alice, ["NOPE"])

        assert result.is_no_change
        assert result.value.count == 0

    def test_already_followed(self, ledger, alice):
        assert ledger.add_to_watch_list(alice, ["AAPL"]).is_success

        again = ledger.add_to_watch_list(alice, ["aapl", "AAPL"])

        assert again.is_no_change
        assert _symbols(ledger, alice) == ["AAPL"]

    def test_duplicates_in_one_request(self, ledger, alice):
        result = ledger.add_to_watch_list(alice, ["AAPL", "aapl"])

        assert result.value.count == 1

    def test_empty_request(self, ledger, alice):
        result = ledger.add_to_watch_list(alice, [])

        assert result.is_no_change
        assert result.value.count == 0

    def test_blank_symbol_rejected(self, ledger, alice):
        assert ledger.add_to_watch_list(alice, ["  "]).error_code == "VAL_INVALID_REQUEST"

    def test_lists_are_per_member(self, ledger, alice, bob):
        assert ledger.add_to_watch_list(alice, ["AAPL"]).is_success
        assert ledger.add_to_watch_list(bob, ["AAPL"]).is_success

        assert _symbols(ledger, bob) == ["AAPL"]

    def test_catalog_down(self, ledger, alice, quote_catalog):
        with patch.object(quote_catalog, "list_tradable_instruments", side_effect=QuoteCatalogError("down")):
            result = ledger.add_to_watch_list(alice, ["AAPL"])

        assert result.error_code == "INT_QUOTE_UNAVAILABLE"


# ============================================================
# REMOVE
# ============================================================

class TestRemoveFromWatchList:
    """Soft removal of followed symbols."""

    def test_remove(self, ledger, alice):
        assert ledger.add_to_watch_list(alice, ["AAPL", "MSFT"]).is_success

        result = ledger.remove_from_watch_list(alice, ["aapl"])

        assert result.is_success
        assert result.value.symbols == ("AAPL",)
        assert _symbols(ledger, alice) == ["MSFT"]

    def test_remove_twice(self, ledger, alice):
        assert ledger.add_to_watch_list(alice, ["AAPL"]).is_success
        assert ledger.remove_from_watch_list(alice, ["AAPL"]).is_success

        assert ledger.remove_from_watch_list(alice, ["AAPL"]).is_no_change

    def test_removed_row_kept(self, ledger, alice, session_factory):
        assert ledger.add_to_watch_list(alice, ["AAPL"]).is_success
        assert ledger.remove_from_watch_list(alice, ["AAPL"]).is_success

        with read_scope(session_factory) as session:
            stamps = [entry.removed_at for entry in session.query(WatchListEntry).all()]
        assert len(stamps) == 1
        assert stamps[0] is not None

    def test_follow_again_after_removal(self, ledger, alice):
        assert ledger.add_to_watch_list(alice, ["AAPL"]).is_success
        assert ledger.remove_from_watch_list(alice, ["AAPL"]).is_success

        assert ledger.add_to_watch_list(alice, ["AAPL"]).is_success
        assert _symbols(ledger, alice) == ["AAPL"]

    def test_symbol_gone_from_catalog_can_be_removed(self, ledger, alice, quote_catalog):
        assert ledger.add_to_watch_list(alice, ["MSFT"]).is_success
        quote_catalog.remove("MSFT")

        assert ledger.remove_from_watch_list(alice, ["MSFT"]).is_success

    def test_other_member_untouched(self, ledger, alice, bob):
        assert ledger.add_to_watch_list(bob, ["AAPL"]).is_success

        assert ledger.remove_from_watch_list(alice, ["AAPL"]).is_no_change
        assert _symbols(ledger, bob) == ["AAPL"]


# ============================================================
# READS
# ============================================================

class TestListWatchList:
    """Watch list reads priced at read time."""

    def test_priced_from_catalog(self, ledger, alice, quote_catalog):
        assert ledger.add_to_watch_list(alice, ["AAPL", "0700"]).is_success
        quote_catalog.set_price("AAPL", "123.45")

        items = ledger.list_watch_list(alice).value

        assert [(i.symbol, i.symbol_name, i.currency, i.price) for i in items] == [
            ("0700", "Tencent Holdings", "HKD", Decimal("300")),
            ("AAPL", "Apple Inc.", "USD", Decimal("123.45")),
        ]

    def test_filter(self, ledger, alice):
        assert ledger.add_to_watch_list(alice, ["AAPL", "0700", "HSI"]).is_success

        assert _symbols(ledger, alice, "hkd") == ["0700", "HSI"]
        assert ledger.list_watch_list(alice, "EUR").error_code == "NF_CURRENCY"

    def test_inactive_currency_hidden(self, ledger, alice, currency_registry):
        assert ledger.add_to_watch_list(alice, ["SAP", "AAPL"]).value.count == 2

        assert _symbols(ledger, alice) == ["AAPL"]

        currency_registry.codes = frozenset({"USD", "HKD", "EUR"})
        assert _symbols(ledger, alice) == ["AAPL", "SAP"]

    def test_symbol_left_catalog(self, ledger, alice, quote_catalog):
        assert ledger.add_to_watch_list(alice, ["MSFT"]).is_success
        quote_catalog.remove("MSFT")

        items = ledger.list_watch_list(alice).value

        assert [(i.symbol, i.price) for i in items] == [("MSFT", None)]

    def test_empty_list_skips_catalog(self, ledger, alice, quote_catalog):
        with patch.object(quote_catalog, "list_tradable_instruments", side_effect=QuoteCatalogError("down")):
            result = ledger.list_watch_list(alice)

        assert result.is_success
        assert result.value == []
