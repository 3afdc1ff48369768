"""
Tests for the database bootstrap script.
"""

import argparse
from unittest.mock import patch

import pytest

from scripts.bootstrap_db import DEFAULT_CURRENCIES, main, parse_currency
from storage.database import create_database_engine, create_session_factory, read_scope
from storage.repositories import CurrencyRepository


def _active_codes(url):
    engine = create_database_engine(url)
    try:
        with read_scope(create_session_factory(engine)) as session:
            return CurrencyRepository(session).list_active_codes()
    finally:
        engine.dispose()


class TestParseCurrency:

    def test_code_and_name(self):
        assert parse_currency("usd:US Dollar") == ("USD", "US Dollar")

    def test_name_defaults_to_code(self):
        assert parse_currency("HKD") == ("HKD", "HKD")

    @pytest.mark.parametrize("value", ["US", "U5D:Bad", ":Nothing"])
    def test_invalid_code(self, value):
        with pytest.raises(argparse.ArgumentTypeError):
            parse_currency(value)


class TestMain:

    @pytest.fixture(autouse=True)
    def quiet_logging(self):
        with patch("scripts.bootstrap_db.setup_logging"):
            yield

    def test_seed_and_activate(self, clean_env, tmp_path):
        url = f"sqlite:///{tmp_path / 'ledger.db'}"

        code = main(["--database-url", url, "--seed-currency", "USD:US Dollar", "--activate"])

        assert code == 0
        assert _active_codes(url) == ["USD"]

    def test_seed_inactive(self, clean_env, tmp_path):
        url = f"sqlite:///{tmp_path / 'ledger.db'}"

        assert main(["--database-url", url, "--seed-defaults"]) == 0
        assert _active_codes(url) == []

    def test_database_url_from_environment(self, clean_env, tmp_path):
        url = f"sqlite:///{tmp_path / 'env.db'}"
        clean_env.setenv("LEDGER_DATABASE_URL", url)

        assert main(["--seed-defaults", "--activate"]) == 0
        assert _active_codes(url) == sorted(code for code, _ in DEFAULT_CURRENCIES)

    def test_drop_then_reseed(self, clean_env, tmp_path):
        url = f"sqlite:///{tmp_path / 'ledger.db'}"
        main(["--database-url", url, "--seed-currency", "USD", "--activate"])

        assert main(["--database-url", url, "--drop", "--seed-currency", "HKD", "--activate"]) == 0
        assert _active_codes(url) == ["HKD"]

    def test_failure_returns_nonzero(self, clean_env, tmp_path):
        url = f"sqlite:///{tmp_path / 'ledger.db'}"

        with patch("scripts.bootstrap_db.initialize_database", side_effect=RuntimeError("boom")):
            assert main(["--database-url", url]) == 1
