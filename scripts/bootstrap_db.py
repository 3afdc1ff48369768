"""
Scripts - Bootstrap Database.

============================================================
RESPONSIBILITY
============================================================
Initializes the ledger database for first-time setup.

- Creates the ledger schema
- Seeds ISO currencies (optionally activating them)
- Validates setup

============================================================
USAGE
============================================================
python -m scripts.bootstrap_db
python -m scripts.bootstrap_db --seed-currency USD:"US Dollar" --seed-currency HKD:"Hong Kong Dollar" --activate
python -m scripts.bootstrap_db --seed-defaults --activate

Options:
  --database-url     Overrides LEDGER_DATABASE_URL
  --seed-currency    CODE:NAME, repeatable
  --seed-defaults    Seed the built-in currency list
  --activate         Mark seeded currencies active
  --drop             Drop existing ledger tables first (DANGEROUS)

============================================================
"""

import argparse
import logging
import sys
from typing import List, Optional, Tuple

from storage.database import (
    create_database_engine,
    create_session_factory,
    drop_all_tables,
    initialize_database,
    transaction_scope,
)
from storage.repositories import CurrencyRepository
from trading_engine.config import TradingEngineConfig
from trading_engine.logging_config import setup_logging

logger = logging.getLogger("scripts.bootstrap_db")


DEFAULT_CURRENCIES: List[Tuple[str, str]] = [
    ("USD", "US Dollar"),
    ("HKD", "Hong Kong Dollar"),
    ("EUR", "Euro"),
    ("GBP", "Pound Sterling"),
    ("JPY", "Yen"),
]


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def parse_currency(value: str) -> Tuple[str, str]:
    """Parse CODE:NAME into (code, name)."""
    code, sep, name = value.partition(":")
    code = code.strip().upper()
    if len(code) != 3 or not code.isalpha():
        raise argparse.ArgumentTypeError(f"Invalid currency code in {value!r}")
    return code, (name.strip() if sep and name.strip() else code)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="bootstrap_db",
        description="Create the ledger schema and seed currencies",
    )
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="SQLAlchemy database URL (default: LEDGER_DATABASE_URL)",
    )
    parser.add_argument(
        "--seed-currency",
        type=parse_currency,
        action="append",
        default=[],
        metavar="CODE:NAME",
        help="Currency to seed; may be repeated",
    )
    parser.add_argument(
        "--seed-defaults",
        action="store_true",
        help="Seed the built-in currency list",
    )
    parser.add_argument(
        "--activate",
        action="store_true",
        help="Mark seeded currencies active",
    )
    parser.add_argument(
        "--drop",
        action="store_true",
        help="Drop existing ledger tables first (DANGEROUS)",
    )
    return parser


# ============================================================
# BOOTSTRAP
# ============================================================

def seed_currencies(session_factory, currencies: List[Tuple[str, str]], activate: bool) -> int:
    """Upsert currencies in one transaction. Returns the number seeded."""
    with transaction_scope(session_factory) as session:
        repository = CurrencyRepository(session)
        for code, name in currencies:
            repository.upsert(code, name, active=activate)
            logger.info(f"Seeded currency {code} ({name}), active={activate}")
    return len(currencies)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Bootstrap database entry point.

    Returns:
        Exit code
    """
    args = create_parser().parse_args(argv)

    config = TradingEngineConfig.from_env()
    if args.database_url:
        config.database.url = args.database_url
    setup_logging(config.logging.level, config.logging.log_format)

    engine = create_database_engine(config.database.url, echo=config.database.echo)
    try:
        if args.drop:
            logger.warning("Dropping existing ledger tables")
            drop_all_tables(engine)

        initialize_database(engine)

        currencies = list(args.seed_currency)
        if args.seed_defaults:
            currencies.extend(DEFAULT_CURRENCIES)
        if currencies:
            count = seed_currencies(create_session_factory(engine), currencies, args.activate)
            logger.info(f"Seeded {count} currencies")
        return 0

    except Exception as e:
        logger.error(f"Bootstrap failed: {e}", exc_info=True)
        return 1
    finally:
        engine.dispose()


if __name__ == "__main__":
    sys.exit(main())
