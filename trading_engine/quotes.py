"""
Trading Engine - Quote Catalog.

============================================================
PURPOSE
============================================================
Supplies the tradable universe: symbol, display name, type,
currency and current price.

- Read-only snapshot per call, no caching contract
- Symbol resolution is exact and case-insensitive
- Any failure surfaces as QuoteCatalogError

============================================================
IMPLEMENTATIONS
============================================================
- StaticQuoteCatalog: In-memory snapshot, mutable prices
- JsonQuoteCatalog: Reads a {"stocks": [...]} file per call

============================================================
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from decimal import Decimal
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from trading_engine.types import Quote, QuoteType

logger = logging.getLogger(__name__)


class QuoteCatalogError(Exception):
    """Raised when the quote catalog cannot be read."""
    pass


class QuoteCatalog(ABC):
    """Abstract quote catalog collaborator."""

    @abstractmethod
    def list_tradable_instruments(self) -> List[Quote]:
        """
        Current instrument snapshot.

        Raises:
            QuoteCatalogError: If the catalog is unavailable
        """
        pass


def index_by_symbol(quotes: Iterable[Quote]) -> Dict[str, Quote]:
    """Map upper-cased symbol to quote; first occurrence wins."""
    indexed: Dict[str, Quote] = {}
    for quote in quotes:
        indexed.setdefault(quote.symbol.upper(), quote)
    return indexed


def resolve_symbol(indexed: Mapping[str, Quote], symbol: str) -> Optional[Quote]:
    """Find a quote in an index_by_symbol() map by exact, case-insensitive symbol."""
    return indexed.get(symbol.strip().upper())


# ============================================================
# STATIC CATALOG
# ============================================================

class StaticQuoteCatalog(QuoteCatalog):
    """
    In-memory catalog.

    Used in tests and simulations. Prices can be moved between
    operations with set_price().
    """

    def __init__(self, quotes: Optional[Iterable[Quote]] = None):
        self._lock = threading.Lock()
        self._quotes: Dict[str, Quote] = {}
        for quote in quotes or []:
            self.add(quote)

    def add(self, quote: Quote) -> None:
        with self._lock:
            self._quotes[quote.symbol.upper()] = quote

    def remove(self, symbol: str) -> None:
        with self._lock:
            self._quotes.pop(symbol.upper(), None)

    def set_price(self, symbol: str, price: Union[Decimal, str, int]) -> None:
        """Move the price of a listed symbol."""
        with self._lock:
            key = symbol.upper()
            if key not in self._quotes:
                raise KeyError(symbol)
            current = self._quotes[key]
            self._quotes[key] = Quote(
                symbol=current.symbol,
                name=current.name,
                quote_type=current.quote_type,
                currency=current.currency,
                price=Decimal(price),
            )

    def list_tradable_instruments(self) -> List[Quote]:
        with self._lock:
            return list(self._quotes.values())


# ============================================================
# JSON FILE CATALOG
# ============================================================

class _CatalogEntry(BaseModel):
    """One instrument in a JSON snapshot."""

    model_config = ConfigDict(populate_by_name=True)

    symbol: str = Field(..., min_length=1)
    name: Optional[str] = None
    description: Optional[str] = None
    quote_type: str = Field("EQUITY", alias="type")
    currency: str = Field(..., min_length=3, max_length=3)
    price: Decimal = Field(..., ge=0)

    def to_quote(self) -> Quote:
        return Quote(
            symbol=self.symbol,
            name=self.name or self.description or self.symbol,
            quote_type=QuoteType.parse(self.quote_type),
            currency=self.currency.upper(),
            price=self.price,
        )


class _CatalogSnapshot(BaseModel):
    stocks: List[_CatalogEntry] = Field(default_factory=list)


class JsonQuoteCatalog(QuoteCatalog):
    """
    Catalog backed by a JSON snapshot file.

    File shape:
        {"stocks": [{"symbol": "AAPL", "name": "Apple Inc.",
                     "type": "EQUITY", "currency": "USD", "price": "190.12"}]}

    The file is re-read on every call so an external process can
    refresh prices in place.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def list_tradable_instruments(self) -> List[Quote]:
        try:
            raw = self.path.read_text(encoding="utf-8")
            snapshot = _CatalogSnapshot.model_validate(json.loads(raw, parse_float=Decimal))
            return [entry.to_quote() for entry in snapshot.stocks]
        except (OSError, json.JSONDecodeError, ValidationError, ValueError) as e:
            logger.error(f"Quote catalog read failed ({self.path}): {e}")
            raise QuoteCatalogError(f"Cannot read quote catalog {self.path}: {e}") from e
