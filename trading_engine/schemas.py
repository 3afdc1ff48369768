"""
Pydantic Schemas for Ledger Requests.

Every public operation validates its input through one of these
models before touching storage. A pydantic ValidationError is
reported as VAL_INVALID_REQUEST.
"""

from decimal import Decimal
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from trading_engine.types import QuoteType, TradeSide


CURRENCY_PATTERN = r"^[A-Za-z]{3}$"

CurrencyCode = Annotated[
    str,
    StringConstraints(strip_whitespace=True, to_upper=True, pattern=CURRENCY_PATTERN),
]


class _Request(BaseModel):
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)


# =============================================================
# TRADING
# =============================================================

class BuyRequest(_Request):
    symbol: str = Field(..., min_length=1, max_length=32)
    quantity: int = Field(..., gt=0)


class SellRequest(_Request):
    symbol: str = Field(..., min_length=1, max_length=32)
    quantity: int = Field(..., gt=0)
    transfer_to_bank_account_id: Optional[int] = None


class EstimateRequest(_Request):
    side: TradeSide
    symbol: str = Field(..., min_length=1, max_length=32)
    quantity: int = Field(..., gt=0)


class CurrencyFilter(_Request):
    currency: Optional[CurrencyCode] = None


class InstrumentQuery(_Request):
    quote_type: QuoteType = QuoteType.EQUITY
    currency: Optional[CurrencyCode] = None


class InstrumentSearch(_Request):
    by: Literal["symbol", "name"] = "symbol"
    criteria: str = Field(..., min_length=1)


# =============================================================
# FUNDS
# =============================================================

class DepositRequest(_Request):
    currency: CurrencyCode
    amount: Decimal = Field(..., gt=0)


class TransferRequest(_Request):
    currency: CurrencyCode
    bank_account_id: int
    amount: Decimal = Field(..., gt=0)


# =============================================================
# PORTFOLIOS
# =============================================================

class CreatePortfolioRequest(_Request):
    name: str = Field(..., min_length=1, max_length=255)
    currency: CurrencyCode


class NewPortfolioTarget(_Request):
    """Link into a portfolio created on the fly."""
    kind: Literal["new"] = "new"
    name: str = Field(..., min_length=1, max_length=255)
    currency: CurrencyCode


class ExistingPortfolioTarget(_Request):
    """Link into an existing portfolio."""
    kind: Literal["existing"] = "existing"
    portfolio_id: int


PortfolioTarget = Annotated[
    Union[NewPortfolioTarget, ExistingPortfolioTarget],
    Field(discriminator="kind"),
]


class LinkRequest(_Request):
    trade_ids: List[int] = Field(default_factory=list)
    target: PortfolioTarget


class UnlinkRequest(_Request):
    portfolio_id: int
    trade_ids: List[int] = Field(default_factory=list)


class PortfolioQuery(_Request):
    portfolio_id: int


# =============================================================
# WATCH LIST
# =============================================================

Symbol = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=32)]


class WatchListChange(_Request):
    symbols: List[Symbol] = Field(default_factory=list)


# =============================================================
# ADMIN
# =============================================================

class ResetRequest(_Request):
    currency: Optional[CurrencyCode] = None
    member: Optional[str] = Field(None, min_length=1)
