"""
Trading Engine - Fee Model.

============================================================
PURPOSE
============================================================
Deterministic fee as a pure function of the trade notional.

The same FeeModel instance is injected into buy, sell and cost
estimation, so balances and portfolio aggregates are always
computed with the same fee.

============================================================
POLICY
============================================================
- Never negative
- Never more than the notional (clamped)
- Rounded HALF_UP to the money scale

============================================================
"""

from abc import ABC, abstractmethod
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal
from typing import Optional, Tuple

from trading_engine.config import FeeConfig
from trading_engine.types import TradeSide


ZERO = Decimal("0")


def to_money(value: Decimal, scale: int = 4) -> Decimal:
    """Round a money amount HALF_UP to `scale` decimal places."""
    return Decimal(value).quantize(Decimal(1).scaleb(-scale), rounding=ROUND_HALF_UP)


def notional_of(unit_price: Decimal, quantity: int, scale: int = 4) -> Decimal:
    """Notional value of a trade: unit price times quantity."""
    return to_money(Decimal(unit_price) * quantity, scale)


def total_cost_of(side: TradeSide, notional: Decimal, fee: Decimal) -> Decimal:
    """
    Signed total cost.

    BUY pays the fee on top, SELL proceeds are reduced by it.
    """
    if side is TradeSide.BUY:
        return notional + fee
    return notional - fee


class FeeModel(ABC):
    """Abstract fee policy."""

    def __init__(self, scale: int = 4):
        self._scale = scale

    @abstractmethod
    def _raw_fee(self, notional: Decimal) -> Decimal:
        """Unclamped, unrounded fee."""
        pass

    def fee(self, notional: Decimal) -> Decimal:
        """
        Fee for a trade notional.

        Args:
            notional: unit price times quantity

        Returns:
            Fee in [0, notional], rounded to the money scale
        """
        notional = Decimal(notional)
        if notional <= 0:
            return to_money(ZERO, self._scale)
        fee = to_money(self._raw_fee(notional), self._scale)
        if fee < 0:
            fee = ZERO
        if fee > notional:
            fee = notional
        return to_money(fee, self._scale)

    def cost(self, side: TradeSide, unit_price: Decimal, quantity: int) -> Tuple[Decimal, Decimal, Decimal]:
        """
        Price a trade.

        Returns:
            (notional, fee, total_cost)
        """
        notional = notional_of(unit_price, quantity, self._scale)
        fee = self.fee(notional)
        return notional, fee, to_money(total_cost_of(side, notional, fee), self._scale)


class FeeSchedule(FeeModel):
    """
    Exchange fee schedule.

    levy + trading fee + compensation levy + stamp duty (rounded up
    to a whole unit) + fixed tariff.
    """

    def __init__(self, config: Optional[FeeConfig] = None, scale: int = 4):
        super().__init__(scale)
        self.config = config or FeeConfig()

    def _raw_fee(self, notional: Decimal) -> Decimal:
        cfg = self.config
        levy = notional * Decimal(cfg.transaction_levy_rate)
        trading_fee = notional * Decimal(cfg.trading_fee_rate)
        compensation_levy = notional * Decimal(cfg.compensation_levy_rate)
        stamp_duty = (notional * Decimal(cfg.stamp_duty_rate)).quantize(Decimal("1"), rounding=ROUND_CEILING)
        return levy + trading_fee + compensation_levy + stamp_duty + Decimal(cfg.trading_tariff)


class FlatFee(FeeModel):
    """Fixed fee per trade, clamped to the notional."""

    def __init__(self, amount: Decimal, scale: int = 4):
        super().__init__(scale)
        self.amount = Decimal(amount)

    def _raw_fee(self, notional: Decimal) -> Decimal:
        return self.amount
