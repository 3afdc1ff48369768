"""
Trading Engine - Position Calculator.

============================================================
RESPONSIBILITY
============================================================
Derives net open positions from trade records and values them
against live quotes. Nothing here is persisted.

- outstanding quantity = sum(BUY qty) - sum(SELL qty)
- one position per symbol present in the input
- only positions with quantity > 0 are surfaced
- output sorted by symbol, independent of input order

============================================================
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional

from trading_engine.fees import to_money
from trading_engine.types import OutstandingPosition, Quote, TradeSide

logger = logging.getLogger(__name__)


def _side_of(record: Any) -> TradeSide:
    side = record.side
    return side if isinstance(side, TradeSide) else TradeSide(side)


def signed_quantity(record: Any) -> int:
    """Quantity with the sign of its side (SELL negative)."""
    if _side_of(record) is TradeSide.BUY:
        return record.quantity
    return -record.quantity


def outstanding_quantity(records: Iterable[Any], symbol: Optional[str] = None) -> int:
    """
    Net open quantity over a set of trade records.

    Args:
        records: Trade records (ORM rows or views)
        symbol: Restrict to one symbol (case-insensitive)

    Returns:
        Sum of BUY quantities minus sum of SELL quantities; 0 for no records
    """
    wanted = symbol.upper() if symbol else None
    return sum(
        signed_quantity(record)
        for record in records
        if wanted is None or record.symbol.upper() == wanted
    )


def net_invested(records: Iterable[Any]) -> Decimal:
    """Sum of BUY total cost minus sum of SELL total cost."""
    total = Decimal("0")
    for record in records:
        if _side_of(record) is TradeSide.BUY:
            total += record.total_cost
        else:
            total -= record.total_cost
    return total


@dataclass
class _Group:
    symbol: str
    symbol_name: str
    currency: str
    quantity: int = 0
    last_trade_id: int = -1
    last_price: Decimal = Decimal("0")


class PositionCalculator:
    """
    Groups trade records by symbol and values open quantity.

    A held symbol missing from the catalog is valued at its last
    traded unit price and logged.
    """

    def __init__(self, scale: int = 4):
        self._scale = scale

    def derive(
        self,
        records: Iterable[Any],
        quotes: Mapping[str, Quote],
    ) -> List[OutstandingPosition]:
        """
        Outstanding positions of a record set.

        Args:
            records: Trade records of one member
            quotes: Upper-cased symbol to live quote

        Returns:
            Positions with quantity > 0, sorted by symbol
        """
        groups: Dict[str, _Group] = {}
        for record in records:
            key = record.symbol.upper()
            group = groups.get(key)
            if group is None:
                group = _Group(
                    symbol=record.symbol,
                    symbol_name=record.symbol_name,
                    currency=record.currency,
                )
                groups[key] = group
            group.quantity += signed_quantity(record)
            trade_id = getattr(record, "trade_id", None) or 0
            if trade_id >= group.last_trade_id:
                group.last_trade_id = trade_id
                group.last_price = record.unit_price

        positions = []
        for key in sorted(groups):
            group = groups[key]
            if group.quantity <= 0:
                continue
            quote = quotes.get(key)
            if quote is not None:
                price = quote.price
            else:
                logger.warning(
                    f"No quote for held symbol {group.symbol}, "
                    f"valuing at last traded price {group.last_price}"
                )
                price = group.last_price
            positions.append(OutstandingPosition(
                symbol=group.symbol,
                symbol_name=group.symbol_name,
                currency=group.currency,
                outstanding_quantity=group.quantity,
                current_price=price,
                current_amount=to_money(Decimal(price) * group.quantity, self._scale),
            ))
        return positions
