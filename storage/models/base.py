"""
Base ORM Model and Mixins.

============================================================
PURPOSE
============================================================
Provides the declarative base and the column conventions
shared by every ledger table.

============================================================
COMPONENTS
============================================================
- Base: SQLAlchemy declarative base for all models
- IdType: Surrogate key type (BIGINT, INTEGER on SQLite so
  autoincrement works)
- Money: Fixed-point money column type
- LastUpdatedMixin: lastUpdated timestamp column

============================================================
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import BigInteger, DateTime, Integer, Numeric
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from core.clock import now_utc


# Money is stored with 4 decimal places, the precision fees are rounded to.
MONEY_PRECISION = 20
MONEY_SCALE = 4

IdType = BigInteger().with_variant(Integer(), "sqlite")


def Money() -> Numeric:
    """Fixed-point money column type."""
    return Numeric(MONEY_PRECISION, MONEY_SCALE, asdecimal=True)


ZERO = Decimal("0")


class Base(DeclarativeBase):
    """
    Declarative base for all ledger ORM models.
    """

    type_annotation_map = {
        datetime: DateTime(timezone=True),
    }


class LastUpdatedMixin:
    """
    Mixin providing the last_updated column.

    Set from the ledger clock on insert and on every ORM update,
    so tests running under a MockClock see deterministic values.

    Usage:
        class MyModel(Base, LastUpdatedMixin):
            __tablename__ = "my_table"
            ...
    """

    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=now_utc,
        onupdate=now_utc,
        comment="Last update timestamp (UTC)"
    )
