"""
Reference and Audit ORM Models.

============================================================
PURPOSE
============================================================
Tables the ledger reads from or appends to but does not own
the rules of.

============================================================
MODELS
============================================================
- IsoCurrency: ISO 4217 table with the active flag
- BankAccount: Member's linked bank accounts
- AccountTransaction: User-visible history (audit log)
- BankAccountTransaction: Transfers out to bank accounts

============================================================
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from core.clock import now_utc
from storage.models.base import Base, IdType, LastUpdatedMixin, Money


class IsoCurrency(Base, LastUpdatedMixin):
    """ISO 4217 currency; only active rows can be traded against."""

    __tablename__ = "iso_currencies"

    alpha_code: Mapped[str] = mapped_column(
        String(3),
        primary_key=True,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    minor_units: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=2,
    )

    active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )


class BankAccount(Base, LastUpdatedMixin):
    """Bank account a member can transfer cash out to."""

    __tablename__ = "bank_accounts"

    bank_account_id: Mapped[int] = mapped_column(
        IdType,
        primary_key=True,
        autoincrement=True,
    )

    member: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
    )

    bank_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    account_number: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        comment="In use"
    )


class AccountTransaction(Base):
    """
    Account history entry.

    Append-only, written best-effort after ledger mutations.
    """

    __tablename__ = "account_transactions"

    account_transaction_id: Mapped[int] = mapped_column(
        IdType,
        primary_key=True,
        autoincrement=True,
    )

    member: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
    )

    description: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=now_utc,
    )

    __table_args__ = (
        Index("ix_account_transactions_member_currency", "member", "currency"),
    )


class BankAccountTransaction(Base):
    """
    Transfer out of the ledger to a bank account.

    Exactly one row per transfer, carrying the transferred amount.
    """

    __tablename__ = "bank_account_transactions"

    bank_account_transaction_id: Mapped[int] = mapped_column(
        IdType,
        primary_key=True,
        autoincrement=True,
    )

    member: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    bank_account_id: Mapped[int] = mapped_column(
        IdType,
        nullable=False,
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        Money(),
        nullable=False,
    )

    description: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=now_utc,
    )

    __table_args__ = (
        Index("ix_bank_account_transactions_member_currency", "member", "currency"),
    )
