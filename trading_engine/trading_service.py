"""
Trading Engine - Trading Service.

============================================================
PURPOSE
============================================================
Buy/sell execution against the quote catalog, plus the read
views built on the trade blotter and the catalog.

============================================================
BUY WORKFLOW
============================================================
1. Resolve symbol (NF_SYMBOL), reject indices (NA_NOT_TRADABLE)
2. notional = price x quantity, total = notional + fee
3. Lock balance in the instrument currency (NF_BALANCE)
4. Require free cash >= total (NA_INSUFFICIENT_FUNDS)
5. Settle balance, append BUY record, audit

============================================================
SELL WORKFLOW
============================================================
1. quantity <= outstanding (VAL_QUANTITY_EXCEEDS_OUTSTANDING)
2. Resolve symbol, reject indices
3. total = notional - fee (proceeds)
4. Validate the auto-transfer bank account, if any
5. Lock balance, settle, append SELL record, audit
6. Auto-transfer: move the proceeds out once, one transfer record

Everything runs in one transaction; any failure leaves balance
and blotter untouched.

============================================================
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from core.clock import today_utc
from storage.repositories import BankTransferRepository, TradeRecordRepository
from trading_engine.authorization import AuthorizationContext
from trading_engine.collaborators import BankAccountInfo
from trading_engine.errors import LedgerError
from trading_engine.positions import outstanding_quantity
from trading_engine.schemas import (
    BuyRequest,
    CurrencyFilter,
    EstimateRequest,
    InstrumentQuery,
    InstrumentSearch,
    SellRequest,
)
from trading_engine.service_base import BaseLedgerService
from trading_engine.types import (
    BalanceSnapshot,
    CostEstimate,
    LedgerResult,
    OutstandingPosition,
    Quote,
    QuoteType,
    TradeConfirmation,
    TradeRecordView,
    TradeSide,
    TransferConfirmation,
)

logger = logging.getLogger(__name__)


def check_bank_account(account: Optional[BankAccountInfo], bank_account_id: int, member: str, currency: str) -> BankAccountInfo:
    """
    Validate a transfer destination.

    Raises:
        LedgerError: NF_BANK_ACCOUNT, NA_OWNERSHIP,
            NA_BANK_ACCOUNT_INACTIVE or NA_CURRENCY_MISMATCH
    """
    if account is None:
        raise LedgerError(
            "NF_BANK_ACCOUNT",
            f"Bank account {bank_account_id} not found",
            {"bank_account_id": bank_account_id},
        )
    if account.owner != member:
        raise LedgerError(
            "NA_OWNERSHIP",
            f"Bank account {bank_account_id} does not belong to {member}",
            {"bank_account_id": bank_account_id},
        )
    if not account.active:
        raise LedgerError(
            "NA_BANK_ACCOUNT_INACTIVE",
            f"Bank account {bank_account_id} is not in use",
            {"bank_account_id": bank_account_id},
        )
    if account.currency != currency:
        raise LedgerError(
            "NA_CURRENCY_MISMATCH",
            f"Bank account {bank_account_id} is in {account.currency}, not {currency}",
            {"bank_account_id": bank_account_id, "account_currency": account.currency, "currency": currency},
        )
    return account


class TradingService(BaseLedgerService):
    """
    Trade execution and trade/position/catalog reads.
    """

    # =========================================================
    # PUBLIC OPERATIONS
    # =========================================================

    def buy(self, ctx: AuthorizationContext, symbol: str, quantity: int) -> LedgerResult[TradeConfirmation]:
        """Buy `quantity` shares of `symbol` at the current price."""
        return self._execute("buy", ctx, self._buy, BuyRequest, symbol=symbol, quantity=quantity)

    def sell(
        self,
        ctx: AuthorizationContext,
        symbol: str,
        quantity: int,
        transfer_to_bank_account_id: Optional[int] = None,
    ) -> LedgerResult[TradeConfirmation]:
        """Sell `quantity` shares, optionally sending the proceeds to a bank account."""
        return self._execute(
            "sell", ctx, self._sell, SellRequest,
            symbol=symbol,
            quantity=quantity,
            transfer_to_bank_account_id=transfer_to_bank_account_id,
        )

    def estimate_cost(
        self,
        ctx: AuthorizationContext,
        side: TradeSide,
        symbol: str,
        quantity: int,
    ) -> LedgerResult[CostEstimate]:
        """Price a trade without executing it."""
        return self._execute(
            "estimate_cost", ctx, self._estimate, EstimateRequest, read_only=True,
            side=side, symbol=symbol, quantity=quantity,
        )

    def outstanding_positions(
        self,
        ctx: AuthorizationContext,
        currency: Optional[str] = None,
    ) -> LedgerResult[List[OutstandingPosition]]:
        """Open positions in active currencies (or one active currency)."""
        return self._execute(
            "outstanding_positions", ctx, self._positions, CurrencyFilter, read_only=True,
            currency=currency,
        )

    def list_trades(
        self,
        ctx: AuthorizationContext,
        currency: Optional[str] = None,
    ) -> LedgerResult[List[TradeRecordView]]:
        """Trade records in active currencies (or one active currency), by id."""
        return self._execute(
            "list_trades", ctx, self._list_trades, CurrencyFilter, read_only=True,
            currency=currency,
        )

    def list_instruments(
        self,
        ctx: AuthorizationContext,
        quote_type: QuoteType = QuoteType.EQUITY,
        currency: Optional[str] = None,
    ) -> LedgerResult[List[Quote]]:
        """Catalog instruments of one type, optionally in one currency."""
        return self._execute(
            "list_instruments", ctx, self._list_instruments, InstrumentQuery, read_only=True,
            quote_type=quote_type, currency=currency,
        )

    def search_instruments(
        self,
        ctx: AuthorizationContext,
        by: str,
        criteria: str,
    ) -> LedgerResult[List[Quote]]:
        """Case-insensitive substring search on symbol or name."""
        return self._execute(
            "search_instruments", ctx, self._search_instruments, InstrumentSearch, read_only=True,
            by=by, criteria=criteria,
        )

    # =========================================================
    # HANDLERS
    # =========================================================

    def _buy(self, session: Session, ctx: AuthorizationContext, request: BuyRequest) -> LedgerResult:
        quotes = self._load_quotes()
        quote = self._resolve_tradable(quotes, request.symbol)
        notional, fee, total_cost = self._deps.fee_model.cost(TradeSide.BUY, quote.price, request.quantity)

        ledger = self._deps.balance_ledger
        balance = ledger.load_for_update(session, ctx.member, quote.currency)
        ledger.settle_buy(session, balance, total_cost)

        record = TradeRecordRepository(session).append(
            member=ctx.member,
            symbol=quote.symbol,
            symbol_name=quote.name,
            trade_date=today_utc(),
            side=TradeSide.BUY.value,
            quantity=request.quantity,
            currency=quote.currency,
            unit_price=quote.price,
            total_cost=total_cost,
        )
        logger.info(
            f"Trade recorded: {ctx.member} BUY {request.quantity} {quote.symbol} "
            f"@ {quote.price} total={total_cost} (trade {record.trade_id})"
        )
        self._audit(
            session, ctx.member, quote.currency,
            f"Bought {request.quantity} {quote.symbol} @ {quote.price}, cost {total_cost}",
        )

        return LedgerResult.success(TradeConfirmation(
            trade=TradeRecordView.from_model(record),
            notional=notional,
            fee=fee,
            balance=BalanceSnapshot.from_model(balance),
        ))

    def _sell(self, session: Session, ctx: AuthorizationContext, request: SellRequest) -> LedgerResult:
        trades = TradeRecordRepository(session)
        self._check_outstanding(trades, ctx.member, request)

        quotes = self._load_quotes()
        quote = self._resolve_tradable(quotes, request.symbol)
        notional, fee, proceeds = self._deps.fee_model.cost(TradeSide.SELL, quote.price, request.quantity)

        destination = None
        if request.transfer_to_bank_account_id is not None:
            destination = check_bank_account(
                self._deps.bank_accounts.lookup(session, request.transfer_to_bank_account_id),
                request.transfer_to_bank_account_id,
                ctx.member,
                quote.currency,
            )

        ledger = self._deps.balance_ledger
        balance = ledger.load_for_update(session, ctx.member, quote.currency)
        # Sells of the same holding serialize on the balance lock; recount under it.
        self._check_outstanding(trades, ctx.member, request)
        ledger.settle_sell(session, balance, proceeds)

        record = trades.append(
            member=ctx.member,
            symbol=quote.symbol,
            symbol_name=quote.name,
            trade_date=today_utc(),
            side=TradeSide.SELL.value,
            quantity=request.quantity,
            currency=quote.currency,
            unit_price=quote.price,
            total_cost=proceeds,
        )
        logger.info(
            f"Trade recorded: {ctx.member} SELL {request.quantity} {quote.symbol} "
            f"@ {quote.price} proceeds={proceeds} (trade {record.trade_id})"
        )
        self._audit(
            session, ctx.member, quote.currency,
            f"Sold {request.quantity} {quote.symbol} @ {quote.price}, proceeds {proceeds}",
        )

        transfer = None
        if destination is not None and proceeds > 0:
            ledger.withdraw(session, balance, proceeds, enforce_ceiling=False)
            BankTransferRepository(session).append(
                member=ctx.member,
                bank_account_id=destination.bank_account_id,
                currency=quote.currency,
                amount=proceeds,
                description=f"Proceeds of selling {request.quantity} {quote.symbol}",
            )
            logger.info(
                f"Sale proceeds {proceeds} {quote.currency} of {ctx.member} "
                f"transferred to bank account {destination.bank_account_id}"
            )
            self._audit(
                session, ctx.member, quote.currency,
                f"Transferred {proceeds} to bank account {destination.bank_account_id}",
            )
            transfer = TransferConfirmation(
                bank_account_id=destination.bank_account_id,
                currency=quote.currency,
                amount=proceeds,
                balance=BalanceSnapshot.from_model(balance),
            )

        return LedgerResult.success(TradeConfirmation(
            trade=TradeRecordView.from_model(record),
            notional=notional,
            fee=fee,
            balance=BalanceSnapshot.from_model(balance),
            bank_transfer=transfer,
        ))

    @staticmethod
    def _check_outstanding(trades: TradeRecordRepository, member: str, request: SellRequest) -> int:
        held = outstanding_quantity(trades.list_for_symbol(member, request.symbol))
        if request.quantity > held:
            raise LedgerError(
                "VAL_QUANTITY_EXCEEDS_OUTSTANDING",
                f"Cannot sell {request.quantity} {request.symbol}, outstanding {held}",
                {"requested": request.quantity, "outstanding": held},
            )
        return held

    def _estimate(self, session: Session, ctx: AuthorizationContext, request: EstimateRequest) -> LedgerResult:
        quote = self._resolve_tradable(self._load_quotes(), request.symbol)
        notional, fee, total_cost = self._deps.fee_model.cost(request.side, quote.price, request.quantity)
        return LedgerResult.success(CostEstimate(
            side=request.side,
            symbol=quote.symbol,
            symbol_name=quote.name,
            currency=quote.currency,
            quantity=request.quantity,
            unit_price=quote.price,
            notional=notional,
            fee=fee,
            total_cost=total_cost,
        ))

    def _positions(self, session: Session, ctx: AuthorizationContext, request: CurrencyFilter) -> LedgerResult:
        scope = self._currency_scope(session, request.currency)
        records = TradeRecordRepository(session).list_for_member(ctx.member, scope)
        if not records:
            return LedgerResult.success([])
        return LedgerResult.success(self._deps.positions.derive(records, self._load_quotes()))

    def _list_trades(self, session: Session, ctx: AuthorizationContext, request: CurrencyFilter) -> LedgerResult:
        scope = self._currency_scope(session, request.currency)
        records = TradeRecordRepository(session).list_for_member(ctx.member, scope)
        return LedgerResult.success([TradeRecordView.from_model(record) for record in records])

    def _list_instruments(self, session: Session, ctx: AuthorizationContext, request: InstrumentQuery) -> LedgerResult:
        quotes = [
            quote for quote in self._load_quotes().values()
            if quote.quote_type is request.quote_type
            and (request.currency is None or quote.currency == request.currency)
        ]
        return LedgerResult.success(sorted(quotes, key=lambda quote: quote.symbol.upper()))

    def _search_instruments(self, session: Session, ctx: AuthorizationContext, request: InstrumentSearch) -> LedgerResult:
        needle = request.criteria.lower()
        quotes = [
            quote for quote in self._load_quotes().values()
            if needle in (quote.symbol if request.by == "symbol" else quote.name).lower()
        ]
        return LedgerResult.success(sorted(quotes, key=lambda quote: quote.symbol.upper()))
