"""
Trading Engine - Watch List Service.

============================================================
PURPOSE
============================================================
Instruments a member follows without holding them.

- add: catalog symbols only, unknown symbols are skipped;
  symbols already followed are NO_CHANGE
- remove: soft delete of followed symbols
- list: active currencies (or one active currency), priced
  from the catalog at read time

============================================================
"""

import logging
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from core.clock import now_utc
from storage.repositories import WatchListRepository
from trading_engine.authorization import AuthorizationContext
from trading_engine.quotes import resolve_symbol
from trading_engine.schemas import CurrencyFilter, WatchListChange
from trading_engine.service_base import BaseLedgerService
from trading_engine.types import LedgerResult, WatchListItem, WatchListOutcome

logger = logging.getLogger(__name__)


class WatchListService(BaseLedgerService):
    """Watch list maintenance and reads."""

    def add_to_watch_list(self, ctx: AuthorizationContext, symbols: Iterable[str]) -> LedgerResult[WatchListOutcome]:
        """Follow catalog instruments."""
        return self._execute(
            "add_to_watch_list", ctx, self._add, WatchListChange,
            symbols=list(symbols),
        )

    def remove_from_watch_list(
        self,
        ctx: AuthorizationContext,
        symbols: Iterable[str],
    ) -> LedgerResult[WatchListOutcome]:
        """Stop following instruments."""
        return self._execute(
            "remove_from_watch_list", ctx, self._remove, WatchListChange,
            symbols=list(symbols),
        )

    def list_watch_list(
        self,
        ctx: AuthorizationContext,
        currency: Optional[str] = None,
    ) -> LedgerResult[List[WatchListItem]]:
        """Followed instruments in active currencies (or one active currency), by symbol."""
        return self._execute(
            "list_watch_list", ctx, self._list, CurrencyFilter, read_only=True,
            currency=currency,
        )

    # =========================================================
    # HANDLERS
    # =========================================================

    def _add(self, session: Session, ctx: AuthorizationContext, request: WatchListChange) -> LedgerResult:
        if not request.symbols:
            return LedgerResult.no_change(WatchListOutcome(count=0), message="No symbols given")

        quotes = self._load_quotes()
        repository = WatchListRepository(session)
        followed = {entry.symbol.upper() for entry in repository.list_active(ctx.member)}

        added = []
        for symbol in request.symbols:
            quote = resolve_symbol(quotes, symbol)
            if quote is None:
                logger.info(f"Watch list of {ctx.member}: unknown symbol {symbol} skipped")
                continue
            if quote.symbol.upper() in followed:
                continue
            repository.add(ctx.member, quote.symbol, quote.name, quote.currency)
            followed.add(quote.symbol.upper())
            added.append(quote.symbol)

        if not added:
            return LedgerResult.no_change(WatchListOutcome(count=0), message="Nothing to add")

        logger.info(f"Watch list of {ctx.member}: added {', '.join(added)}")
        return LedgerResult.success(WatchListOutcome(count=len(added), symbols=tuple(added)))

    def _remove(self, session: Session, ctx: AuthorizationContext, request: WatchListChange) -> LedgerResult:
        wanted = {symbol.upper() for symbol in request.symbols}
        repository = WatchListRepository(session)
        entries = [entry for entry in repository.list_active(ctx.member) if entry.symbol.upper() in wanted]
        if not entries:
            return LedgerResult.no_change(WatchListOutcome(count=0), message="Nothing to remove")

        repository.mark_removed(entries, now_utc())
        removed = tuple(entry.symbol for entry in entries)
        logger.info(f"Watch list of {ctx.member}: removed {', '.join(removed)}")
        return LedgerResult.success(WatchListOutcome(count=len(removed), symbols=removed))

    def _list(self, session: Session, ctx: AuthorizationContext, request: CurrencyFilter) -> LedgerResult:
        scope = self._currency_scope(session, request.currency)
        entries = WatchListRepository(session).list_active(ctx.member, scope)
        if not entries:
            return LedgerResult.success([])

        quotes = self._load_quotes()
        items = []
        for entry in entries:
            quote = resolve_symbol(quotes, entry.symbol)
            items.append(WatchListItem(
                symbol=entry.symbol,
                symbol_name=entry.symbol_name,
                currency=entry.currency,
                price=quote.price if quote is not None else None,
            ))
        return LedgerResult.success(items)
