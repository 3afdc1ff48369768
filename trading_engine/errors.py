"""
Trading Engine - Error Taxonomy.

============================================================
PURPOSE
============================================================
Error classification for ledger operations.

ERROR CATEGORIES:
1. Validation - Malformed or out-of-range input
2. Not Found - Symbol, balance, portfolio, bank account, currency
3. Not Acceptable - Well-formed input that breaks a business rule
4. Conflict - Concurrent modification outlasted the retries
5. Internal - Storage, lock or quote catalog failure

"No change" is not an error. It is a result status.

============================================================
PROPAGATION
============================================================
Inside a transaction, business failures are raised as
LedgerError so the transaction rolls back. The service boundary
converts every LedgerError into a FAILED LedgerResult.

============================================================
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Set


# ============================================================
# ERROR CATEGORIES
# ============================================================

class ErrorCategory(Enum):
    """Error category classification."""

    VALIDATION = "VALIDATION"
    """Malformed or missing input."""

    NOT_FOUND = "NOT_FOUND"
    """Referenced entity absent."""

    NOT_ACCEPTABLE = "NOT_ACCEPTABLE"
    """Business rule violated by well-formed input."""

    CONFLICT = "CONFLICT"
    """Concurrent modification, retries exhausted."""

    INTERNAL = "INTERNAL"
    """Internal system error."""


# ============================================================
# ERROR CODE REGISTRY
# ============================================================

@dataclass(frozen=True)
class ErrorCodeInfo:
    """Information about an error code."""

    code: str
    """Error code."""

    category: ErrorCategory
    """Error category."""

    is_retryable: bool
    """Whether the caller may retry the same request."""

    description: str
    """Human-readable description."""


def _code(code: str, category: ErrorCategory, description: str, retryable: bool = False) -> ErrorCodeInfo:
    return ErrorCodeInfo(
        code=code,
        category=category,
        is_retryable=retryable,
        description=description,
    )


ERROR_CODES: Dict[str, ErrorCodeInfo] = {
    # ========== VALIDATION ERRORS ==========
    "VAL_INVALID_REQUEST": _code(
        "VAL_INVALID_REQUEST", ErrorCategory.VALIDATION,
        "Request is malformed or has out-of-range fields",
    ),
    "VAL_QUANTITY_EXCEEDS_OUTSTANDING": _code(
        "VAL_QUANTITY_EXCEEDS_OUTSTANDING", ErrorCategory.VALIDATION,
        "Sell quantity exceeds the outstanding quantity",
    ),
    # ========== NOT FOUND ERRORS ==========
    "NF_SYMBOL": _code(
        "NF_SYMBOL", ErrorCategory.NOT_FOUND,
        "Symbol is not in the quote catalog",
    ),
    "NF_BALANCE": _code(
        "NF_BALANCE", ErrorCategory.NOT_FOUND,
        "No balance in the instrument currency; deposit first",
    ),
    "NF_PORTFOLIO": _code(
        "NF_PORTFOLIO", ErrorCategory.NOT_FOUND,
        "Portfolio does not exist",
    ),
    "NF_BANK_ACCOUNT": _code(
        "NF_BANK_ACCOUNT", ErrorCategory.NOT_FOUND,
        "Bank account does not exist",
    ),
    "NF_CURRENCY": _code(
        "NF_CURRENCY", ErrorCategory.NOT_FOUND,
        "Currency is not an active currency",
    ),
    "NF_TRADE_RECORD": _code(
        "NF_TRADE_RECORD", ErrorCategory.NOT_FOUND,
        "None of the referenced trade records exist for the member",
    ),
    # ========== NOT ACCEPTABLE ERRORS ==========
    "NA_NOT_TRADABLE": _code(
        "NA_NOT_TRADABLE", ErrorCategory.NOT_ACCEPTABLE,
        "Instrument is an index and cannot be traded",
    ),
    "NA_INSUFFICIENT_FUNDS": _code(
        "NA_INSUFFICIENT_FUNDS", ErrorCategory.NOT_ACCEPTABLE,
        "Non-trading amount does not cover the request",
    ),
    "NA_CURRENCY_MISMATCH": _code(
        "NA_CURRENCY_MISMATCH", ErrorCategory.NOT_ACCEPTABLE,
        "Currencies of the involved records do not match",
    ),
    "NA_OWNERSHIP": _code(
        "NA_OWNERSHIP", ErrorCategory.NOT_ACCEPTABLE,
        "Resource does not belong to the member",
    ),
    "NA_BANK_ACCOUNT_INACTIVE": _code(
        "NA_BANK_ACCOUNT_INACTIVE", ErrorCategory.NOT_ACCEPTABLE,
        "Bank account is not in use",
    ),
    "NA_BALANCE_CEILING": _code(
        "NA_BALANCE_CEILING", ErrorCategory.NOT_ACCEPTABLE,
        "Resulting balance would reach the balance ceiling",
    ),
    "NA_ADMIN_REQUIRED": _code(
        "NA_ADMIN_REQUIRED", ErrorCategory.NOT_ACCEPTABLE,
        "Operation on another member requires admin rights",
    ),
    # ========== CONFLICT ERRORS ==========
    "CON_CONCURRENT_MODIFICATION": _code(
        "CON_CONCURRENT_MODIFICATION", ErrorCategory.CONFLICT,
        "Records changed concurrently and retries were exhausted",
        retryable=True,
    ),
    # ========== INTERNAL ERRORS ==========
    "INT_LOCK_TIMEOUT": _code(
        "INT_LOCK_TIMEOUT", ErrorCategory.INTERNAL,
        "Timed out waiting for a row lock",
        retryable=True,
    ),
    "INT_QUOTE_UNAVAILABLE": _code(
        "INT_QUOTE_UNAVAILABLE", ErrorCategory.INTERNAL,
        "Quote catalog could not be read",
        retryable=True,
    ),
    "INT_STORAGE_FAILURE": _code(
        "INT_STORAGE_FAILURE", ErrorCategory.INTERNAL,
        "Persistence failure",
    ),
}


def get_error_info(code: str) -> ErrorCodeInfo:
    """
    Get error info for a code.

    Args:
        code: Error code

    Returns:
        ErrorCodeInfo or default unknown error
    """
    return ERROR_CODES.get(code, ErrorCodeInfo(
        code=code,
        category=ErrorCategory.INTERNAL,
        is_retryable=False,
        description=f"Unknown error: {code}",
    ))


def is_retryable(code: str) -> bool:
    """Check if an error code is retryable."""
    return get_error_info(code).is_retryable


RETRYABLE_ERROR_CODES: Set[str] = {
    code for code, info in ERROR_CODES.items() if info.is_retryable
}


# ============================================================
# EXCEPTION
# ============================================================

class LedgerError(Exception):
    """
    Business failure raised inside a ledger transaction.

    Never crosses the service boundary.
    """

    def __init__(
        self,
        code: str,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.code = code
        self.info = get_error_info(code)
        self.message = message or self.info.description
        self.details = details or {}
        super().__init__(f"{code}: {self.message}")

    @property
    def category(self) -> ErrorCategory:
        return self.info.category
