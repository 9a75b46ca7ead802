# ledgerpay/modules/ledger/exceptions.py

"""
Custom exceptions for the general ledger module.
"""

from decimal import Decimal
from typing import Any, Dict, Optional


class LedgerError(Exception):
    """Base exception for ledger writes"""
    def __init__(
        self,
        message: str,
        code: str = "LEDGER_ERROR",
        context: Optional[Dict[str, Any]] = None,
        status_code: int = 500
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.context = context or {}
        self.status_code = status_code


class UnbalancedJournalError(LedgerError):
    """Debits and credits differ by more than the allowed tolerance"""
    def __init__(self, total_debits: Decimal, total_credits: Decimal, tolerance: Decimal):
        super().__init__(
            message=(
                f"Journal entry is unbalanced: debits {total_debits} != "
                f"credits {total_credits} (tolerance {tolerance})"
            ),
            code="LEDGER_UNBALANCED_ENTRY",
            context={
                "total_debits": str(total_debits),
                "total_credits": str(total_credits),
                "tolerance": str(tolerance),
            },
        )
        self.total_debits = total_debits
        self.total_credits = total_credits


class InvalidJournalLineError(LedgerError):
    """A line must carry exactly one positive side and an account"""
    def __init__(self, line_no: int, reason: str):
        super().__init__(
            message=f"Journal line {line_no} is invalid: {reason}",
            code="LEDGER_INVALID_LINE",
            context={"line_no": line_no},
        )
