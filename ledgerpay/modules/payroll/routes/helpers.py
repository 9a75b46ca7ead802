# ledgerpay/modules/payroll/routes/helpers.py

"""
Shared helpers for converting payroll and ledger failures into HTTP errors.
"""

import logging
from typing import Union

from fastapi import HTTPException

from ledgerpay.modules.ledger.exceptions import LedgerError
from ..exceptions import PayrollException
from ..schemas.error_schemas import ErrorResponse

logger = logging.getLogger(__name__)


def payroll_http_error(exc: Union[PayrollException, LedgerError]) -> HTTPException:
    """Build the HTTPException for a domain error, keeping its code and context."""
    details = getattr(exc, "details", None) or None
    return HTTPException(
        status_code=exc.status_code,
        detail=ErrorResponse(
            error=exc.__class__.__name__,
            message=exc.message,
            code=exc.code,
            details=details,
            context=exc.context or None,
        ).model_dump(mode="json"),
    )


def internal_error(code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=500,
        detail=ErrorResponse(
            error="InternalError",
            message=message,
            code=code,
        ).model_dump(mode="json"),
    )
