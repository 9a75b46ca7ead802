# ledgerpay/modules/payroll/schemas/error_schemas.py

"""
Structured error bodies returned by the payroll API.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Dict, Any, List
from datetime import datetime


class ErrorDetail(BaseModel):
    """A single field-level problem"""

    field: Optional[str] = None
    message: str
    code: Optional[str] = None


class ErrorResponse(BaseModel):
    """Body placed under ``detail`` for every payroll error"""

    error: str = Field(..., description="Exception class that produced the error")
    message: str = Field(..., description="Human-readable error message")
    code: str = Field(..., description="Machine-readable error code")
    details: Optional[List[ErrorDetail]] = Field(
        None, description="Field-level problems, when the error has them"
    )
    context: Optional[Dict[str, Any]] = Field(
        None, description="Structured data about the failure"
    )
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": "RunStateConflictError",
                "message": "Cannot approve payroll run in status 'draft'",
                "code": "PAYROLL_INVALID_RUN_STATE",
                "context": {
                    "current_status": "draft",
                    "allowed_statuses": ["calculated", "reviewing"],
                },
                "timestamp": "2025-01-30T12:00:00Z",
            }
        }
    )


class PayrollErrorCodes:
    """Error codes for payroll failures.

    Business-rule violations are coded ``PAYROLL_RULE_<RULE>`` by
    ``PayrollBusinessRuleError`` and are not listed here.
    """

    VALIDATION_ERROR = "PAYROLL_VALIDATION_ERROR"
    RECORD_NOT_FOUND = "PAYROLL_RECORD_NOT_FOUND"

    # Run lifecycle
    INVALID_RUN_STATE = "PAYROLL_INVALID_RUN_STATE"
    ANOMALIES_NOT_ACKNOWLEDGED = "PAYROLL_ANOMALIES_NOT_ACKNOWLEDGED"
    RESOURCE_LOCKED = "PAYROLL_RESOURCE_LOCKED"

    # Employee input
    DUPLICATE_ENROLLMENT = "PAYROLL_DUPLICATE_ENROLLMENT"

    # Calculation and posting
    CALCULATION_FAILED = "PAYROLL_CALCULATION_FAILED"
    GL_ACCOUNT_UNRESOLVED = "PAYROLL_GL_ACCOUNT_UNRESOLVED"
    POSTING_FAILED = "PAYROLL_POSTING_FAILED"

    DATABASE_ERROR = "PAYROLL_DATABASE_ERROR"
