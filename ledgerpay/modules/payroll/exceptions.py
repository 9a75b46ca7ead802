# ledgerpay/modules/payroll/exceptions.py

"""
Custom exceptions for payroll module.
"""

from typing import Optional, List, Dict, Any, Iterable
from .schemas.error_schemas import ErrorDetail, PayrollErrorCodes


class PayrollException(Exception):
    """Base exception for payroll module"""
    def __init__(
        self,
        message: str,
        code: str = PayrollErrorCodes.DATABASE_ERROR,
        details: Optional[List[ErrorDetail]] = None,
        status_code: int = 400,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or []
        self.status_code = status_code
        self.context = context or {}


class PayrollValidationError(PayrollException):
    """Validation error for payroll operations"""
    def __init__(self, message: str, field: Optional[str] = None, details: Optional[List[ErrorDetail]] = None):
        if field and not details:
            details = [ErrorDetail(field=field, message=message)]
        super().__init__(
            message=message,
            code=PayrollErrorCodes.VALIDATION_ERROR,
            details=details,
            status_code=400
        )


class PayrollNotFoundError(PayrollException):
    """Resource not found error"""
    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            message=f"{resource} with identifier {identifier} not found",
            code=PayrollErrorCodes.RECORD_NOT_FOUND,
            status_code=404
        )


class PayrollBusinessRuleError(PayrollException):
    """Business rule violation errors"""
    def __init__(self, message: str, rule: str, details: Optional[List[ErrorDetail]] = None,
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            code=f"PAYROLL_RULE_{rule.upper()}",
            details=details,
            status_code=400,
            context=context
        )


class RunStateConflictError(PayrollException):
    """Requested action is not legal from the run's current status"""
    def __init__(self, action: str, current_status: Any, allowed_statuses: Iterable[Any]):
        current = getattr(current_status, "value", current_status)
        allowed = [getattr(s, "value", s) for s in allowed_statuses]
        super().__init__(
            message=(
                f"Cannot {action} payroll run in status '{current}'; "
                f"allowed statuses: {', '.join(allowed)}"
            ),
            code=PayrollErrorCodes.INVALID_RUN_STATE,
            status_code=400,
            context={"current_status": current, "allowed_statuses": allowed}
        )
        self.action = action
        self.current_status = current
        self.allowed_statuses = allowed


class InvalidTransitionError(PayrollException):
    """A status edge that is missing from the transition table was attempted"""
    def __init__(self, from_status: Any, to_status: Any):
        super().__init__(
            message=f"Illegal payroll run transition {from_status} -> {to_status}",
            code=PayrollErrorCodes.INVALID_RUN_STATE,
            status_code=500
        )


class AnomalyNotAcknowledgedError(PayrollException):
    """Approval attempted while anomalies still need acknowledgement"""
    def __init__(self, anomaly_type: str, count: int):
        super().__init__(
            message=(
                f"{count} employee(s) have anomaly '{anomaly_type}'; "
                f"set acknowledge_anomalies to approve anyway"
            ),
            code=PayrollErrorCodes.ANOMALIES_NOT_ACKNOWLEDGED,
            status_code=400,
            context={"anomaly_type": anomaly_type, "count": count}
        )
        self.anomaly_type = anomaly_type
        self.count = count


class DuplicateEnrollmentError(PayrollException):
    """Employee already has an active enrollment in the deduction type"""
    def __init__(self, deduction_type_code: str, existing_deduction_id: str):
        super().__init__(
            message=f"Employee already has an active {deduction_type_code} deduction",
            code=PayrollErrorCodes.DUPLICATE_ENROLLMENT,
            status_code=409,
            context={"existing_deduction_id": existing_deduction_id}
        )
        self.existing_deduction_id = existing_deduction_id


class GLAccountResolutionError(PayrollException):
    """No GL account could be resolved for a nonzero posting line"""
    def __init__(self, mapping_type: str, candidate_codes: Iterable[str]):
        codes = list(candidate_codes)
        super().__init__(
            message=(
                f"No active GL account configured for '{mapping_type}' "
                f"(checked mapping and codes {', '.join(codes) or 'none'})"
            ),
            code=PayrollErrorCodes.GL_ACCOUNT_UNRESOLVED,
            status_code=500,
            context={"mapping_type": mapping_type, "candidate_codes": codes}
        )
        self.mapping_type = mapping_type


class ConcurrencyError(PayrollException):
    """Concurrent modification error"""
    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            message=f"{resource} {identifier} is locked by another operation",
            code=PayrollErrorCodes.RESOURCE_LOCKED,
            status_code=409
        )
