"""
Deduction enrollment set.

Lists, creates, updates and ends an employee's deduction, benefit and
garnishment enrollments, and builds the calculator inputs for a period.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from ledgerpay.core.audit_logger import AuditContext
from ..enums.payroll_enums import DeductionCategory
from ..exceptions import (
    DuplicateEnrollmentError, PayrollBusinessRuleError, PayrollNotFoundError,
)
from ..models.employee_models import DeductionType, EmployeeDeduction
from ..schemas.employee_schemas import DeductionCreate, DeductionUpdate
from .compensation_service import ensure_not_terminated, get_employee
from .payroll_calculator import DeductionEnrollmentInput

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "calc_method",
    "amount",
    "per_period_limit",
    "annual_limit",
    "employer_match_percent",
    "employer_match_max_percent",
    "garnishment_priority",
)


def to_enrollment_input(
    enrollment: EmployeeDeduction, ytd_amount: Optional[Decimal] = None
) -> DeductionEnrollmentInput:
    """Calculator input for an enrollment.

    ``ytd_amount`` is what the enrollment has already taken in the pay year
    being calculated; the stored counter is only a fallback.
    """
    deduction_type = enrollment.deduction_type
    return DeductionEnrollmentInput(
        enrollment_id=enrollment.id,
        deduction_type_id=enrollment.deduction_type_id,
        deduction_type_code=deduction_type.code,
        calc_method=enrollment.calc_method,
        amount=enrollment.amount,
        is_garnishment=deduction_type.category == DeductionCategory.GARNISHMENT,
        per_period_limit=enrollment.per_period_limit,
        annual_limit=enrollment.annual_limit,
        ytd_amount=ytd_amount if ytd_amount is not None else (enrollment.ytd_amount or 0),
        employer_match_percent=enrollment.employer_match_percent,
        employer_match_max_percent=enrollment.employer_match_max_percent,
        garnishment_priority=enrollment.garnishment_priority,
        effective_from=enrollment.effective_from,
        enrolled_at=enrollment.created_at,
    )


class DeductionService:
    """Service for employee deduction enrollments."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def list_deductions(
        self, tenant_id: str, employee_id: str, include_inactive: bool = False
    ) -> Tuple[List[EmployeeDeduction], List[EmployeeDeduction]]:
        get_employee(self.db, tenant_id, employee_id)
        query = (
            self.db.query(EmployeeDeduction)
            .options(joinedload(EmployeeDeduction.deduction_type))
            .filter(
                EmployeeDeduction.tenant_id == tenant_id,
                EmployeeDeduction.employee_id == employee_id,
            )
        )
        if not include_inactive:
            query = query.filter(EmployeeDeduction.is_active == True)
        rows = query.order_by(
            EmployeeDeduction.effective_from, EmployeeDeduction.created_at
        ).all()
        active = [r for r in rows if r.is_active]
        inactive = [r for r in rows if not r.is_active]
        return active, inactive

    def active_for_period(
        self, tenant_id: str, employee_id: str, period_start: date, period_end: date
    ) -> List[EmployeeDeduction]:
        """Active enrollments whose effective interval overlaps the period."""
        return (
            self.db.query(EmployeeDeduction)
            .options(joinedload(EmployeeDeduction.deduction_type))
            .filter(
                and_(
                    EmployeeDeduction.tenant_id == tenant_id,
                    EmployeeDeduction.employee_id == employee_id,
                    EmployeeDeduction.is_active == True,
                    EmployeeDeduction.effective_from <= period_end,
                    or_(
                        EmployeeDeduction.effective_to.is_(None),
                        EmployeeDeduction.effective_to >= period_start,
                    ),
                )
            )
            .order_by(EmployeeDeduction.effective_from, EmployeeDeduction.created_at)
            .all()
        )

    def create_deduction(
        self,
        tenant_id: str,
        employee_id: str,
        request: DeductionCreate,
        actor_id: Optional[str] = None,
    ) -> EmployeeDeduction:
        """
        Enroll an employee.

        Raises:
            PayrollNotFoundError: unknown employee or deduction type
            PayrollBusinessRuleError: employee is terminated
            DuplicateEnrollmentError: an active enrollment of the type exists
        """
        employee = get_employee(self.db, tenant_id, employee_id)
        ensure_not_terminated(employee)

        deduction_type = (
            self.db.query(DeductionType)
            .filter(
                DeductionType.id == request.deduction_type_id,
                DeductionType.tenant_id == tenant_id,
            )
            .first()
        )
        if not deduction_type:
            raise PayrollNotFoundError("Deduction type", request.deduction_type_id)

        type_code = deduction_type.code
        existing = self._active_enrollment(tenant_id, employee_id, deduction_type.id)
        if existing:
            raise DuplicateEnrollmentError(type_code, existing.id)

        try:
            enrollment = EmployeeDeduction(
                tenant_id=tenant_id,
                employee_id=employee_id,
                deduction_type_id=deduction_type.id,
                effective_from=request.effective_from,
                calc_method=request.calc_method,
                amount=request.amount,
                per_period_limit=request.per_period_limit,
                annual_limit=request.annual_limit,
                ytd_amount=0,
                employer_match_percent=request.employer_match_percent,
                employer_match_max_percent=request.employer_match_max_percent,
                case_number=request.case_number,
                garnishment_type=request.garnishment_type,
                garnishment_priority=request.garnishment_priority,
                is_active=True,
                created_by=actor_id,
            )
            self.db.add(enrollment)
            self.db.flush()

            AuditContext(self.db, tenant_id, actor_id).log(
                "employee_deduction",
                enrollment.id,
                "deduction_enrolled",
                {
                    "employee_id": employee_id,
                    "deduction_type": deduction_type.code,
                    "calc_method": request.calc_method.value,
                    "amount": str(request.amount),
                },
            )
            self.db.commit()
        except IntegrityError:
            # Lost a race with a concurrent enrollment of the same type
            self.db.rollback()
            existing = self._active_enrollment(tenant_id, employee_id, request.deduction_type_id)
            if existing is None:
                raise
            logger.warning(f"Concurrent {type_code} enrollment for employee {employee_id} rejected")
            raise DuplicateEnrollmentError(type_code, existing.id)
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(enrollment)
        logger.info(
            f"Enrolled employee {employee_id} in {deduction_type.code} ({enrollment.id})"
        )
        return enrollment

    def _active_enrollment(
        self, tenant_id: str, employee_id: str, deduction_type_id: str
    ) -> Optional[EmployeeDeduction]:
        return (
            self.db.query(EmployeeDeduction)
            .filter(
                EmployeeDeduction.tenant_id == tenant_id,
                EmployeeDeduction.employee_id == employee_id,
                EmployeeDeduction.deduction_type_id == deduction_type_id,
                EmployeeDeduction.is_active == True,
            )
            .first()
        )

    def update_deduction(
        self,
        tenant_id: str,
        employee_id: str,
        request: DeductionUpdate,
        actor_id: Optional[str] = None,
    ) -> EmployeeDeduction:
        """
        Update terms of an active enrollment, or end it.

        Ending is one-way; an ended enrollment can be neither ended again
        nor updated.
        """
        get_employee(self.db, tenant_id, employee_id)
        enrollment = (
            self.db.query(EmployeeDeduction)
            .filter(
                EmployeeDeduction.id == request.deduction_id,
                EmployeeDeduction.tenant_id == tenant_id,
                EmployeeDeduction.employee_id == employee_id,
            )
            .first()
        )
        if not enrollment:
            raise PayrollNotFoundError("Employee deduction", request.deduction_id)

        if not enrollment.is_active:
            action = "end" if request.end_deduction else "update"
            raise PayrollBusinessRuleError(
                f"Cannot {action} deduction {enrollment.id}: it has already ended",
                rule="enrollment_ended",
            )

        audit = AuditContext(self.db, tenant_id, actor_id)
        try:
            if request.end_deduction:
                end_date = request.end_date or date.today()
                if end_date < enrollment.effective_from:
                    raise PayrollBusinessRuleError(
                        "end_date cannot be before the enrollment's effective_from",
                        rule="invalid_date_range",
                    )
                enrollment.effective_to = end_date
                enrollment.is_active = False
                audit.log(
                    "employee_deduction",
                    enrollment.id,
                    "deduction_ended",
                    {"employee_id": employee_id, "effective_to": end_date.isoformat()},
                )
            else:
                changes = {}
                for field_name in UPDATABLE_FIELDS:
                    value = getattr(request, field_name)
                    if value is not None:
                        old = getattr(enrollment, field_name)
                        setattr(enrollment, field_name, value)
                        changes[field_name] = {
                            "old": getattr(old, "value", str(old) if old is not None else None),
                            "new": getattr(value, "value", str(value)),
                        }
                audit.log(
                    "employee_deduction",
                    enrollment.id,
                    "deduction_updated",
                    {"employee_id": employee_id, "changes": changes},
                )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(enrollment)
        return enrollment
