"""
Effective-dated compensation.

Reads resolve the single record in force for a pay period; writes close
the open record and open the new one in one transaction, so readers see
exactly one open record before and after.
"""

import logging
from datetime import date, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledgerpay.core.audit_logger import AuditContext
from ..enums.payroll_enums import EmploymentStatus, PayType
from ..exceptions import (
    ConcurrencyError, PayrollBusinessRuleError, PayrollNotFoundError, PayrollValidationError,
)
from ..models.employee_models import CompensationRecord, Employee
from ..schemas.employee_schemas import CompensationCreate

logger = logging.getLogger(__name__)


def get_employee(db: Session, tenant_id: str, employee_id: str) -> Employee:
    employee = (
        db.query(Employee)
        .filter(Employee.id == employee_id, Employee.tenant_id == tenant_id)
        .first()
    )
    if not employee:
        raise PayrollNotFoundError("Employee", employee_id)
    return employee


def ensure_not_terminated(employee: Employee) -> None:
    if employee.employment_status == EmploymentStatus.TERMINATED:
        raise PayrollBusinessRuleError(
            f"Employee {employee.employee_number} is terminated",
            rule="employee_terminated",
        )


class CompensationService:
    """Compensation resolver and mutation service."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def resolve_for_period(
        self, tenant_id: str, employee_id: str, period_start: date, period_end: date
    ) -> Optional[CompensationRecord]:
        """
        Return the compensation record in force for a period.

        A record matches when it starts on or before the period end and is
        open or ends on or after the period start. When several match, the
        latest ``effective_from`` wins.

        Returns:
            The record, or None when the employee has no pay terms yet
        """
        return (
            self.db.query(CompensationRecord)
            .filter(
                and_(
                    CompensationRecord.tenant_id == tenant_id,
                    CompensationRecord.employee_id == employee_id,
                    CompensationRecord.effective_from <= period_end,
                    or_(
                        CompensationRecord.effective_to.is_(None),
                        CompensationRecord.effective_to >= period_start,
                    ),
                )
            )
            .order_by(
                CompensationRecord.effective_from.desc(),
                CompensationRecord.created_at.desc(),
            )
            .first()
        )

    def get_history(
        self, tenant_id: str, employee_id: str
    ) -> Tuple[Employee, Optional[CompensationRecord], List[CompensationRecord]]:
        employee = get_employee(self.db, tenant_id, employee_id)
        history = (
            self.db.query(CompensationRecord)
            .filter(
                CompensationRecord.tenant_id == tenant_id,
                CompensationRecord.employee_id == employee_id,
            )
            .order_by(CompensationRecord.effective_from.desc())
            .all()
        )
        current = next((r for r in history if r.effective_to is None), None)
        return employee, current, history

    def create_compensation(
        self,
        tenant_id: str,
        employee_id: str,
        request: CompensationCreate,
        actor_id: Optional[str] = None,
    ) -> Tuple[CompensationRecord, Optional[CompensationRecord]]:
        """
        Close the open record the day before ``effective_from`` and insert
        the new open record, committing both together.

        Returns:
            Tuple of (new record, closed record or None)

        Raises:
            PayrollNotFoundError: unknown employee
            PayrollBusinessRuleError: employee is terminated
            PayrollValidationError: commission terms missing, or the new
                record would not start after the open one
        """
        employee = get_employee(self.db, tenant_id, employee_id)
        ensure_not_terminated(employee)

        if request.pay_type == PayType.COMMISSION and request.commission_rate is None:
            raise PayrollValidationError(
                "commission_rate is required for commission pay", field="commission_rate"
            )

        try:
            open_record = self._open_record(tenant_id, employee_id)

            if open_record and request.effective_from <= open_record.effective_from:
                raise PayrollValidationError(
                    f"effective_from must be after {open_record.effective_from.isoformat()}, "
                    f"the start of the current compensation",
                    field="effective_from",
                )

            if open_record:
                open_record.effective_to = request.effective_from - timedelta(days=1)
                self.db.flush()

            record = CompensationRecord(
                tenant_id=tenant_id,
                employee_id=employee_id,
                effective_from=request.effective_from,
                effective_to=None,
                pay_type=request.pay_type,
                pay_rate=request.pay_rate,
                pay_frequency=request.pay_frequency,
                standard_hours_per_week=request.standard_hours_per_week,
                commission_rate=request.commission_rate,
                commission_basis=request.commission_basis,
                change_reason=request.change_reason,
                change_notes=request.change_notes,
                created_by=actor_id,
            )
            self.db.add(record)
            self.db.flush()

            AuditContext(self.db, tenant_id, actor_id).log(
                "employee",
                employee_id,
                "compensation_changed",
                {
                    "compensation_id": record.id,
                    "closed_compensation_id": open_record.id if open_record else None,
                    "effective_from": request.effective_from.isoformat(),
                    "pay_type": request.pay_type.value,
                    "pay_rate": str(request.pay_rate),
                    "change_reason": request.change_reason.value,
                },
            )
            self.db.commit()
        except IntegrityError:
            # Another request opened a record for this employee first
            self.db.rollback()
            logger.warning(f"Concurrent compensation change for employee {employee_id} rejected")
            raise ConcurrencyError("Compensation for employee", employee_id)
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(record)
        logger.info(
            f"Opened compensation {record.id} for employee {employee_id} "
            f"from {record.effective_from}"
        )
        return record, open_record

    def _open_record(self, tenant_id: str, employee_id: str) -> Optional[CompensationRecord]:
        return (
            self.db.query(CompensationRecord)
            .filter(
                CompensationRecord.tenant_id == tenant_id,
                CompensationRecord.employee_id == employee_id,
                CompensationRecord.effective_to.is_(None),
            )
            .with_for_update()
            .first()
        )
