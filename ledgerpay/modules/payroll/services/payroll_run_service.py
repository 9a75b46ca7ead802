"""
Payroll run orchestration.

Wires the compensation resolver, deduction enrollment set, calculator,
state machine and GL posting generator into the run lifecycle:
create -> calculate (repeatable) -> review -> approve -> post, with
cancel available before posting.

Calculate and post claim the run through the state machine (committed
``calculating``/``posting`` status) before doing any work, write all of
their results in one transaction, and put the run back to its prior
status if anything fails.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload, selectinload

from ledgerpay.core.audit_logger import AuditContext
from ledgerpay.core.config import Settings, get_settings
from ledgerpay.modules.ledger.services.journal_service import JournalWriter
from ..enums.payroll_enums import (
    EmploymentStatus, PayrollRunStatus, PayrollRunType, RunEmployeeStatus,
)
from ..exceptions import (
    AnomalyNotAcknowledgedError, PayrollBusinessRuleError, PayrollNotFoundError,
    RunStateConflictError,
)
from ..models.employee_models import Employee, EmployeeDeduction
from ..models.payroll_models import (
    EarningType, PayPeriod, PayrollDeduction, PayrollEarning, PayrollRun,
    PayrollRunEmployee, PayrollTax,
)
from ..schemas.payroll_schemas import (
    ApproveRunRequest, CancelRunRequest, PayrollRunCreate, PayrollRunUpdate,
)
from .compensation_service import CompensationService
from .deduction_service import DeductionService, to_enrollment_input
from .gl_posting_service import GLPostingService
from .payroll_calculator import (
    CANONICAL_REGULAR_CODE, CompensationTerms, EmployeePayrollInput,
    EmployeePayrollResult, PayrollCalculator, PayrollRunSummary,
)
from .payroll_tax_engine import WithholdingProfile
from .run_state_machine import RunStateMachine, TERMINAL_STATUSES

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
RUN_ENTITY = "payroll_run"


@dataclass(frozen=True)
class PostingOutcome:
    run: PayrollRun
    journal_entry_id: str
    transaction_set_id: Optional[str]
    idempotent: bool = False


def append_note(existing: Optional[str], note: str) -> str:
    return f"{existing}\n{note}" if existing else note


class PayrollRunService:
    """Lifecycle operations on payroll runs for one tenant at a time."""

    def __init__(
        self,
        db_session: Session,
        config: Optional[Settings] = None,
        calculator: Optional[PayrollCalculator] = None,
    ):
        self.db = db_session
        self.config = config or get_settings()
        self.calculator = calculator or PayrollCalculator(config=self.config)
        self.state_machine = RunStateMachine(db_session)
        self.compensation = CompensationService(db_session)
        self.deductions = DeductionService(db_session)
        self.gl_posting = GLPostingService(db_session, self.config)

    # Queries

    def get_run(self, tenant_id: str, run_id: str) -> PayrollRun:
        run = (
            self.db.query(PayrollRun)
            .filter(PayrollRun.id == run_id, PayrollRun.tenant_id == tenant_id)
            .first()
        )
        if not run:
            raise PayrollNotFoundError("Payroll run", run_id)
        return run

    def list_runs(
        self,
        tenant_id: str,
        status: Optional[PayrollRunStatus] = None,
        pay_period_id: Optional[str] = None,
        limit: int = 50,
    ) -> List[PayrollRun]:
        query = self.db.query(PayrollRun).filter(PayrollRun.tenant_id == tenant_id)
        if status:
            query = query.filter(PayrollRun.status == status)
        if pay_period_id:
            query = query.filter(PayrollRun.pay_period_id == pay_period_id)
        return query.order_by(PayrollRun.created_at.desc()).limit(limit).all()

    def get_run_employees(self, tenant_id: str, run_id: str) -> Tuple[PayrollRun, List[Dict[str, Any]]]:
        run = self.get_run(tenant_id, run_id)
        rows = (
            self.db.query(PayrollRunEmployee)
            .options(
                joinedload(PayrollRunEmployee.employee),
                selectinload(PayrollRunEmployee.earnings),
                selectinload(PayrollRunEmployee.taxes),
                selectinload(PayrollRunEmployee.deductions),
            )
            .filter(PayrollRunEmployee.payroll_run_id == run.id)
            .all()
        )
        rows.sort(key=lambda r: (r.employee.full_name if r.employee else "", r.employee_id))

        employees = []
        for row in rows:
            employees.append(
                {
                    "id": row.id,
                    "employee_id": row.employee_id,
                    "employee_number": row.employee.employee_number if row.employee else None,
                    "full_name": row.employee.full_name if row.employee else None,
                    "pay_type": row.pay_type,
                    "pay_rate": row.pay_rate,
                    "pay_frequency": row.pay_frequency,
                    "gross_pay": row.gross_pay,
                    "total_taxes": row.total_taxes,
                    "total_deductions": row.total_deductions,
                    "net_pay": row.net_pay,
                    "employer_taxes": row.employer_taxes,
                    "employer_contributions": row.employer_contributions,
                    "total_employer_cost": row.total_employer_cost,
                    "ytd_gross": row.ytd_gross,
                    "payment_method": row.payment_method,
                    "status": row.status.value,
                    "anomalies": row.anomalies or [],
                    "earnings": list(row.earnings),
                    "taxes": list(row.taxes),
                    "deductions": list(row.deductions),
                }
            )
        return run, employees

    # Draft management

    def create_run(
        self, tenant_id: str, request: PayrollRunCreate, actor_id: Optional[str] = None
    ) -> PayrollRun:
        period = (
            self.db.query(PayPeriod)
            .filter(PayPeriod.id == request.pay_period_id, PayPeriod.tenant_id == tenant_id)
            .first()
        )
        if not period:
            raise PayrollNotFoundError("Pay period", request.pay_period_id)

        if request.run_type == PayrollRunType.REGULAR:
            open_run = (
                self.db.query(PayrollRun)
                .filter(
                    PayrollRun.tenant_id == tenant_id,
                    PayrollRun.pay_period_id == period.id,
                    PayrollRun.run_type == PayrollRunType.REGULAR,
                    PayrollRun.status.notin_(list(TERMINAL_STATUSES)),
                )
                .first()
            )
            if open_run:
                raise PayrollBusinessRuleError(
                    f"Pay period already has an open regular run ({open_run.id})",
                    rule="run_already_open",
                    context={"existing_run_id": open_run.id},
                )

        last_number = (
            self.db.query(func.max(PayrollRun.run_number))
            .filter(PayrollRun.pay_period_id == period.id)
            .scalar()
        )

        try:
            run = PayrollRun(
                tenant_id=tenant_id,
                pay_period_id=period.id,
                run_number=(last_number or 0) + 1,
                run_type=request.run_type,
                status=PayrollRunStatus.DRAFT,
                notes=request.notes,
                created_by=actor_id,
            )
            self.db.add(run)
            self.db.flush()
            AuditContext(self.db, tenant_id, actor_id).log(
                RUN_ENTITY,
                run.id,
                "payroll_run_created",
                {
                    "pay_period_id": period.id,
                    "run_number": run.run_number,
                    "run_type": request.run_type.value,
                },
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(run)
        logger.info(f"Created payroll run {run.id} #{run.run_number} for period {period.id}")
        return run

    def update_run(
        self, tenant_id: str, run_id: str, request: PayrollRunUpdate, actor_id: Optional[str] = None
    ) -> PayrollRun:
        run = self.get_run(tenant_id, run_id)
        if run.status != PayrollRunStatus.DRAFT:
            raise RunStateConflictError("update", run.status, [PayrollRunStatus.DRAFT])
        try:
            run.notes = request.notes
            AuditContext(self.db, tenant_id, actor_id).log(
                RUN_ENTITY, run.id, "payroll_run_updated", {"notes": request.notes}
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(run)
        return run

    def delete_run(self, tenant_id: str, run_id: str, actor_id: Optional[str] = None) -> None:
        run = self.get_run(tenant_id, run_id)
        if run.status != PayrollRunStatus.DRAFT:
            raise RunStateConflictError("delete", run.status, [PayrollRunStatus.DRAFT])
        try:
            AuditContext(self.db, tenant_id, actor_id).log(
                RUN_ENTITY, run.id, "payroll_run_deleted", {"pay_period_id": run.pay_period_id}
            )
            self.db.delete(run)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(f"Deleted draft payroll run {run_id}")

    # Calculation

    def calculate_run(
        self, tenant_id: str, run_id: str, actor_id: Optional[str] = None
    ) -> Tuple[PayrollRun, PayrollRunSummary, List[Dict[str, Any]]]:
        """
        Calculate (or recalculate) every active, compensated employee.

        Existing run employees and their lines are deleted and rebuilt in
        the same transaction that records the totals.

        Only regular runs are calculated from compensation; bonus,
        correction and final runs have no earnings source and are rejected
        without changing status.

        Returns:
            Tuple of (run, summary, anomalies with employee identity)
        """
        run = self.get_run(tenant_id, run_id)
        if run.run_type != PayrollRunType.REGULAR:
            raise PayrollBusinessRuleError(
                f"Payroll runs of type '{run.run_type.value}' cannot be calculated "
                f"from compensation records",
                rule="unsupported_run_type",
                context={"run_type": run.run_type.value},
            )
        prior = self.state_machine.begin(run, "calculate")

        try:
            period = run.pay_period
            inputs = self._build_inputs(tenant_id, run, period)
            results, summary = self.calculator.calculate_run(inputs)

            self._replace_run_employees(tenant_id, run, results)

            self.state_machine.complete(
                run,
                "calculate",
                total_gross_pay=summary.total_gross_pay,
                total_employee_taxes=summary.total_employee_taxes,
                total_employee_deductions=summary.total_employee_deductions,
                total_net_pay=summary.total_net_pay,
                total_employer_taxes=summary.total_employer_taxes,
                total_employer_contributions=summary.total_employer_contributions,
                employee_count=summary.employee_count,
                anomaly_count=summary.anomaly_count,
                calculated_at=datetime.utcnow(),
                calculated_by=actor_id,
            )
            AuditContext(self.db, tenant_id, actor_id).log(
                RUN_ENTITY,
                run_id,
                "payroll_calculated",
                {
                    "employee_count": summary.employee_count,
                    "anomaly_count": summary.anomaly_count,
                    "total_gross_pay": str(summary.total_gross_pay),
                    "total_net_pay": str(summary.total_net_pay),
                    "recalculation": prior == PayrollRunStatus.CALCULATED,
                },
            )
            self.db.commit()
        except Exception:
            logger.exception(f"Calculation failed for payroll run {run_id}; reverting to {prior.value}")
            self.db.rollback()
            self.state_machine.revert(run, "calculate", prior)
            raise

        anomalies = [
            {
                "employee_id": result.employee_id,
                "employee_number": result.employee_number,
                "full_name": result.full_name,
                **anomaly.to_dict(),
            }
            for result in results
            for anomaly in result.anomalies
        ]
        self.db.refresh(run)
        logger.info(
            f"Calculated payroll run {run_id}: {summary.employee_count} employees, "
            f"gross {summary.total_gross_pay}, {summary.anomaly_count} with anomalies"
        )
        return run, summary, anomalies

    def _build_inputs(
        self, tenant_id: str, run: PayrollRun, period: PayPeriod
    ) -> List[EmployeePayrollInput]:
        employees = (
            self.db.query(Employee)
            .filter(
                Employee.tenant_id == tenant_id,
                Employee.employment_status == EmploymentStatus.ACTIVE,
            )
            .order_by(Employee.employee_number)
            .all()
        )
        ytd_by_employee = self._ytd_gross(tenant_id, run, period)
        # Calculated and approved runs hold annual room too, not only posted ones
        usage = self._deduction_usage(tenant_id, run, period.pay_date.year)

        inputs = []
        for employee in employees:
            record = self.compensation.resolve_for_period(
                tenant_id, employee.id, period.start_date, period.end_date
            )
            if not record:
                logger.debug(f"Skipping employee {employee.id}: no compensation for period")
                continue

            enrollments = self.deductions.active_for_period(
                tenant_id, employee.id, period.start_date, period.end_date
            )
            inputs.append(
                EmployeePayrollInput(
                    employee_id=employee.id,
                    employee_number=employee.employee_number,
                    full_name=employee.full_name,
                    compensation=CompensationTerms(
                        record_id=record.id,
                        pay_type=record.pay_type,
                        pay_rate=Decimal(record.pay_rate),
                        pay_frequency=record.pay_frequency,
                        standard_hours_per_week=Decimal(
                            record.standard_hours_per_week
                            or self.config.default_standard_hours_per_week
                        ),
                        commission_rate=record.commission_rate,
                        commission_basis=record.commission_basis,
                    ),
                    withholding=WithholdingProfile(
                        filing_status=employee.federal_filing_status,
                        federal_allowances=employee.federal_allowances or 0,
                        additional_federal_withholding=Decimal(employee.additional_federal_withholding or 0),
                        w4_step2_checkbox=bool(employee.w4_step2_checkbox),
                        w4_dependents_amount=Decimal(employee.w4_dependents_amount or 0),
                        w4_other_income=Decimal(employee.w4_other_income or 0),
                        w4_deductions=Decimal(employee.w4_deductions or 0),
                        state_withholding_rate=employee.state_withholding_rate,
                        is_exempt_from_federal=bool(employee.is_exempt_from_federal),
                        is_exempt_from_state=bool(employee.is_exempt_from_state),
                        is_exempt_from_fica=bool(employee.is_exempt_from_fica),
                    ),
                    deductions=tuple(
                        to_enrollment_input(e, ytd_amount=usage.get(e.id, ZERO))
                        for e in enrollments
                    ),
                    payment_method=employee.payment_method,
                    ytd_gross=ytd_by_employee.get(employee.id, ZERO),
                    previous_gross=self._previous_gross(tenant_id, run, employee.id),
                )
            )
        return inputs

    def _ytd_gross(self, tenant_id: str, run: PayrollRun, period: PayPeriod) -> Dict[str, Decimal]:
        """Gross already posted this pay-date year, per employee."""
        rows = (
            self.db.query(PayrollRunEmployee.employee_id, func.sum(PayrollRunEmployee.gross_pay))
            .join(PayrollRun, PayrollRun.id == PayrollRunEmployee.payroll_run_id)
            .join(PayPeriod, PayPeriod.id == PayrollRun.pay_period_id)
            .filter(
                PayrollRun.tenant_id == tenant_id,
                PayrollRun.status == PayrollRunStatus.POSTED,
                PayrollRun.id != run.id,
                PayPeriod.year == period.pay_date.year,
                PayPeriod.pay_date <= period.pay_date,
            )
            .group_by(PayrollRunEmployee.employee_id)
            .all()
        )
        return {employee_id: Decimal(str(total or 0)) for employee_id, total in rows}

    def _deduction_usage(
        self, tenant_id: str, run: PayrollRun, year: int, posted_only: bool = False
    ) -> Dict[str, Decimal]:
        """
        Employee deduction amounts already taken in a pay-date year by runs
        other than ``run``, per enrollment.

        Without ``posted_only`` every run that has not been cancelled
        counts, so two open runs in the same year cannot both spend the
        same annual room.
        """
        query = (
            self.db.query(
                PayrollDeduction.employee_deduction_id,
                func.sum(PayrollDeduction.employee_amount),
            )
            .join(PayrollRunEmployee, PayrollRunEmployee.id == PayrollDeduction.run_employee_id)
            .join(PayrollRun, PayrollRun.id == PayrollRunEmployee.payroll_run_id)
            .join(PayPeriod, PayPeriod.id == PayrollRun.pay_period_id)
            .filter(
                PayrollRun.tenant_id == tenant_id,
                PayrollRun.id != run.id,
                PayPeriod.year == year,
                PayrollDeduction.employee_deduction_id.isnot(None),
            )
        )
        if posted_only:
            query = query.filter(PayrollRun.status == PayrollRunStatus.POSTED)
        else:
            query = query.filter(PayrollRun.status != PayrollRunStatus.CANCELLED)

        rows = query.group_by(PayrollDeduction.employee_deduction_id).all()
        return {enrollment_id: Decimal(str(total or 0)) for enrollment_id, total in rows}

    def _run_deduction_totals(self, run_id: str) -> Dict[str, Decimal]:
        rows = (
            self.db.query(
                PayrollDeduction.employee_deduction_id,
                func.sum(PayrollDeduction.employee_amount),
            )
            .join(PayrollRunEmployee, PayrollRunEmployee.id == PayrollDeduction.run_employee_id)
            .filter(
                PayrollRunEmployee.payroll_run_id == run_id,
                PayrollDeduction.employee_deduction_id.isnot(None),
            )
            .group_by(PayrollDeduction.employee_deduction_id)
            .all()
        )
        return {enrollment_id: Decimal(str(total or 0)) for enrollment_id, total in rows}

    def _previous_gross(self, tenant_id: str, run: PayrollRun, employee_id: str) -> Optional[Decimal]:
        row = (
            self.db.query(PayrollRunEmployee.gross_pay)
            .join(PayrollRun, PayrollRun.id == PayrollRunEmployee.payroll_run_id)
            .join(PayPeriod, PayPeriod.id == PayrollRun.pay_period_id)
            .filter(
                PayrollRun.tenant_id == tenant_id,
                PayrollRun.status == PayrollRunStatus.POSTED,
                PayrollRun.run_type == PayrollRunType.REGULAR,
                PayrollRun.id != run.id,
                PayrollRunEmployee.employee_id == employee_id,
            )
            .order_by(PayPeriod.pay_date.desc(), PayrollRun.run_number.desc())
            .first()
        )
        return Decimal(str(row[0])) if row else None

    def _replace_run_employees(
        self, tenant_id: str, run: PayrollRun, results: List[EmployeePayrollResult]
    ) -> None:
        for existing in list(run.employees):
            self.db.delete(existing)
        self.db.flush()
        self.db.expire(run, ["employees"])

        earning_types = {
            code: type_id
            for code, type_id in self.db.query(EarningType.code, EarningType.id)
            .filter(EarningType.tenant_id == tenant_id, EarningType.is_active == True)
            .all()
        }

        for result in results:
            row = PayrollRunEmployee(
                tenant_id=tenant_id,
                payroll_run_id=run.id,
                employee_id=result.employee_id,
                compensation_record_id=result.compensation.record_id,
                pay_type=result.compensation.pay_type,
                pay_rate=result.compensation.pay_rate,
                pay_frequency=result.compensation.pay_frequency,
                gross_pay=result.gross_pay,
                total_taxes=result.total_taxes,
                total_deductions=result.total_deductions,
                net_pay=result.net_pay,
                employer_taxes=result.employer_taxes,
                employer_contributions=result.employer_contributions,
                total_employer_cost=result.total_employer_cost,
                ytd_gross=result.ytd_gross,
                payment_method=result.payment_method,
                status=RunEmployeeStatus.PENDING,
                anomalies=[a.to_dict() for a in result.anomalies],
            )

            for line in result.earnings:
                code = line.earning_code
                if line.is_regular and CANONICAL_REGULAR_CODE in earning_types:
                    code = CANONICAL_REGULAR_CODE
                row.earnings.append(
                    PayrollEarning(
                        tenant_id=tenant_id,
                        earning_type_id=earning_types.get(code),
                        earning_code=code,
                        hours=line.hours,
                        rate=line.rate,
                        amount=line.amount,
                        description=line.description,
                    )
                )

            for tax in result.taxes:
                row.taxes.append(
                    PayrollTax(
                        tenant_id=tenant_id,
                        tax_type=tax.tax_type,
                        taxable_wages=tax.taxable_wages,
                        tax_rate=tax.tax_rate,
                        employee_amount=tax.employee_amount,
                        employer_amount=tax.employer_amount,
                        calculation_details=tax.calculation_details,
                    )
                )

            for deduction in result.deductions:
                row.deductions.append(
                    PayrollDeduction(
                        tenant_id=tenant_id,
                        employee_deduction_id=deduction.enrollment_id,
                        deduction_type_id=deduction.deduction_type_id,
                        employee_amount=deduction.employee_amount,
                        employer_amount=deduction.employer_amount,
                        ytd_employee_amount=deduction.ytd_employee_amount,
                        calculation_details=deduction.calculation_details,
                    )
                )

            self.db.add(row)
        self.db.flush()

    # Review, approval and cancellation

    def review_run(self, tenant_id: str, run_id: str, actor_id: Optional[str] = None) -> PayrollRun:
        run = self.get_run(tenant_id, run_id)
        try:
            prior = self.state_machine.apply(run, "review")
            AuditContext(self.db, tenant_id, actor_id).log(
                RUN_ENTITY, run_id, "payroll_review_started", {"from_status": prior.value}
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(run)
        return run

    def approve_run(
        self,
        tenant_id: str,
        run_id: str,
        request: ApproveRunRequest,
        actor_id: Optional[str] = None,
    ) -> PayrollRun:
        """
        Approve a calculated or reviewed run.

        Raises:
            RunStateConflictError: run is not calculated or reviewing
            PayrollBusinessRuleError: run has no employees
            AnomalyNotAcknowledgedError: negative net pay present and not acknowledged
        """
        run = self.get_run(tenant_id, run_id)
        self.state_machine.require(run, "approve")

        employee_count = (
            self.db.query(func.count(PayrollRunEmployee.id))
            .filter(PayrollRunEmployee.payroll_run_id == run.id)
            .scalar()
        )
        if not employee_count:
            raise PayrollBusinessRuleError(
                "Cannot approve a payroll run with no employees",
                rule="run_has_no_employees",
            )

        negative_net_count = (
            self.db.query(func.count(PayrollRunEmployee.id))
            .filter(
                PayrollRunEmployee.payroll_run_id == run.id,
                PayrollRunEmployee.net_pay < 0,
            )
            .scalar()
        )
        if negative_net_count and not request.acknowledge_anomalies:
            logger.warning(
                f"Approval of payroll run {run_id} blocked: "
                f"{negative_net_count} employee(s) with negative net pay"
            )
            raise AnomalyNotAcknowledgedError("negative_net_pay", negative_net_count)

        anomaly_count = run.anomaly_count
        notes = run.notes
        if request.comment:
            notes = append_note(notes, f"Approval comment: {request.comment}")

        try:
            self.state_machine.apply(
                run,
                "approve",
                approved_at=datetime.utcnow(),
                approved_by=actor_id,
                notes=notes,
            )
            AuditContext(self.db, tenant_id, actor_id).log(
                RUN_ENTITY,
                run_id,
                "payroll_approved",
                {
                    "employee_count": employee_count,
                    "anomaly_count": anomaly_count,
                    "negative_net_count": negative_net_count,
                    "acknowledged_anomalies": bool(request.acknowledge_anomalies),
                    "comment": request.comment,
                },
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(run)
        logger.info(f"Approved payroll run {run_id} ({employee_count} employees)")
        return run

    def cancel_run(
        self,
        tenant_id: str,
        run_id: str,
        request: CancelRunRequest,
        actor_id: Optional[str] = None,
    ) -> PayrollRun:
        run = self.get_run(tenant_id, run_id)
        notes = run.notes
        if request.reason:
            notes = append_note(notes, f"Cancelled: {request.reason}")
        try:
            prior = self.state_machine.apply(
                run,
                "cancel",
                cancelled_at=datetime.utcnow(),
                cancelled_by=actor_id,
                notes=notes,
            )
            AuditContext(self.db, tenant_id, actor_id).log(
                RUN_ENTITY,
                run_id,
                "payroll_cancelled",
                {"from_status": prior.value, "reason": request.reason},
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(run)
        return run

    # Posting

    def post_run(self, tenant_id: str, run_id: str, actor_id: Optional[str] = None) -> PostingOutcome:
        """
        Post an approved run to the general ledger.

        Repeating the call on a posted run returns the original journal
        entry and creates nothing.
        """
        run = self.get_run(tenant_id, run_id)
        if run.status == PayrollRunStatus.POSTED and run.journal_entry_id:
            return self._idempotent_outcome(run)

        try:
            prior = self.state_machine.begin(run, "post")
        except RunStateConflictError:
            if run.status == PayrollRunStatus.POSTED and run.journal_entry_id:
                return self._idempotent_outcome(run)
            raise

        try:
            period = run.pay_period
            employee_count = run.employee_count
            self._check_annual_limits(tenant_id, run, period.pay_date.year)
            lines = self.gl_posting.build_journal_lines(tenant_id, run)

            writer = JournalWriter(self.db, self.config.journal_balance_tolerance)
            result = writer.write(
                tenant_id=tenant_id,
                posting_date=period.pay_date,
                source="payroll_posting",
                memo=(
                    f"Payroll: {period.start_date.isoformat()} to "
                    f"{period.end_date.isoformat()} ({employee_count} employees)"
                ),
                notes=(
                    f"Payroll posting: {period.start_date.isoformat()} to "
                    f"{period.end_date.isoformat()}"
                ),
                lines=lines,
                actor_id=actor_id,
            )

            self._roll_forward_deduction_ytd(tenant_id, run, period.pay_date.year)

            self.state_machine.complete(
                run,
                "post",
                posted_at=datetime.utcnow(),
                posted_by=actor_id,
                journal_entry_id=result.journal_entry_id,
                transaction_set_id=result.transaction_set_id,
            )
            AuditContext(self.db, tenant_id, actor_id).log(
                RUN_ENTITY,
                run_id,
                "payroll_posted",
                {
                    "journal_entry_id": result.journal_entry_id,
                    "transaction_set_id": result.transaction_set_id,
                    "total_debits": str(result.total_debits),
                    "total_credits": str(result.total_credits),
                    "line_count": result.line_count,
                },
            )
            self.db.commit()
        except Exception:
            logger.exception(f"Posting failed for payroll run {run_id}; reverting to {prior.value}")
            self.db.rollback()
            self.state_machine.revert(run, "post", prior)
            raise

        self.db.refresh(run)
        logger.info(f"Posted payroll run {run_id} as journal entry {result.journal_entry_id}")
        return PostingOutcome(
            run=run,
            journal_entry_id=result.journal_entry_id,
            transaction_set_id=result.transaction_set_id,
        )

    def _idempotent_outcome(self, run: PayrollRun) -> PostingOutcome:
        logger.info(f"Payroll run {run.id} already posted; returning {run.journal_entry_id}")
        return PostingOutcome(
            run=run,
            journal_entry_id=run.journal_entry_id,
            transaction_set_id=run.transaction_set_id,
            idempotent=True,
        )

    def _check_annual_limits(self, tenant_id: str, run: PayrollRun, year: int) -> None:
        """Refuse to post a run that would take an enrollment past its annual limit."""
        run_totals = self._run_deduction_totals(run.id)
        if not run_totals:
            return
        posted = self._deduction_usage(tenant_id, run, year, posted_only=True)
        enrollments = (
            self.db.query(EmployeeDeduction)
            .filter(
                EmployeeDeduction.id.in_(list(run_totals)),
                EmployeeDeduction.annual_limit.isnot(None),
            )
            .all()
        )
        for enrollment in enrollments:
            limit = Decimal(str(enrollment.annual_limit))
            year_total = posted.get(enrollment.id, ZERO) + run_totals[enrollment.id]
            if year_total > limit:
                raise PayrollBusinessRuleError(
                    f"Posting would take deduction {enrollment.id} to {year_total} "
                    f"for {year}, over its annual limit of {limit}",
                    rule="annual_limit_exceeded",
                    context={
                        "employee_deduction_id": enrollment.id,
                        "employee_id": enrollment.employee_id,
                        "annual_limit": str(limit),
                        "year_total": str(year_total),
                        "year": year,
                    },
                )

    def _roll_forward_deduction_ytd(self, tenant_id: str, run: PayrollRun, year: int) -> None:
        """
        Set each enrollment's year-to-date amount to everything posted for
        the run's pay-date year, this run included.

        An enrollment already carrying a later year is left alone, so
        posting a late run for an earlier year does not rewind it.
        """
        run_totals = self._run_deduction_totals(run.id)
        if not run_totals:
            return
        posted = self._deduction_usage(tenant_id, run, year, posted_only=True)
        for enrollment_id, amount in run_totals.items():
            enrollment = self.db.get(EmployeeDeduction, enrollment_id)
            if enrollment is None:
                continue
            if enrollment.ytd_year is not None and enrollment.ytd_year > year:
                continue
            enrollment.ytd_amount = posted.get(enrollment_id, ZERO) + amount
            enrollment.ytd_year = year
        self.db.flush()
