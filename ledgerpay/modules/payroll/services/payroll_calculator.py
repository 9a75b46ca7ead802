"""
Gross-to-net payroll calculation.

Everything in this module is pure: inputs are frozen dataclasses built by
PayrollRunService from the database, and results are frozen dataclasses
that the service persists. Running the same inputs twice yields equal
results.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ledgerpay.core.config import Settings, get_settings
from ..enums.payroll_enums import (
    AnomalySeverity, AnomalyType, DeductionCalcMethod, PayFrequency,
    PaymentMethod, PayType,
)
from .payroll_tax_engine import (
    PayrollTaxEngine, TaxLine, WithholdingProfile, ZERO, periods_per_year, to_cents,
)

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")
WEEKS_PER_YEAR = Decimal("52")

# Earning codes supplied per pay type; REG is preferred when it exists
REGULAR_EARNING_CODES: Dict[PayType, str] = {
    PayType.SALARY: "SAL",
    PayType.HOURLY: "REG",
    PayType.COMMISSION: "BASE",
}
CANONICAL_REGULAR_CODE = "REG"
COMMISSION_EARNING_CODE = "COMM"


@dataclass(frozen=True)
class CompensationTerms:
    record_id: Optional[str]
    pay_type: PayType
    pay_rate: Decimal
    pay_frequency: PayFrequency
    standard_hours_per_week: Decimal = Decimal("40")
    commission_rate: Optional[Decimal] = None
    commission_basis: Optional[Decimal] = None


@dataclass(frozen=True)
class DeductionEnrollmentInput:
    enrollment_id: str
    deduction_type_id: str
    deduction_type_code: str
    calc_method: DeductionCalcMethod
    amount: Decimal
    is_garnishment: bool = False
    per_period_limit: Optional[Decimal] = None
    annual_limit: Optional[Decimal] = None
    ytd_amount: Decimal = ZERO
    employer_match_percent: Optional[Decimal] = None
    employer_match_max_percent: Optional[Decimal] = None
    garnishment_priority: Optional[int] = None
    effective_from: Optional[date] = None
    enrolled_at: Optional[datetime] = None


@dataclass(frozen=True)
class EmployeePayrollInput:
    employee_id: str
    employee_number: str
    full_name: str
    compensation: CompensationTerms
    withholding: WithholdingProfile = field(default_factory=WithholdingProfile)
    deductions: Tuple[DeductionEnrollmentInput, ...] = ()
    payment_method: PaymentMethod = PaymentMethod.DIRECT_DEPOSIT
    ytd_gross: Decimal = ZERO
    previous_gross: Optional[Decimal] = None


@dataclass(frozen=True)
class EarningLine:
    earning_code: str
    amount: Decimal
    hours: Optional[Decimal] = None
    rate: Optional[Decimal] = None
    description: str = ""
    is_regular: bool = True


@dataclass(frozen=True)
class DeductionLine:
    enrollment_id: str
    deduction_type_id: str
    employee_amount: Decimal
    employer_amount: Decimal
    ytd_employee_amount: Decimal
    calculation_details: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Anomaly:
    anomaly_type: AnomalyType
    severity: AnomalySeverity
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "type": self.anomaly_type.value,
            "severity": self.severity.value,
            "message": self.message,
        }


@dataclass(frozen=True)
class EmployeePayrollResult:
    employee_id: str
    employee_number: str
    full_name: str
    compensation: CompensationTerms
    payment_method: PaymentMethod
    earnings: Tuple[EarningLine, ...]
    taxes: Tuple[TaxLine, ...]
    deductions: Tuple[DeductionLine, ...]
    gross_pay: Decimal
    total_taxes: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    employer_taxes: Decimal
    employer_contributions: Decimal
    total_employer_cost: Decimal
    ytd_gross: Decimal
    anomalies: Tuple[Anomaly, ...] = ()

    @property
    def has_negative_net(self) -> bool:
        return self.net_pay < ZERO


@dataclass(frozen=True)
class PayrollRunSummary:
    total_gross_pay: Decimal = ZERO
    total_employee_taxes: Decimal = ZERO
    total_employee_deductions: Decimal = ZERO
    total_net_pay: Decimal = ZERO
    total_employer_taxes: Decimal = ZERO
    total_employer_contributions: Decimal = ZERO
    employee_count: int = 0
    anomaly_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_gross_pay": str(self.total_gross_pay),
            "total_employee_taxes": str(self.total_employee_taxes),
            "total_employee_deductions": str(self.total_employee_deductions),
            "total_net_pay": str(self.total_net_pay),
            "total_employer_taxes": str(self.total_employer_taxes),
            "total_employer_contributions": str(self.total_employer_contributions),
            "employee_count": self.employee_count,
            "anomaly_count": self.anomaly_count,
        }


def compute_earnings(terms: CompensationTerms) -> List[EarningLine]:
    """
    Earnings for one period from the pay terms.

    Salary is the annual rate over periods per year. Hourly pays standard
    hours for the period. Commission pays the per-period base plus
    ``commission_rate`` percent of the commission basis when one is known.
    """
    pay_type = PayType(terms.pay_type)
    frequency = PayFrequency(terms.pay_frequency)
    rate = Decimal(terms.pay_rate)
    regular_code = REGULAR_EARNING_CODES[pay_type]

    if pay_type == PayType.SALARY:
        amount = to_cents(rate / Decimal(periods_per_year(frequency)))
        return [EarningLine(regular_code, amount, rate=rate, description="Regular salary")]

    if pay_type == PayType.HOURLY:
        hours = period_hours(Decimal(terms.standard_hours_per_week), frequency)
        return [
            EarningLine(
                regular_code,
                to_cents(hours * rate),
                hours=hours,
                rate=rate,
                description="Regular hours",
            )
        ]

    lines = [EarningLine(regular_code, to_cents(rate), rate=rate, description="Base pay")]
    if terms.commission_rate is not None and terms.commission_basis:
        commission = to_cents(
            Decimal(terms.commission_basis) * Decimal(terms.commission_rate) / HUNDRED
        )
        if commission > ZERO:
            lines.append(
                EarningLine(
                    COMMISSION_EARNING_CODE,
                    commission,
                    rate=Decimal(terms.commission_rate),
                    description="Commission",
                    is_regular=False,
                )
            )
    return lines


def period_hours(hours_per_week: Decimal, frequency: PayFrequency) -> Decimal:
    if frequency == PayFrequency.WEEKLY:
        hours = hours_per_week
    elif frequency == PayFrequency.BIWEEKLY:
        hours = hours_per_week * 2
    elif frequency == PayFrequency.SEMIMONTHLY:
        hours = hours_per_week * WEEKS_PER_YEAR / Decimal(24)
    else:
        hours = hours_per_week * WEEKS_PER_YEAR / Decimal(12)
    return to_cents(hours)


def order_deductions(
    enrollments: Iterable[DeductionEnrollmentInput],
) -> List[DeductionEnrollmentInput]:
    """
    Garnishments first by ascending priority (unprioritised last), then
    voluntary deductions in enrollment order.
    """
    def enrolled_key(e: DeductionEnrollmentInput):
        return (e.effective_from or date.min, e.enrolled_at or datetime.min, e.enrollment_id)

    garnishments = sorted(
        (e for e in enrollments if e.is_garnishment),
        key=lambda e: (
            e.garnishment_priority is None,
            e.garnishment_priority if e.garnishment_priority is not None else 0,
            enrolled_key(e),
        ),
    )
    voluntary = sorted((e for e in enrollments if not e.is_garnishment), key=enrolled_key)
    return garnishments + voluntary


def allocate_deductions(
    gross_pay: Decimal,
    employee_taxes: Decimal,
    enrollments: Iterable[DeductionEnrollmentInput],
) -> List[DeductionLine]:
    """
    Compute deduction lines against gross and disposable pay.

    Disposable pay is gross less employee taxes; ``percent_net`` uses it as
    its base. Each amount is capped by the per-period limit and then by
    what remains of the annual limit. Garnishments are further capped by
    the disposable pay still unallocated, so when pay is short the higher
    priority orders are satisfied first. Voluntary deductions are not
    capped by pay and may drive net pay negative.
    """
    disposable = gross_pay - employee_taxes
    remaining = disposable
    lines: List[DeductionLine] = []

    for enrollment in order_deductions(enrollments):
        method = DeductionCalcMethod(enrollment.calc_method)
        amount_setting = Decimal(enrollment.amount)

        if method == DeductionCalcMethod.FIXED:
            base = None
            amount = to_cents(amount_setting)
        elif method == DeductionCalcMethod.PERCENT_GROSS:
            base = gross_pay
            amount = to_cents(gross_pay * amount_setting / HUNDRED)
        else:
            base = disposable
            amount = to_cents(max(disposable, ZERO) * amount_setting / HUNDRED)

        requested = amount
        caps: List[str] = []

        if enrollment.per_period_limit is not None and amount > enrollment.per_period_limit:
            amount = to_cents(enrollment.per_period_limit)
            caps.append("per_period_limit")

        ytd = Decimal(enrollment.ytd_amount or 0)
        if enrollment.annual_limit is not None:
            annual_room = max(Decimal(enrollment.annual_limit) - ytd, ZERO)
            if amount > annual_room:
                amount = to_cents(annual_room)
                caps.append("annual_limit")

        if enrollment.is_garnishment:
            available = max(remaining, ZERO)
            if amount > available:
                amount = to_cents(available)
                caps.append("disposable_pay")

        amount = max(amount, ZERO)
        remaining -= amount

        employer_amount = _employer_match(gross_pay, amount, method, amount_setting, enrollment)

        if amount <= ZERO and employer_amount <= ZERO:
            continue

        details: Dict[str, Any] = {
            "calc_method": method.value,
            "configured_amount": str(amount_setting),
            "requested_amount": str(requested),
        }
        if base is not None:
            details["base"] = str(to_cents(base))
        if caps:
            details["caps_applied"] = caps
        if enrollment.is_garnishment:
            details["garnishment_priority"] = enrollment.garnishment_priority

        lines.append(
            DeductionLine(
                enrollment_id=enrollment.enrollment_id,
                deduction_type_id=enrollment.deduction_type_id,
                employee_amount=amount,
                employer_amount=employer_amount,
                ytd_employee_amount=to_cents(ytd + amount),
                calculation_details=details,
            )
        )

    return lines


def _employer_match(
    gross_pay: Decimal,
    employee_amount: Decimal,
    method: DeductionCalcMethod,
    amount_setting: Decimal,
    enrollment: DeductionEnrollmentInput,
) -> Decimal:
    if not enrollment.employer_match_percent or gross_pay <= ZERO:
        return ZERO
    if method == DeductionCalcMethod.PERCENT_GROSS:
        employee_percent = amount_setting
    else:
        employee_percent = employee_amount / gross_pay * HUNDRED
    if enrollment.employer_match_max_percent is not None:
        employee_percent = min(employee_percent, Decimal(enrollment.employer_match_max_percent))
    match = gross_pay * employee_percent / HUNDRED * Decimal(enrollment.employer_match_percent) / HUNDRED
    return to_cents(max(match, ZERO))


class PayrollCalculator:
    """Combines earnings, withholding and deductions per employee."""

    def __init__(
        self,
        tax_engine: Optional[PayrollTaxEngine] = None,
        config: Optional[Settings] = None,
    ):
        self.config = config or get_settings()
        self.tax_engine = tax_engine or PayrollTaxEngine(self.config)

    def calculate_employee(self, data: EmployeePayrollInput) -> EmployeePayrollResult:
        earnings = compute_earnings(data.compensation)
        gross_pay = to_cents(sum((line.amount for line in earnings), ZERO))

        taxes = self.tax_engine.calculate_withholding(
            gross_pay=gross_pay,
            pay_frequency=data.compensation.pay_frequency,
            profile=data.withholding,
            ytd_gross=data.ytd_gross,
        )
        total_taxes = sum((t.employee_amount for t in taxes), ZERO)
        employer_taxes = sum((t.employer_amount for t in taxes), ZERO)

        deductions = allocate_deductions(gross_pay, total_taxes, data.deductions)
        total_deductions = sum((d.employee_amount for d in deductions), ZERO)
        employer_contributions = sum((d.employer_amount for d in deductions), ZERO)

        net_pay = gross_pay - total_taxes - total_deductions
        anomalies = self.detect_anomalies(data, gross_pay, net_pay)

        return EmployeePayrollResult(
            employee_id=data.employee_id,
            employee_number=data.employee_number,
            full_name=data.full_name,
            compensation=data.compensation,
            payment_method=data.payment_method,
            earnings=tuple(earnings),
            taxes=tuple(taxes),
            deductions=tuple(deductions),
            gross_pay=gross_pay,
            total_taxes=total_taxes,
            total_deductions=total_deductions,
            net_pay=net_pay,
            employer_taxes=employer_taxes,
            employer_contributions=employer_contributions,
            total_employer_cost=gross_pay + employer_taxes + employer_contributions,
            ytd_gross=to_cents(Decimal(data.ytd_gross or 0) + gross_pay),
            anomalies=tuple(anomalies),
        )

    def detect_anomalies(
        self, data: EmployeePayrollInput, gross_pay: Decimal, net_pay: Decimal
    ) -> List[Anomaly]:
        anomalies: List[Anomaly] = []

        if net_pay < ZERO:
            anomalies.append(
                Anomaly(
                    AnomalyType.NEGATIVE_NET,
                    AnomalySeverity.ERROR,
                    f"Net pay is negative: {net_pay}",
                )
            )

        previous = data.previous_gross
        if previous is not None and previous > ZERO:
            change = abs(gross_pay - previous) / previous
            if change > self.config.large_change_threshold:
                anomalies.append(
                    Anomaly(
                        AnomalyType.LARGE_CHANGE,
                        AnomalySeverity.WARNING,
                        f"Gross pay changed {(change * HUNDRED).quantize(Decimal('0.1'))}% "
                        f"from previous {previous}",
                    )
                )

        return anomalies

    def calculate_run(
        self, inputs: Iterable[EmployeePayrollInput]
    ) -> Tuple[List[EmployeePayrollResult], PayrollRunSummary]:
        results = [self.calculate_employee(data) for data in inputs]
        return results, summarize(results)


def summarize(results: Iterable[EmployeePayrollResult]) -> PayrollRunSummary:
    """Aggregate employee results into run totals."""
    results = list(results)
    return PayrollRunSummary(
        total_gross_pay=sum((r.gross_pay for r in results), ZERO),
        total_employee_taxes=sum((r.total_taxes for r in results), ZERO),
        total_employee_deductions=sum((r.total_deductions for r in results), ZERO),
        total_net_pay=sum((r.net_pay for r in results), ZERO),
        total_employer_taxes=sum((r.employer_taxes for r in results), ZERO),
        total_employer_contributions=sum((r.employer_contributions for r in results), ZERO),
        employee_count=len(results),
        anomaly_count=sum(1 for r in results if r.anomalies),
    )
