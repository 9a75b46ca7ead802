import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple

from ledgerpay.core.config import Settings, get_settings
from ..enums.payroll_enums import FilingStatus, PayFrequency, TaxType

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
CENT = Decimal("0.01")

PERIODS_PER_YEAR: Dict[PayFrequency, int] = {
    PayFrequency.WEEKLY: 52,
    PayFrequency.BIWEEKLY: 26,
    PayFrequency.SEMIMONTHLY: 24,
    PayFrequency.MONTHLY: 12,
}

# 2024 annual brackets as (upper bound, marginal rate); None is unbounded
FEDERAL_BRACKETS: Dict[FilingStatus, List[Tuple[Optional[Decimal], Decimal]]] = {
    FilingStatus.SINGLE: [
        (Decimal("11600"), Decimal("0.10")),
        (Decimal("47150"), Decimal("0.12")),
        (Decimal("100525"), Decimal("0.22")),
        (Decimal("191950"), Decimal("0.24")),
        (Decimal("243725"), Decimal("0.32")),
        (Decimal("609350"), Decimal("0.35")),
        (None, Decimal("0.37")),
    ],
    FilingStatus.MARRIED: [
        (Decimal("23200"), Decimal("0.10")),
        (Decimal("94300"), Decimal("0.12")),
        (Decimal("201050"), Decimal("0.22")),
        (Decimal("383900"), Decimal("0.24")),
        (Decimal("487450"), Decimal("0.32")),
        (Decimal("731200"), Decimal("0.35")),
        (None, Decimal("0.37")),
    ],
    FilingStatus.HEAD_OF_HOUSEHOLD: [
        (Decimal("16550"), Decimal("0.10")),
        (Decimal("63100"), Decimal("0.12")),
        (Decimal("100500"), Decimal("0.22")),
        (Decimal("191950"), Decimal("0.24")),
        (Decimal("243700"), Decimal("0.32")),
        (Decimal("609350"), Decimal("0.35")),
        (None, Decimal("0.37")),
    ],
}

STANDARD_DEDUCTION: Dict[FilingStatus, Decimal] = {
    FilingStatus.SINGLE: Decimal("14600"),
    FilingStatus.MARRIED: Decimal("29200"),
    FilingStatus.HEAD_OF_HOUSEHOLD: Decimal("21900"),
}

# Pre-2020 W-4 allowances, valued per the IRS computational bridge
LEGACY_ALLOWANCE_AMOUNT = Decimal("4300")


def to_cents(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def periods_per_year(frequency: PayFrequency) -> int:
    return PERIODS_PER_YEAR[PayFrequency(frequency)]


@dataclass(frozen=True)
class WithholdingProfile:
    """Employee withholding inputs (W-4 and exemptions)."""

    filing_status: FilingStatus = FilingStatus.SINGLE
    federal_allowances: int = 0
    additional_federal_withholding: Decimal = ZERO
    w4_step2_checkbox: bool = False
    w4_dependents_amount: Decimal = ZERO
    w4_other_income: Decimal = ZERO
    w4_deductions: Decimal = ZERO
    state_withholding_rate: Optional[Decimal] = None
    is_exempt_from_federal: bool = False
    is_exempt_from_state: bool = False
    is_exempt_from_fica: bool = False


@dataclass(frozen=True)
class TaxLine:
    tax_type: TaxType
    taxable_wages: Decimal
    tax_rate: Optional[Decimal]
    employee_amount: Decimal
    employer_amount: Decimal
    calculation_details: Dict[str, Any] = field(default_factory=dict)


class PayrollTaxEngine:
    """
    Withholding calculator for federal income, state income and FICA/FUTA.

    Pure computation: no database access, all figures are Decimal and each
    line amount is rounded half-up to cents.
    """

    def __init__(self, config: Optional[Settings] = None):
        self.config = config or get_settings()

    def calculate_withholding(
        self,
        gross_pay: Decimal,
        pay_frequency: PayFrequency,
        profile: WithholdingProfile,
        ytd_gross: Decimal = ZERO,
    ) -> List[TaxLine]:
        """
        Calculate tax lines for one employee for one pay period.

        Args:
            gross_pay: Gross pay for the period
            pay_frequency: Frequency used to annualise income tax
            profile: Filing status, W-4 fields and exemption flags
            ytd_gross: Gross wages already paid this year, before this period

        Returns:
            Tax lines in a stable order; types that do not apply are omitted
        """
        gross_pay = to_cents(gross_pay)
        ytd_gross = to_cents(ytd_gross or ZERO)
        lines: List[TaxLine] = []

        if not profile.is_exempt_from_federal:
            lines.append(self._federal_income_tax(gross_pay, pay_frequency, profile))

        if not profile.is_exempt_from_state:
            state_line = self._state_income_tax(gross_pay, profile)
            if state_line:
                lines.append(state_line)

        if not profile.is_exempt_from_fica:
            lines.append(self._social_security(gross_pay, ytd_gross))
            lines.append(self._medicare(gross_pay, ytd_gross))

        futa_line = self._futa(gross_pay, ytd_gross)
        if futa_line:
            lines.append(futa_line)

        return lines

    def _federal_income_tax(
        self, gross_pay: Decimal, pay_frequency: PayFrequency, profile: WithholdingProfile
    ) -> TaxLine:
        """Annualised percentage method."""
        periods = Decimal(periods_per_year(pay_frequency))
        status = FilingStatus(profile.filing_status)
        # Step 2 (multiple jobs) withholds at the single schedule
        schedule_status = FilingStatus.SINGLE if profile.w4_step2_checkbox else status

        annual_wages = gross_pay * periods
        adjusted = (
            annual_wages
            + Decimal(profile.w4_other_income or 0)
            - Decimal(profile.w4_deductions or 0)
            - LEGACY_ALLOWANCE_AMOUNT * Decimal(profile.federal_allowances or 0)
            - STANDARD_DEDUCTION[schedule_status]
        )
        taxable_annual = max(adjusted, ZERO)

        annual_tax = self._apply_brackets(taxable_annual, FEDERAL_BRACKETS[schedule_status])
        annual_tax = max(annual_tax - Decimal(profile.w4_dependents_amount or 0), ZERO)
        annual_tax += Decimal(profile.additional_federal_withholding or 0) * periods

        per_period = max(to_cents(annual_tax / periods), ZERO)

        return TaxLine(
            tax_type=TaxType.FEDERAL_INCOME,
            taxable_wages=gross_pay,
            tax_rate=None,
            employee_amount=per_period,
            employer_amount=ZERO,
            calculation_details={
                "method": "annualized_percentage",
                "filing_status": schedule_status.value,
                "periods_per_year": int(periods),
                "annual_wages": str(to_cents(annual_wages)),
                "taxable_annual": str(to_cents(taxable_annual)),
                "annual_tax": str(to_cents(annual_tax)),
                "tax_year": self.config.tax_year,
            },
        )

    @staticmethod
    def _apply_brackets(
        taxable: Decimal, brackets: List[Tuple[Optional[Decimal], Decimal]]
    ) -> Decimal:
        tax = ZERO
        lower = ZERO
        for upper, rate in brackets:
            if taxable <= lower:
                break
            top = taxable if upper is None else min(taxable, upper)
            tax += (top - lower) * rate
            if upper is None:
                break
            lower = upper
        return tax

    def _state_income_tax(self, gross_pay: Decimal, profile: WithholdingProfile) -> Optional[TaxLine]:
        rate = profile.state_withholding_rate
        if rate is None:
            rate = self.config.default_state_withholding_rate
        rate = Decimal(rate)
        if rate <= 0:
            return None
        return TaxLine(
            tax_type=TaxType.STATE_INCOME,
            taxable_wages=gross_pay,
            tax_rate=rate,
            employee_amount=to_cents(gross_pay * rate),
            employer_amount=ZERO,
            calculation_details={"method": "flat_rate"},
        )

    def _social_security(self, gross_pay: Decimal, ytd_gross: Decimal) -> TaxLine:
        rate = self.config.social_security_rate
        remaining_base = max(self.config.social_security_wage_base - ytd_gross, ZERO)
        taxable = min(gross_pay, remaining_base)
        amount = to_cents(taxable * rate)
        return TaxLine(
            tax_type=TaxType.SOCIAL_SECURITY,
            taxable_wages=taxable,
            tax_rate=rate,
            employee_amount=amount,
            employer_amount=amount,
            calculation_details={
                "wage_base": str(self.config.social_security_wage_base),
                "ytd_gross": str(ytd_gross),
            },
        )

    def _medicare(self, gross_pay: Decimal, ytd_gross: Decimal) -> TaxLine:
        rate = self.config.medicare_rate
        threshold = self.config.additional_medicare_threshold
        # Additional Medicare applies only to wages above the threshold, employee side only
        additional_wages = max(ytd_gross + gross_pay - max(threshold, ytd_gross), ZERO)
        additional = to_cents(additional_wages * self.config.additional_medicare_rate)
        base = to_cents(gross_pay * rate)
        return TaxLine(
            tax_type=TaxType.MEDICARE,
            taxable_wages=gross_pay,
            tax_rate=rate,
            employee_amount=base + additional,
            employer_amount=base,
            calculation_details={
                "additional_medicare_wages": str(to_cents(additional_wages)),
                "additional_medicare": str(additional),
            },
        )

    def _futa(self, gross_pay: Decimal, ytd_gross: Decimal) -> Optional[TaxLine]:
        remaining_base = max(self.config.futa_wage_base - ytd_gross, ZERO)
        taxable = min(gross_pay, remaining_base)
        if taxable <= 0:
            return None
        rate = self.config.futa_rate
        return TaxLine(
            tax_type=TaxType.FUTA,
            taxable_wages=taxable,
            tax_rate=rate,
            employee_amount=ZERO,
            employer_amount=to_cents(taxable * rate),
            calculation_details={"wage_base": str(self.config.futa_wage_base)},
        )
