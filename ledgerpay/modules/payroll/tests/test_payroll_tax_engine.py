import pytest
from decimal import Decimal

from ledgerpay.core.config import Settings
from ..enums.payroll_enums import FilingStatus, PayFrequency, TaxType
from ..services.payroll_tax_engine import (
    PayrollTaxEngine, WithholdingProfile, periods_per_year, to_cents,
)


def by_type(lines):
    return {line.tax_type: line for line in lines}


class TestPayrollTaxEngine:
    """Test suite for PayrollTaxEngine."""

    @pytest.fixture
    def tax_engine(self):
        """Tax engine with 2024 federal constants and no state rate."""
        return PayrollTaxEngine(Settings(default_state_withholding_rate=Decimal("0")))

    @pytest.fixture
    def single_profile(self):
        return WithholdingProfile(filing_status=FilingStatus.SINGLE)

    def test_biweekly_salaried_single_filer(self, tax_engine, single_profile):
        """$52,000 a year paid biweekly, first period of the year."""
        lines = tax_engine.calculate_withholding(
            Decimal("2000.00"), PayFrequency.BIWEEKLY, single_profile, Decimal("0")
        )

        taxes = by_type(lines)
        assert taxes[TaxType.FEDERAL_INCOME].employee_amount == Decimal("163.69")
        assert taxes[TaxType.SOCIAL_SECURITY].employee_amount == Decimal("124.00")
        assert taxes[TaxType.SOCIAL_SECURITY].employer_amount == Decimal("124.00")
        assert taxes[TaxType.MEDICARE].employee_amount == Decimal("29.00")
        assert taxes[TaxType.MEDICARE].employer_amount == Decimal("29.00")
        assert taxes[TaxType.FUTA].employee_amount == Decimal("0.00")
        assert taxes[TaxType.FUTA].employer_amount == Decimal("12.00")
        assert TaxType.STATE_INCOME not in taxes

    def test_lines_are_in_stable_order(self, tax_engine):
        profile = WithholdingProfile(state_withholding_rate=Decimal("0.05"))

        lines = tax_engine.calculate_withholding(
            Decimal("2000.00"), PayFrequency.BIWEEKLY, profile
        )

        assert [line.tax_type for line in lines] == [
            TaxType.FEDERAL_INCOME,
            TaxType.STATE_INCOME,
            TaxType.SOCIAL_SECURITY,
            TaxType.MEDICARE,
            TaxType.FUTA,
        ]

    def test_state_tax_is_flat_rate_of_gross(self, tax_engine):
        profile = WithholdingProfile(state_withholding_rate=Decimal("0.05"))

        taxes = by_type(
            tax_engine.calculate_withholding(Decimal("2000.00"), PayFrequency.BIWEEKLY, profile)
        )

        assert taxes[TaxType.STATE_INCOME].employee_amount == Decimal("100.00")
        assert taxes[TaxType.STATE_INCOME].tax_rate == Decimal("0.05")

    def test_default_state_rate_applies_without_employee_rate(self, single_profile):
        engine = PayrollTaxEngine(Settings(default_state_withholding_rate=Decimal("0.03")))

        taxes = by_type(
            engine.calculate_withholding(Decimal("1000.00"), PayFrequency.WEEKLY, single_profile)
        )

        assert taxes[TaxType.STATE_INCOME].employee_amount == Decimal("30.00")

    def test_social_security_stops_at_wage_base(self, tax_engine, single_profile):
        """Only the $600 left under the $168,600 base is taxed."""
        taxes = by_type(
            tax_engine.calculate_withholding(
                Decimal("2000.00"), PayFrequency.BIWEEKLY, single_profile, Decimal("168000.00")
            )
        )

        social_security = taxes[TaxType.SOCIAL_SECURITY]
        assert social_security.taxable_wages == Decimal("600.00")
        assert social_security.employee_amount == Decimal("37.20")

    def test_social_security_zero_once_wage_base_reached(self, tax_engine, single_profile):
        taxes = by_type(
            tax_engine.calculate_withholding(
                Decimal("2000.00"), PayFrequency.BIWEEKLY, single_profile, Decimal("170000.00")
            )
        )

        assert taxes[TaxType.SOCIAL_SECURITY].employee_amount == Decimal("0.00")
        assert taxes[TaxType.SOCIAL_SECURITY].employer_amount == Decimal("0.00")

    def test_additional_medicare_is_employee_only(self, tax_engine, single_profile):
        """$1,000 of this period is above the $200,000 threshold."""
        taxes = by_type(
            tax_engine.calculate_withholding(
                Decimal("2000.00"), PayFrequency.BIWEEKLY, single_profile, Decimal("199000.00")
            )
        )

        medicare = taxes[TaxType.MEDICARE]
        assert medicare.employee_amount == Decimal("38.00")
        assert medicare.employer_amount == Decimal("29.00")
        assert medicare.calculation_details["additional_medicare"] == "9.00"

    def test_futa_omitted_after_wage_base(self, tax_engine, single_profile):
        taxes = by_type(
            tax_engine.calculate_withholding(
                Decimal("2000.00"), PayFrequency.BIWEEKLY, single_profile, Decimal("7000.00")
            )
        )

        assert TaxType.FUTA not in taxes

    def test_futa_partial_at_wage_base(self, tax_engine, single_profile):
        taxes = by_type(
            tax_engine.calculate_withholding(
                Decimal("2000.00"), PayFrequency.BIWEEKLY, single_profile, Decimal("6000.00")
            )
        )

        assert taxes[TaxType.FUTA].taxable_wages == Decimal("1000.00")
        assert taxes[TaxType.FUTA].employer_amount == Decimal("6.00")

    def test_exemptions_omit_lines(self, tax_engine):
        profile = WithholdingProfile(
            is_exempt_from_federal=True,
            is_exempt_from_fica=True,
            is_exempt_from_state=True,
            state_withholding_rate=Decimal("0.05"),
        )

        lines = tax_engine.calculate_withholding(
            Decimal("2000.00"), PayFrequency.BIWEEKLY, profile
        )

        # FUTA is an employer tax and is never exempted per employee
        assert [line.tax_type for line in lines] == [TaxType.FUTA]

    def test_married_withholds_less_than_single(self, tax_engine):
        single = by_type(
            tax_engine.calculate_withholding(
                Decimal("2000.00"), PayFrequency.BIWEEKLY,
                WithholdingProfile(filing_status=FilingStatus.SINGLE),
            )
        )
        married = by_type(
            tax_engine.calculate_withholding(
                Decimal("2000.00"), PayFrequency.BIWEEKLY,
                WithholdingProfile(filing_status=FilingStatus.MARRIED),
            )
        )

        assert married[TaxType.FEDERAL_INCOME].employee_amount < \
            single[TaxType.FEDERAL_INCOME].employee_amount

    def test_step2_checkbox_uses_single_schedule(self, tax_engine, single_profile):
        married_step2 = WithholdingProfile(
            filing_status=FilingStatus.MARRIED, w4_step2_checkbox=True
        )

        single = by_type(
            tax_engine.calculate_withholding(Decimal("2000.00"), PayFrequency.BIWEEKLY, single_profile)
        )
        step2 = by_type(
            tax_engine.calculate_withholding(Decimal("2000.00"), PayFrequency.BIWEEKLY, married_step2)
        )

        assert step2[TaxType.FEDERAL_INCOME].employee_amount == \
            single[TaxType.FEDERAL_INCOME].employee_amount
        assert step2[TaxType.FEDERAL_INCOME].calculation_details["filing_status"] == "single"

    def test_dependents_credit_reduces_annual_tax(self, tax_engine):
        """(4,256 - 2,000) / 26 = 86.77"""
        profile = WithholdingProfile(w4_dependents_amount=Decimal("2000"))

        taxes = by_type(
            tax_engine.calculate_withholding(Decimal("2000.00"), PayFrequency.BIWEEKLY, profile)
        )

        assert taxes[TaxType.FEDERAL_INCOME].employee_amount == Decimal("86.77")

    def test_additional_withholding_added_per_period(self, tax_engine):
        profile = WithholdingProfile(additional_federal_withholding=Decimal("25"))

        taxes = by_type(
            tax_engine.calculate_withholding(Decimal("2000.00"), PayFrequency.BIWEEKLY, profile)
        )

        assert taxes[TaxType.FEDERAL_INCOME].employee_amount == Decimal("188.69")

    def test_legacy_allowances_reduce_taxable_income(self, tax_engine):
        """One allowance removes $4,300: (1,160 + 21,500 * 12%) / 26 = 143.85"""
        profile = WithholdingProfile(federal_allowances=1)

        taxes = by_type(
            tax_engine.calculate_withholding(Decimal("2000.00"), PayFrequency.BIWEEKLY, profile)
        )

        assert taxes[TaxType.FEDERAL_INCOME].employee_amount == Decimal("143.85")

    def test_federal_never_negative(self, tax_engine):
        profile = WithholdingProfile(w4_dependents_amount=Decimal("10000"))

        taxes = by_type(
            tax_engine.calculate_withholding(Decimal("500.00"), PayFrequency.BIWEEKLY, profile)
        )

        assert taxes[TaxType.FEDERAL_INCOME].employee_amount == Decimal("0.00")

    def test_calculation_is_deterministic(self, tax_engine, single_profile):
        first = tax_engine.calculate_withholding(
            Decimal("3123.45"), PayFrequency.SEMIMONTHLY, single_profile, Decimal("12000")
        )
        second = tax_engine.calculate_withholding(
            Decimal("3123.45"), PayFrequency.SEMIMONTHLY, single_profile, Decimal("12000")
        )

        assert first == second


class TestTaxHelpers:
    def test_to_cents_rounds_half_up(self):
        assert to_cents(Decimal("1.005")) == Decimal("1.01")
        assert to_cents(Decimal("1.004")) == Decimal("1.00")

    @pytest.mark.parametrize(
        "frequency,expected",
        [
            (PayFrequency.WEEKLY, 52),
            (PayFrequency.BIWEEKLY, 26),
            (PayFrequency.SEMIMONTHLY, 24),
            (PayFrequency.MONTHLY, 12),
        ],
    )
    def test_periods_per_year(self, frequency, expected):
        assert periods_per_year(frequency) == expected


class TestTaxSettings:
    """Tax constants come from LEDGERPAY_ environment variables."""

    def test_environment_overrides_wage_base(self, monkeypatch):
        monkeypatch.setenv("LEDGERPAY_SOCIAL_SECURITY_WAGE_BASE", "176100")
        monkeypatch.setenv("ledgerpay_log_level", "debug")

        settings = Settings()

        assert settings.social_security_wage_base == Decimal("176100")
        assert settings.log_level == "DEBUG"

    def test_unprefixed_variable_ignored(self, monkeypatch):
        monkeypatch.setenv("SOCIAL_SECURITY_WAGE_BASE", "1")

        assert Settings().social_security_wage_base == Decimal("168600")
