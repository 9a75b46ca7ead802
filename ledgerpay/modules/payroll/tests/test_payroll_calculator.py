import pytest
from decimal import Decimal

from ..enums.payroll_enums import (
    AnomalySeverity, AnomalyType, DeductionCalcMethod, PayFrequency, PayType,
)
from ..services.payroll_calculator import (
    CompensationTerms, DeductionEnrollmentInput, EmployeePayrollInput, PayrollCalculator,
    allocate_deductions, compute_earnings, order_deductions, period_hours,
)


def salary_terms(annual="52000", frequency=PayFrequency.BIWEEKLY):
    return CompensationTerms(
        record_id="comp-1",
        pay_type=PayType.SALARY,
        pay_rate=Decimal(annual),
        pay_frequency=frequency,
    )


def enrollment(enrollment_id, amount, calc_method=DeductionCalcMethod.FIXED, **kwargs):
    return DeductionEnrollmentInput(
        enrollment_id=enrollment_id,
        deduction_type_id=f"type-{enrollment_id}",
        deduction_type_code=enrollment_id.upper(),
        calc_method=calc_method,
        amount=Decimal(amount),
        **kwargs
    )


class TestComputeEarnings:
    """Earnings lines from pay terms."""

    def test_salary_divides_annual_rate(self):
        lines = compute_earnings(salary_terms())

        assert len(lines) == 1
        assert lines[0].earning_code == "SAL"
        assert lines[0].amount == Decimal("2000.00")
        assert lines[0].is_regular

    def test_salary_rounds_to_cents(self):
        lines = compute_earnings(salary_terms("50000", PayFrequency.WEEKLY))

        assert lines[0].amount == Decimal("961.54")

    def test_hourly_pays_standard_hours(self):
        terms = CompensationTerms(
            record_id="comp-1",
            pay_type=PayType.HOURLY,
            pay_rate=Decimal("25.00"),
            pay_frequency=PayFrequency.BIWEEKLY,
        )

        lines = compute_earnings(terms)

        assert lines[0].earning_code == "REG"
        assert lines[0].hours == Decimal("80.00")
        assert lines[0].amount == Decimal("2000.00")

    def test_hourly_semimonthly_hours(self):
        terms = CompensationTerms(
            record_id="comp-1",
            pay_type=PayType.HOURLY,
            pay_rate=Decimal("20.00"),
            pay_frequency=PayFrequency.SEMIMONTHLY,
        )

        lines = compute_earnings(terms)

        assert lines[0].hours == Decimal("86.67")
        assert lines[0].amount == Decimal("1733.40")

    def test_commission_adds_percent_of_basis(self):
        terms = CompensationTerms(
            record_id="comp-1",
            pay_type=PayType.COMMISSION,
            pay_rate=Decimal("1000.00"),
            pay_frequency=PayFrequency.MONTHLY,
            commission_rate=Decimal("5"),
            commission_basis=Decimal("20000.00"),
        )

        lines = compute_earnings(terms)

        assert [(l.earning_code, l.amount) for l in lines] == [
            ("BASE", Decimal("1000.00")),
            ("COMM", Decimal("1000.00")),
        ]
        assert not lines[1].is_regular

    def test_commission_without_basis_pays_base_only(self):
        terms = CompensationTerms(
            record_id="comp-1",
            pay_type=PayType.COMMISSION,
            pay_rate=Decimal("1500.00"),
            pay_frequency=PayFrequency.MONTHLY,
            commission_rate=Decimal("5"),
        )

        lines = compute_earnings(terms)

        assert [l.earning_code for l in lines] == ["BASE"]

    def test_monthly_hours(self):
        assert period_hours(Decimal("40"), PayFrequency.MONTHLY) == Decimal("173.33")


class TestAllocateDeductions:
    """Deduction ordering and caps."""

    def test_garnishments_ordered_by_priority_before_voluntary(self):
        enrollments = [
            enrollment("voluntary", "50"),
            enrollment("unprioritised", "10", is_garnishment=True),
            enrollment("second", "10", is_garnishment=True, garnishment_priority=2),
            enrollment("first", "10", is_garnishment=True, garnishment_priority=1),
        ]

        ordered = order_deductions(enrollments)

        assert [e.enrollment_id for e in ordered] == [
            "first", "second", "unprioritised", "voluntary",
        ]

    def test_garnishments_capped_by_remaining_disposable_pay(self):
        """Disposable pay is 800; the priority 1 order is satisfied first."""
        enrollments = [
            enrollment("low", "500", is_garnishment=True, garnishment_priority=2),
            enrollment("high", "500", is_garnishment=True, garnishment_priority=1),
        ]

        lines = allocate_deductions(Decimal("1000.00"), Decimal("200.00"), enrollments)

        amounts = {line.enrollment_id: line.employee_amount for line in lines}
        assert amounts == {"high": Decimal("500.00"), "low": Decimal("300.00")}
        low = next(line for line in lines if line.enrollment_id == "low")
        assert low.calculation_details["caps_applied"] == ["disposable_pay"]

    def test_percent_net_uses_gross_less_taxes(self):
        lines = allocate_deductions(
            Decimal("1000.00"),
            Decimal("200.00"),
            [enrollment("levy", "10", DeductionCalcMethod.PERCENT_NET, is_garnishment=True)],
        )

        assert lines[0].employee_amount == Decimal("80.00")
        assert lines[0].calculation_details["base"] == "800.00"

    def test_percent_gross(self):
        lines = allocate_deductions(
            Decimal("2000.00"),
            Decimal("300.00"),
            [enrollment("401k", "5", DeductionCalcMethod.PERCENT_GROSS)],
        )

        assert lines[0].employee_amount == Decimal("100.00")

    def test_per_period_then_annual_limit(self):
        lines = allocate_deductions(
            Decimal("2000.00"),
            Decimal("300.00"),
            [
                enrollment(
                    "hsa", "300",
                    per_period_limit=Decimal("200"),
                    annual_limit=Decimal("1000"),
                    ytd_amount=Decimal("900"),
                )
            ],
        )

        assert lines[0].employee_amount == Decimal("100.00")
        assert lines[0].ytd_employee_amount == Decimal("1000.00")
        assert lines[0].calculation_details["caps_applied"] == ["per_period_limit", "annual_limit"]

    def test_exhausted_annual_limit_produces_no_line(self):
        lines = allocate_deductions(
            Decimal("2000.00"),
            Decimal("300.00"),
            [enrollment("hsa", "100", annual_limit=Decimal("500"), ytd_amount=Decimal("500"))],
        )

        assert lines == []

    def test_employer_match_capped_by_max_percent(self):
        lines = allocate_deductions(
            Decimal("2000.00"),
            Decimal("300.00"),
            [
                enrollment(
                    "401k", "6", DeductionCalcMethod.PERCENT_GROSS,
                    employer_match_percent=Decimal("50"),
                    employer_match_max_percent=Decimal("4"),
                )
            ],
        )

        assert lines[0].employee_amount == Decimal("120.00")
        assert lines[0].employer_amount == Decimal("40.00")

    def test_voluntary_deductions_not_capped_by_pay(self):
        lines = allocate_deductions(
            Decimal("1000.00"), Decimal("200.00"), [enrollment("loan", "900")]
        )

        assert lines[0].employee_amount == Decimal("900.00")


class TestPayrollCalculator:
    """Gross-to-net for employees and runs."""

    @pytest.fixture
    def calculator(self, test_settings):
        return PayrollCalculator(config=test_settings)

    @pytest.fixture
    def employee_input(self):
        def create(employee_id="emp-1", deductions=(), previous_gross=None, **kwargs):
            return EmployeePayrollInput(
                employee_id=employee_id,
                employee_number=employee_id.upper(),
                full_name=f"Name {employee_id}",
                compensation=kwargs.pop("compensation", salary_terms()),
                deductions=tuple(deductions),
                previous_gross=previous_gross,
                **kwargs
            )
        return create

    def test_salaried_employee_gross_to_net(self, calculator, employee_input):
        result = calculator.calculate_employee(employee_input())

        assert result.gross_pay == Decimal("2000.00")
        assert result.total_taxes == Decimal("316.69")
        assert result.total_deductions == Decimal("0.00")
        assert result.net_pay == Decimal("1683.31")
        assert result.employer_taxes == Decimal("165.00")
        assert result.total_employer_cost == Decimal("2165.00")
        assert result.ytd_gross == Decimal("2000.00")
        assert result.anomalies == ()

    def test_net_identity_holds(self, calculator, employee_input):
        result = calculator.calculate_employee(
            employee_input(
                deductions=[
                    enrollment("401k", "5", DeductionCalcMethod.PERCENT_GROSS),
                    enrollment("medical", "85.50"),
                ]
            )
        )

        assert result.net_pay == result.gross_pay - result.total_taxes - result.total_deductions
        assert result.total_deductions == Decimal("185.50")

    def test_negative_net_flagged_as_error(self, calculator, employee_input):
        result = calculator.calculate_employee(
            employee_input(deductions=[enrollment("loan", "2500")])
        )

        assert result.net_pay == Decimal("-816.69")
        assert result.has_negative_net
        assert [(a.anomaly_type, a.severity) for a in result.anomalies] == [
            (AnomalyType.NEGATIVE_NET, AnomalySeverity.ERROR)
        ]

    def test_large_change_against_previous_gross(self, calculator, employee_input):
        result = calculator.calculate_employee(employee_input(previous_gross=Decimal("1000.00")))

        assert [a.anomaly_type for a in result.anomalies] == [AnomalyType.LARGE_CHANGE]
        assert result.anomalies[0].severity == AnomalySeverity.WARNING

    def test_small_change_not_flagged(self, calculator, employee_input):
        result = calculator.calculate_employee(employee_input(previous_gross=Decimal("1900.00")))

        assert result.anomalies == ()

    def test_run_summary_totals(self, calculator, employee_input):
        inputs = [
            employee_input("emp-1"),
            employee_input("emp-2", deductions=[enrollment("loan", "2500")]),
        ]

        results, summary = calculator.calculate_run(inputs)

        assert summary.employee_count == 2
        assert summary.anomaly_count == 1
        assert summary.total_gross_pay == Decimal("4000.00")
        assert summary.total_net_pay == sum(r.net_pay for r in results)
        assert summary.total_employee_deductions == Decimal("2500.00")

    def test_recalculation_is_deterministic(self, calculator, employee_input):
        inputs = [
            employee_input("emp-1", deductions=[enrollment("401k", "6", DeductionCalcMethod.PERCENT_GROSS)]),
            employee_input("emp-2", previous_gross=Decimal("1200")),
        ]

        first = calculator.calculate_run(inputs)
        second = calculator.calculate_run(inputs)

        assert first == second
