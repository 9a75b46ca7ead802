# ledgerpay/modules/payroll/tests/conftest.py

"""
Pytest fixtures and factories for payroll module tests.

Factories write real rows to the per-test SQLite session from
``ledgerpay/conftest.py`` so services run against an actual schema.
"""

import itertools
from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from ledgerpay.core.config import Settings
from ledgerpay.core.database import get_db
from ledgerpay.modules.ledger.models.ledger_models import Account
from ..enums.payroll_enums import (
    CompensationChangeReason, DeductionCalcMethod, DeductionCategory,
    EmploymentStatus, PayFrequency, PayPeriodStatus, PayrollRunStatus,
    PayrollRunType, PayType,
)
from ..models.employee_models import (
    CompensationRecord, DeductionType, Employee, EmployeeDeduction,
)
from ..models.payroll_models import EarningType, PayPeriod, PayrollRun, PaySchedule


@pytest.fixture
def test_settings():
    """Settings with no state withholding so tax figures are predictable."""
    return Settings(
        database_url="sqlite://",
        default_state_withholding_rate=Decimal("0"),
    )


# Employee factories
@pytest.fixture
def employee_factory(db_session, tenant_id):
    """Factory for creating persisted employees."""
    counter = itertools.count(1)

    def create_employee(
        employee_number: str = None,
        full_name: str = None,
        employment_status: EmploymentStatus = EmploymentStatus.ACTIVE,
        **kwargs
    ) -> Employee:
        n = next(counter)
        employee = Employee(
            tenant_id=kwargs.pop("tenant_id", tenant_id),
            employee_number=employee_number or f"E{n:04d}",
            full_name=full_name or f"Employee {n}",
            employment_status=employment_status,
            hire_date=kwargs.pop("hire_date", date(2023, 1, 1)),
            **kwargs
        )
        db_session.add(employee)
        db_session.commit()
        db_session.refresh(employee)
        return employee

    return create_employee


@pytest.fixture
def compensation_factory(db_session):
    """Factory for creating compensation records."""
    def create_compensation(
        employee: Employee,
        pay_type: PayType = PayType.SALARY,
        pay_rate: Decimal = Decimal("52000"),
        pay_frequency: PayFrequency = PayFrequency.BIWEEKLY,
        effective_from: date = date(2024, 1, 1),
        effective_to: date = None,
        **kwargs
    ) -> CompensationRecord:
        record = CompensationRecord(
            tenant_id=employee.tenant_id,
            employee_id=employee.id,
            pay_type=pay_type,
            pay_rate=pay_rate,
            pay_frequency=pay_frequency,
            effective_from=effective_from,
            effective_to=effective_to,
            standard_hours_per_week=kwargs.pop("standard_hours_per_week", Decimal("40")),
            change_reason=kwargs.pop("change_reason", CompensationChangeReason.HIRE),
            **kwargs
        )
        db_session.add(record)
        db_session.commit()
        db_session.refresh(record)
        return record

    return create_compensation


@pytest.fixture
def deduction_type_factory(db_session, tenant_id):
    def create_deduction_type(
        code: str = "401K_EE",
        category: DeductionCategory = DeductionCategory.RETIREMENT,
        name: str = None,
        **kwargs
    ) -> DeductionType:
        deduction_type = DeductionType(
            tenant_id=kwargs.pop("tenant_id", tenant_id),
            code=code,
            name=name or code,
            category=category,
            **kwargs
        )
        db_session.add(deduction_type)
        db_session.commit()
        db_session.refresh(deduction_type)
        return deduction_type

    return create_deduction_type


@pytest.fixture
def enrollment_factory(db_session):
    """Factory for deduction enrollments; bypasses the service checks."""
    def create_enrollment(
        employee: Employee,
        deduction_type: DeductionType,
        calc_method: DeductionCalcMethod = DeductionCalcMethod.FIXED,
        amount: Decimal = Decimal("100.00"),
        effective_from: date = date(2024, 1, 1),
        **kwargs
    ) -> EmployeeDeduction:
        enrollment = EmployeeDeduction(
            tenant_id=employee.tenant_id,
            employee_id=employee.id,
            deduction_type_id=deduction_type.id,
            calc_method=calc_method,
            amount=amount,
            effective_from=effective_from,
            ytd_amount=kwargs.pop("ytd_amount", Decimal("0")),
            is_active=kwargs.pop("is_active", True),
            **kwargs
        )
        db_session.add(enrollment)
        db_session.commit()
        db_session.refresh(enrollment)
        return enrollment

    return create_enrollment


# Ledger fixtures
@pytest.fixture
def gl_accounts(db_session, tenant_id):
    """The conventional payroll accounts, keyed by code."""
    accounts = {}
    for code, name, account_type in [
        ("6200", "Payroll Expense", "expense"),
        ("2100", "Payroll Taxes Payable", "liability"),
        ("2150", "Payroll Deductions Payable", "liability"),
        ("2010", "Net Wages Payable", "liability"),
    ]:
        account = Account(
            tenant_id=tenant_id, code=code, name=name, account_type=account_type, is_active=True
        )
        db_session.add(account)
        accounts[code] = account
    db_session.commit()
    return accounts


@pytest.fixture
def earning_types(db_session, tenant_id):
    types = {}
    for code, category in [
        ("REG", "regular"), ("SAL", "regular"), ("BASE", "regular"), ("COMM", "supplemental"),
    ]:
        earning_type = EarningType(tenant_id=tenant_id, code=code, name=code, category=category)
        db_session.add(earning_type)
        types[code] = earning_type
    db_session.commit()
    return types


# Schedule and run factories
@pytest.fixture
def pay_schedule(db_session, tenant_id):
    schedule = PaySchedule(
        tenant_id=tenant_id,
        name="Biweekly",
        frequency=PayFrequency.BIWEEKLY,
        anchor_date=date(2024, 1, 19),
        is_active=True,
    )
    db_session.add(schedule)
    db_session.commit()
    db_session.refresh(schedule)
    return schedule


@pytest.fixture
def period_factory(db_session, pay_schedule):
    def create_period(
        start_date: date = date(2024, 1, 5),
        end_date: date = date(2024, 1, 18),
        pay_date: date = date(2024, 1, 19),
        period_number: int = 1,
    ) -> PayPeriod:
        period = PayPeriod(
            tenant_id=pay_schedule.tenant_id,
            pay_schedule_id=pay_schedule.id,
            period_number=period_number,
            year=pay_date.year,
            start_date=start_date,
            end_date=end_date,
            pay_date=pay_date,
            status=PayPeriodStatus.UPCOMING,
        )
        db_session.add(period)
        db_session.commit()
        db_session.refresh(period)
        return period

    return create_period


@pytest.fixture
def pay_period(period_factory):
    """First biweekly period of 2024."""
    return period_factory()


@pytest.fixture
def run_factory(db_session, pay_period):
    """Factory for runs in an arbitrary status; totals may be given directly."""
    def create_run(
        status: PayrollRunStatus = PayrollRunStatus.DRAFT,
        period: PayPeriod = None,
        run_number: int = 1,
        **kwargs
    ) -> PayrollRun:
        period = period or pay_period
        run = PayrollRun(
            tenant_id=period.tenant_id,
            pay_period_id=period.id,
            run_number=run_number,
            run_type=kwargs.pop("run_type", PayrollRunType.REGULAR),
            status=status,
            **kwargs
        )
        db_session.add(run)
        db_session.commit()
        db_session.refresh(run)
        return run

    return create_run


@pytest.fixture
def salaried_employee(employee_factory, compensation_factory):
    """$52,000 a year, paid biweekly, single filer with no adjustments."""
    employee = employee_factory(full_name="Alex Morgan")
    compensation_factory(employee)
    return employee


# API fixtures
@pytest.fixture
def client(db_session):
    """Test client sharing the test session with the routes."""
    from ledgerpay.app.main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def auth_headers(tenant_id, actor_id):
    return {"X-Tenant-ID": tenant_id, "X-Actor-ID": actor_id}
