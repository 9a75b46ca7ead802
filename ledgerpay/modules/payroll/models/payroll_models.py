# ledgerpay/modules/payroll/models/payroll_models.py

from sqlalchemy import (
    Boolean, Column, Date, DateTime, Enum, ForeignKey, Index, Integer, JSON,
    Numeric, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from ledgerpay.core.database import Base
from ledgerpay.core.mixins import TenantMixin, TimestampMixin, generate_uuid
from ..enums.payroll_enums import (
    PayFrequency, PaymentMethod, PayPeriodStatus, PayrollRunStatus,
    PayrollRunType, PayType, RunEmployeeStatus, TaxType,
)


class EarningType(Base, TimestampMixin, TenantMixin):
    __tablename__ = "earning_types"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    code = Column(String(30), nullable=False)
    name = Column(String(100), nullable=False)
    category = Column(String(30), nullable=False, default="regular")
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        Index("ix_earning_types_tenant_code", "tenant_id", "code", unique=True),
    )


class PaySchedule(Base, TimestampMixin, TenantMixin):
    __tablename__ = "pay_schedules"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(100), nullable=False)
    frequency = Column(Enum(PayFrequency, name="pay_frequency"), nullable=False)
    anchor_date = Column(Date, nullable=False)  # first pay date for weekly/biweekly
    first_pay_day = Column(Integer, nullable=True)  # semimonthly
    second_pay_day = Column(Integer, nullable=True)  # semimonthly, 31 = month end
    pay_day_of_month = Column(Integer, nullable=True)  # monthly
    is_active = Column(Boolean, default=True, nullable=False)

    periods = relationship(
        "PayPeriod", back_populates="pay_schedule", order_by="PayPeriod.start_date"
    )


class PayPeriod(Base, TimestampMixin, TenantMixin):
    """Immutable once created; runs hang off it."""
    __tablename__ = "pay_periods"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    pay_schedule_id = Column(String(36), ForeignKey("pay_schedules.id"), nullable=False)
    period_number = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    pay_date = Column(Date, nullable=False)
    status = Column(
        Enum(PayPeriodStatus, name="pay_period_status"),
        default=PayPeriodStatus.UPCOMING, nullable=False
    )

    pay_schedule = relationship("PaySchedule", back_populates="periods")
    runs = relationship("PayrollRun", back_populates="pay_period")

    __table_args__ = (
        UniqueConstraint("pay_schedule_id", "start_date", name="uq_pay_periods_schedule_start"),
        Index("ix_pay_periods_tenant_dates", "tenant_id", "start_date", "end_date"),
    )


class PayrollRun(Base, TimestampMixin, TenantMixin):
    """
    One payroll processing attempt for a pay period.

    ``status`` is only ever changed through RunStateMachine, which applies
    every transition as a guarded UPDATE.
    """
    __tablename__ = "payroll_runs"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    pay_period_id = Column(String(36), ForeignKey("pay_periods.id"), nullable=False)
    run_number = Column(Integer, nullable=False, default=1)
    run_type = Column(
        Enum(PayrollRunType, name="payroll_run_type"),
        default=PayrollRunType.REGULAR, nullable=False
    )
    status = Column(
        Enum(PayrollRunStatus, name="payroll_run_status"),
        default=PayrollRunStatus.DRAFT, nullable=False, index=True
    )

    # Aggregate totals
    total_gross_pay = Column(Numeric(14, 2), default=0, nullable=False)
    total_employee_taxes = Column(Numeric(14, 2), default=0, nullable=False)
    total_employee_deductions = Column(Numeric(14, 2), default=0, nullable=False)
    total_net_pay = Column(Numeric(14, 2), default=0, nullable=False)
    total_employer_taxes = Column(Numeric(14, 2), default=0, nullable=False)
    total_employer_contributions = Column(Numeric(14, 2), default=0, nullable=False)
    employee_count = Column(Integer, default=0, nullable=False)
    anomaly_count = Column(Integer, default=0, nullable=False)

    # Lifecycle stamps
    calculated_at = Column(DateTime, nullable=True)
    calculated_by = Column(String(36), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    approved_by = Column(String(36), nullable=True)
    posted_at = Column(DateTime, nullable=True)
    posted_by = Column(String(36), nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancelled_by = Column(String(36), nullable=True)
    voided_at = Column(DateTime, nullable=True)
    voided_by = Column(String(36), nullable=True)
    void_reason = Column(Text, nullable=True)

    journal_entry_id = Column(String(36), ForeignKey("journal_entries.id"), nullable=True)
    transaction_set_id = Column(String(36), ForeignKey("transaction_sets.id"), nullable=True)

    notes = Column(Text, nullable=True)
    created_by = Column(String(36), nullable=True)

    # Relationships
    pay_period = relationship("PayPeriod", back_populates="runs")
    employees = relationship(
        "PayrollRunEmployee",
        back_populates="payroll_run",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("pay_period_id", "run_number", name="uq_payroll_runs_period_number"),
        Index("ix_payroll_runs_tenant_status", "tenant_id", "status"),
    )


class PayrollRunEmployee(Base, TimestampMixin, TenantMixin):
    """Per-employee result of a run; rebuilt wholesale on recalculation."""
    __tablename__ = "payroll_run_employees"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    payroll_run_id = Column(
        String(36), ForeignKey("payroll_runs.id", ondelete="CASCADE"), nullable=False
    )
    employee_id = Column(String(36), ForeignKey("payroll_employees.id"), nullable=False)

    # Pay terms snapshot
    compensation_record_id = Column(String(36), nullable=True)
    pay_type = Column(Enum(PayType, name="pay_type"), nullable=False)
    pay_rate = Column(Numeric(12, 4), nullable=False)
    pay_frequency = Column(Enum(PayFrequency, name="pay_frequency"), nullable=False)

    gross_pay = Column(Numeric(12, 2), nullable=False)
    total_taxes = Column(Numeric(12, 2), nullable=False)
    total_deductions = Column(Numeric(12, 2), nullable=False)
    net_pay = Column(Numeric(12, 2), nullable=False)
    employer_taxes = Column(Numeric(12, 2), nullable=False)
    employer_contributions = Column(Numeric(12, 2), nullable=False)
    total_employer_cost = Column(Numeric(12, 2), nullable=False)
    ytd_gross = Column(Numeric(14, 2), default=0, nullable=False)

    payment_method = Column(Enum(PaymentMethod, name="payment_method"), nullable=False)
    status = Column(
        Enum(RunEmployeeStatus, name="run_employee_status"),
        default=RunEmployeeStatus.PENDING, nullable=False
    )
    anomalies = Column(JSON, nullable=True)

    payroll_run = relationship("PayrollRun", back_populates="employees")
    employee = relationship("Employee")
    earnings = relationship(
        "PayrollEarning", back_populates="run_employee", cascade="all, delete-orphan"
    )
    taxes = relationship(
        "PayrollTax", back_populates="run_employee", cascade="all, delete-orphan"
    )
    deductions = relationship(
        "PayrollDeduction", back_populates="run_employee", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("payroll_run_id", "employee_id", name="uq_run_employees_run_employee"),
    )


class PayrollEarning(Base, TimestampMixin, TenantMixin):
    __tablename__ = "payroll_earnings"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    run_employee_id = Column(
        String(36), ForeignKey("payroll_run_employees.id", ondelete="CASCADE"), nullable=False
    )
    earning_type_id = Column(String(36), ForeignKey("earning_types.id"), nullable=True)
    earning_code = Column(String(30), nullable=False)
    hours = Column(Numeric(8, 2), nullable=True)
    rate = Column(Numeric(12, 4), nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(String(255), nullable=True)

    run_employee = relationship("PayrollRunEmployee", back_populates="earnings")


class PayrollTax(Base, TimestampMixin, TenantMixin):
    __tablename__ = "payroll_taxes"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    run_employee_id = Column(
        String(36), ForeignKey("payroll_run_employees.id", ondelete="CASCADE"), nullable=False
    )
    tax_type = Column(Enum(TaxType, name="payroll_tax_type"), nullable=False)
    taxable_wages = Column(Numeric(12, 2), nullable=False)
    tax_rate = Column(Numeric(10, 6), nullable=True)
    employee_amount = Column(Numeric(12, 2), default=0, nullable=False)
    employer_amount = Column(Numeric(12, 2), default=0, nullable=False)
    calculation_details = Column(JSON, nullable=True)

    run_employee = relationship("PayrollRunEmployee", back_populates="taxes")


class PayrollDeduction(Base, TimestampMixin, TenantMixin):
    __tablename__ = "payroll_deductions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    run_employee_id = Column(
        String(36), ForeignKey("payroll_run_employees.id", ondelete="CASCADE"), nullable=False
    )
    employee_deduction_id = Column(
        String(36), ForeignKey("employee_deductions.id"), nullable=False
    )
    deduction_type_id = Column(String(36), ForeignKey("deduction_types.id"), nullable=False)
    employee_amount = Column(Numeric(12, 2), default=0, nullable=False)
    employer_amount = Column(Numeric(12, 2), default=0, nullable=False)
    ytd_employee_amount = Column(Numeric(12, 2), default=0, nullable=False)
    calculation_details = Column(JSON, nullable=True)

    run_employee = relationship("PayrollRunEmployee", back_populates="deductions")
