# ledgerpay/modules/payroll/models/employee_models.py

"""
Employee master data consumed by payroll, plus the effective-dated
inputs payroll owns: compensation records and deduction enrollments.
"""

from sqlalchemy import (
    Boolean, Column, Date, Enum, ForeignKey, Index, Integer, Numeric, String, Text, text,
)
from sqlalchemy.orm import relationship

from ledgerpay.core.database import Base
from ledgerpay.core.mixins import TenantMixin, TimestampMixin, generate_uuid
from ..enums.payroll_enums import (
    CompensationChangeReason, DeductionCalcMethod, DeductionCategory,
    EmploymentStatus, FilingStatus, PayFrequency, PaymentMethod, PayType,
)


class Employee(Base, TimestampMixin, TenantMixin):
    """
    Payroll view of an employee.

    Rows are maintained by the HR system; payroll only reads the
    withholding profile and employment status.
    """
    __tablename__ = "payroll_employees"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    employee_number = Column(String(50), nullable=False)
    full_name = Column(String(200), nullable=False)
    employment_status = Column(
        Enum(EmploymentStatus, name="employment_status"),
        default=EmploymentStatus.ACTIVE, nullable=False
    )
    hire_date = Column(Date, nullable=True)
    termination_date = Column(Date, nullable=True)

    # Federal withholding profile (W-4)
    federal_filing_status = Column(
        Enum(FilingStatus, name="filing_status"),
        default=FilingStatus.SINGLE, nullable=False
    )
    federal_allowances = Column(Integer, default=0, nullable=False)
    additional_federal_withholding = Column(Numeric(12, 2), default=0, nullable=False)
    w4_step2_checkbox = Column(Boolean, default=False, nullable=False)
    w4_dependents_amount = Column(Numeric(12, 2), default=0, nullable=False)
    w4_other_income = Column(Numeric(12, 2), default=0, nullable=False)
    w4_deductions = Column(Numeric(12, 2), default=0, nullable=False)

    # State withholding is a flat fraction of gross when set
    state_withholding_rate = Column(Numeric(10, 6), nullable=True)

    is_exempt_from_federal = Column(Boolean, default=False, nullable=False)
    is_exempt_from_state = Column(Boolean, default=False, nullable=False)
    is_exempt_from_fica = Column(Boolean, default=False, nullable=False)

    payment_method = Column(
        Enum(PaymentMethod, name="payment_method"),
        default=PaymentMethod.DIRECT_DEPOSIT, nullable=False
    )

    # Relationships
    compensation_records = relationship(
        "CompensationRecord",
        back_populates="employee",
        order_by="CompensationRecord.effective_from.desc()",
    )
    deductions = relationship("EmployeeDeduction", back_populates="employee")

    __table_args__ = (
        Index("ix_payroll_employees_tenant_number", "tenant_id", "employee_number", unique=True),
        Index("ix_payroll_employees_tenant_status", "tenant_id", "employment_status"),
    )


class CompensationRecord(Base, TimestampMixin, TenantMixin):
    """
    Effective-dated pay terms.

    At most one record per employee has ``effective_to`` NULL; that record
    is the currently open one.
    """
    __tablename__ = "compensation_records"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    employee_id = Column(String(36), ForeignKey("payroll_employees.id"), nullable=False)
    effective_from = Column(Date, nullable=False)
    effective_to = Column(Date, nullable=True)

    pay_type = Column(Enum(PayType, name="pay_type"), nullable=False)
    pay_rate = Column(Numeric(12, 4), nullable=False)  # annual for salary, hourly otherwise
    pay_frequency = Column(Enum(PayFrequency, name="pay_frequency"), nullable=False)
    standard_hours_per_week = Column(Numeric(6, 2), default=40, nullable=False)

    commission_rate = Column(Numeric(10, 4), nullable=True)
    commission_basis = Column(Numeric(12, 2), nullable=True)

    change_reason = Column(
        Enum(CompensationChangeReason, name="compensation_change_reason"),
        nullable=False
    )
    change_notes = Column(Text, nullable=True)
    created_by = Column(String(36), nullable=True)

    employee = relationship("Employee", back_populates="compensation_records")

    __table_args__ = (
        Index("ix_compensation_employee_effective", "employee_id", "effective_from"),
        Index("ix_compensation_employee_open", "employee_id", "effective_to"),
        # At most one open record per employee
        Index(
            "uq_compensation_open_per_employee",
            "employee_id",
            unique=True,
            sqlite_where=text("effective_to IS NULL"),
            postgresql_where=text("effective_to IS NULL"),
        ),
    )


class DeductionType(Base, TimestampMixin, TenantMixin):
    __tablename__ = "deduction_types"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    code = Column(String(30), nullable=False)
    name = Column(String(100), nullable=False)
    category = Column(Enum(DeductionCategory, name="deduction_category"), nullable=False)
    default_calc_method = Column(
        Enum(DeductionCalcMethod, name="deduction_calc_method"),
        default=DeductionCalcMethod.FIXED, nullable=False
    )
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        Index("ix_deduction_types_tenant_code", "tenant_id", "code", unique=True),
    )


class EmployeeDeduction(Base, TimestampMixin, TenantMixin):
    """
    Enrollment of an employee in a deduction, benefit or garnishment.

    Ending an enrollment is one-way: once ``is_active`` is False the row
    is never reactivated.
    """
    __tablename__ = "employee_deductions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    employee_id = Column(String(36), ForeignKey("payroll_employees.id"), nullable=False)
    deduction_type_id = Column(String(36), ForeignKey("deduction_types.id"), nullable=False)
    effective_from = Column(Date, nullable=False)
    effective_to = Column(Date, nullable=True)

    calc_method = Column(
        Enum(DeductionCalcMethod, name="deduction_calc_method"), nullable=False
    )
    amount = Column(Numeric(12, 4), nullable=False)  # currency or percent
    per_period_limit = Column(Numeric(12, 2), nullable=True)
    annual_limit = Column(Numeric(12, 2), nullable=True)
    ytd_amount = Column(Numeric(12, 2), default=0, nullable=False)
    ytd_year = Column(Integer, nullable=True)  # pay-date year ytd_amount belongs to

    employer_match_percent = Column(Numeric(10, 4), nullable=True)
    employer_match_max_percent = Column(Numeric(10, 4), nullable=True)

    # Garnishment details
    case_number = Column(String(100), nullable=True)
    garnishment_type = Column(String(50), nullable=True)
    garnishment_priority = Column(Integer, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    created_by = Column(String(36), nullable=True)

    employee = relationship("Employee", back_populates="deductions")
    deduction_type = relationship("DeductionType")

    __table_args__ = (
        Index("ix_employee_deductions_employee_active", "employee_id", "is_active"),
        Index("ix_employee_deductions_employee_type", "employee_id", "deduction_type_id"),
        Index(
            "uq_employee_deductions_active_type",
            "employee_id",
            "deduction_type_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )
