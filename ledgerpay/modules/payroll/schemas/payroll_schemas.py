# ledgerpay/modules/payroll/schemas/payroll_schemas.py

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..enums.payroll_enums import (
    GLMappingType, PayFrequency, PayPeriodStatus, PayrollRunStatus, PayrollRunType,
    PaymentMethod, PayType, TaxType,
)


# Pay schedules and periods

class PayScheduleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    frequency: PayFrequency
    anchor_date: date = Field(..., description="First pay date; periods end the day before for weekly/biweekly")
    first_pay_day: Optional[int] = Field(None, ge=1, le=31)
    second_pay_day: Optional[int] = Field(None, ge=1, le=31)
    pay_day_of_month: Optional[int] = Field(None, ge=1, le=31)
    generate_periods: int = Field(default=0, ge=0, le=52)


class PayPeriodResponse(BaseModel):
    id: str
    pay_schedule_id: str
    period_number: int
    year: int
    start_date: date
    end_date: date
    pay_date: date
    status: PayPeriodStatus

    model_config = ConfigDict(from_attributes=True)


class PayScheduleResponse(BaseModel):
    id: str
    name: str
    frequency: PayFrequency
    anchor_date: date
    first_pay_day: Optional[int] = None
    second_pay_day: Optional[int] = None
    pay_day_of_month: Optional[int] = None
    is_active: bool
    periods: List[PayPeriodResponse] = []

    model_config = ConfigDict(from_attributes=True)


# Runs

class PayrollRunCreate(BaseModel):
    pay_period_id: str
    run_type: PayrollRunType = PayrollRunType.REGULAR
    notes: Optional[str] = Field(None, max_length=2000)


class PayrollRunUpdate(BaseModel):
    notes: Optional[str] = Field(None, max_length=2000)


class PayrollRunResponse(BaseModel):
    id: str
    pay_period_id: str
    run_number: int
    run_type: PayrollRunType
    status: PayrollRunStatus
    total_gross_pay: Decimal
    total_employee_taxes: Decimal
    total_employee_deductions: Decimal
    total_net_pay: Decimal
    total_employer_taxes: Decimal
    total_employer_contributions: Decimal
    employee_count: int
    anomaly_count: int
    calculated_at: Optional[datetime] = None
    calculated_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    posted_at: Optional[datetime] = None
    posted_by: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    journal_entry_id: Optional[str] = None
    transaction_set_id: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ApproveRunRequest(BaseModel):
    comment: Optional[str] = Field(None, max_length=2000)
    acknowledge_anomalies: bool = False


class CancelRunRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=2000)


class AnomalyResponse(BaseModel):
    employee_id: str
    employee_number: str
    full_name: str
    type: str
    severity: str
    message: str


class RunSummaryResponse(BaseModel):
    total_gross_pay: Decimal
    total_employee_taxes: Decimal
    total_employee_deductions: Decimal
    total_net_pay: Decimal
    total_employer_taxes: Decimal
    total_employer_contributions: Decimal
    employee_count: int
    anomaly_count: int


class CalculateRunResponse(BaseModel):
    success: bool = True
    status: PayrollRunStatus
    summary: RunSummaryResponse
    anomalies: List[AnomalyResponse] = []


class RunTransitionResponse(BaseModel):
    success: bool = True
    status: PayrollRunStatus


class ApproveRunResponse(RunTransitionResponse):
    employee_count: int


class PostRunResponse(RunTransitionResponse):
    journal_entry_id: str
    transaction_set_id: Optional[str] = None
    idempotent: bool = False


# Run detail

class EarningLineResponse(BaseModel):
    id: str
    earning_type_id: Optional[str] = None
    earning_code: str
    hours: Optional[Decimal] = None
    rate: Optional[Decimal] = None
    amount: Decimal
    description: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class TaxLineResponse(BaseModel):
    id: str
    tax_type: TaxType
    taxable_wages: Decimal
    tax_rate: Optional[Decimal] = None
    employee_amount: Decimal
    employer_amount: Decimal
    calculation_details: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(from_attributes=True)


class DeductionLineResponse(BaseModel):
    id: str
    employee_deduction_id: str
    deduction_type_id: str
    employee_amount: Decimal
    employer_amount: Decimal
    ytd_employee_amount: Decimal
    calculation_details: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(from_attributes=True)


class RunEmployeeResponse(BaseModel):
    id: str
    employee_id: str
    employee_number: Optional[str] = None
    full_name: Optional[str] = None
    pay_type: PayType
    pay_rate: Decimal
    pay_frequency: PayFrequency
    gross_pay: Decimal
    total_taxes: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    employer_taxes: Decimal
    employer_contributions: Decimal
    total_employer_cost: Decimal
    ytd_gross: Decimal
    payment_method: PaymentMethod
    status: str
    anomalies: List[Dict[str, Any]] = []
    earnings: List[EarningLineResponse] = []
    taxes: List[TaxLineResponse] = []
    deductions: List[DeductionLineResponse] = []

    model_config = ConfigDict(from_attributes=True)


class RunEmployeesResponse(BaseModel):
    run_id: str
    status: PayrollRunStatus
    employees: List[RunEmployeeResponse] = []


# GL mappings

class GLMappingCreate(BaseModel):
    mapping_type: GLMappingType
    debit_account_id: Optional[str] = None
    credit_account_id: Optional[str] = None

    @model_validator(mode="after")
    def check_side(self):
        if self.mapping_type == GLMappingType.PAYROLL_EXPENSE:
            if not self.debit_account_id:
                raise ValueError("payroll_expense mappings require debit_account_id")
        elif not self.credit_account_id:
            raise ValueError(f"{self.mapping_type.value} mappings require credit_account_id")
        return self


class GLMappingResponse(BaseModel):
    id: str
    mapping_type: GLMappingType
    debit_account_id: Optional[str] = None
    credit_account_id: Optional[str] = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)
