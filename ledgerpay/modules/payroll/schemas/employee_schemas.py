# ledgerpay/modules/payroll/schemas/employee_schemas.py

"""
Request and response schemas for the payroll inputs owned per employee:
compensation records and deduction enrollments.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..enums.payroll_enums import (
    CompensationChangeReason, DeductionCalcMethod, PayFrequency, PayType,
)


class CompensationCreate(BaseModel):
    """New compensation terms; closes the currently open record."""

    effective_from: date
    pay_type: PayType
    pay_rate: Decimal = Field(..., ge=0, description="Annual for salary, hourly for hourly, per-period base for commission")
    pay_frequency: PayFrequency
    change_reason: CompensationChangeReason
    standard_hours_per_week: Decimal = Field(default=Decimal("40"), gt=0, le=168)
    commission_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    commission_basis: Optional[Decimal] = Field(None, ge=0)
    change_notes: Optional[str] = Field(None, max_length=2000)


class CompensationResponse(BaseModel):
    id: str
    employee_id: str
    effective_from: date
    effective_to: Optional[date] = None
    pay_type: PayType
    pay_rate: Decimal
    pay_frequency: PayFrequency
    standard_hours_per_week: Decimal
    commission_rate: Optional[Decimal] = None
    commission_basis: Optional[Decimal] = None
    change_reason: CompensationChangeReason
    change_notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CompensationHistoryResponse(BaseModel):
    employee_id: str
    employee_number: str
    current_compensation: Optional[CompensationResponse] = None
    history: List[CompensationResponse] = []


class CompensationCreatedResponse(BaseModel):
    compensation_id: str
    effective_from: date
    closed_compensation_id: Optional[str] = None


class DeductionCreate(BaseModel):
    deduction_type_id: str
    effective_from: date
    calc_method: DeductionCalcMethod
    amount: Decimal = Field(..., ge=0, description="Currency amount, or percent for percent methods")
    per_period_limit: Optional[Decimal] = Field(None, ge=0)
    annual_limit: Optional[Decimal] = Field(None, ge=0)
    employer_match_percent: Optional[Decimal] = Field(None, ge=0, le=100)
    employer_match_max_percent: Optional[Decimal] = Field(None, ge=0, le=100)
    case_number: Optional[str] = Field(None, max_length=100)
    garnishment_type: Optional[str] = Field(None, max_length=50)
    garnishment_priority: Optional[int] = Field(None, ge=1)

    @model_validator(mode="after")
    def check_percent_amount(self):
        if self.calc_method != DeductionCalcMethod.FIXED and self.amount > 100:
            raise ValueError("Percent deductions cannot exceed 100")
        return self


class DeductionUpdate(BaseModel):
    """
    Patch an enrollment.

    With ``end_deduction`` set the enrollment is ended (as of ``end_date``
    or today) and every other field is ignored.
    """

    deduction_id: str
    end_deduction: bool = False
    end_date: Optional[date] = None
    calc_method: Optional[DeductionCalcMethod] = None
    amount: Optional[Decimal] = Field(None, ge=0)
    per_period_limit: Optional[Decimal] = Field(None, ge=0)
    annual_limit: Optional[Decimal] = Field(None, ge=0)
    employer_match_percent: Optional[Decimal] = Field(None, ge=0, le=100)
    employer_match_max_percent: Optional[Decimal] = Field(None, ge=0, le=100)
    garnishment_priority: Optional[int] = Field(None, ge=1)


class DeductionResponse(BaseModel):
    id: str
    employee_id: str
    deduction_type_id: str
    deduction_type_code: Optional[str] = None
    deduction_type_name: Optional[str] = None
    category: Optional[str] = None
    effective_from: date
    effective_to: Optional[date] = None
    calc_method: DeductionCalcMethod
    amount: Decimal
    per_period_limit: Optional[Decimal] = None
    annual_limit: Optional[Decimal] = None
    ytd_amount: Decimal
    ytd_year: Optional[int] = None
    employer_match_percent: Optional[Decimal] = None
    employer_match_max_percent: Optional[Decimal] = None
    case_number: Optional[str] = None
    garnishment_type: Optional[str] = None
    garnishment_priority: Optional[int] = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class DeductionListResponse(BaseModel):
    employee_id: str
    active_deductions: List[DeductionResponse] = []
    inactive_deductions: List[DeductionResponse] = []
