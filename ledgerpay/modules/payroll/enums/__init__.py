from .payroll_enums import (
    PayFrequency,
    PayType,
    EmploymentStatus,
    FilingStatus,
    PaymentMethod,
    CompensationChangeReason,
    DeductionCategory,
    DeductionCalcMethod,
    TaxType,
    PayPeriodStatus,
    PayrollRunType,
    PayrollRunStatus,
    RunEmployeeStatus,
    AnomalyType,
    AnomalySeverity,
    GLMappingType,
)
