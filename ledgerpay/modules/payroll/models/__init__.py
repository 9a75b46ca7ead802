from .employee_models import (
    Employee,
    CompensationRecord,
    DeductionType,
    EmployeeDeduction,
)
from .payroll_models import (
    EarningType,
    PaySchedule,
    PayPeriod,
    PayrollRun,
    PayrollRunEmployee,
    PayrollEarning,
    PayrollTax,
    PayrollDeduction,
)
from .gl_mapping import PayrollGLMapping

__all__ = [
    "Employee",
    "CompensationRecord",
    "DeductionType",
    "EmployeeDeduction",
    "EarningType",
    "PaySchedule",
    "PayPeriod",
    "PayrollRun",
    "PayrollRunEmployee",
    "PayrollEarning",
    "PayrollTax",
    "PayrollDeduction",
    "PayrollGLMapping",
]
