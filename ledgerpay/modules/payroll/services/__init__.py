# ledgerpay/modules/payroll/services/__init__.py

"""
Payroll Services Package

Business logic for payroll processing:
- Compensation resolution and deduction enrollment
- Gross-to-net calculation and tax withholding
- Run lifecycle and GL posting
"""

from .compensation_service import CompensationService
from .deduction_service import DeductionService
from .gl_posting_service import GLPostingService
from .pay_schedule_service import PayScheduleService
from .payroll_calculator import PayrollCalculator
from .payroll_run_service import PayrollRunService
from .payroll_tax_engine import PayrollTaxEngine
from .run_state_machine import RunStateMachine

__all__ = [
    "CompensationService",
    "DeductionService",
    "GLPostingService",
    "PayScheduleService",
    "PayrollCalculator",
    "PayrollRunService",
    "PayrollTaxEngine",
    "RunStateMachine",
]
