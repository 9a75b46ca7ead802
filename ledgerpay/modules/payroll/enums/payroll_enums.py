from enum import Enum


class PayFrequency(str, Enum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    SEMIMONTHLY = "semimonthly"
    MONTHLY = "monthly"


class PayType(str, Enum):
    SALARY = "salary"
    HOURLY = "hourly"
    COMMISSION = "commission"


class EmploymentStatus(str, Enum):
    ACTIVE = "active"
    ON_LEAVE = "on_leave"
    TERMINATED = "terminated"


class FilingStatus(str, Enum):
    SINGLE = "single"
    MARRIED = "married"
    HEAD_OF_HOUSEHOLD = "head_of_household"


class PaymentMethod(str, Enum):
    DIRECT_DEPOSIT = "direct_deposit"
    CHECK = "check"


class CompensationChangeReason(str, Enum):
    HIRE = "hire"
    PROMOTION = "promotion"
    ANNUAL_REVIEW = "annual_review"
    ADJUSTMENT = "adjustment"
    DEMOTION = "demotion"
    TRANSFER = "transfer"


class DeductionCategory(str, Enum):
    RETIREMENT = "retirement"
    HEALTH = "health"
    INSURANCE = "insurance"
    COMMUTER = "commuter"
    GARNISHMENT = "garnishment"
    OTHER = "other"


class DeductionCalcMethod(str, Enum):
    FIXED = "fixed"
    PERCENT_GROSS = "percent_gross"
    PERCENT_NET = "percent_net"


class TaxType(str, Enum):
    FEDERAL_INCOME = "federal_income"
    STATE_INCOME = "state_income"
    SOCIAL_SECURITY = "social_security"
    MEDICARE = "medicare"
    FUTA = "futa"


class PayPeriodStatus(str, Enum):
    UPCOMING = "upcoming"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class PayrollRunType(str, Enum):
    REGULAR = "regular"
    BONUS = "bonus"
    CORRECTION = "correction"
    FINAL = "final"


class PayrollRunStatus(str, Enum):
    """Lifecycle of a payroll run; see run_state_machine for legal edges."""
    DRAFT = "draft"
    CALCULATING = "calculating"
    CALCULATED = "calculated"
    REVIEWING = "reviewing"
    APPROVED = "approved"
    POSTING = "posting"
    POSTED = "posted"
    CANCELLED = "cancelled"


class RunEmployeeStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


class AnomalyType(str, Enum):
    NEGATIVE_NET = "negative_net"
    LARGE_CHANGE = "large_change"


class AnomalySeverity(str, Enum):
    WARNING = "warning"
    ERROR = "error"


class GLMappingType(str, Enum):
    PAYROLL_EXPENSE = "payroll_expense"
    TAXES_PAYABLE = "taxes_payable"
    DEDUCTIONS_PAYABLE = "deductions_payable"
    NET_PAY_PAYABLE = "net_pay_payable"
