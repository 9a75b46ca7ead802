# ledgerpay/scripts/seed_payroll_types.py

"""
Seed a tenant's earning types, deduction types and the conventional
payroll GL accounts.

    python -m ledgerpay.scripts.seed_payroll_types --tenant-id <uuid>
"""

import argparse
import logging

from sqlalchemy.orm import Session

from ledgerpay.core.config import settings
from ledgerpay.core.database import SessionLocal
from ledgerpay.core.tenant_context import parse_uuid
from ledgerpay.modules.ledger.models.ledger_models import Account
from ledgerpay.modules.payroll.enums.payroll_enums import DeductionCalcMethod, DeductionCategory
from ledgerpay.modules.payroll.models.employee_models import DeductionType
from ledgerpay.modules.payroll.models.payroll_models import EarningType

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

EARNING_TYPES = [
    {"code": "REG", "name": "Regular Pay", "category": "regular"},
    {"code": "SAL", "name": "Salary", "category": "regular"},
    {"code": "BASE", "name": "Commission Base Pay", "category": "regular"},
    {"code": "COMM", "name": "Commission", "category": "supplemental"},
    {"code": "OT", "name": "Overtime", "category": "overtime"},
    {"code": "BONUS", "name": "Bonus", "category": "supplemental"},
]

DEDUCTION_TYPES = [
    {"code": "401K_EE", "name": "401(k) Employee Contribution",
     "category": DeductionCategory.RETIREMENT, "default_calc_method": DeductionCalcMethod.PERCENT_GROSS},
    {"code": "HSA_EE", "name": "HSA Employee Contribution",
     "category": DeductionCategory.HEALTH, "default_calc_method": DeductionCalcMethod.FIXED},
    {"code": "MEDICAL_EE", "name": "Medical Premium",
     "category": DeductionCategory.HEALTH, "default_calc_method": DeductionCalcMethod.FIXED},
    {"code": "GARNISHMENT", "name": "Wage Garnishment",
     "category": DeductionCategory.GARNISHMENT, "default_calc_method": DeductionCalcMethod.PERCENT_NET},
    {"code": "CHILD_SUPPORT", "name": "Child Support Order",
     "category": DeductionCategory.GARNISHMENT, "default_calc_method": DeductionCalcMethod.FIXED},
    {"code": "UNION_DUES", "name": "Union Dues",
     "category": DeductionCategory.OTHER, "default_calc_method": DeductionCalcMethod.FIXED},
]

GL_ACCOUNTS = [
    {"code": "6200", "name": "Payroll Expense", "account_type": "expense"},
    {"code": "2100", "name": "Payroll Taxes Payable", "account_type": "liability"},
    {"code": "2150", "name": "Payroll Deductions Payable", "account_type": "liability"},
    {"code": "2010", "name": "Net Wages Payable", "account_type": "liability"},
]


def seed_payroll_types(db: Session, tenant_id: str, include_accounts: bool = True):
    """Insert missing rows; existing codes are left as they are."""
    for data in EARNING_TYPES:
        exists = db.query(EarningType).filter(
            EarningType.tenant_id == tenant_id, EarningType.code == data["code"]
        ).first()
        if exists:
            logger.info(f"Earning type '{data['code']}' already exists, skipping")
            continue
        logger.info(f"Creating earning type '{data['code']}'...")
        db.add(EarningType(tenant_id=tenant_id, is_active=True, **data))

    for data in DEDUCTION_TYPES:
        exists = db.query(DeductionType).filter(
            DeductionType.tenant_id == tenant_id, DeductionType.code == data["code"]
        ).first()
        if exists:
            logger.info(f"Deduction type '{data['code']}' already exists, skipping")
            continue
        logger.info(f"Creating deduction type '{data['code']}'...")
        db.add(DeductionType(tenant_id=tenant_id, is_active=True, **data))

    if include_accounts:
        for data in GL_ACCOUNTS:
            exists = db.query(Account).filter(
                Account.tenant_id == tenant_id, Account.code == data["code"]
            ).first()
            if exists:
                continue
            logger.info(f"Creating GL account {data['code']} {data['name']}...")
            db.add(Account(tenant_id=tenant_id, is_active=True, **data))

    db.commit()
    logger.info(f"Payroll reference data seeded for tenant {tenant_id}")


def main():
    parser = argparse.ArgumentParser(description="Seed payroll reference data")
    parser.add_argument("--tenant-id", default=settings.default_tenant_id)
    parser.add_argument("--skip-accounts", action="store_true")
    args = parser.parse_args()

    tenant_id = parse_uuid(args.tenant_id, "tenant-id")
    db = SessionLocal()
    try:
        seed_payroll_types(db, tenant_id, include_accounts=not args.skip_accounts)
    except Exception as e:
        logger.error(f"Error seeding payroll types: {str(e)}")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
