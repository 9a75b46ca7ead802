"""
GL posting generator.

Turns a run's aggregate totals into balanced journal lines and resolves
the ledger accounts for each line. Accounts come from the tenant's active
PayrollGLMapping rows; when a mapping is missing the conventional account
codes in settings are searched. ``bootstrap_mappings`` performs that search
once and stores the result so posting does not depend on it.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ledgerpay.core.audit_logger import AuditContext
from ledgerpay.core.config import Settings, get_settings
from ledgerpay.modules.ledger.models.ledger_models import Account
from ledgerpay.modules.ledger.services.journal_service import (
    JournalLineDraft, find_active_account,
)
from ..enums.payroll_enums import GLMappingType
from ..exceptions import GLAccountResolutionError, PayrollNotFoundError
from ..models.gl_mapping import PayrollGLMapping
from ..models.payroll_models import PayrollRun
from ..schemas.payroll_schemas import GLMappingCreate

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

LINE_DESCRIPTIONS: Dict[GLMappingType, str] = {
    GLMappingType.PAYROLL_EXPENSE: "Payroll expense",
    GLMappingType.TAXES_PAYABLE: "Payroll taxes payable",
    GLMappingType.DEDUCTIONS_PAYABLE: "Payroll deductions payable",
    GLMappingType.NET_PAY_PAYABLE: "Net wages payable",
}


@dataclass(frozen=True)
class PostingLine:
    """A posting line before its account is resolved."""

    mapping_type: GLMappingType
    debit: Decimal
    credit: Decimal

    @property
    def amount(self) -> Decimal:
        return self.debit or self.credit


def build_posting_lines(run: PayrollRun) -> List[PostingLine]:
    """
    Journal lines for a run's totals.

    Debit expense for the full employer cost; credit taxes, deductions and
    net pay payable. Credit lines with no amount are left out, and net pay
    is left out when it is not positive.
    """
    gross = Decimal(run.total_gross_pay or 0)
    employee_taxes = Decimal(run.total_employee_taxes or 0)
    employee_deductions = Decimal(run.total_employee_deductions or 0)
    net_pay = Decimal(run.total_net_pay or 0)
    employer_taxes = Decimal(run.total_employer_taxes or 0)
    employer_contributions = Decimal(run.total_employer_contributions or 0)

    lines = [
        PostingLine(
            GLMappingType.PAYROLL_EXPENSE,
            debit=gross + employer_taxes + employer_contributions,
            credit=ZERO,
        )
    ]

    taxes_payable = employee_taxes + employer_taxes
    if taxes_payable != ZERO:
        lines.append(PostingLine(GLMappingType.TAXES_PAYABLE, debit=ZERO, credit=taxes_payable))

    deductions_payable = employee_deductions + employer_contributions
    if deductions_payable != ZERO:
        lines.append(
            PostingLine(GLMappingType.DEDUCTIONS_PAYABLE, debit=ZERO, credit=deductions_payable)
        )

    if net_pay > ZERO:
        lines.append(PostingLine(GLMappingType.NET_PAY_PAYABLE, debit=ZERO, credit=net_pay))

    return lines


class PayrollAccountResolver:
    """Resolves mapping types to ledger account ids for one tenant."""

    def __init__(self, db: Session, tenant_id: str, config: Optional[Settings] = None):
        self.db = db
        self.tenant_id = tenant_id
        self.config = config or get_settings()
        self._cache: Dict[GLMappingType, Optional[str]] = {}

    def candidate_codes(self, mapping_type: GLMappingType) -> List[str]:
        return list(self.config.payroll_default_account_codes.get(mapping_type.value, []))

    def active_mapping(self, mapping_type: GLMappingType) -> Optional[PayrollGLMapping]:
        return (
            self.db.query(PayrollGLMapping)
            .filter(
                PayrollGLMapping.tenant_id == self.tenant_id,
                PayrollGLMapping.mapping_type == mapping_type,
                PayrollGLMapping.is_active == True,
            )
            .order_by(PayrollGLMapping.created_at.desc())
            .first()
        )

    def lookup_codes(self, mapping_type: GLMappingType) -> Optional[Account]:
        for code in self.candidate_codes(mapping_type):
            account = find_active_account(self.db, self.tenant_id, code)
            if account:
                return account
        return None

    def resolve(self, mapping_type: GLMappingType) -> Optional[str]:
        if mapping_type in self._cache:
            return self._cache[mapping_type]

        account_id = None
        mapping = self.active_mapping(mapping_type)
        if mapping:
            if mapping_type == GLMappingType.PAYROLL_EXPENSE:
                account_id = mapping.debit_account_id
            else:
                account_id = mapping.credit_account_id

        if not account_id:
            account = self.lookup_codes(mapping_type)
            if account:
                logger.warning(
                    f"No {mapping_type.value} mapping for tenant {self.tenant_id}; "
                    f"using account code {account.code}"
                )
                account_id = account.id

        self._cache[mapping_type] = account_id
        return account_id

    def require(self, mapping_type: GLMappingType) -> str:
        account_id = self.resolve(mapping_type)
        if not account_id:
            raise GLAccountResolutionError(mapping_type.value, self.candidate_codes(mapping_type))
        return account_id


class GLPostingService:
    """Builds payroll journal lines and manages GL mapping configuration."""

    def __init__(self, db_session: Session, config: Optional[Settings] = None):
        self.db = db_session
        self.config = config or get_settings()

    def build_journal_lines(self, tenant_id: str, run: PayrollRun) -> List[JournalLineDraft]:
        """
        Resolve accounts for the run's posting lines.

        Raises:
            GLAccountResolutionError: a nonzero line has no account
        """
        resolver = PayrollAccountResolver(self.db, tenant_id, self.config)
        drafts = []
        for line in build_posting_lines(run):
            if line.amount == ZERO:
                continue
            drafts.append(
                JournalLineDraft(
                    account_id=resolver.require(line.mapping_type),
                    debit=line.debit,
                    credit=line.credit,
                    description=LINE_DESCRIPTIONS[line.mapping_type],
                )
            )
        return drafts

    def list_mappings(self, tenant_id: str, include_inactive: bool = False) -> List[PayrollGLMapping]:
        query = self.db.query(PayrollGLMapping).filter(PayrollGLMapping.tenant_id == tenant_id)
        if not include_inactive:
            query = query.filter(PayrollGLMapping.is_active == True)
        return query.order_by(PayrollGLMapping.mapping_type, PayrollGLMapping.created_at).all()

    def create_mapping(
        self, tenant_id: str, request: GLMappingCreate, actor_id: Optional[str] = None
    ) -> PayrollGLMapping:
        """Activate a mapping, deactivating any previous one of the same type."""
        for account_id in (request.debit_account_id, request.credit_account_id):
            if account_id and not self._account_exists(tenant_id, account_id):
                raise PayrollNotFoundError("GL account", account_id)

        try:
            (
                self.db.query(PayrollGLMapping)
                .filter(
                    PayrollGLMapping.tenant_id == tenant_id,
                    PayrollGLMapping.mapping_type == request.mapping_type,
                    PayrollGLMapping.is_active == True,
                )
                .update({"is_active": False}, synchronize_session=False)
            )
            mapping = PayrollGLMapping(
                tenant_id=tenant_id,
                mapping_type=request.mapping_type,
                debit_account_id=request.debit_account_id,
                credit_account_id=request.credit_account_id,
                is_active=True,
            )
            self.db.add(mapping)
            self.db.flush()
            AuditContext(self.db, tenant_id, actor_id).log(
                "payroll_gl_mapping",
                mapping.id,
                "gl_mapping_configured",
                {
                    "mapping_type": request.mapping_type.value,
                    "debit_account_id": request.debit_account_id,
                    "credit_account_id": request.credit_account_id,
                },
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(mapping)
        return mapping

    def bootstrap_mappings(
        self, tenant_id: str, actor_id: Optional[str] = None
    ) -> Tuple[List[PayrollGLMapping], List[str]]:
        """
        Persist a mapping for every type that has none, using the first
        active conventional account code.

        Returns:
            Tuple of (mappings created, mapping types left unresolved)
        """
        resolver = PayrollAccountResolver(self.db, tenant_id, self.config)
        created: List[PayrollGLMapping] = []
        unresolved: List[str] = []

        try:
            for mapping_type in GLMappingType:
                if resolver.active_mapping(mapping_type):
                    continue
                account = resolver.lookup_codes(mapping_type)
                if not account:
                    unresolved.append(mapping_type.value)
                    continue
                mapping = PayrollGLMapping(
                    tenant_id=tenant_id,
                    mapping_type=mapping_type,
                    is_active=True,
                )
                if mapping_type == GLMappingType.PAYROLL_EXPENSE:
                    mapping.debit_account_id = account.id
                else:
                    mapping.credit_account_id = account.id
                self.db.add(mapping)
                created.append(mapping)

            self.db.flush()
            AuditContext(self.db, tenant_id, actor_id).log(
                "payroll_gl_mapping",
                tenant_id,
                "gl_mappings_bootstrapped",
                {
                    "created": [m.mapping_type.value for m in created],
                    "unresolved": unresolved,
                },
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        for mapping in created:
            self.db.refresh(mapping)
        if unresolved:
            logger.warning(
                f"GL mapping bootstrap for tenant {tenant_id} left unresolved: {', '.join(unresolved)}"
            )
        return created, unresolved

    def _account_exists(self, tenant_id: str, account_id: str) -> bool:
        return (
            self.db.query(Account)
            .filter(
                Account.id == account_id,
                Account.tenant_id == tenant_id,
                Account.is_active == True,
            )
            .first()
            is not None
        )
