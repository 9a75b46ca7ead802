# ledgerpay/modules/payroll/models/gl_mapping.py

from sqlalchemy import Boolean, Column, Enum, ForeignKey, Index, String

from ledgerpay.core.database import Base
from ledgerpay.core.mixins import TenantMixin, TimestampMixin, generate_uuid
from ..enums.payroll_enums import GLMappingType


class PayrollGLMapping(Base, TimestampMixin, TenantMixin):
    """
    Links a payroll concept to a ledger account.

    The expense mapping is read from ``debit_account_id``; the three
    liability mappings are read from ``credit_account_id``.
    """
    __tablename__ = "payroll_gl_mappings"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    mapping_type = Column(Enum(GLMappingType, name="gl_mapping_type"), nullable=False)
    debit_account_id = Column(String(36), ForeignKey("gl_accounts.id"), nullable=True)
    credit_account_id = Column(String(36), ForeignKey("gl_accounts.id"), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        Index("ix_payroll_gl_mappings_tenant_type", "tenant_id", "mapping_type", "is_active"),
    )
