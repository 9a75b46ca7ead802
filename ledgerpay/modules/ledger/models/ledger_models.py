# ledgerpay/modules/ledger/models/ledger_models.py

"""
General ledger artifacts.

A ``TransactionSet`` records where a posting came from, the
``JournalEntry`` is the balanced header, and ``JournalLine`` rows carry
the individual debits and credits against chart-of-accounts entries.
"""

from decimal import Decimal

from sqlalchemy import (
    Boolean, Column, Date, ForeignKey, Index, Integer, Numeric, String, Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from ledgerpay.core.database import Base
from ledgerpay.core.mixins import TenantMixin, TimestampMixin, generate_uuid


class Account(Base, TimestampMixin, TenantMixin):
    __tablename__ = "gl_accounts"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    code = Column(String(20), nullable=False)
    name = Column(String(200), nullable=False)
    account_type = Column(String(20), nullable=False)  # asset, liability, expense...
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_gl_accounts_tenant_code"),
    )


class TransactionSet(Base, TimestampMixin, TenantMixin):
    __tablename__ = "transaction_sets"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    status = Column(String(20), nullable=False, default="posted")
    source = Column(String(50), nullable=False)
    business_date = Column(Date, nullable=False)
    notes = Column(Text, nullable=True)
    created_by = Column(String(36), nullable=True)

    journal_entries = relationship("JournalEntry", back_populates="transaction_set")


class JournalEntry(Base, TimestampMixin, TenantMixin):
    __tablename__ = "journal_entries"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    posting_date = Column(Date, nullable=False, index=True)
    memo = Column(Text, nullable=True)
    source_transaction_set_id = Column(
        String(36), ForeignKey("transaction_sets.id"), nullable=True, index=True
    )
    posted_by = Column(String(36), nullable=True)

    transaction_set = relationship("TransactionSet", back_populates="journal_entries")
    lines = relationship(
        "JournalLine",
        back_populates="journal_entry",
        order_by="JournalLine.line_no",
        cascade="all, delete-orphan",
    )

    @property
    def total_debits(self) -> Decimal:
        return sum((Decimal(str(line.debit or 0)) for line in self.lines), Decimal("0"))

    @property
    def total_credits(self) -> Decimal:
        return sum((Decimal(str(line.credit or 0)) for line in self.lines), Decimal("0"))

    @property
    def is_balanced(self) -> bool:
        """Read-side check; the write-time guard lives in JournalWriter."""
        return abs(self.total_debits - self.total_credits) <= Decimal("0.01")


class JournalLine(Base, TimestampMixin, TenantMixin):
    __tablename__ = "journal_lines"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    journal_entry_id = Column(
        String(36), ForeignKey("journal_entries.id", ondelete="CASCADE"), nullable=False
    )
    line_no = Column(Integer, nullable=False)
    account_id = Column(String(36), ForeignKey("gl_accounts.id"), nullable=False)
    debit = Column(Numeric(18, 6), default=0, nullable=False)
    credit = Column(Numeric(18, 6), default=0, nullable=False)
    description = Column(String(255), nullable=True)

    journal_entry = relationship("JournalEntry", back_populates="lines")
    account = relationship("Account")

    __table_args__ = (
        UniqueConstraint("journal_entry_id", "line_no", name="uq_journal_lines_entry_line"),
        Index("ix_journal_lines_account", "account_id"),
    )
