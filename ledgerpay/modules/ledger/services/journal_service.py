# ledgerpay/modules/ledger/services/journal_service.py

"""
Balanced journal persistence.

``JournalWriter`` validates a set of draft lines and, only when they
balance, writes the transaction set, journal entry and lines to the
caller's session. It never commits; the caller owns the transaction.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from ledgerpay.core.config import settings
from ..exceptions import InvalidJournalLineError, UnbalancedJournalError
from ..models.ledger_models import Account, JournalEntry, JournalLine, TransactionSet

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass(frozen=True)
class JournalLineDraft:
    """A debit or credit that has not been written yet."""

    account_id: str
    debit: Decimal
    credit: Decimal
    description: str


@dataclass(frozen=True)
class JournalPostingResult:
    journal_entry_id: str
    transaction_set_id: str
    total_debits: Decimal
    total_credits: Decimal
    line_count: int


class JournalWriter:
    """Writes balanced journal entries inside the caller's transaction."""

    def __init__(self, db: Session, tolerance: Optional[Decimal] = None):
        self.db = db
        self.tolerance = tolerance if tolerance is not None else settings.journal_balance_tolerance

    def validate_balance(self, lines: Sequence[JournalLineDraft]) -> Tuple[Decimal, Decimal]:
        """
        Check that every line is well formed and the set balances.

        Args:
            lines: Draft lines in posting order

        Returns:
            Tuple of (total_debits, total_credits)

        Raises:
            InvalidJournalLineError: a line is empty, negative or two-sided
            UnbalancedJournalError: debits and credits differ beyond tolerance
        """
        total_debits = ZERO
        total_credits = ZERO

        for line_no, line in enumerate(lines, start=1):
            if not line.account_id:
                raise InvalidJournalLineError(line_no, "no account")
            if line.debit < ZERO or line.credit < ZERO:
                raise InvalidJournalLineError(line_no, "negative amount")
            if (line.debit > ZERO) == (line.credit > ZERO):
                raise InvalidJournalLineError(line_no, "exactly one of debit or credit must be set")
            total_debits += line.debit
            total_credits += line.credit

        if abs(total_debits - total_credits) > self.tolerance:
            logger.error(
                f"Rejected unbalanced journal: debits={total_debits} credits={total_credits}"
            )
            raise UnbalancedJournalError(total_debits, total_credits, self.tolerance)

        return total_debits, total_credits

    def write(
        self,
        tenant_id: str,
        posting_date: date,
        source: str,
        memo: str,
        notes: str,
        lines: List[JournalLineDraft],
        actor_id: Optional[str] = None,
    ) -> JournalPostingResult:
        """
        Validate then persist a transaction set, journal entry and its lines.

        Nothing is added to the session unless the lines balance.
        """
        total_debits, total_credits = self.validate_balance(lines)

        transaction_set = TransactionSet(
            tenant_id=tenant_id,
            status="posted",
            source=source,
            business_date=posting_date,
            notes=notes,
            created_by=actor_id,
        )
        self.db.add(transaction_set)
        self.db.flush()

        entry = JournalEntry(
            tenant_id=tenant_id,
            posting_date=posting_date,
            memo=memo,
            source_transaction_set_id=transaction_set.id,
            posted_by=actor_id,
        )
        self.db.add(entry)
        self.db.flush()

        for line_no, line in enumerate(lines, start=1):
            self.db.add(
                JournalLine(
                    tenant_id=tenant_id,
                    journal_entry_id=entry.id,
                    line_no=line_no,
                    account_id=line.account_id,
                    debit=line.debit,
                    credit=line.credit,
                    description=line.description,
                )
            )
        self.db.flush()

        logger.info(
            f"Wrote journal entry {entry.id} with {len(lines)} lines "
            f"(debits={total_debits}, credits={total_credits})"
        )

        return JournalPostingResult(
            journal_entry_id=entry.id,
            transaction_set_id=transaction_set.id,
            total_debits=total_debits,
            total_credits=total_credits,
            line_count=len(lines),
        )


def find_active_account(db: Session, tenant_id: str, code: str) -> Optional[Account]:
    """Chart-of-accounts lookup by code, ignoring inactive accounts."""
    return (
        db.query(Account)
        .filter(
            Account.tenant_id == tenant_id,
            Account.code == code,
            Account.is_active == True,
        )
        .first()
    )
