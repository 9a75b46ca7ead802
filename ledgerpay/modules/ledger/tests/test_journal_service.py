import pytest
from datetime import date
from decimal import Decimal

from ..exceptions import InvalidJournalLineError, UnbalancedJournalError
from ..models.ledger_models import Account, JournalEntry, JournalLine, TransactionSet
from ..services.journal_service import JournalLineDraft, JournalWriter, find_active_account


@pytest.fixture
def accounts(db_session, tenant_id):
    expense = Account(tenant_id=tenant_id, code="6200", name="Payroll Expense", account_type="expense")
    payable = Account(tenant_id=tenant_id, code="2010", name="Net Wages Payable", account_type="liability")
    retired = Account(
        tenant_id=tenant_id, code="2999", name="Old Clearing", account_type="liability", is_active=False
    )
    db_session.add_all([expense, payable, retired])
    db_session.commit()
    return {"expense": expense, "payable": payable, "retired": retired}


def debit(account, amount, description="debit"):
    return JournalLineDraft(account.id, Decimal(amount), Decimal("0"), description)


def credit(account, amount, description="credit"):
    return JournalLineDraft(account.id, Decimal("0"), Decimal(amount), description)


class TestJournalWriter:
    """Balanced journal validation and persistence."""

    @pytest.fixture
    def writer(self, db_session):
        return JournalWriter(db_session, tolerance=Decimal("0.01"))

    def write(self, writer, tenant_id, lines):
        return writer.write(
            tenant_id=tenant_id,
            posting_date=date(2024, 1, 19),
            source="payroll_posting",
            memo="Payroll: 2024-01-05 to 2024-01-18 (1 employees)",
            notes="Payroll posting: 2024-01-05 to 2024-01-18",
            lines=lines,
        )

    def test_validate_balance_returns_totals(self, writer, accounts):
        totals = writer.validate_balance([
            debit(accounts["expense"], "2165.00"),
            credit(accounts["payable"], "2165.00"),
        ])

        assert totals == (Decimal("2165.00"), Decimal("2165.00"))

    def test_difference_within_tolerance_accepted(self, writer, accounts):
        writer.validate_balance([
            debit(accounts["expense"], "100.00"),
            credit(accounts["payable"], "99.99"),
        ])

    def test_unbalanced_rejected_before_anything_written(self, writer, accounts, tenant_id, db_session):
        with pytest.raises(UnbalancedJournalError) as exc_info:
            self.write(writer, tenant_id, [
                debit(accounts["expense"], "100.00"),
                credit(accounts["payable"], "90.00"),
            ])

        assert exc_info.value.context["total_debits"] == "100.00"
        assert db_session.query(TransactionSet).count() == 0
        assert db_session.query(JournalEntry).count() == 0

    @pytest.mark.parametrize(
        "line,reason",
        [
            (JournalLineDraft("", Decimal("10"), Decimal("0"), "x"), "no account"),
            (JournalLineDraft("acct", Decimal("-10"), Decimal("0"), "x"), "negative amount"),
            (JournalLineDraft("acct", Decimal("10"), Decimal("10"), "x"), "exactly one"),
            (JournalLineDraft("acct", Decimal("0"), Decimal("0"), "x"), "exactly one"),
        ],
    )
    def test_malformed_lines_rejected(self, writer, line, reason):
        with pytest.raises(InvalidJournalLineError) as exc_info:
            writer.validate_balance([line])

        assert reason in exc_info.value.message
        assert exc_info.value.context["line_no"] == 1

    def test_write_persists_entry_and_lines(self, writer, accounts, tenant_id, db_session):
        result = self.write(writer, tenant_id, [
            debit(accounts["expense"], "2165.00", "Payroll expense"),
            credit(accounts["payable"], "2165.00", "Net wages payable"),
        ])
        db_session.commit()

        entry = db_session.get(JournalEntry, result.journal_entry_id)
        assert entry.source_transaction_set_id == result.transaction_set_id
        assert entry.is_balanced
        assert [(line.line_no, line.description) for line in entry.lines] == [
            (1, "Payroll expense"),
            (2, "Net wages payable"),
        ]
        assert result.line_count == 2
        assert result.total_debits == Decimal("2165.00")

    def test_write_leaves_commit_to_caller(self, writer, accounts, tenant_id, db_session):
        self.write(writer, tenant_id, [
            debit(accounts["expense"], "10.00"),
            credit(accounts["payable"], "10.00"),
        ])

        db_session.rollback()

        assert db_session.query(JournalEntry).count() == 0
        assert db_session.query(JournalLine).count() == 0


class TestFindActiveAccount:
    def test_finds_active_by_code(self, db_session, tenant_id, accounts):
        assert find_active_account(db_session, tenant_id, "6200").id == accounts["expense"].id

    def test_ignores_inactive(self, db_session, tenant_id, accounts):
        assert find_active_account(db_session, tenant_id, "2999") is None

    def test_scoped_to_tenant(self, db_session, accounts):
        assert find_active_account(db_session, "99999999-9999-4999-8999-999999999999", "6200") is None
