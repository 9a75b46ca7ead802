"""Create payroll and general ledger tables

Revision ID: 0001_payroll_ledger
Revises:
Create Date: 2025-03-01 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '0001_payroll_ledger'
down_revision = None
branch_labels = None
depends_on = None

# Enum columns store member names
pay_frequency = postgresql.ENUM('WEEKLY', 'BIWEEKLY', 'SEMIMONTHLY', 'MONTHLY', name='pay_frequency', create_type=False)
pay_type = postgresql.ENUM('SALARY', 'HOURLY', 'COMMISSION', name='pay_type', create_type=False)
employment_status = postgresql.ENUM('ACTIVE', 'ON_LEAVE', 'TERMINATED', name='employment_status', create_type=False)
filing_status = postgresql.ENUM('SINGLE', 'MARRIED', 'HEAD_OF_HOUSEHOLD', name='filing_status', create_type=False)
payment_method = postgresql.ENUM('DIRECT_DEPOSIT', 'CHECK', name='payment_method', create_type=False)
compensation_change_reason = postgresql.ENUM(
    'HIRE', 'PROMOTION', 'ANNUAL_REVIEW', 'ADJUSTMENT', 'DEMOTION', 'TRANSFER',
    name='compensation_change_reason', create_type=False
)
deduction_category = postgresql.ENUM(
    'RETIREMENT', 'HEALTH', 'INSURANCE', 'COMMUTER', 'GARNISHMENT', 'OTHER',
    name='deduction_category', create_type=False
)
deduction_calc_method = postgresql.ENUM('FIXED', 'PERCENT_GROSS', 'PERCENT_NET', name='deduction_calc_method', create_type=False)
payroll_tax_type = postgresql.ENUM(
    'FEDERAL_INCOME', 'STATE_INCOME', 'SOCIAL_SECURITY', 'MEDICARE', 'FUTA',
    name='payroll_tax_type', create_type=False
)
pay_period_status = postgresql.ENUM('UPCOMING', 'IN_PROGRESS', 'COMPLETED', name='pay_period_status', create_type=False)
payroll_run_type = postgresql.ENUM('REGULAR', 'BONUS', 'CORRECTION', 'FINAL', name='payroll_run_type', create_type=False)
payroll_run_status = postgresql.ENUM(
    'DRAFT', 'CALCULATING', 'CALCULATED', 'REVIEWING', 'APPROVED', 'POSTING',
    'POSTED', 'CANCELLED',
    name='payroll_run_status', create_type=False
)
run_employee_status = postgresql.ENUM('PENDING', 'PAID', name='run_employee_status', create_type=False)
gl_mapping_type = postgresql.ENUM(
    'PAYROLL_EXPENSE', 'TAXES_PAYABLE', 'DEDUCTIONS_PAYABLE', 'NET_PAY_PAYABLE',
    name='gl_mapping_type', create_type=False
)

ENUM_TYPES = (
    pay_frequency, pay_type, employment_status, filing_status, payment_method,
    compensation_change_reason, deduction_category, deduction_calc_method,
    payroll_tax_type, pay_period_status, payroll_run_type, payroll_run_status,
    run_employee_status, gl_mapping_type,
)


def timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    ]


def tenant():
    return sa.Column('tenant_id', sa.String(36), nullable=False, index=True)


def upgrade():
    bind = op.get_bind()
    for enum_type in ENUM_TYPES:
        enum_type.create(bind, checkfirst=True)

    # General ledger
    op.create_table(
        'gl_accounts',
        sa.Column('id', sa.String(36), primary_key=True),
        tenant(),
        sa.Column('code', sa.String(20), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('account_type', sa.String(20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *timestamps(),
        sa.UniqueConstraint('tenant_id', 'code', name='uq_gl_accounts_tenant_code'),
    )

    op.create_table(
        'transaction_sets',
        sa.Column('id', sa.String(36), primary_key=True),
        tenant(),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('source', sa.String(50), nullable=False),
        sa.Column('business_date', sa.Date(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(36), nullable=True),
        *timestamps(),
    )

    op.create_table(
        'journal_entries',
        sa.Column('id', sa.String(36), primary_key=True),
        tenant(),
        sa.Column('posting_date', sa.Date(), nullable=False, index=True),
        sa.Column('memo', sa.Text(), nullable=True),
        sa.Column('source_transaction_set_id', sa.String(36),
                  sa.ForeignKey('transaction_sets.id'), nullable=True, index=True),
        sa.Column('posted_by', sa.String(36), nullable=True),
        *timestamps(),
    )

    op.create_table(
        'journal_lines',
        sa.Column('id', sa.String(36), primary_key=True),
        tenant(),
        sa.Column('journal_entry_id', sa.String(36),
                  sa.ForeignKey('journal_entries.id', ondelete='CASCADE'), nullable=False),
        sa.Column('line_no', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.String(36), sa.ForeignKey('gl_accounts.id'), nullable=False),
        sa.Column('debit', sa.Numeric(18, 6), nullable=False),
        sa.Column('credit', sa.Numeric(18, 6), nullable=False),
        sa.Column('description', sa.String(255), nullable=True),
        *timestamps(),
        sa.UniqueConstraint('journal_entry_id', 'line_no', name='uq_journal_lines_entry_line'),
    )
    op.create_index('ix_journal_lines_account', 'journal_lines', ['account_id'])

    # Employees and payroll inputs
    op.create_table(
        'payroll_employees',
        sa.Column('id', sa.String(36), primary_key=True),
        tenant(),
        sa.Column('employee_number', sa.String(50), nullable=False),
        sa.Column('full_name', sa.String(200), nullable=False),
        sa.Column('employment_status', employment_status, nullable=False),
        sa.Column('hire_date', sa.Date(), nullable=True),
        sa.Column('termination_date', sa.Date(), nullable=True),
        sa.Column('federal_filing_status', filing_status, nullable=False),
        sa.Column('federal_allowances', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('additional_federal_withholding', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('w4_step2_checkbox', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('w4_dependents_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('w4_other_income', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('w4_deductions', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('state_withholding_rate', sa.Numeric(10, 6), nullable=True),
        sa.Column('is_exempt_from_federal', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_exempt_from_state', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_exempt_from_fica', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('payment_method', payment_method, nullable=False),
        *timestamps(),
    )
    op.create_index('ix_payroll_employees_tenant_number', 'payroll_employees',
                    ['tenant_id', 'employee_number'], unique=True)
    op.create_index('ix_payroll_employees_tenant_status', 'payroll_employees',
                    ['tenant_id', 'employment_status'])

    op.create_table(
        'compensation_records',
        sa.Column('id', sa.String(36), primary_key=True),
        tenant(),
        sa.Column('employee_id', sa.String(36), sa.ForeignKey('payroll_employees.id'), nullable=False),
        sa.Column('effective_from', sa.Date(), nullable=False),
        sa.Column('effective_to', sa.Date(), nullable=True),
        sa.Column('pay_type', pay_type, nullable=False),
        sa.Column('pay_rate', sa.Numeric(12, 4), nullable=False),
        sa.Column('pay_frequency', pay_frequency, nullable=False),
        sa.Column('standard_hours_per_week', sa.Numeric(6, 2), nullable=False, server_default='40'),
        sa.Column('commission_rate', sa.Numeric(10, 4), nullable=True),
        sa.Column('commission_basis', sa.Numeric(12, 2), nullable=True),
        sa.Column('change_reason', compensation_change_reason, nullable=False),
        sa.Column('change_notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(36), nullable=True),
        *timestamps(),
    )
    op.create_index('ix_compensation_employee_effective', 'compensation_records',
                    ['employee_id', 'effective_from'])
    op.create_index('ix_compensation_employee_open', 'compensation_records',
                    ['employee_id', 'effective_to'])
    op.create_index('uq_compensation_open_per_employee', 'compensation_records',
                    ['employee_id'], unique=True,
                    sqlite_where=sa.text('effective_to IS NULL'),
                    postgresql_where=sa.text('effective_to IS NULL'))

    op.create_table(
        'deduction_types',
        sa.Column('id', sa.String(36), primary_key=True),
        tenant(),
        sa.Column('code', sa.String(30), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('category', deduction_category, nullable=False),
        sa.Column('default_calc_method', deduction_calc_method, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *timestamps(),
    )
    op.create_index('ix_deduction_types_tenant_code', 'deduction_types',
                    ['tenant_id', 'code'], unique=True)

    op.create_table(
        'employee_deductions',
        sa.Column('id', sa.String(36), primary_key=True),
        tenant(),
        sa.Column('employee_id', sa.String(36), sa.ForeignKey('payroll_employees.id'), nullable=False),
        sa.Column('deduction_type_id', sa.String(36), sa.ForeignKey('deduction_types.id'), nullable=False),
        sa.Column('effective_from', sa.Date(), nullable=False),
        sa.Column('effective_to', sa.Date(), nullable=True),
        sa.Column('calc_method', deduction_calc_method, nullable=False),
        sa.Column('amount', sa.Numeric(12, 4), nullable=False),
        sa.Column('per_period_limit', sa.Numeric(12, 2), nullable=True),
        sa.Column('annual_limit', sa.Numeric(12, 2), nullable=True),
        sa.Column('ytd_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('ytd_year', sa.Integer(), nullable=True),
        sa.Column('employer_match_percent', sa.Numeric(10, 4), nullable=True),
        sa.Column('employer_match_max_percent', sa.Numeric(10, 4), nullable=True),
        sa.Column('case_number', sa.String(100), nullable=True),
        sa.Column('garnishment_type', sa.String(50), nullable=True),
        sa.Column('garnishment_priority', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_by', sa.String(36), nullable=True),
        *timestamps(),
    )
    op.create_index('ix_employee_deductions_employee_active', 'employee_deductions',
                    ['employee_id', 'is_active'])
    op.create_index('ix_employee_deductions_employee_type', 'employee_deductions',
                    ['employee_id', 'deduction_type_id'])
    op.create_index('uq_employee_deductions_active_type', 'employee_deductions',
                    ['employee_id', 'deduction_type_id'], unique=True,
                    sqlite_where=sa.text('is_active = 1'),
                    postgresql_where=sa.text('is_active'))

    # Schedules, periods and runs
    op.create_table(
        'earning_types',
        sa.Column('id', sa.String(36), primary_key=True),
        tenant(),
        sa.Column('code', sa.String(30), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('category', sa.String(30), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *timestamps(),
    )
    op.create_index('ix_earning_types_tenant_code', 'earning_types',
                    ['tenant_id', 'code'], unique=True)

    op.create_table(
        'pay_schedules',
        sa.Column('id', sa.String(36), primary_key=True),
        tenant(),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('frequency', pay_frequency, nullable=False),
        sa.Column('anchor_date', sa.Date(), nullable=False),
        sa.Column('first_pay_day', sa.Integer(), nullable=True),
        sa.Column('second_pay_day', sa.Integer(), nullable=True),
        sa.Column('pay_day_of_month', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *timestamps(),
    )

    op.create_table(
        'pay_periods',
        sa.Column('id', sa.String(36), primary_key=True),
        tenant(),
        sa.Column('pay_schedule_id', sa.String(36), sa.ForeignKey('pay_schedules.id'), nullable=False),
        sa.Column('period_number', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('pay_date', sa.Date(), nullable=False),
        sa.Column('status', pay_period_status, nullable=False),
        *timestamps(),
        sa.UniqueConstraint('pay_schedule_id', 'start_date', name='uq_pay_periods_schedule_start'),
    )
    op.create_index('ix_pay_periods_tenant_dates', 'pay_periods',
                    ['tenant_id', 'start_date', 'end_date'])

    op.create_table(
        'payroll_runs',
        sa.Column('id', sa.String(36), primary_key=True),
        tenant(),
        sa.Column('pay_period_id', sa.String(36), sa.ForeignKey('pay_periods.id'), nullable=False),
        sa.Column('run_number', sa.Integer(), nullable=False),
        sa.Column('run_type', payroll_run_type, nullable=False),
        sa.Column('status', payroll_run_status, nullable=False, index=True),
        sa.Column('total_gross_pay', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('total_employee_taxes', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('total_employee_deductions', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('total_net_pay', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('total_employer_taxes', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('total_employer_contributions', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('employee_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('anomaly_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('calculated_at', sa.DateTime(), nullable=True),
        sa.Column('calculated_by', sa.String(36), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('approved_by', sa.String(36), nullable=True),
        sa.Column('posted_at', sa.DateTime(), nullable=True),
        sa.Column('posted_by', sa.String(36), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_by', sa.String(36), nullable=True),
        sa.Column('voided_at', sa.DateTime(), nullable=True),
        sa.Column('voided_by', sa.String(36), nullable=True),
        sa.Column('void_reason', sa.Text(), nullable=True),
        sa.Column('journal_entry_id', sa.String(36), sa.ForeignKey('journal_entries.id'), nullable=True),
        sa.Column('transaction_set_id', sa.String(36), sa.ForeignKey('transaction_sets.id'), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(36), nullable=True),
        *timestamps(),
        sa.UniqueConstraint('pay_period_id', 'run_number', name='uq_payroll_runs_period_number'),
    )
    op.create_index('ix_payroll_runs_tenant_status', 'payroll_runs', ['tenant_id', 'status'])

    op.create_table(
        'payroll_run_employees',
        sa.Column('id', sa.String(36), primary_key=True),
        tenant(),
        sa.Column('payroll_run_id', sa.String(36),
                  sa.ForeignKey('payroll_runs.id', ondelete='CASCADE'), nullable=False),
        sa.Column('employee_id', sa.String(36), sa.ForeignKey('payroll_employees.id'), nullable=False),
        sa.Column('compensation_record_id', sa.String(36), nullable=True),
        sa.Column('pay_type', pay_type, nullable=False),
        sa.Column('pay_rate', sa.Numeric(12, 4), nullable=False),
        sa.Column('pay_frequency', pay_frequency, nullable=False),
        sa.Column('gross_pay', sa.Numeric(12, 2), nullable=False),
        sa.Column('total_taxes', sa.Numeric(12, 2), nullable=False),
        sa.Column('total_deductions', sa.Numeric(12, 2), nullable=False),
        sa.Column('net_pay', sa.Numeric(12, 2), nullable=False),
        sa.Column('employer_taxes', sa.Numeric(12, 2), nullable=False),
        sa.Column('employer_contributions', sa.Numeric(12, 2), nullable=False),
        sa.Column('total_employer_cost', sa.Numeric(12, 2), nullable=False),
        sa.Column('ytd_gross', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('payment_method', payment_method, nullable=False),
        sa.Column('status', run_employee_status, nullable=False),
        sa.Column('anomalies', sa.JSON(), nullable=True),
        *timestamps(),
        sa.UniqueConstraint('payroll_run_id', 'employee_id', name='uq_run_employees_run_employee'),
    )

    op.create_table(
        'payroll_earnings',
        sa.Column('id', sa.String(36), primary_key=True),
        tenant(),
        sa.Column('run_employee_id', sa.String(36),
                  sa.ForeignKey('payroll_run_employees.id', ondelete='CASCADE'), nullable=False),
        sa.Column('earning_type_id', sa.String(36), sa.ForeignKey('earning_types.id'), nullable=True),
        sa.Column('earning_code', sa.String(30), nullable=False),
        sa.Column('hours', sa.Numeric(8, 2), nullable=True),
        sa.Column('rate', sa.Numeric(12, 4), nullable=True),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('description', sa.String(255), nullable=True),
        *timestamps(),
    )

    op.create_table(
        'payroll_taxes',
        sa.Column('id', sa.String(36), primary_key=True),
        tenant(),
        sa.Column('run_employee_id', sa.String(36),
                  sa.ForeignKey('payroll_run_employees.id', ondelete='CASCADE'), nullable=False),
        sa.Column('tax_type', payroll_tax_type, nullable=False),
        sa.Column('taxable_wages', sa.Numeric(12, 2), nullable=False),
        sa.Column('tax_rate', sa.Numeric(10, 6), nullable=True),
        sa.Column('employee_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('employer_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('calculation_details', sa.JSON(), nullable=True),
        *timestamps(),
    )

    op.create_table(
        'payroll_deductions',
        sa.Column('id', sa.String(36), primary_key=True),
        tenant(),
        sa.Column('run_employee_id', sa.String(36),
                  sa.ForeignKey('payroll_run_employees.id', ondelete='CASCADE'), nullable=False),
        sa.Column('employee_deduction_id', sa.String(36),
                  sa.ForeignKey('employee_deductions.id'), nullable=False),
        sa.Column('deduction_type_id', sa.String(36), sa.ForeignKey('deduction_types.id'), nullable=False),
        sa.Column('employee_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('employer_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('ytd_employee_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('calculation_details', sa.JSON(), nullable=True),
        *timestamps(),
    )

    op.create_table(
        'payroll_gl_mappings',
        sa.Column('id', sa.String(36), primary_key=True),
        tenant(),
        sa.Column('mapping_type', gl_mapping_type, nullable=False),
        sa.Column('debit_account_id', sa.String(36), sa.ForeignKey('gl_accounts.id'), nullable=True),
        sa.Column('credit_account_id', sa.String(36), sa.ForeignKey('gl_accounts.id'), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *timestamps(),
    )
    op.create_index('ix_payroll_gl_mappings_tenant_type', 'payroll_gl_mappings',
                    ['tenant_id', 'mapping_type', 'is_active'])

    # Audit trail
    op.create_table(
        'payroll_audit_logs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('tenant_id', sa.String(36), nullable=False, index=True),
        sa.Column('actor_id', sa.String(36), nullable=True, index=True),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('entity_id', sa.String(36), nullable=False),
        sa.Column('event_name', sa.String(100), nullable=False, index=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False, index=True),
    )
    op.create_index('idx_audit_entity', 'payroll_audit_logs', ['entity_type', 'entity_id'])
    op.create_index('idx_audit_tenant_timestamp', 'payroll_audit_logs', ['tenant_id', 'timestamp'])


def downgrade():
    op.drop_table('payroll_audit_logs')
    op.drop_table('payroll_gl_mappings')
    op.drop_table('payroll_deductions')
    op.drop_table('payroll_taxes')
    op.drop_table('payroll_earnings')
    op.drop_table('payroll_run_employees')
    op.drop_table('payroll_runs')
    op.drop_table('pay_periods')
    op.drop_table('pay_schedules')
    op.drop_table('earning_types')
    op.drop_table('employee_deductions')
    op.drop_table('deduction_types')
    op.drop_table('compensation_records')
    op.drop_table('payroll_employees')
    op.drop_table('journal_lines')
    op.drop_table('journal_entries')
    op.drop_table('transaction_sets')
    op.drop_table('gl_accounts')

    bind = op.get_bind()
    for enum_type in reversed(ENUM_TYPES):
        enum_type.drop(bind, checkfirst=True)
