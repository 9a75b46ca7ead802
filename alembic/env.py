from logging.config import fileConfig

from sqlalchemy import engine_from_config
from sqlalchemy import pool

from alembic import context

from ledgerpay.core.config import settings
from ledgerpay.core.database import Base

# Import every model so autogenerate sees all tables
from ledgerpay.core.audit_logger import AuditLog
from ledgerpay.modules.ledger.models.ledger_models import (
    Account, TransactionSet, JournalEntry, JournalLine
)
from ledgerpay.modules.payroll.models.employee_models import (
    Employee, CompensationRecord, DeductionType, EmployeeDeduction
)
from ledgerpay.modules.payroll.models.payroll_models import (
    EarningType, PaySchedule, PayPeriod, PayrollRun, PayrollRunEmployee,
    PayrollEarning, PayrollTax, PayrollDeduction
)
from ledgerpay.modules.payroll.models.gl_mapping import PayrollGLMapping

target_metadata = Base.metadata


# this is the Alembic Config object, which provides
# access to the values within the .ini file in use.
config = context.config

# Interpret the config file for Python logging.
# This line sets up loggers basically.
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# The application settings decide which database to migrate
config.set_main_option("sqlalchemy.url", settings.database_url)


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode.

    This configures the context with just a URL
    and not an Engine, though an Engine is acceptable
    here as well.  By skipping the Engine creation
    we don't even need a DBAPI to be available.

    Calls to context.execute() here emit the given string to the
    script output.

    """
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode.

    In this scenario we need to create an Engine
    and associate a connection with the context.

    """
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection, target_metadata=target_metadata
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
