"""
Pytest configuration shared by all ledgerpay test packages.

Each test gets a fresh in-memory SQLite database with every table created.
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ledgerpay.core.database import Base

# Import all models to register them with SQLAlchemy
from ledgerpay.core import audit_logger  # noqa: F401
from ledgerpay.modules.ledger import models as ledger_models  # noqa: F401
from ledgerpay.modules.payroll import models as payroll_models  # noqa: F401

TENANT_ID = "11111111-1111-4111-8111-111111111111"
OTHER_TENANT_ID = "33333333-3333-4333-8333-333333333333"
ACTOR_ID = "22222222-2222-4222-8222-222222222222"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """Database session bound to the per-test engine."""
    TestingSession = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def tenant_id():
    return TENANT_ID


@pytest.fixture
def actor_id():
    return ACTOR_ID
