"""
Test configuration and shared fixtures for the billing / accounting suite.

Every test gets its own in-memory SQLite database (StaticPool keeps the one
connection alive), built with Base.metadata.create_all and seeded with the
conventional Cash / Bank / Receivables accounts. Services commit freely, so
isolation comes from a fresh engine per test instead of an outer rollback.
"""

from datetime import datetime
from typing import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from hims_billing import models  # noqa: F401  (register every table)
from hims_billing.db.base import Base
from hims_billing.db.init_db import seed_all
from hims_billing.models.accounting import Account


@pytest.fixture(scope="function")
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Session on a freshly created and seeded database."""
    SessionLocal = sessionmaker(bind=db_engine, autoflush=False)
    session = SessionLocal()

    seed_all(session)
    # plain expense account for payment vouchers
    session.add(
        Account(id=10, code="EXP-GEN", name="General Expenses",
                account_type="EXPENSE"))
    session.commit()

    yield session

    session.close()


@pytest.fixture
def now() -> datetime:
    """Fixed 'current time' passed to time-dependent services."""
    return datetime(2024, 3, 15, 10, 30)
