"""
Test Configuration and Fixtures
Shared testing infrastructure for the stock ledger
"""

from datetime import datetime
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from qr_inventory import models  # noqa: F401
from qr_inventory.api import deps
from qr_inventory.core.clock import FixedClock
from qr_inventory.core.database import Base, build_engine
from qr_inventory.main import create_app

CODE_A = "AAAAAAAAAAAAAAAAA"
CODE_B = "BBBBBBBBBBBBBBBBB"
CODE_C = "ABC123DEF456GHI78"

START = datetime(2024, 1, 15, 8, 0, 0)


@pytest.fixture(scope="function")
def engine():
    """Fresh in-memory database per test"""
    test_engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture(scope="function")
def db_session(engine) -> Generator[Session, None, None]:
    """Create a fresh database session for each test"""
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(START)


@pytest.fixture(scope="function")
def client(db_session: Session, clock: FixedClock) -> Generator[TestClient, None, None]:
    """Create a test client with database and clock dependency overrides"""
    app = create_app(run_startup=False)

    def override_get_db():
        yield db_session

    app.dependency_overrides[deps.get_db] = override_get_db
    app.dependency_overrides[deps.get_clock] = lambda: clock
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
