"""
Pytest fixtures shared by the module tests (app/modules/*/tests.py).

Tests run against an in-memory SQLite database; tables are created and
dropped around every test.
"""
import os

# Must be set before app.core.config is imported
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "false"
os.environ["STATUS_SWEEP_LOCK_BACKEND"] = "local"

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from app.common.clock import Clock
from app.database.database import Base, SessionLocal, sync_engine, get_db
from app.main import app
from app.modules.auth.models import User, UserRole
from app.modules.auth.utils import create_access_token
from app.modules.clients.models import Client, Branch, ClientType
from app.modules.taxes.models import TaxRule


class FrozenClock(Clock):
    """Reloj controlado por la prueba"""

    def __init__(self, now: datetime):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


# =============================================================================
# DATABASE
# =============================================================================

@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=sync_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=sync_engine)


@pytest.fixture
def frozen_clock():
    return FrozenClock(datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))


# =============================================================================
# SAMPLE DATA
# =============================================================================

def _create_user(db, email: str, role: UserRole) -> User:
    user = User(email=email, full_name=email.split("@")[0].title(), role=role, is_active=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def sample_user(db_session):
    return _create_user(db_session, "admin@test.com", UserRole.ADMIN)


@pytest.fixture
def employee_user(db_session):
    return _create_user(db_session, "employee@test.com", UserRole.EMPLOYEE)


@pytest.fixture
def viewer_user(db_session):
    return _create_user(db_session, "viewer@test.com", UserRole.VIEWER)


@pytest.fixture
def sample_client(db_session):
    client = Client(name="Maple Hardware", type=ClientType.CLIENT, contact="billing@maple.test")
    db_session.add(client)
    db_session.commit()
    db_session.refresh(client)
    return client


@pytest.fixture
def sample_branch(db_session, sample_client):
    branch = Branch(client_id=sample_client.id, name="Downtown", city="Toronto", province="ON")
    db_session.add(branch)
    db_session.commit()
    db_session.refresh(branch)
    return branch


@pytest.fixture
def sample_tax_rule(db_session):
    tax_rule = TaxRule(province="ON", percentage=Decimal("13.00"), is_active=True)
    db_session.add(tax_rule)
    db_session.commit()
    db_session.refresh(tax_rule)
    return tax_rule


# =============================================================================
# HTTP
# =============================================================================

def auth_headers(user: User) -> dict:
    token = create_access_token({"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(sample_user):
    return auth_headers(sample_user)


@pytest.fixture
def employee_headers(employee_user):
    return auth_headers(employee_user)


@pytest.fixture
def viewer_headers(viewer_user):
    return auth_headers(viewer_user)


@pytest.fixture
def api_client(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
