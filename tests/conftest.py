"""
Test Configuration and Fixtures
Shared testing infrastructure for FoodStock
"""

import os
import tempfile

# Settings are read at import time
TEST_DATABASE_URL = "sqlite:///./test_foodstock.db"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ.setdefault("LOG_DIR", os.path.join(tempfile.gettempdir(), "foodstock-test-logs"))

import pytest
from datetime import date
from decimal import Decimal
from typing import Generator, Dict
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from foodstock.main import app
from foodstock.core.database import get_db, Base
from foodstock.models import User, Location, Item, Supplier, LocationStock, Period
from foodstock.models.enums import UserRole, AccessLevel, PeriodStatus
from foodstock.services.auth_service import AuthService
from foodstock.services.periods.period_service import PeriodService, last_day_of_month

# Create test engine
engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Create test session
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

PASSWORDS = {
    "admin": "adminpassword123",
    "supervisor": "superpassword123",
    "operator": "operatorpassword123",
    "viewer": "viewerpassword123",
}


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh database session for each test"""
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database dependency override"""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# Master data

@pytest.fixture
def kitchen(db_session: Session) -> Location:
    location = Location(code="KIT01", name="Main Kitchen", type="KITCHEN")
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture
def store(db_session: Session) -> Location:
    location = Location(code="STR01", name="Central Store", type="STORE")
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture
def rice(db_session: Session) -> Item:
    item = Item(code="RICE-01", name="Basmati Rice", unit="KG", category="Dry Goods")
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture
def oil(db_session: Session) -> Item:
    item = Item(code="OIL-01", name="Sunflower Oil", unit="LTR", category="Dry Goods")
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture
def supplier(db_session: Session) -> Supplier:
    record = Supplier(code="SUP01", name="Gulf Foods Trading")
    db_session.add(record)
    db_session.commit()
    return record


# Users

def _create_user(db_session: Session, username: str, role: UserRole) -> User:
    return AuthService(db_session).create_user({
        "username": username,
        "email": f"{username}@foodstock-demo.com",
        "full_name": username.title(),
        "password": PASSWORDS[username],
        "role": role,
    })


@pytest.fixture
def admin_user(db_session: Session) -> User:
    return _create_user(db_session, "admin", UserRole.ADMIN)


@pytest.fixture
def supervisor_user(db_session: Session) -> User:
    return _create_user(db_session, "supervisor", UserRole.SUPERVISOR)


@pytest.fixture
def operator_user(db_session: Session, kitchen: Location, admin_user: User) -> User:
    """Operator with POST access at the kitchen only"""
    user = _create_user(db_session, "operator", UserRole.OPERATOR)
    AuthService(db_session, admin_user).assign_location(kitchen.id, user.id, AccessLevel.POST)
    return user


@pytest.fixture
def viewer_user(db_session: Session, kitchen: Location, admin_user: User) -> User:
    """Operator with VIEW access at the kitchen"""
    user = _create_user(db_session, "viewer", UserRole.OPERATOR)
    AuthService(db_session, admin_user).assign_location(kitchen.id, user.id, AccessLevel.VIEW)
    return user


# Periods and stock

@pytest.fixture
def open_period(db_session: Session, admin_user: User, kitchen: Location, store: Location,
                rice: Item, oil: Item) -> Period:
    """The current month, OPEN, with rice locked at 12.00 and oil at 8.50"""
    today = date.today()
    service = PeriodService(db_session, admin_user)
    period = service.create_period(
        today.strftime("%B %Y"), today.replace(day=1), last_day_of_month(today), PeriodStatus.OPEN
    )
    service.set_prices(period.id, [
        {"item_id": rice.id, "price": Decimal("12.00")},
        {"item_id": oil.id, "price": Decimal("8.50")},
    ])
    return period


@pytest.fixture
def kitchen_stock(db_session: Session, kitchen: Location, rice: Item, oil: Item) -> Dict[str, LocationStock]:
    """Kitchen holds 100 KG rice at 10.00 and 10 LTR oil at 8.00"""
    rows = {
        "rice": LocationStock(location_id=kitchen.id, item_id=rice.id,
                              on_hand=Decimal("100"), wac=Decimal("10.00"), min_stock=Decimal("20")),
        "oil": LocationStock(location_id=kitchen.id, item_id=oil.id,
                             on_hand=Decimal("10"), wac=Decimal("8.00"), min_stock=Decimal("15")),
    }
    db_session.add_all(rows.values())
    db_session.commit()
    return rows


# Authentication headers

def _login(client: TestClient, username: str) -> Dict[str, str]:
    response = client.post("/api/auth/login", data={"username": username, "password": PASSWORDS[username]})
    assert response.status_code == 200
    token = response.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(client: TestClient, admin_user: User) -> Dict[str, str]:
    return _login(client, "admin")


@pytest.fixture
def supervisor_headers(client: TestClient, supervisor_user: User) -> Dict[str, str]:
    return _login(client, "supervisor")


@pytest.fixture
def operator_headers(client: TestClient, operator_user: User) -> Dict[str, str]:
    return _login(client, "operator")


@pytest.fixture
def viewer_headers(client: TestClient, viewer_user: User) -> Dict[str, str]:
    return _login(client, "viewer")


# API test helpers
class APITestHelper:
    """Helper class for API testing"""

    @staticmethod
    def assert_error_response(response, expected_status: int, expected_code: str = None):
        """Assert error response format"""
        assert response.status_code == expected_status
        data = response.json()
        assert "message" in data
        if expected_code:
            assert data["code"] == expected_code

    @staticmethod
    def assert_success_response(response, expected_keys: list = None):
        """Assert successful response format"""
        assert response.status_code in [200, 201]
        data = response.json()
        if expected_keys:
            for key in expected_keys:
                assert key in data
