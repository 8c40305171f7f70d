"""
Pytest configuration and fixtures for backend tests.
"""

import os

# Settings are read at import time: configure before importing the app
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ["DB_BOOTSTRAP_ON_STARTUP"] = "false"
os.environ["REALTIME_BACKEND"] = "memory"
os.environ["RATE_LIMIT_ENABLED"] = "false"

import itertools
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from rest_api.main import app
from rest_api.core.dependencies import get_notifier
from shared.infrastructure.db import get_db
from shared.infrastructure.events import InMemoryNotifier
from shared.config.constants import ProductStatus, UserRole
from rest_api.models import (
    Base, Restaurant, User, Table, Category, Product,
)
from shared.security.password import hash_password


_id_counter = itertools.count(1000)


# SQLite in-memory database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

PASSWORD = "testpass123"


def next_id():
    """Unique ID for test entities."""
    return next(_id_counter)


class FakeClock:
    """Injectable clock for services that compare against ``now``."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    Uses SQLite in-memory for isolation.
    """
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def notifier():
    return InMemoryNotifier()


@pytest.fixture(scope="function")
def client(db_session, notifier):
    """
    Create a test client with database session and notifier overrides.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


# =============================================================================
# Seed data
# =============================================================================


@pytest.fixture
def seed_restaurant(db_session):
    restaurant = Restaurant(id=next_id(), name="Trattoria Uno")
    db_session.add(restaurant)
    db_session.commit()
    db_session.refresh(restaurant)
    return restaurant


@pytest.fixture
def other_restaurant(db_session):
    restaurant = Restaurant(id=next_id(), name="Sushi Due")
    db_session.add(restaurant)
    db_session.commit()
    db_session.refresh(restaurant)
    return restaurant


@pytest.fixture
def ayce_restaurant(db_session, seed_restaurant):
    """The seed restaurant with the all-you-can-eat plan switched on."""
    seed_restaurant.all_you_can_eat_enabled = True
    seed_restaurant.all_you_can_eat_dinner_price_cents = 2590
    db_session.commit()
    db_session.refresh(seed_restaurant)
    return seed_restaurant


def make_table(db_session, restaurant, name="T1"):
    table = Table(id=next_id(), restaurant_id=restaurant.id, name=name)
    db_session.add(table)
    db_session.commit()
    db_session.refresh(table)
    return table


@pytest.fixture
def seed_table(db_session, seed_restaurant):
    return make_table(db_session, seed_restaurant, "T1")


@pytest.fixture
def second_table(db_session, seed_restaurant):
    return make_table(db_session, seed_restaurant, "T2")


@pytest.fixture
def seed_category(db_session, seed_restaurant):
    category = Category(id=next_id(), restaurant_id=seed_restaurant.id, name="Mains", display_order=1)
    db_session.add(category)
    db_session.commit()
    db_session.refresh(category)
    return category


def make_product(db_session, category, name, price_cents, **extra):
    product = Product(
        id=next_id(),
        restaurant_id=category.restaurant_id,
        category_id=category.id,
        name=name,
        price_cents=price_cents,
        status=extra.pop("status", ProductStatus.AVAILABLE.value),
        **extra,
    )
    db_session.add(product)
    db_session.commit()
    db_session.refresh(product)
    return product


@pytest.fixture
def product_p1(db_session, seed_category):
    """8.00"""
    return make_product(db_session, seed_category, "Margherita", 800)


@pytest.fixture
def product_p2(db_session, seed_category):
    """5.50"""
    return make_product(db_session, seed_category, "Tiramisu", 550)


@pytest.fixture
def limited_product(db_session, seed_category):
    """Capped at 2 per order under all-you-can-eat."""
    return make_product(
        db_session, seed_category, "Salmon Nigiri", 400,
        ayce_limit_enabled=True, ayce_limit_quantity=2,
    )


def make_user(db_session, restaurant, role, email):
    user = User(
        id=next_id(),
        restaurant_id=restaurant.id if restaurant else None,
        email=email,
        password=hash_password(PASSWORD),
        full_name=email.split("@")[0].title(),
        role=role.value,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def manager_user(db_session, seed_restaurant):
    return make_user(db_session, seed_restaurant, UserRole.MANAGER, "manager@trattoria.com")


@pytest.fixture
def staff_user(db_session, seed_restaurant):
    return make_user(db_session, seed_restaurant, UserRole.STAFF, "waiter@trattoria.com")


@pytest.fixture
def kitchen_user(db_session, seed_restaurant):
    return make_user(db_session, seed_restaurant, UserRole.KITCHEN, "chef@trattoria.com")


@pytest.fixture
def admin_user(db_session):
    return make_user(db_session, None, UserRole.ADMIN, "root@platform.com")


@pytest.fixture
def other_manager(db_session, other_restaurant):
    return make_user(db_session, other_restaurant, UserRole.MANAGER, "manager@sushidue.com")


def login(client, email):
    response = client.post("/api/auth/login", json={"email": email, "password": PASSWORD})
    assert response.status_code == 200, f"Login failed: {response.json()}"
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def manager_headers(client, manager_user):
    return login(client, manager_user.email)


@pytest.fixture
def staff_headers(client, staff_user):
    return login(client, staff_user.email)


@pytest.fixture
def kitchen_headers(client, kitchen_user):
    return login(client, kitchen_user.email)


@pytest.fixture
def admin_headers(client, admin_user):
    return login(client, admin_user.email)


@pytest.fixture
def other_manager_headers(client, other_manager):
    return login(client, other_manager.email)


# =============================================================================
# Customer helpers
# =============================================================================


def scan(client, restaurant_id, table_id):
    """Simulate a fetch-based QR scan; returns the token."""
    response = client.get(
        f"/api/qr/{restaurant_id}/{table_id}",
        headers={"Accept": "application/json"},
    )
    assert response.status_code == 200, response.text
    return response.json()["token"]


def customer_url(restaurant_id, table_id, path, token=None):
    url = f"/api/customer/{restaurant_id}/{table_id}/{path}"
    return f"{url}?token={token}" if token else url
