"""
Shared fixtures: in-memory SQLite database, seeded users and an API client.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("ENV", "TEST")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth import create_access_token, get_password_hash
from app.database import Base, get_db
from app.models import ShopifyStore, User, UserRole, Venue
from app.services.credentials import encrypt_token

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db_session):
    from main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def venue(db_session):
    venue = Venue(name="CICCIO", slug="ciccio")
    db_session.add(venue)
    db_session.commit()
    db_session.refresh(venue)
    return venue


@pytest.fixture
def other_venue(db_session):
    venue = Venue(name="Marina", slug="marina")
    db_session.add(venue)
    db_session.commit()
    db_session.refresh(venue)
    return venue


@pytest.fixture
def admin_user(db_session):
    user = User(
        email="admin@synvora.test",
        name="Admin",
        password_hash=get_password_hash("admin-password"),
        role=UserRole.ADMIN,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def staff_user(db_session, venue):
    user = User(
        email="staff@synvora.test",
        name="Staff",
        password_hash=get_password_hash("staff-password"),
        role=UserRole.USER,
    )
    user.venues = [venue]
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


def _headers(user: User) -> dict:
    token = create_access_token(data={"sub": user.id, "role": user.role.value})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(admin_user):
    return _headers(admin_user)


@pytest.fixture
def staff_headers(staff_user):
    return _headers(staff_user)


@pytest.fixture
def shopify_store(db_session, venue, admin_user):
    store = ShopifyStore(
        store_domain="ciccio-test.myshopify.com",
        access_token=encrypt_token("shpat_test_token"),
        nickname="Ciccio",
        venue_id=venue.id,
        owner_id=admin_user.id,
    )
    db_session.add(store)
    db_session.commit()
    db_session.refresh(store)
    return store
