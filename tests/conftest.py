"""Shared test fixtures for the TideGate test suite.

By default every test runs against one in-memory SQLite database shared
through a StaticPool. Set TEST_DATABASE_URL to run the same suite against
PostgreSQL. Each test starts from empty tables with the permission catalog
and system roles re-seeded.
"""

import os

# Use the test database and fast hashing before any app imports.
os.environ["DATABASE_URL"] = os.environ.get("TEST_DATABASE_URL", "sqlite://")
os.environ["LOG_FORMAT"] = "text"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["TOKEN_HASH_SECRET"] = "test-token-hash-secret"
os.environ["ADMIN_INITIAL_USERNAME"] = ""
os.environ["ADMIN_INITIAL_PASSWORD"] = ""
os.environ["REQUEST_TIMEOUT_SECONDS"] = "30"

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from tidegate.core.scope import ScopeType
from tidegate.core.seeder import seed_permission_catalog, seed_system_roles
from tidegate.database import Base, SessionLocal, get_db, init_db
from tidegate.main import app
from tidegate.models import Role
from tidegate.schemas.grant import RoleGrantCreate
from tidegate.schemas.role import RoleCreate
from tidegate.schemas.session import RegisterRequest
from tidegate.services import AuthService, GrantService, RoleService

init_db()


@pytest.fixture(autouse=True)
def _clean_tables():
    """Empty every table and re-seed the catalog before each test.

    Runs before the test (not after) so a failing test leaves its data
    available for debugging.
    """
    db = SessionLocal()
    try:
        for table in reversed(Base.metadata.sorted_tables):
            db.execute(table.delete())
        db.commit()
        seed_permission_catalog(db)
        seed_system_roles(db)
    finally:
        db.close()
    yield


@pytest.fixture()
def db():
    """Per-test database session."""
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture()
def client(db):
    """FastAPI TestClient with the DB dependency overridden to use the test session."""

    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


class FrozenClock:
    """Settable clock for services that take ``clock=``."""

    def __init__(self, now=None):
        self.now = now or datetime.now(timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture()
def clock():
    return FrozenClock()


def system_role(db, name: str) -> Role:
    return db.query(Role).filter(Role.name == name).one()


def make_role(db, name: str, *permission_names: str) -> Role:
    """Create a custom role holding the named catalog permissions."""
    from tidegate.core import catalog

    ids = [catalog.get_by_name(n).id for n in permission_names]
    return RoleService(db).create_role(RoleCreate(name=name, display_name=name.title(), permission_ids=ids))


def grant(db, user_id: str, role: Role, scope_type=ScopeType.GLOBAL, scope_value=None, expires_at=None):
    return GrantService(db).assign_role(RoleGrantCreate(
        user_id=user_id,
        role_id=role.id,
        scope_type=scope_type,
        scope_value=scope_value,
        expires_at=expires_at,
    ))


def make_user(db, username: str = "alice", password: str = "correct-horse"):
    return AuthService(db).register_user(RegisterRequest(
        username=username,
        email=f"{username}@example.com",
        password=password,
    ))


def login_headers(client, username: str = "alice", password: str = "correct-horse") -> dict:
    resp = client.post("/api/auth/login", json={"username": username, "password": password})
    assert resp.status_code == 200, resp.text
    # Keep auth explicit: drop the session cookie set by login.
    client.cookies.clear()
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}
