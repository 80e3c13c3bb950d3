# tests/conftest.py
import asyncio

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import tukin.models  # noqa: F401
from tukin.core.config import Settings
from tukin.core.security import TokenService, hash_password
from tukin.db.base import Base
from tukin.db.seeds.seed_roles import seed_roles
from tukin.main import create_app
from tukin.models.role import Role
from tukin.models.user import User
from tukin.services.authorization import AuthorizationEngine
from tukin.services.permission_cache import PermissionCache
from tukin.services.role_resolver import RoleResolver
from tukin.services.stores import RoleRecord, UserRecord

LOGIN_EMAIL = "login@example.com"
LOGIN_PASSWORD = "secret-pass"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeUserStore:
    def __init__(self, users):
        self.users = {user.id: user for user in users}
        self.calls = 0

    async def get(self, user_id):
        self.calls += 1
        return self.users.get(user_id)


class FakeRoleStore:
    def __init__(self, roles):
        self.roles = list(roles)
        self.calls = 0
        self.error = None
        self.delay = 0.0

    async def find_by_name(self, role_name):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return [role for role in self.roles if role.role_name == role_name]

    def set_permission(self, role_name, permission):
        self.roles = [
            RoleRecord(r.id, r.role_name, r.role_id, permission, r.description)
            if r.role_name == role_name else r
            for r in self.roles
        ]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_role_store():
    """Administrator "1234", Manager "24", User "1"."""
    return FakeRoleStore([
        RoleRecord("r-admin", "Administrator", 1, "1234"),
        RoleRecord("r-manager", "Manager", 2, "24"),
        RoleRecord("r-user", "User", 3, "1"),
    ])


@pytest.fixture
def fake_user_store():
    return FakeUserStore([
        UserRecord("admin", "admin@example.com", 1),
        UserRecord("manager", "manager@example.com", 2),
        UserRecord("user", "user@example.com", 3),
        UserRecord("orphan", "orphan@example.com", 7),
        UserRecord("inactive", "inactive@example.com", 2, is_active=False),
    ])


@pytest.fixture
def cache(clock):
    return PermissionCache(ttl_seconds=300, clock=clock)


@pytest.fixture
def authz(fake_user_store, fake_role_store, cache):
    return AuthorizationEngine(
        user_store=fake_user_store,
        role_resolver=RoleResolver(fake_role_store),
        cache=cache,
        timeout_seconds=1.0,
    )


# ---- Database / API ----

@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        ACCESS_SECRET_KEY="access-secret-for-tests",
        REFRESH_SECRET_KEY="refresh-secret-for-tests",
        PERMISSION_BROADCAST_ENABLED=False,
        DEBUG=False,
    )


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def seeded(session_factory):
    """Seed the fixed roles and one user per role; returns their ids."""
    session = session_factory()
    try:
        seed_roles(session)
        users = {
            "admin": User(email="admin@example.com", role=1),
            "manager": User(email="manager@example.com", role=2),
            "user": User(email="user@example.com", role=3),
            "orphan": User(email="orphan@example.com", role=7),
            "inactive": User(email="inactive@example.com", role=1, is_active=False),
            "login": User(email=LOGIN_EMAIL, password_hash=hash_password(LOGIN_PASSWORD), role=2),
        }
        session.add_all(users.values())
        session.commit()

        ids = {name: user.id for name, user in users.items()}
        for role in session.query(Role).all():
            ids[f"role:{role.role_name}"] = role.id
        return ids
    finally:
        session.close()


@pytest.fixture
def tokens(test_settings):
    return TokenService.from_settings(test_settings)


@pytest.fixture
def auth_header(tokens, seeded):
    def _header(name: str) -> dict:
        token = tokens.create_access_token(seeded[name], f"{name}@example.com")
        return {"Authorization": f"Bearer {token}"}
    return _header


@pytest.fixture
def app(test_settings, session_factory):
    return create_app(test_settings, session_factory)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
