import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.config.database import get_db
from app.config.settings import settings
from app.core.auth.service import AuthService
from app.core.rate_limit import FixedWindowRateLimiter
from app.main import app
from app.modules.api_keys.service import ApiKeyService
from app.shared.database.models import Base, User

from tests.helpers import OPERATOR_PASSWORD, STATIC_KEY, login


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory, monkeypatch):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    monkeypatch.setattr(settings, "warehouse_api_keys", STATIC_KEY)
    app.dependency_overrides[get_db] = override_get_db
    app.state.rate_limiter = FixedWindowRateLimiter(max_tracked=settings.rate_limit_max_tracked)
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _make_user(db, email, role, user_code=None, first_name="Test", last_name="User", branch=None, is_active=True):
    user = User(
        email=email,
        password_hash=AuthService.get_password_hash(OPERATOR_PASSWORD),
        first_name=first_name,
        last_name=last_name,
        role=role,
        user_code=user_code,
        branch=branch,
        is_active=is_active,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def customer(db_session):
    return _make_user(
        db_session, "ana@example.com", "customer", user_code="C100",
        first_name="Ana", last_name="Pérez", branch="MIA"
    )


@pytest.fixture
def other_customer(db_session):
    return _make_user(
        db_session, "luis@example.com", "customer", user_code="C200",
        first_name="Luis", last_name="Gómez", branch="KIN"
    )


@pytest.fixture
def warehouse_user(db_session):
    return _make_user(db_session, "bodega@example.com", "warehouse", first_name="Bodega", last_name="Miami")


@pytest.fixture
def admin_user(db_session):
    return _make_user(db_session, "admin@example.com", "admin", first_name="Admin", last_name="Root")


@pytest.fixture
def warehouse_headers(client, warehouse_user):
    return login(client, warehouse_user.email)


@pytest.fixture
def admin_headers(client, admin_user):
    return login(client, admin_user.email)


@pytest.fixture
def static_headers():
    return {"x-warehouse-key": STATIC_KEY}


@pytest.fixture
def stored_key(db_session):
    """Llave emitida con permisos de paquetes únicamente"""
    return ApiKeyService(db_session).issue_key("Bodega test", ["packages:write", "packages:read"])
