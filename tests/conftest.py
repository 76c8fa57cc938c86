import pytest
from faker import Faker
from fastapi.testclient import TestClient

from minicrm_app.config import AppConfig
from minicrm_app.main import create_app
from minicrm_app.models import Settings, User
from minicrm_app.security import hash_password

fake = Faker()

API = "/api/v1"


def make_config(tmp_path, **overrides) -> AppConfig:
    values = {
        "database_url": f"sqlite:///{tmp_path / 'crm.db'}",
        "jwt_secret_key": "test-secret-key",
        "rate_limit_enabled": False,
        "create_default_admin": False,
        "log_level": "WARNING",
        # keep bcrypt cheap
        "bcrypt_rounds": 4,
    }
    values.update(overrides)
    return AppConfig(**values)


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def config(tmp_path):
    return make_config(tmp_path)


@pytest.fixture
def app(config):
    return create_app(config)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def register(client):
    """Register a fresh user; returns (headers, user dict)."""

    def _register(username=None, email=None, password="secret123"):
        username = username or f"{fake.user_name()}{fake.random_int(100, 999)}"[:50]
        email = email or f"{username}@example.com"
        resp = client.post(f"{API}/auth/register", json={"username": username, "email": email, "password": password})
        assert resp.status_code == 201, resp.text
        data = resp.json()["data"]
        return bearer(data["token"]), data["user"]

    return _register


@pytest.fixture
def make_admin(app, client):
    """Insert an admin straight into the database and log in; returns (headers, user id)."""

    def _make_admin(username="rootadmin", password="adminpass"):
        email = f"{username}@example.com"
        db = app.state.context.session_factory()
        try:
            admin = User(username=username, email=email, password_hash=hash_password(password, 4), role="admin")
            db.add(admin)
            db.flush()
            db.add(Settings(user_id=admin.id))
            db.commit()
            admin_id = admin.id
        finally:
            db.close()
        resp = client.post(f"{API}/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.text
        return bearer(resp.json()["data"]["token"]), admin_id

    return _make_admin


@pytest.fixture
def db_session(app):
    db = app.state.context.session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def app_factory(tmp_path):
    """Build an extra application over its own database with config overrides."""

    def _factory(configure_registry=None, **overrides):
        path = tmp_path / "extra"
        path.mkdir(exist_ok=True)
        return create_app(make_config(path, **overrides), configure_registry=configure_registry)

    return _factory
