import pytest
from werkzeug.security import generate_password_hash

from app.civic import create_app
from app.civic.auth import login_throttle
from app.civic.models import Base, Profile, User


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    for k in ("PAYMENTS_SECRET_KEY", "PAYMENTS_WEBHOOK_SECRET", "PAYMENTS_TIER_PRICES", "SITE_URL"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)
    login_throttle.clear()

    yield app

    engine.dispose()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def s(app):
    session = app.extensions["sqlalchemy_sessionmaker"]()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def make_user(s):
    """Factory: identity + profile, committed. Password is always 'pw-secret-1'."""

    def _make(email: str, *, role: str = "citizen", username: str | None = None, full_name: str | None = None) -> User:
        u = User(email=email, password_hash=generate_password_hash("pw-secret-1"), is_active=True)
        s.add(u)
        s.flush()
        s.add(Profile(id=u.id, role=role, username=username, full_name=full_name))
        s.commit()
        return u

    return _make


@pytest.fixture()
def csrf_headers(client):
    with client.session_transaction() as sess:
        sess["csrf_token"] = "test-csrf"
    return {"X-CSRF-Token": "test-csrf"}
