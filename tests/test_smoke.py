from app.civic.auth import LoginThrottle, login_throttle


def _login(client, email, password="pw-secret-1"):
    return client.post("/auth/login", data={"email": email, "password": password}, follow_redirects=False)


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True

    r = client.get("/healthz")
    assert r.status_code == 200


def test_public_pages_render(client, make_user):
    make_user("ana@example.com")
    assert client.get("/").status_code == 200
    assert client.get("/asociaciones").status_code == 200


def test_login_and_admin_access(client, make_user):
    make_user("admin@example.com", role="admin", username="root")

    # Anonymous is redirected to login
    r = client.get("/admin/")
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]

    r = _login(client, "admin@example.com")
    assert r.status_code == 302

    r = client.get("/admin/")
    assert r.status_code == 200
    assert "Centro de mando".encode() in r.data


def test_citizen_cannot_open_admin(client, make_user):
    make_user("ana@example.com")
    _login(client, "ana@example.com")
    r = client.get("/admin/")
    assert r.status_code == 403
    r = client.get("/admin/citizens", headers={"Accept": "application/json"})
    assert r.status_code == 403
    assert r.json["ok"] is False


def test_bad_password_rejected(client, make_user):
    make_user("ana@example.com")
    r = _login(client, "ana@example.com", password="wrong")
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]
    r = client.get("/dashboard")
    assert r.status_code == 302


def test_login_rate_limit(client, make_user):
    make_user("ana@example.com")
    for _ in range(5):
        _login(client, "ana@example.com", password="wrong")
    # Correct password is refused while the window is saturated
    _login(client, "ana@example.com")
    r = client.get("/dashboard")
    assert r.status_code == 302


def test_login_rate_limit_ignores_forwarded_header(client, make_user):
    make_user("ana@example.com")
    for i in range(12):
        client.post(
            "/auth/login",
            data={"email": "ana@example.com", "password": "wrong"},
            headers={"X-Forwarded-For": f"203.0.113.{i}"},
        )
    r = client.post(
        "/auth/login",
        data={"email": "ana@example.com", "password": "pw-secret-1"},
        headers={"X-Forwarded-For": "198.51.100.7"},
    )
    assert "/auth/login" in r.headers["Location"]
    assert client.get("/dashboard").status_code == 302
    assert login_throttle.tracked_keys() == 1


def test_login_throttle_forgets_expired_keys():
    throttle = LoginThrottle(limit=2, window_seconds=0)
    throttle.hit("10.0.0.1")
    throttle.hit("10.0.0.2")
    assert not throttle.blocked("10.0.0.1")
    assert throttle.tracked_keys() <= 1

    throttle = LoginThrottle(limit=2, window_seconds=300)
    throttle.hit("10.0.0.1")
    throttle.hit("10.0.0.1")
    assert throttle.blocked("10.0.0.1")
    throttle.reset("10.0.0.1")
    assert throttle.tracked_keys() == 0


def test_signup_creates_profile_and_logs_in(app, client):
    r = client.post(
        "/auth/signup",
        data={"email": "Nuevo@Example.com", "password": "long-enough", "full_name": "Nuevo Ciudadano"},
    )
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/dashboard")

    r = client.get("/dashboard")
    assert r.status_code == 200
    assert b"Nuevo Ciudadano" in r.data

    from app.civic.db import session_scope
    from app.civic.models import Profile, User

    with session_scope(app) as s:
        u = s.query(User).filter(User.email == "nuevo@example.com").one()
        p = s.get(Profile, u.id)
        assert p.role == "citizen"
        assert p.support_tier == "none"


def test_signup_rejects_duplicate_email(client, make_user):
    make_user("ana@example.com")
    r = client.post("/auth/signup", data={"email": "ana@example.com", "password": "long-enough"})
    assert r.status_code == 302
    assert "/auth/signup" in r.headers["Location"]


def test_login_creates_missing_profile(app, client, s):
    from werkzeug.security import generate_password_hash

    from app.civic.models import Profile, User

    u = User(email="legacy@example.com", password_hash=generate_password_hash("pw-secret-1"), is_active=True)
    s.add(u)
    s.commit()
    assert s.get(Profile, u.id) is None

    r = _login(client, "legacy@example.com")
    assert r.status_code == 302
    s.expire_all()
    assert s.get(Profile, u.id).role == "citizen"


def test_post_without_csrf_rejected(client, make_user):
    make_user("ana@example.com")
    _login(client, "ana@example.com")
    r = client.post("/dashboard/census")
    assert r.status_code == 400


def test_login_next_is_local_only(client, make_user):
    make_user("ana@example.com")
    r = client.post(
        "/auth/login",
        data={"email": "ana@example.com", "password": "pw-secret-1", "next": "//evil.example.com/"},
    )
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/dashboard")
