import json
from types import SimpleNamespace

from sqlalchemy import func, select

from app.civic.audit import client_ip, record_activity
from app.civic.models import ActivityLog


def test_client_ip_precedence():
    assert client_ip({"X-Forwarded-For": "203.0.113.7, 10.0.0.1", "X-Real-IP": "10.0.0.9"}) == "203.0.113.7"
    assert client_ip({"X-Forwarded-For": " ", "X-Real-IP": "10.0.0.9"}) == "10.0.0.9"
    assert client_ip({}) == "unknown"


def test_client_ip_outside_request():
    assert client_ip() == "unknown"


def test_record_activity_writes_row(s, make_user):
    admin = make_user("admin@example.com", role="admin")
    entry = record_activity(s, actor=admin, action="ROLE_CHANGE", entity_id=7, details={"b": 1, "a": 2}, request_id="rid-1")

    assert entry is not None
    row = s.scalars(select(ActivityLog)).one()
    assert row.user_id == admin.id
    assert row.entity_id == "7"
    assert row.request_id == "rid-1"
    assert json.loads(row.details_json) == {"a": 2, "b": 1}


def test_record_activity_without_actor_is_noop(s):
    assert record_activity(s, actor=None, action="ROLE_CHANGE") is None
    assert s.scalar(select(func.count(ActivityLog.id))) == 0


def test_record_activity_failure_is_swallowed(s, make_user, caplog):
    make_user("admin@example.com", role="admin")
    ghost = SimpleNamespace(id=99999)  # no profile row: FK violation on insert

    assert record_activity(s, actor=ghost, action="USER_BAN", entity_id=1) is None
    assert s.scalar(select(func.count(ActivityLog.id))) == 0
    assert "Activity log write failed" in caplog.text


def test_ip_recorded_from_forwarded_header(client, s, make_user, csrf_headers):
    make_user("admin@example.com", role="admin")
    target = make_user("ana@example.com")
    client.post("/auth/login", data={"email": "admin@example.com", "password": "pw-secret-1"})

    headers = dict(csrf_headers, **{"X-Forwarded-For": "198.51.100.4, 10.0.0.1"})
    r = client.post(f"/admin/citizens/{target.id}/ban", json={}, headers=headers)
    assert r.status_code == 200

    row = s.scalars(select(ActivityLog)).one()
    assert row.ip_address == "198.51.100.4"
    assert row.request_id


def test_audit_page_filters_by_action(client, s, make_user):
    admin = make_user("admin@example.com", role="admin", username="root")
    record_activity(s, actor=admin, action="ROLE_CHANGE", details={"target_username": "objetivo-rol"})
    record_activity(s, actor=admin, action="USER_BAN", details={"target_username": "objetivo-ban"})
    client.post("/auth/login", data={"email": "admin@example.com", "password": "pw-secret-1"})

    r = client.get("/admin/audit?action=user_ban")
    assert r.status_code == 200
    assert b"objetivo-ban" in r.data
    assert b"objetivo-rol" not in r.data

    r = client.get("/admin/audit?action=NOPE")
    assert r.status_code == 200
