"""Role changes and bans: guard, validation and audit trail."""
import json

import pytest
from sqlalchemy import func, select

from app.civic.errors import NotFound, PrivilegeRequired, Unauthorized, ValidationError
from app.civic.models import ActivityLog, Profile
from app.civic.modules.citizens.service import ban_user, update_user_role, validate_role


def _log_count(s):
    return s.scalar(select(func.count(ActivityLog.id)))


def test_validate_role():
    assert validate_role(" Moderator ") == "moderator"
    for bad in ("superuser", "user", "", None):
        with pytest.raises(ValidationError):
            validate_role(bad)


def test_role_change_writes_one_audit_row(s, make_user):
    admin = make_user("admin@example.com", role="admin", username="root")
    target = make_user("ana@example.com", username="ana")

    assert update_user_role(s, admin, target.id, "moderator") == {"success": True}

    s.expire_all()
    assert s.get(Profile, target.id).role == "moderator"
    logs = s.scalars(select(ActivityLog)).all()
    assert len(logs) == 1
    log = logs[0]
    assert log.action == "ROLE_CHANGE"
    assert log.user_id == admin.id
    assert log.entity_id == str(target.id)
    assert json.loads(log.details_json) == {"old_role": "citizen", "new_role": "moderator", "target_username": "ana"}
    assert log.ip_address == "unknown"


def test_non_admin_changes_nothing(s, make_user):
    citizen = make_user("ana@example.com", username="ana")
    target = make_user("luis@example.com", username="luis")

    with pytest.raises(PrivilegeRequired):
        update_user_role(s, citizen, target.id, "admin")
    with pytest.raises(PrivilegeRequired):
        ban_user(s, citizen, target.id)

    s.expire_all()
    assert s.get(Profile, target.id).role == "citizen"
    assert _log_count(s) == 0


def test_anonymous_caller_rejected(s, make_user):
    target = make_user("luis@example.com")
    with pytest.raises(Unauthorized):
        update_user_role(s, None, target.id, "admin")
    assert _log_count(s) == 0


def test_invalid_role_changes_nothing(s, make_user):
    admin = make_user("admin@example.com", role="admin")
    target = make_user("ana@example.com")
    with pytest.raises(ValidationError):
        update_user_role(s, admin, target.id, "superuser")
    s.expire_all()
    assert s.get(Profile, target.id).role == "citizen"
    assert _log_count(s) == 0


def test_unknown_target(s, make_user):
    admin = make_user("admin@example.com", role="admin")
    with pytest.raises(NotFound):
        update_user_role(s, admin, 4242, "citizen")
    assert _log_count(s) == 0


def test_demoted_admin_loses_privilege_immediately(s, make_user):
    admin = make_user("admin@example.com", role="admin")
    other = make_user("ana@example.com")

    # Role is re-read from the store on every call, not taken from the caller object.
    update_user_role(s, admin, admin.id, "citizen")
    with pytest.raises(PrivilegeRequired):
        update_user_role(s, admin, other.id, "admin")


def test_ban_user(s, make_user):
    admin = make_user("admin@example.com", role="admin", username="root")
    target = make_user("juan@example.com", username="juan123")

    assert ban_user(s, admin, target.id) == {"success": True}

    s.expire_all()
    assert s.get(Profile, target.id).role == "banned"
    log = s.scalars(select(ActivityLog)).one()
    assert log.action == "USER_BAN"
    assert log.entity_id == str(target.id)
    assert json.loads(log.details_json) == {"target_username": "juan123"}


def _login(client, email):
    client.post("/auth/login", data={"email": email, "password": "pw-secret-1"})


def test_role_route_json(client, s, make_user, csrf_headers):
    make_user("admin@example.com", role="admin", username="root")
    target = make_user("ana@example.com", username="ana")
    _login(client, "admin@example.com")

    r = client.post(f"/admin/citizens/{target.id}/role", json={"role": "moderator"}, headers=csrf_headers)
    assert r.status_code == 200
    assert r.json["success"] is True

    r = client.post(f"/admin/citizens/{target.id}/role", json={"role": "emperor"}, headers=csrf_headers)
    assert r.status_code == 400
    assert r.json["ok"] is False

    s.expire_all()
    assert s.get(Profile, target.id).role == "moderator"
    assert _log_count(s) == 1


def test_ban_route_form_redirects(client, s, make_user, csrf_headers):
    make_user("admin@example.com", role="admin")
    target = make_user("juan@example.com", username="juan123")
    _login(client, "admin@example.com")

    r = client.post(f"/admin/citizens/{target.id}/ban", headers=csrf_headers)
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/admin/citizens")

    r = client.get("/admin/citizens")
    assert r.status_code == 200
    assert b"juan123" in r.data
    assert "Suspensión de ciudadano".encode() in r.data


def test_role_route_forbidden_for_citizen(client, s, make_user, csrf_headers):
    make_user("ana@example.com")
    target = make_user("luis@example.com")
    _login(client, "ana@example.com")

    r = client.post(f"/admin/citizens/{target.id}/role", json={"role": "admin"}, headers=csrf_headers)
    assert r.status_code == 403
    s.expire_all()
    assert s.get(Profile, target.id).role == "citizen"
