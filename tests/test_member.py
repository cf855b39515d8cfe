import pytest

from app.civic.errors import Unauthorized, ValidationError
from app.civic.models import Profile
from app.civic.modules.member.service import (
    ensure_profile,
    register_in_census,
    unregister_from_census,
    update_district,
    update_profile,
)
from app.civic.views import movement_stats


def test_census_register_and_unregister(s, make_user):
    ana = make_user("ana@example.com")
    make_user("luis@example.com")
    assert movement_stats(s) == {"total": 2, "active": 0}

    register_in_census(s, ana)
    assert s.get(Profile, ana.id).census_registered_at is not None
    assert movement_stats(s) == {"total": 2, "active": 1}

    unregister_from_census(s, ana)
    assert movement_stats(s)["active"] == 0


def test_census_requires_caller(s):
    with pytest.raises(Unauthorized):
        register_in_census(s, None)


def test_update_district(s, make_user):
    ana = make_user("ana@example.com")
    update_district(s, ana, region="Comunidad de Madrid", locality="Getafe", zip_code=" 28901 ")
    p = s.get(Profile, ana.id)
    assert (p.region, p.locality, p.zip_code, p.district_id) == ("Comunidad de Madrid", "Getafe", "28901", None)

    with pytest.raises(ValidationError):
        update_district(s, ana, region="X", locality="Y", zip_code="2890")


def test_update_profile_username_rules(s, make_user):
    make_user("luis@example.com", username="luis")
    ana = make_user("ana@example.com")

    update_profile(s, ana, full_name=" Ana Pérez ", username="ana.perez")
    p = s.get(Profile, ana.id)
    assert p.full_name == "Ana Pérez"
    assert p.username == "ana.perez"

    with pytest.raises(ValidationError):
        update_profile(s, ana, full_name="Ana", username="luis")
    with pytest.raises(ValidationError):
        update_profile(s, ana, full_name="Ana", username="a b")


def test_ensure_profile_is_idempotent(s, make_user):
    ana = make_user("ana@example.com", full_name="Ana")
    p1 = ensure_profile(s, ana, full_name="Other")
    p2 = ensure_profile(s, ana)
    assert p1 is p2
    assert p1.full_name == "Ana"


def test_dashboard_routes(client, s, make_user, csrf_headers):
    ana = make_user("ana@example.com", username="ana")
    client.post("/auth/login", data={"email": "ana@example.com", "password": "pw-secret-1"})

    r = client.get("/dashboard")
    assert r.status_code == 200
    assert "Registrarme en el censo".encode() in r.data

    r = client.post("/dashboard/census", headers=csrf_headers)
    assert r.status_code == 302

    r = client.post("/dashboard/district", json={"region": "Andalucía", "locality": "Sevilla", "zip_code": "41001"}, headers=csrf_headers)
    assert r.status_code == 200

    r = client.post("/dashboard/district", json={"zip_code": "abc"}, headers=csrf_headers)
    assert r.status_code == 400

    s.expire_all()
    p = s.get(Profile, ana.id)
    assert p.census_registered_at is not None
    assert p.zip_code == "41001"

    r = client.get("/dashboard")
    assert b"Darme de baja" in r.data
