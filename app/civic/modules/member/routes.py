from __future__ import annotations

from flask import Blueprint, g, render_template
from sqlalchemy import select

from app.civic.db import db_session
from app.civic.models import Profile
from app.civic.modules.member.service import (
    register_in_census,
    unregister_from_census,
    update_district,
    update_profile,
)
from app.civic.modules.nuclei.models import Nucleus, NucleusMember
from app.civic.rbac import login_required
from app.civic.utils import action_response, form_or_json
from app.civic.views import movement_stats

bp = Blueprint("member", __name__)


@bp.get("/dashboard")
@login_required
def dashboard():
    s = db_session()
    user = g.current_user
    profile = s.get(Profile, user.id)
    my_nuclei = s.execute(
        select(Nucleus, NucleusMember.role)
        .join(NucleusMember, NucleusMember.nucleus_id == Nucleus.id)
        .where(NucleusMember.user_id == user.id)
        .order_by(Nucleus.name.asc())
    ).all()
    return render_template(
        "member/dashboard.html",
        profile=profile,
        stats=movement_stats(s),
        my_nuclei=my_nuclei,
    )


@bp.post("/dashboard/census")
@login_required
def census_post():
    register_in_census(db_session(), g.current_user)
    return action_response("Registrado en el censo.", "member.dashboard")


@bp.post("/dashboard/census/remove")
@login_required
def census_remove_post():
    unregister_from_census(db_session(), g.current_user)
    return action_response("Baja del censo registrada.", "member.dashboard")


@bp.post("/dashboard/district")
@login_required
def district_post():
    payload = form_or_json()
    update_district(
        db_session(),
        g.current_user,
        region=payload.get("region"),
        locality=payload.get("locality"),
        zip_code=payload.get("zip_code"),
        district_id=payload.get("district_id"),
    )
    return action_response("Distrito actualizado.", "member.dashboard")


@bp.post("/dashboard/profile")
@login_required
def profile_post():
    payload = form_or_json()
    update_profile(db_session(), g.current_user, full_name=payload.get("full_name"), username=payload.get("username"))
    return action_response("Perfil actualizado.", "member.dashboard")
