from __future__ import annotations

from flask import Blueprint, g, render_template

from app.civic.db import db_session
from app.civic.modules.nuclei.service import (
    ACTING_ROLE_SELF_SERVICE,
    can_remove,
    create_nucleus,
    join_nucleus,
    leave_nucleus,
    remove_member,
    require_roster_manager,
)
from app.civic.rbac import login_required
from app.civic.utils import action_response, form_or_json
from app.civic.views import nuclei_with_member_counts, nucleus_roster, user_nucleus_ids

bp = Blueprint("nuclei", __name__)


@bp.get("/asociaciones")
def directory():
    s = db_session()
    user = getattr(g, "current_user", None)
    return render_template(
        "nuclei/directory.html",
        nuclei=nuclei_with_member_counts(s, active_only=True, order="members"),
        joined=set(user_nucleus_ids(s, user.id)) if user else set(),
    )


@bp.post("/asociaciones")
@login_required
def create_post():
    s = db_session()
    nucleus = create_nucleus(s, g.current_user, form_or_json(), acting_role=ACTING_ROLE_SELF_SERVICE)
    return action_response("Núcleo creado. Eres su administrador.", "nuclei.directory", data={"id": nucleus.id})


@bp.post("/asociaciones/<int:nucleus_id>/join")
@login_required
def join_post(nucleus_id: int):
    join_nucleus(db_session(), g.current_user, nucleus_id)
    return action_response("Te has unido al núcleo.", "nuclei.directory")


@bp.post("/asociaciones/<int:nucleus_id>/leave")
@login_required
def leave_post(nucleus_id: int):
    leave_nucleus(db_session(), g.current_user, nucleus_id)
    return action_response("Has abandonado el núcleo.", "nuclei.directory")


@bp.get("/asociaciones/<int:nucleus_id>/miembros")
@login_required
def roster(nucleus_id: int):
    """Roster for platform admins and the nucleus' own admins/moderators."""
    s = db_session()
    nucleus, manager = require_roster_manager(s, g.current_user, nucleus_id)
    members = nucleus_roster(s, nucleus.id)
    for m in members:
        m["removable"] = m["user_id"] != g.current_user.id and can_remove(manager, m["role"])
    return render_template("nuclei/roster.html", nucleus=nucleus, roster=members)


@bp.post("/asociaciones/<int:nucleus_id>/members/<int:user_id>/remove")
@login_required
def remove_member_post(nucleus_id: int, user_id: int):
    remove_member(db_session(), g.current_user, nucleus_id, user_id)
    return action_response("Miembro expulsado.", "nuclei.roster", nucleus_id=nucleus_id)
