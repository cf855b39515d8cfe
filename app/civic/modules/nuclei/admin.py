from __future__ import annotations

from flask import Blueprint, g, render_template

from app.civic.constants import SIDEBAR_ACTIVITY_LIMIT
from app.civic.db import db_session
from app.civic.modules.nuclei.service import (
    ACTING_ROLE_ADMIN,
    create_nucleus,
    delete_nucleus,
    get_nucleus,
    update_nucleus,
)
from app.civic.rbac import admin_required
from app.civic.utils import action_response, form_or_json
from app.civic.views import nuclei_with_member_counts, nucleus_roster, recent_activity

bp = Blueprint("nuclei_admin", __name__)


@bp.get("/nuclei")
@admin_required
def nuclei_list():
    s = db_session()
    return render_template(
        "admin/nuclei.html",
        nodes=nuclei_with_member_counts(s),
        logs=recent_activity(s, SIDEBAR_ACTIVITY_LIMIT),
    )


@bp.get("/nuclei/<int:nucleus_id>")
@admin_required
def nucleus_detail(nucleus_id: int):
    s = db_session()
    nucleus = get_nucleus(s, nucleus_id)
    return render_template("admin/nucleus_detail.html", nucleus=nucleus, roster=nucleus_roster(s, nucleus.id))


@bp.post("/nuclei")
@admin_required
def nucleus_create_post():
    s = db_session()
    nucleus = create_nucleus(s, g.current_user, form_or_json(), acting_role=ACTING_ROLE_ADMIN)
    return action_response("Núcleo creado.", "nuclei_admin.nuclei_list", data={"id": nucleus.id})


@bp.post("/nuclei/<int:nucleus_id>/edit")
@admin_required
def nucleus_edit_post(nucleus_id: int):
    s = db_session()
    update_nucleus(s, g.current_user, nucleus_id, form_or_json())
    return action_response("Núcleo actualizado.", "nuclei_admin.nuclei_list")


@bp.post("/nuclei/<int:nucleus_id>/delete")
@admin_required
def nucleus_delete_post(nucleus_id: int):
    s = db_session()
    delete_nucleus(s, g.current_user, nucleus_id)
    return action_response("Núcleo eliminado.", "nuclei_admin.nuclei_list")
