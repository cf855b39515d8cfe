from __future__ import annotations

from flask import Blueprint, g, render_template

from app.civic.constants import ASSIGNABLE_ROLES, SIDEBAR_ACTIVITY_LIMIT
from app.civic.db import db_session
from app.civic.modules.citizens.service import ban_user, update_user_role
from app.civic.rbac import admin_required
from app.civic.utils import action_response, form_or_json
from app.civic.views import citizens_table, recent_activity

bp = Blueprint("citizens", __name__)


@bp.get("/citizens")
@admin_required
def citizens_list():
    s = db_session()
    return render_template(
        "admin/citizens.html",
        users=citizens_table(s),
        roles=sorted(ASSIGNABLE_ROLES),
        logs=recent_activity(s, SIDEBAR_ACTIVITY_LIMIT),
    )


# Guarded again inside the service; the decorator only shapes the HTTP response.
@bp.post("/citizens/<int:user_id>/role")
@admin_required
def citizen_role_post(user_id: int):
    s = db_session()
    payload = form_or_json()
    update_user_role(s, g.current_user, user_id, payload.get("role") or "")
    return action_response("Rol actualizado.", "citizens.citizens_list")


@bp.post("/citizens/<int:user_id>/ban")
@admin_required
def citizen_ban_post(user_id: int):
    s = db_session()
    ban_user(s, g.current_user, user_id)
    return action_response("Ciudadano suspendido.", "citizens.citizens_list")
