from flask import Blueprint, render_template

from app.civic.db import db_session
from app.civic.views import movement_stats

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    """Public landing page with the movement counters."""
    return render_template("public/index.html", stats=movement_stats(db_session()))


@bp.get("/health")
def health():
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    # Liveness check: no session, no DB.
    return "ok", 200
