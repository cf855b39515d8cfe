from flask import Blueprint, Response, current_app, flash, render_template, request

from app.civic.constants import ACTION_LABELS, AUDIT_PAGE_LIMIT, DASHBOARD_ACTIVITY_LIMIT
from app.civic.db import change_hub, db_session
from app.civic.rbac import admin_required
from app.civic.realtime import ActivityFeed, MetricsFeed, stream_events
from app.civic.views import dashboard_stats, recent_activity

bp = Blueprint("admin", __name__)


@bp.get("/")
@admin_required
def index():
    s = db_session()
    return render_template(
        "admin/dashboard.html",
        stats=dashboard_stats(s),
        logs=recent_activity(s, DASHBOARD_ACTIVITY_LIMIT),
    )


@bp.get("/audit")
@admin_required
def audit_list():
    """
    Most recent activity rows, optionally filtered by action kind.
    """
    s = db_session()
    action = (request.args.get("action") or "").strip().upper()
    if action and action not in ACTION_LABELS:
        flash(f"Unknown action filter: {action}", "danger")
        action = ""
    logs = recent_activity(s, AUDIT_PAGE_LIMIT, action=action or None)
    return render_template(
        "admin/audit.html",
        logs=logs,
        action=action,
        actions=sorted(ACTION_LABELS),
        limit=AUDIT_PAGE_LIMIT,
    )


def _sse_response(app, event_name: str, open_reader) -> Response:
    """
    Stream `event_name` events to one client. Each open stream pins a server
    thread, so streams are capped by the `sse_slots` semaphore and end after
    REALTIME_STREAM_MAX_SECONDS.
    """
    slots = app.extensions["sse_slots"]
    if not slots.acquire(blocking=False):
        app.logger.warning("SSE stream refused, all slots busy (event=%s)", event_name)
        resp = Response("Too many live streams\n", status=503, mimetype="text/plain")
        resp.headers["Retry-After"] = "30"
        return resp

    body = stream_events(
        open_reader,
        event_name,
        keepalive_seconds=app.config.get("REALTIME_KEEPALIVE_SECONDS", 15),
        max_seconds=app.config.get("REALTIME_STREAM_MAX_SECONDS") or None,
    )
    resp = Response(body, mimetype="text/event-stream")
    resp.headers["Cache-Control"] = "no-cache"
    resp.headers["X-Accel-Buffering"] = "no"
    resp.call_on_close(slots.release)
    return resp


@bp.get("/activity/stream")
@admin_required
def activity_stream():
    """Live feed of new activity rows (Server-Sent Events)."""
    app = current_app._get_current_object()
    hub = change_hub(app)
    sm = app.extensions["sqlalchemy_sessionmaker"]
    capacity = app.config.get("ACTIVITY_FEED_SIZE", DASHBOARD_ACTIVITY_LIMIT)

    def open_reader(listener):
        return ActivityFeed(hub, sm, capacity=capacity, listener=listener)

    return _sse_response(app, "activity", open_reader)


@bp.get("/metrics/stream")
@admin_required
def metrics_stream():
    """Live admin counters (Server-Sent Events)."""
    app = current_app._get_current_object()
    hub = change_hub(app)
    sm = app.extensions["sqlalchemy_sessionmaker"]
    initial = dashboard_stats(db_session())

    def open_reader(listener):
        return MetricsFeed(hub, sm, initial=initial, listener=listener)

    return _sse_response(app, "metrics", open_reader)
