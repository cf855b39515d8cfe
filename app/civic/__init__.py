import logging
import os
import threading
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, flash, g, jsonify, redirect, render_template, request, session, url_for
from werkzeug.middleware.proxy_fix import ProxyFix

from app.civic.admin import bp as admin_bp
from app.civic.auth import bp as auth_bp, load_current_user
from app.civic.config import load_config
from app.civic.db import db_session, init_db, teardown_db_session
from app.civic.errors import CivicError, StoreError, Unauthorized
from app.civic.modules.citizens.admin import bp as citizens_bp
from app.civic.modules.member.routes import bp as member_bp
from app.civic.modules.nuclei.admin import bp as nuclei_admin_bp
from app.civic.modules.nuclei.routes import bp as nuclei_bp
from app.civic.modules.payments.routes import bp as billing_bp
from app.civic.rbac import is_admin
from app.civic.routes import bp as routes_bp
from app.civic.security import CSRF_EXEMPT_ENDPOINTS, ensure_csrf_token, validate_csrf
from app.civic.utils import wants_json

logger = logging.getLogger(__name__)

_UNSAFE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
_NO_SESSION_PREFIXES = ("/static/", "/health", "/healthz")


def _check_production(app: Flask) -> None:
    """Refuse to boot a production app on dev defaults."""
    env = (app.config.get("ENV") or "").strip().lower()
    if env not in ("prod", "production"):
        return
    db_url = str(app.config.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise RuntimeError("DATABASE_URL is required in production.")
    if db_url.startswith("sqlite"):
        raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
    if str(app.config.get("SECRET_KEY") or "") in ("", "change-me"):
        raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")
    if not app.config.get("PAYMENTS_WEBHOOK_SECRET"):
        app.logger.warning("PAYMENTS_WEBHOOK_SECRET not set; billing webhook will answer 500.")


def _register_template_helpers(app: Flask) -> None:
    @app.context_processor
    def _inject_globals() -> dict:
        user = getattr(g, "current_user", None)
        return {
            "csrf_token": ensure_csrf_token(),
            "current_user": user,
            "caller_is_admin": bool(user) and is_admin(db_session(), user),
        }

    @app.template_filter("dateformat")
    def _dateformat_filter(value, format: str = "%Y-%m-%d %H:%M") -> str:
        if value is None:
            return "—"
        return value.strftime(format) if hasattr(value, "strftime") else str(value)


def _register_request_hooks(app: Flask) -> None:
    # Identity first so request_id is set for every later log line.
    app.before_request(load_current_user)

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(_NO_SESSION_PREFIXES):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method not in _UNSAFE_METHODS:
            return None
        endpoint = request.endpoint or ""
        # auth.* runs before a session token can exist; webhooks are signed instead
        if endpoint.startswith("auth.") or endpoint in CSRF_EXEMPT_ENDPOINTS:
            return None
        if validate_csrf(request):
            return None
        app.logger.warning("CSRF rejected (endpoint=%s request_id=%s)", endpoint, getattr(g, "request_id", None))
        if wants_json():
            return jsonify({"ok": False, "error": "CSRF token missing or invalid."}), 400
        return render_template("errors/400.html", message="CSRF token missing or invalid."), 400

    app.teardown_appcontext(teardown_db_session)


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(CivicError)
    def _civic_error(e: CivicError):
        rid = getattr(g, "request_id", None)
        if isinstance(e, StoreError) and e.status_code >= 500:
            app.logger.exception("Store error (request_id=%s): %s", rid, e)
        else:
            app.logger.warning("%s (request_id=%s): %s", e.__class__.__name__, rid, e)

        if wants_json():
            return jsonify({"ok": False, "error": e.public_message, "detail": str(e)}), e.status_code
        if isinstance(e, Unauthorized):
            return redirect(url_for("auth.login_get", next=request.path))
        flash(e.public_message, "danger")
        referrer = request.referrer
        if referrer and referrer.startswith(request.host_url):
            return redirect(referrer)
        return redirect(url_for("routes.index"))

    @app.errorhandler(403)
    def _err_403(e):
        missing = getattr(g, "missing_privilege", None)
        if missing:
            app.logger.warning("Forbidden: missing_privilege=%s request_id=%s", missing, getattr(g, "request_id", None))
        if wants_json():
            return jsonify({"ok": False, "error": "Forbidden"}), 403
        return render_template("errors/403.html", missing_privilege=missing), 403

    @app.errorhandler(404)
    def _err_404(e):
        if wants_json():
            return jsonify({"ok": False, "error": "Not found"}), 404
        return render_template("errors/404.html"), 404

    @app.errorhandler(500)
    def _err_500(e):
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return render_template("errors/500.html"), 500


def _dispose_engine_on_fork(app: Flask) -> None:
    # Pooled connections must not be shared with forked gunicorn workers.
    if not hasattr(os, "register_at_fork"):
        return

    def _after_fork_child() -> None:
        engine = app.extensions.get("sqlalchemy_engine")
        if engine is not None:
            engine.dispose()
            app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

    os.register_at_fork(after_in_child=_after_fork_child)


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())
    app.config.update(PERMANENT_SESSION_LIFETIME=timedelta(hours=8), SESSION_REFRESH_EACH_REQUEST=True)

    _check_production(app)
    init_db(app)
    app.extensions["sse_slots"] = threading.BoundedSemaphore(max(1, app.config["REALTIME_MAX_STREAMS"]))
    hops = app.config.get("TRUSTED_PROXY_HOPS") or 0
    if hops > 0:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=hops, x_proto=hops, x_host=hops)
    _dispose_engine_on_fork(app)

    _register_request_hooks(app)
    _register_template_helpers(app)
    _register_error_handlers(app)

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(member_bp)
    app.register_blueprint(nuclei_bp)
    app.register_blueprint(billing_bp, url_prefix="/billing")
    for admin_blueprint in (admin_bp, citizens_bp, nuclei_admin_bp):
        app.register_blueprint(admin_blueprint, url_prefix="/admin")

    logger.info("create_app() complete (env=%s)", app.config.get("ENV"))
    return app
