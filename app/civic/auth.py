"""
Identity for the portal: email + password accounts kept in `users`, with the
signed Flask session carrying `user_id`.

Every account gets a Profile on signup (or on first login for accounts created
by scripts), since activity rows and memberships point at profiles.
"""
from __future__ import annotations

import threading
import uuid
from collections import deque
from datetime import datetime, timedelta

from flask import Blueprint, current_app, flash, g, redirect, render_template, request, session, url_for
from sqlalchemy import func, select
from werkzeug.security import check_password_hash, generate_password_hash

from app.civic.db import db_session
from app.civic.models import User
from app.civic.modules.member.service import ensure_profile
from app.civic.utils import safe_next

bp = Blueprint("auth", __name__)

_MIN_PASSWORD_LENGTH = 8
_ANONYMOUS_PREFIXES = ("/static/", "/health", "/healthz")


class LoginThrottle:
    """Sliding-window failed-login counter per client address."""

    def __init__(self, limit: int = 5, window_seconds: int = 300) -> None:
        self.limit = limit
        self.window = timedelta(seconds=window_seconds)
        self._hits: dict[str, deque[datetime]] = {}
        self._lock = threading.Lock()

    def _live(self, key: str, now: datetime) -> deque[datetime] | None:
        hits = self._hits.get(key)
        if hits is None:
            return None
        while hits and hits[0] <= now - self.window:
            hits.popleft()
        if not hits:
            del self._hits[key]
            return None
        return hits

    def blocked(self, key: str) -> bool:
        with self._lock:
            hits = self._live(key, datetime.utcnow())
            return hits is not None and len(hits) >= self.limit

    def hit(self, key: str) -> None:
        with self._lock:
            now = datetime.utcnow()
            for stale in list(self._hits):
                self._live(stale, now)
            hits = self._hits.get(key)
            if hits is None:
                hits = self._hits[key] = deque()
            hits.append(now)

    def reset(self, key: str) -> None:
        with self._lock:
            self._hits.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._hits.clear()

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._hits)


login_throttle = LoginThrottle()


def get_current_user() -> User | None:
    return getattr(g, "current_user", None)


def load_current_user() -> None:
    """
    before_request hook: tag the request with a request_id and resolve
    g.current_user from the session cookie. A stale or disabled account
    drops the session instead of failing the request.
    """
    g.request_id = getattr(g, "request_id", None) or uuid.uuid4().hex
    g.current_user = None
    if request.path.startswith(_ANONYMOUS_PREFIXES):
        return

    user_id = session.get("user_id")
    if not user_id:
        return
    try:
        user = db_session().get(User, int(user_id))
    except Exception as e:
        current_app.logger.error("Could not load session user (request_id=%s): %s", g.request_id, e)
        user = None
    if user is None or not user.is_active:
        session.pop("user_id", None)
        return
    g.current_user = user


def _login_key() -> str:
    # Peer address only; forwarded headers are trusted solely through ProxyFix.
    return request.remote_addr or "unknown"


@bp.get("/signup")
def signup_get():
    return render_template("auth/signup.html")


@bp.post("/signup")
def signup_post():
    email = (request.form.get("email") or "").strip().lower()
    password = request.form.get("password") or ""
    full_name = (request.form.get("full_name") or "").strip() or None

    if "@" not in email or len(password) < _MIN_PASSWORD_LENGTH:
        flash(f"Introduce un email válido y una contraseña de al menos {_MIN_PASSWORD_LENGTH} caracteres.", "danger")
        return redirect(url_for("auth.signup_get"))

    s = db_session()
    if s.scalar(select(User.id).where(func.lower(User.email) == email)) is not None:
        flash("Ya existe una cuenta con ese email.", "danger")
        return redirect(url_for("auth.signup_get"))

    user = User(email=email, password_hash=generate_password_hash(password), is_active=True)
    s.add(user)
    s.flush()
    ensure_profile(s, user, full_name=full_name)
    s.commit()

    session["user_id"] = user.id
    current_app.logger.info("Signup complete (user_id=%s request_id=%s)", user.id, g.request_id)
    return redirect(url_for("member.dashboard"))


@bp.get("/login")
def login_get():
    return render_template("auth/login.html", next=(request.args.get("next") or "").strip())


@bp.post("/login")
def login_post():
    email = (request.form.get("email") or "").strip().lower()
    password = request.form.get("password") or ""
    key = _login_key()

    if login_throttle.blocked(key):
        current_app.logger.warning("Login throttled (ip=%s)", key)
        flash("Demasiados intentos. Espera 5 minutos.", "danger")
        return redirect(url_for("auth.login_get"))

    s = db_session()
    user = s.scalars(select(User).where(func.lower(User.email) == email)).one_or_none()
    if user is None or not user.is_active or not check_password_hash(user.password_hash, password):
        login_throttle.hit(key)
        current_app.logger.info("Login failed (email=%s ip=%s)", email, key)
        flash("Credenciales inválidas.", "danger")
        return redirect(url_for("auth.login_get"))

    ensure_profile(s, user)
    s.commit()

    session["user_id"] = user.id
    login_throttle.reset(key)
    return redirect(safe_next(request.form.get("next")) or url_for("member.dashboard"))


@bp.get("/logout")
def logout():
    session.pop("user_id", None)
    return redirect(url_for("routes.index"))
