from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import abort, g, redirect, request, url_for
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.civic.constants import ROLE_ADMIN, ROLE_BANNED
from app.civic.errors import PrivilegeRequired, Unauthorized
from app.civic.models import Profile, User


def current_role(s: Session, user: User) -> str | None:
    """Fresh role read from the store; never trusts an already-loaded profile."""
    return s.scalar(
        select(Profile.role).where(Profile.id == user.id).execution_options(populate_existing=True)
    )


def require_caller(caller: User | None) -> User:
    if not caller or not caller.is_active:
        raise Unauthorized("Unauthorized")
    return caller


def require_admin(s: Session, caller: User | None) -> User:
    """Authenticated caller whose stored profile role is admin."""
    user = require_caller(caller)
    if current_role(s, user) != ROLE_ADMIN:
        raise PrivilegeRequired("Admin privileges required")
    return user


def require_member(s: Session, caller: User | None) -> User:
    """Authenticated caller that is not banned (self-service actions)."""
    user = require_caller(caller)
    if current_role(s, user) == ROLE_BANNED:
        raise PrivilegeRequired("Account suspended")
    return user


def is_admin(s: Session, user: User | None) -> bool:
    if not user or not user.is_active:
        return False
    return current_role(s, user) == ROLE_ADMIN


def _login_redirect():
    nxt = request.full_path or request.path
    # Avoid trailing '?' from full_path when there is no query string.
    if nxt.endswith("?"):
        nxt = nxt[:-1]
    return redirect(url_for("auth.login_get", next=nxt))


def login_required(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        user: User | None = getattr(g, "current_user", None)
        if not user or not user.is_active:
            return _login_redirect()
        return fn(*args, **kwargs)

    return wrapped


def admin_required(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        from app.civic.db import db_session

        user: User | None = getattr(g, "current_user", None)
        # Unauthenticated → redirect to login (UX + reduces confusion).
        if not user or not user.is_active:
            return _login_redirect()
        # Authenticated but not admin → 403
        if not is_admin(db_session(), user):
            g.missing_privilege = ROLE_ADMIN
            abort(403)
        return fn(*args, **kwargs)

    return wrapped
