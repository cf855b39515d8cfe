import secrets

from flask import Request, session

CSRF_SESSION_KEY = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"

# Endpoints that authenticate by other means (signed provider payloads).
CSRF_EXEMPT_ENDPOINTS = frozenset({"billing.webhook"})


def ensure_csrf_token() -> str:
    """Per-session token, minted on first use."""
    return session.setdefault(CSRF_SESSION_KEY, secrets.token_urlsafe(32))


def _submitted_token(req: Request) -> str | None:
    token = req.headers.get(CSRF_HEADER) or req.form.get(CSRF_SESSION_KEY)
    if token or not req.is_json:
        return token
    body = req.get_json(silent=True)
    return body.get(CSRF_SESSION_KEY) if isinstance(body, dict) else None


def validate_csrf(req: Request) -> bool:
    expected = session.get(CSRF_SESSION_KEY)
    submitted = _submitted_token(req)
    if not expected or not submitted:
        return False
    return secrets.compare_digest(str(submitted), str(expected))
