from __future__ import annotations

from typing import Any

from flask import flash, jsonify, redirect, request, url_for


def wants_json() -> bool:
    if request.is_json or request.headers.get("X-Requested-With") == "XMLHttpRequest":
        return True
    best = request.accept_mimetypes.best_match(["text/html", "application/json"])
    return best == "application/json" and request.accept_mimetypes[best] > request.accept_mimetypes["text/html"]


def form_or_json() -> dict[str, Any]:
    """Mutation payload from a JSON body or a submitted form."""
    if request.is_json:
        data = request.get_json(silent=True) or {}
        return data if isinstance(data, dict) else {}
    return {k: v for k, v in request.form.items() if k != "csrf_token"}


def action_response(message: str, endpoint: str, *, data: dict[str, Any] | None = None, **url_values: Any):
    """Success marker for JSON callers; flash + redirect (fresh render) for HTML callers."""
    if wants_json():
        body = {"ok": True, "success": True}
        if data:
            body.update(data)
        return jsonify(body)
    flash(message, "success")
    return redirect(url_for(endpoint, **url_values))


def safe_next(nxt: str | None) -> str | None:
    """Only allow local paths to avoid open redirects."""
    nxt = (nxt or "").strip()
    if nxt.startswith("/") and not nxt.startswith("//"):
        return nxt
    return None
