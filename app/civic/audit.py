"""
Audit logger for privileged actions.

record_activity() runs after the primary mutation has been committed and commits
its own row. It never raises: a failed audit insert is logged and rolled back,
and the mutation it describes stands.
"""
from __future__ import annotations

import json
import logging
from typing import Any

from flask import g, has_request_context, request
from sqlalchemy.orm import Session

from app.civic.models import ActivityLog, User

logger = logging.getLogger(__name__)


def client_ip(headers: Any | None = None) -> str:
    """
    First X-Forwarded-For hop, else X-Real-IP, else "unknown".
    """
    if headers is None:
        if not has_request_context():
            return "unknown"
        headers = request.headers
    forwarded = (headers.get("X-Forwarded-For") or "").strip()
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = (headers.get("X-Real-IP") or "").strip()
    return real_ip or "unknown"


def record_activity(
    s: Session,
    *,
    actor: User | None,
    action: str,
    entity_id: str | int | None = None,
    details: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> ActivityLog | None:
    """
    Append one activity row for `actor`. No actor → no-op.
    """
    if actor is None:
        return None
    rid = request_id
    if rid is None and has_request_context():
        rid = getattr(g, "request_id", None)
    entry = ActivityLog(
        request_id=rid,
        user_id=actor.id,
        action=action,
        entity_id=str(entity_id) if entity_id is not None else None,
        details_json=json.dumps(details or {}, sort_keys=True, default=str),
        ip_address=client_ip(),
    )
    try:
        s.add(entry)
        s.commit()
    except Exception:
        s.rollback()
        logger.exception("Activity log write failed (action=%s entity_id=%s request_id=%s)", action, entity_id, rid)
        return None
    return entry
