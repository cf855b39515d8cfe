"""
Read views: denormalized view models for admin and citizen pages.

All queries are read-only and re-run on every page load. Member counts are
always aggregated from nucleus_members; nothing stores them.
"""
from __future__ import annotations

import json
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session, joinedload

from app.civic.constants import ACTION_LABELS, ROLE_ADMIN
from app.civic.models import ActivityLog, Profile
from app.civic.modules.nuclei.models import Nucleus, NucleusMember


def _details(log: ActivityLog) -> dict[str, Any]:
    if not log.details_json:
        return {}
    try:
        value = json.loads(log.details_json)
    except json.JSONDecodeError:
        return {}
    return value if isinstance(value, dict) else {}


def serialize_activity(log: ActivityLog) -> dict[str, Any]:
    actor = log.actor
    return {
        "id": log.id,
        "action": log.action,
        "label": ACTION_LABELS.get(log.action, log.action),
        "entity_id": log.entity_id,
        "details": _details(log),
        "ip_address": log.ip_address,
        "created_at": log.created_at.isoformat() if log.created_at else None,
        "actor": {"username": actor.username, "full_name": actor.full_name} if actor else None,
    }


def recent_activity(s: Session, limit: int, *, action: str | None = None) -> list[dict[str, Any]]:
    q = select(ActivityLog).options(joinedload(ActivityLog.actor))
    if action:
        q = q.where(ActivityLog.action == action)
    q = q.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc()).limit(limit)
    return [serialize_activity(log) for log in s.scalars(q).unique().all()]


def fetch_activity_entry(s: Session, log_id: int) -> dict[str, Any] | None:
    log = s.scalars(
        select(ActivityLog).options(joinedload(ActivityLog.actor)).where(ActivityLog.id == log_id)
    ).first()
    return serialize_activity(log) if log else None


def activity_since(s: Session, since: datetime) -> int:
    return s.scalar(select(func.count(ActivityLog.id)).where(ActivityLog.created_at >= since)) or 0


def profile_counts(s: Session) -> dict[str, int]:
    total = s.scalar(select(func.count(Profile.id))) or 0
    admins = s.scalar(select(func.count(Profile.id)).where(Profile.role == ROLE_ADMIN)) or 0
    return {"total": total, "admins": admins}


def dashboard_stats(s: Session, *, now: datetime | None = None) -> dict[str, int]:
    now = now or datetime.utcnow()
    stats = profile_counts(s)
    stats["active24h"] = activity_since(s, now - timedelta(hours=24))
    return stats


def movement_stats(s: Session) -> dict[str, int]:
    total = s.scalar(select(func.count(Profile.id))) or 0
    active = s.scalar(select(func.count(Profile.id)).where(Profile.census_registered_at.is_not(None))) or 0
    return {"total": total, "active": active}


def citizens_table(s: Session) -> list[Profile]:
    return list(
        s.scalars(
            select(Profile).options(joinedload(Profile.user)).order_by(Profile.full_name.asc(), Profile.id.asc())
        ).all()
    )


def _member_count_subquery():
    return (
        select(NucleusMember.nucleus_id, func.count(NucleusMember.id).label("member_count"))
        .group_by(NucleusMember.nucleus_id)
        .subquery()
    )


def _nucleus_row(n: Nucleus, member_count: int | None) -> dict[str, Any]:
    return {
        "id": n.id,
        "name": n.name,
        "description": n.description,
        "city": n.city,
        "region": n.region,
        "lat": n.lat,
        "lng": n.lng,
        "is_active": n.is_active,
        "created_by": n.created_by,
        "created_at": n.created_at,
        "member_count": int(member_count or 0),
    }


def nuclei_with_member_counts(s: Session, *, active_only: bool = False, order: str = "newest") -> list[dict[str, Any]]:
    counts = _member_count_subquery()
    count_col = func.coalesce(counts.c.member_count, 0)
    q = select(Nucleus, count_col).outerjoin(counts, counts.c.nucleus_id == Nucleus.id)
    if active_only:
        q = q.where(Nucleus.is_active.is_(True))
    if order == "members":
        q = q.order_by(count_col.desc(), Nucleus.name.asc())
    else:
        q = q.order_by(Nucleus.created_at.desc(), Nucleus.id.desc())
    return [_nucleus_row(n, c) for n, c in s.execute(q).all()]


def member_count(s: Session, nucleus_id: int) -> int:
    return s.scalar(select(func.count(NucleusMember.id)).where(NucleusMember.nucleus_id == nucleus_id)) or 0


def user_nucleus_ids(s: Session, user_id: int) -> list[int]:
    return list(s.scalars(select(NucleusMember.nucleus_id).where(NucleusMember.user_id == user_id)).all())


def nucleus_roster(s: Session, nucleus_id: int) -> list[dict[str, Any]]:
    rows = s.execute(
        select(NucleusMember, Profile)
        .join(Profile, Profile.id == NucleusMember.user_id)
        .where(NucleusMember.nucleus_id == nucleus_id)
        .order_by(NucleusMember.created_at.asc(), NucleusMember.id.asc())
    ).all()
    return [
        {
            "user_id": p.id,
            "username": p.username,
            "full_name": p.full_name,
            "role": m.role,
            "joined_at": m.created_at,
        }
        for m, p in rows
    ]
