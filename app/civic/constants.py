"""
Central constants for the civic portal.
"""
from __future__ import annotations

# Platform-level roles. "user" is a legacy value still present on old rows.
ROLE_CITIZEN = "citizen"
ROLE_ADMIN = "admin"
ROLE_MODERATOR = "moderator"
ROLE_BANNED = "banned"
ROLE_LEGACY_USER = "user"

ASSIGNABLE_ROLES = frozenset({ROLE_CITIZEN, ROLE_ADMIN, ROLE_MODERATOR, ROLE_BANNED})
KNOWN_ROLES = ASSIGNABLE_ROLES | {ROLE_LEGACY_USER}

# Nucleus-scoped roles
NUCLEUS_ROLE_MEMBER = "member"
NUCLEUS_ROLE_MODERATOR = "moderator"
NUCLEUS_ROLE_ADMIN = "admin"
NUCLEUS_ROLES = frozenset({NUCLEUS_ROLE_MEMBER, NUCLEUS_ROLE_MODERATOR, NUCLEUS_ROLE_ADMIN})

# Activity log action kinds
ACTION_ROLE_CHANGE = "ROLE_CHANGE"
ACTION_USER_BAN = "USER_BAN"
ACTION_NUCLEUS_CREATE = "NUCLEUS_CREATE"
ACTION_NUCLEUS_UPDATE = "NUCLEUS_UPDATE"
ACTION_NUCLEUS_DELETE = "NUCLEUS_DELETE"
ACTION_NUCLEUS_MEMBER_REMOVE = "NUCLEUS_MEMBER_REMOVE"

ACTION_LABELS = {
    ACTION_ROLE_CHANGE: "Cambio de rol",
    ACTION_USER_BAN: "Suspensión de ciudadano",
    ACTION_NUCLEUS_CREATE: "Núcleo creado",
    ACTION_NUCLEUS_UPDATE: "Núcleo actualizado",
    ACTION_NUCLEUS_DELETE: "Núcleo eliminado",
    ACTION_NUCLEUS_MEMBER_REMOVE: "Miembro expulsado",
}

SUPPORT_TIER_NONE = "none"

# Read-view fetch limits
DASHBOARD_ACTIVITY_LIMIT = 15
SIDEBAR_ACTIVITY_LIMIT = 10
AUDIT_PAGE_LIMIT = 50
