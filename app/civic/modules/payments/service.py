from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select

from app.civic.constants import SUPPORT_TIER_NONE
from app.civic.db import commit_or_raise
from app.civic.errors import NotFound, ValidationError
from app.civic.models import Profile, User
from app.civic.rbac import require_caller

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.civic.modules.payments.client import PaymentsClient

logger = logging.getLogger(__name__)

SIGNATURE_TOLERANCE_SECONDS = 300

EVENT_CHECKOUT_COMPLETED = "checkout.session.completed"
EVENT_SUBSCRIPTION_DELETED = "customer.subscription.deleted"


class SignatureError(ValueError):
    pass


def _parse_signature_header(header: str) -> tuple[int, list[str]]:
    timestamp: int | None = None
    signatures: list[str] = []
    for part in header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError as e:
                raise SignatureError("Invalid signature timestamp") from e
        elif key == "v1" and value:
            signatures.append(value)
    if timestamp is None or not signatures:
        raise SignatureError("Malformed signature header")
    return timestamp, signatures


def sign_payload(payload: bytes, secret: str, timestamp: int) -> str:
    signed = f"{timestamp}.".encode("utf-8") + payload
    return hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()


def verify_webhook(
    payload: bytes,
    header: str | None,
    secret: str,
    *,
    tolerance: int = SIGNATURE_TOLERANCE_SECONDS,
    now: float | None = None,
) -> dict[str, Any]:
    """
    Check `t=<ts>,v1=<hex>` against HMAC-SHA256(secret, "<ts>.<payload>") and return the event.
    Raises SignatureError on any mismatch.
    """
    if not header:
        raise SignatureError("Missing signature header")
    timestamp, signatures = _parse_signature_header(header)
    now = time.time() if now is None else now
    if abs(now - timestamp) > tolerance:
        raise SignatureError("Signature timestamp outside tolerance")
    expected = sign_payload(payload, secret, timestamp)
    if not any(hmac.compare_digest(expected, sig) for sig in signatures):
        raise SignatureError("Signature mismatch")
    try:
        event = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise SignatureError("Invalid JSON payload") from e
    if not isinstance(event, dict):
        raise SignatureError("Event must be a JSON object")
    return event


def _profile_for_checkout(s: "Session", obj: dict[str, Any]) -> Profile | None:
    metadata = obj.get("metadata") or {}
    user_id = str(metadata.get("userId") or "").strip()
    if user_id.isdigit():
        profile = s.get(Profile, int(user_id))
        if profile:
            return profile

    customer_id = obj.get("customer")
    if customer_id:
        profile = s.scalars(select(Profile).where(Profile.payment_customer_id == str(customer_id))).first()
        if profile:
            return profile

    email = ((obj.get("customer_details") or {}).get("email") or obj.get("customer_email") or "").strip().lower()
    if email:
        user = s.scalars(select(User).where(func.lower(User.email) == email)).first()
        if user:
            return s.get(Profile, user.id)
    return None


def apply_event(s: "Session", event: dict[str, Any]) -> str:
    """
    Sync support tier from a verified provider event. Returns a short outcome tag.
    """
    event_type = event.get("type")
    obj = (event.get("data") or {}).get("object") or {}

    if event_type == EVENT_CHECKOUT_COMPLETED:
        tier_id = str((obj.get("metadata") or {}).get("tierId") or "").strip()
        if not tier_id:
            return "ignored:no_tier"
        profile = _profile_for_checkout(s, obj)
        if profile is None:
            logger.warning("Checkout completed for unknown customer (customer=%s)", obj.get("customer"))
            return "ignored:no_profile"
        profile.support_tier = tier_id
        if obj.get("customer") and not profile.payment_customer_id:
            profile.payment_customer_id = str(obj["customer"])
        profile.updated_at = datetime.utcnow()
        commit_or_raise(s, "Tier update")
        return "tier_updated"

    if event_type == EVENT_SUBSCRIPTION_DELETED:
        customer_id = obj.get("customer")
        profile = None
        if customer_id:
            profile = s.scalars(select(Profile).where(Profile.payment_customer_id == str(customer_id))).first()
        if profile is None:
            return "ignored:no_profile"
        profile.support_tier = SUPPORT_TIER_NONE
        profile.updated_at = datetime.utcnow()
        commit_or_raise(s, "Tier reset")
        return "tier_reset"

    return "ignored:event_type"


def start_checkout(
    s: "Session",
    caller: "User | None",
    tier_id: str,
    *,
    client: "PaymentsClient",
    tiers: dict[str, str],
    site_url: str,
) -> str:
    """Return the hosted checkout URL for `tier_id`, creating the provider customer on first use."""
    user = require_caller(caller)
    price_id = tiers.get((tier_id or "").strip())
    if not price_id:
        raise ValidationError("Nivel de apoyo no válido")

    profile = s.get(Profile, user.id)
    if profile is None:
        raise NotFound("Profile not found")

    if not profile.payment_customer_id:
        profile.payment_customer_id = client.create_customer(email=user.email, user_id=user.id)
        commit_or_raise(s, "Customer link")

    base = site_url.rstrip("/")
    return client.create_checkout_session(
        price_id=price_id,
        customer_id=profile.payment_customer_id,
        success_url=f"{base}/dashboard?status=success",
        cancel_url=f"{base}/dashboard?status=cancel",
        metadata={"tierId": tier_id, "userId": user.id},
    )
