from __future__ import annotations

import logging

from flask import Blueprint, current_app, g, jsonify, redirect, request

from app.civic.db import db_session
from app.civic.modules.payments.client import PaymentsClient, PaymentsError
from app.civic.modules.payments.service import SignatureError, apply_event, start_checkout, verify_webhook
from app.civic.rbac import login_required
from app.civic.utils import form_or_json

bp = Blueprint("billing", __name__)
logger = logging.getLogger(__name__)


def payments_client() -> PaymentsClient:
    cfg = current_app.config
    return PaymentsClient(secret_key=cfg.get("PAYMENTS_SECRET_KEY") or "", base_url=cfg.get("PAYMENTS_API_BASE") or "")


@bp.post("/checkout")
@login_required
def checkout():
    payload = form_or_json()
    cfg = current_app.config
    if not cfg.get("PAYMENTS_SECRET_KEY"):
        current_app.logger.error("Checkout requested but PAYMENTS_SECRET_KEY is not configured")
        return jsonify({"ok": False, "error": "Pagos no disponibles."}), 503
    try:
        url = start_checkout(
            db_session(),
            g.current_user,
            payload.get("tier") or "",
            client=payments_client(),
            tiers=cfg.get("PAYMENTS_TIERS") or {},
            site_url=cfg.get("SITE_URL") or request.host_url,
        )
    except PaymentsError as e:
        current_app.logger.error("Checkout failed (user_id=%s): %s", g.current_user.id, e)
        return jsonify({"ok": False, "error": "No se pudo crear la sesión de pago"}), 502
    return redirect(url, code=303)


@bp.post("/webhook")
def webhook():
    secret = current_app.config.get("PAYMENTS_WEBHOOK_SECRET") or ""
    if not secret:
        logger.error("Webhook received but PAYMENTS_WEBHOOK_SECRET is not configured")
        return "Webhook secret not configured", 500

    body = request.get_data(cache=False)
    try:
        event = verify_webhook(body, request.headers.get("Stripe-Signature"), secret)
    except SignatureError as e:
        logger.warning("Webhook rejected: %s", e)
        return f"Webhook Error: {e}", 400

    outcome = apply_event(db_session(), event)
    logger.info("Webhook processed (type=%s outcome=%s)", event.get("type"), outcome)
    return "", 200
