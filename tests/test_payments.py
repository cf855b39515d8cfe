import json
import time

import pytest

from app.civic.config import parse_tier_prices
from app.civic.errors import ValidationError
from app.civic.models import Profile
from app.civic.modules.payments import client as payments_client
from app.civic.modules.payments.client import PaymentsClient, PaymentsError, flatten_form
from app.civic.modules.payments.service import (
    SignatureError,
    apply_event,
    sign_payload,
    start_checkout,
    verify_webhook,
)

SECRET = "whsec_test"


def _signed(event: dict, *, ts: int | None = None, secret: str = SECRET) -> tuple[bytes, str]:
    body = json.dumps(event).encode("utf-8")
    ts = int(time.time()) if ts is None else ts
    return body, f"t={ts},v1={sign_payload(body, secret, ts)}"


def test_parse_tier_prices():
    assert parse_tier_prices("supporter:price_1, patron:price_2,broken,:x") == {
        "supporter": "price_1",
        "patron": "price_2",
    }
    assert parse_tier_prices("") == {}


def test_flatten_form():
    pairs = flatten_form({"mode": "subscription", "line_items": [{"price": "p", "quantity": 1}], "metadata": {"userId": 7}, "x": None})
    assert pairs == [
        ("mode", "subscription"),
        ("line_items[0][price]", "p"),
        ("line_items[0][quantity]", "1"),
        ("metadata[userId]", "7"),
    ]


class _Resp:
    def __init__(self, payload: dict):
        self._raw = json.dumps(payload).encode("utf-8")

    def read(self):
        return self._raw

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


def test_post_retry_reuses_idempotency_key(monkeypatch):
    seen = []

    def fake_urlopen(req, timeout):
        seen.append(req.get_header("Idempotency-key"))
        if len(seen) == 1:
            raise TimeoutError("read timed out")
        return _Resp({"id": "cus_1"})

    monkeypatch.setattr(payments_client.urllib.request, "urlopen", fake_urlopen)
    monkeypatch.setattr(payments_client.time, "sleep", lambda _s: None)

    client = PaymentsClient(secret_key="sk_test", base_url="https://payments.invalid")
    assert client.create_customer(email="ana@example.com", user_id=7) == "cus_1"
    assert len(seen) == 2
    assert seen[0] and seen[0] == seen[1]

    # A new logical call gets a fresh key; GETs carry none.
    client.create_customer(email="ana@example.com", user_id=7)
    assert seen[2] != seen[0]
    client.request_json("GET", "/v1/customers/cus_1")
    assert seen[-1] is None


def test_verify_webhook_accepts_valid_signature():
    body, header = _signed({"type": "ping"})
    assert verify_webhook(body, header, SECRET) == {"type": "ping"}


@pytest.mark.parametrize(
    "mutate",
    [
        lambda body, header: (body, None),
        lambda body, header: (body, "garbage"),
        lambda body, header: (body + b" ", header),
        lambda body, header: (body, header.replace("v1=", "v1=0")),
    ],
)
def test_verify_webhook_rejects(mutate):
    body, header = _signed({"type": "ping"})
    body, header = mutate(body, header)
    with pytest.raises(SignatureError):
        verify_webhook(body, header, SECRET)


def test_verify_webhook_rejects_stale_timestamp():
    body, header = _signed({"type": "ping"}, ts=1_000)
    with pytest.raises(SignatureError):
        verify_webhook(body, header, SECRET, now=1_000 + 301)
    assert verify_webhook(body, header, SECRET, now=1_000 + 299) == {"type": "ping"}


def _checkout_event(**obj):
    return {"type": "checkout.session.completed", "data": {"object": obj}}


def test_checkout_completed_sets_tier_by_user_id(s, make_user):
    ana = make_user("ana@example.com")
    outcome = apply_event(s, _checkout_event(metadata={"tierId": "patron", "userId": str(ana.id)}, customer="cus_1"))
    assert outcome == "tier_updated"
    p = s.get(Profile, ana.id)
    assert p.support_tier == "patron"
    assert p.payment_customer_id == "cus_1"


def test_checkout_completed_falls_back_to_email(s, make_user):
    ana = make_user("ana@example.com")
    outcome = apply_event(s, _checkout_event(metadata={"tierId": "supporter"}, customer_details={"email": "ANA@example.com"}))
    assert outcome == "tier_updated"
    assert s.get(Profile, ana.id).support_tier == "supporter"


def test_checkout_completed_ignored_cases(s, make_user):
    make_user("ana@example.com")
    assert apply_event(s, _checkout_event(metadata={})) == "ignored:no_tier"
    assert apply_event(s, _checkout_event(metadata={"tierId": "x"}, customer_email="nobody@example.com")) == "ignored:no_profile"
    assert apply_event(s, {"type": "invoice.paid", "data": {"object": {}}}) == "ignored:event_type"


def test_subscription_deleted_resets_tier(s, make_user):
    ana = make_user("ana@example.com")
    p = s.get(Profile, ana.id)
    p.support_tier = "patron"
    p.payment_customer_id = "cus_9"
    s.commit()

    event = {"type": "customer.subscription.deleted", "data": {"object": {"customer": "cus_9"}}}
    assert apply_event(s, event) == "tier_reset"
    assert s.get(Profile, ana.id).support_tier == "none"


class _FakeClient:
    def __init__(self):
        self.calls = []

    def create_customer(self, *, email, user_id):
        self.calls.append(("customer", email, user_id))
        return "cus_new"

    def create_checkout_session(self, **kwargs):
        self.calls.append(("session", kwargs))
        return "https://pay.example.com/c/abc"


def test_start_checkout_links_customer_once(s, make_user):
    ana = make_user("ana@example.com")
    client = _FakeClient()
    tiers = {"supporter": "price_1"}

    url = start_checkout(s, ana, "supporter", client=client, tiers=tiers, site_url="https://portal.example.org/")
    assert url == "https://pay.example.com/c/abc"
    start_checkout(s, ana, "supporter", client=client, tiers=tiers, site_url="https://portal.example.org")

    assert [c[0] for c in client.calls] == ["customer", "session", "session"]
    session_kwargs = client.calls[1][1]
    assert session_kwargs["price_id"] == "price_1"
    assert session_kwargs["customer_id"] == "cus_new"
    assert session_kwargs["metadata"] == {"tierId": "supporter", "userId": ana.id}
    assert session_kwargs["success_url"] == "https://portal.example.org/dashboard?status=success"

    with pytest.raises(ValidationError):
        start_checkout(s, ana, "gold", client=client, tiers=tiers, site_url="https://portal.example.org")


def test_webhook_route(app, client, s, make_user):
    ana = make_user("ana@example.com")

    # not configured
    r = client.post("/billing/webhook", data=b"{}")
    assert r.status_code == 500

    app.config["PAYMENTS_WEBHOOK_SECRET"] = SECRET
    body, header = _signed(_checkout_event(metadata={"tierId": "patron", "userId": str(ana.id)}))

    # no CSRF token needed; the signature authenticates the call
    r = client.post("/billing/webhook", data=body, headers={"Stripe-Signature": header}, content_type="application/json")
    assert r.status_code == 200
    s.expire_all()
    assert s.get(Profile, ana.id).support_tier == "patron"

    r = client.post("/billing/webhook", data=body, headers={"Stripe-Signature": "t=1,v1=bad"}, content_type="application/json")
    assert r.status_code == 400


def test_checkout_route(app, client, make_user, csrf_headers, monkeypatch):
    make_user("ana@example.com")
    client.post("/auth/login", data={"email": "ana@example.com", "password": "pw-secret-1"})

    r = client.post("/billing/checkout", json={"tier": "supporter"}, headers=csrf_headers)
    assert r.status_code == 503

    app.config["PAYMENTS_SECRET_KEY"] = "sk_test"
    app.config["PAYMENTS_TIERS"] = {"supporter": "price_1"}

    def _fail(self, **kwargs):
        raise PaymentsError("HTTP 500 from payments provider")

    monkeypatch.setattr("app.civic.modules.payments.client.PaymentsClient.create_customer", _fail)
    r = client.post("/billing/checkout", json={"tier": "supporter"}, headers=csrf_headers)
    assert r.status_code == 502

    monkeypatch.setattr("app.civic.modules.payments.client.PaymentsClient.create_customer", lambda self, **kw: "cus_1")
    monkeypatch.setattr(
        "app.civic.modules.payments.client.PaymentsClient.create_checkout_session",
        lambda self, **kw: "https://pay.example.com/c/xyz",
    )
    r = client.post("/billing/checkout", data={"tier": "supporter"}, headers=csrf_headers)
    assert r.status_code == 303
    assert r.headers["Location"] == "https://pay.example.com/c/xyz"
