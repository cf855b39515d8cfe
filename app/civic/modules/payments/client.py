from __future__ import annotations

import json
import time
import uuid
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any


class PaymentsError(RuntimeError):
    pass


class PaymentsRateLimited(PaymentsError):
    pass


def flatten_form(fields: dict[str, Any], prefix: str = "") -> list[tuple[str, str]]:
    """
    Bracket-encode nested dicts/lists the way the provider's form API expects:
    {"metadata": {"userId": 1}} -> [("metadata[userId]", "1")]
    """
    pairs: list[tuple[str, str]] = []
    for key, value in fields.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, dict):
            pairs.extend(flatten_form(value, name))
        elif isinstance(value, (list, tuple)):
            for i, item in enumerate(value):
                item_name = f"{name}[{i}]"
                if isinstance(item, dict):
                    pairs.extend(flatten_form(item, item_name))
                else:
                    pairs.append((item_name, str(item)))
        elif isinstance(value, bool):
            pairs.append((name, "true" if value else "false"))
        else:
            pairs.append((name, str(value)))
    return pairs


@dataclass(frozen=True)
class PaymentsClient:
    secret_key: str
    base_url: str = "https://api.stripe.com"
    timeout_seconds: int = 30

    def request_json(
        self,
        method: str,
        path: str,
        *,
        fields: dict[str, Any] | None = None,
        retries: int = 2,
        idempotency_key: str | None = None,
    ) -> dict[str, Any]:
        """
        Call the provider, retrying on 429 and transport errors. POSTs carry one
        Idempotency-Key for every attempt, so a retry after a lost response
        replays the first result instead of creating a second object.
        """
        url = self.base_url.rstrip("/") + path
        data = urllib.parse.urlencode(flatten_form(fields or {})).encode("utf-8") if fields else None
        if method.upper() == "POST" and idempotency_key is None:
            idempotency_key = uuid.uuid4().hex

        last_err: Exception | None = None
        for attempt in range(retries + 1):
            try:
                req = urllib.request.Request(url, data=data, method=method)
                req.add_header("Authorization", f"Bearer {self.secret_key}")
                req.add_header("Accept", "application/json")
                if data is not None:
                    req.add_header("Content-Type", "application/x-www-form-urlencoded")
                if idempotency_key:
                    req.add_header("Idempotency-Key", idempotency_key)
                with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                    raw = resp.read()
                    try:
                        return json.loads(raw.decode("utf-8"))
                    except Exception as e:
                        raise PaymentsError(f"Invalid JSON from payments provider ({path})") from e
            except urllib.error.HTTPError as e:
                if e.code == 429:
                    time.sleep(min(2 * (attempt + 1), 10))
                    last_err = PaymentsRateLimited("Rate limited (429)")
                    continue
                try:
                    body = e.read().decode("utf-8", errors="ignore")
                except Exception:
                    body = ""
                raise PaymentsError(f"HTTP {e.code} from payments provider: {body[:300]}") from e
            except PaymentsError:
                raise
            except Exception as e:
                last_err = e
                time.sleep(min(1 * (attempt + 1), 5))
                continue
        raise PaymentsError(f"Payments request failed after retries: {last_err}")

    def create_customer(self, *, email: str, user_id: int) -> str:
        j = self.request_json("POST", "/v1/customers", fields={"email": email, "metadata": {"user_id": user_id}})
        customer_id = j.get("id")
        if not customer_id:
            raise PaymentsError("Customer creation returned no id")
        return str(customer_id)

    def create_checkout_session(
        self,
        *,
        price_id: str,
        customer_id: str | None,
        success_url: str,
        cancel_url: str,
        metadata: dict[str, Any],
    ) -> str:
        fields: dict[str, Any] = {
            "mode": "subscription",
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
        }
        if customer_id:
            fields["customer"] = customer_id
        j = self.request_json("POST", "/v1/checkout/sessions", fields=fields)
        url = j.get("url")
        if not url:
            raise PaymentsError("No se pudo crear la sesión de pago")
        return str(url)
