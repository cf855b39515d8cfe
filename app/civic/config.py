import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    site_url: str

    payments_secret_key: str
    payments_webhook_secret: str
    payments_api_base: str
    payments_tier_prices: str

    activity_feed_size: int
    realtime_keepalive_seconds: int
    realtime_max_streams: int
    realtime_stream_max_seconds: int

    trusted_proxy_hops: int


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def parse_tier_prices(raw: str) -> dict[str, str]:
    """
    "supporter:price_123,patron:price_456" -> {"supporter": "price_123", "patron": "price_456"}
    Malformed pairs are skipped.
    """
    tiers: dict[str, str] = {}
    for chunk in (raw or "").split(","):
        tier_id, sep, price_id = chunk.partition(":")
        tier_id, price_id = tier_id.strip(), price_id.strip()
        if sep and tier_id and price_id:
            tiers[tier_id] = price_id
    return tiers


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///civic.db"),
        site_url=_getenv("SITE_URL", "http://localhost:8080"),
        payments_secret_key=_getenv("PAYMENTS_SECRET_KEY", ""),
        payments_webhook_secret=_getenv("PAYMENTS_WEBHOOK_SECRET", ""),
        payments_api_base=_getenv("PAYMENTS_API_BASE", "https://api.stripe.com"),
        payments_tier_prices=_getenv("PAYMENTS_TIER_PRICES", ""),
        activity_feed_size=_getenv_int("ACTIVITY_FEED_SIZE", 15),
        realtime_keepalive_seconds=_getenv_int("REALTIME_KEEPALIVE_SECONDS", 15),
        realtime_max_streams=_getenv_int("REALTIME_MAX_STREAMS", 6),
        realtime_stream_max_seconds=_getenv_int("REALTIME_STREAM_MAX_SECONDS", 300),
        trusted_proxy_hops=_getenv_int("TRUSTED_PROXY_HOPS", 0),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "SITE_URL": s.site_url,
        "PAYMENTS_SECRET_KEY": s.payments_secret_key,
        "PAYMENTS_WEBHOOK_SECRET": s.payments_webhook_secret,
        "PAYMENTS_API_BASE": s.payments_api_base,
        "PAYMENTS_TIERS": parse_tier_prices(s.payments_tier_prices),
        "ACTIVITY_FEED_SIZE": s.activity_feed_size,
        "REALTIME_KEEPALIVE_SECONDS": s.realtime_keepalive_seconds,
        "REALTIME_MAX_STREAMS": s.realtime_max_streams,
        "REALTIME_STREAM_MAX_SECONDS": s.realtime_stream_max_seconds,
        "TRUSTED_PROXY_HOPS": s.trusted_proxy_hops,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        "MAX_CONTENT_LENGTH": 1 * 1024 * 1024,
    }
