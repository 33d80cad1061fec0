"""
Application settings.

All configuration comes from the environment. A `.env` file in the
download-entitlements directory is loaded first, so local development can keep
credentials out of the shell:

- STORE_BACKEND: memory | supabase | redis
- SUPABASE_URL / SUPABASE_KEY: Supabase project (use a server-side key only)
- REDIS_URL: Redis connection URL
- STRIPE_WEBHOOK_SECRET: signing secret for the payment webhook endpoint
- STRIPE_SECRET_KEY: API key used to fetch checkout line items
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

env_path = Path(__file__).parent / ".env"
load_dotenv(dotenv_path=env_path)

STORE_BACKENDS = ("memory", "supabase", "redis")


def _int_env(name: str, default: int, *, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"Environment variable {name} must be >= {minimum}, got {value}")
    return value


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be a number, got {raw!r}") from None
    if value < 0:
        raise ValueError(f"Environment variable {name} must not be negative, got {value}")
    return value


@dataclass(frozen=True, slots=True)
class Settings:
    store_backend: str = "memory"

    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    redis_url: str = "redis://localhost:6379/0"

    stripe_webhook_secret: Optional[str] = None
    stripe_secret_key: Optional[str] = None
    stripe_webhook_tolerance_seconds: int = 300

    purchase_retention_days: int = 30
    store_timeout_seconds: float = 5.0

    # Caller-side polling while the payment webhook has not landed yet.
    lookup_retry_attempts: int = 5
    lookup_retry_delay_seconds: float = 2.0

    purchase_id_prefix: str = "cs_"
    purchase_id_max_length: int = 255

    product_catalog_path: str = "data/images.json"
    media_root: str = "."

    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.store_backend not in STORE_BACKENDS:
            raise ValueError(
                f"STORE_BACKEND must be one of {', '.join(STORE_BACKENDS)}, got {self.store_backend!r}"
            )

    @property
    def purchase_retention_seconds(self) -> int:
        return self.purchase_retention_days * 24 * 60 * 60


def load_settings() -> Settings:
    """Read settings from the environment (after `.env` has been loaded)."""

    return Settings(
        store_backend=os.getenv("STORE_BACKEND", "memory").strip().lower(),
        supabase_url=os.getenv("SUPABASE_URL"),
        supabase_key=os.getenv("SUPABASE_KEY"),
        redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
        stripe_webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET"),
        stripe_secret_key=os.getenv("STRIPE_SECRET_KEY"),
        stripe_webhook_tolerance_seconds=_int_env("STRIPE_WEBHOOK_TOLERANCE_SECONDS", 300, minimum=1),
        purchase_retention_days=_int_env("PURCHASE_RETENTION_DAYS", 30, minimum=1),
        store_timeout_seconds=_float_env("STORE_TIMEOUT_SECONDS", 5.0),
        lookup_retry_attempts=_int_env("LOOKUP_RETRY_ATTEMPTS", 5, minimum=1),
        lookup_retry_delay_seconds=_float_env("LOOKUP_RETRY_DELAY_SECONDS", 2.0),
        purchase_id_prefix=os.getenv("PURCHASE_ID_PREFIX", "cs_"),
        purchase_id_max_length=_int_env("PURCHASE_ID_MAX_LENGTH", 255, minimum=1),
        product_catalog_path=os.getenv("PRODUCT_CATALOG_PATH", "data/images.json"),
        media_root=os.getenv("MEDIA_ROOT", "."),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


__all__ = ["Settings", "STORE_BACKENDS", "load_settings"]
