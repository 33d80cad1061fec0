"""
Store client initialization.

This module contains *only* connection setup for the remote store backends and
hands ready clients to the store implementations.

Settings used (see settings.py):
- SUPABASE_URL: Your Supabase project URL
- SUPABASE_KEY: Your Supabase API key (use a server-side key only on the backend)
- REDIS_URL: Redis connection URL
- STORE_TIMEOUT_SECONDS: applied to every store round trip
"""

from __future__ import annotations

from settings import Settings


def create_supabase_client(settings: Settings):
    """Create the official Supabase client with a short request timeout."""

    # The dependency is `supabase` (supabase-py). If your editor can't resolve it,
    # install it in your environment: `pip install supabase`.
    from supabase import ClientOptions, create_client  # type: ignore[import-not-found]

    if not settings.supabase_url:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_URL. "
            "Set SUPABASE_URL to your Supabase project URL."
        )

    if not settings.supabase_key:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_KEY. "
            "Set SUPABASE_KEY to your Supabase API key."
        )

    options = ClientOptions(postgrest_client_timeout=settings.store_timeout_seconds)
    return create_client(settings.supabase_url, settings.supabase_key, options=options)


def create_redis_client(settings: Settings):
    """Create a redis-py client returning decoded strings."""

    import redis

    return redis.Redis.from_url(
        settings.redis_url,
        decode_responses=True,
        socket_timeout=settings.store_timeout_seconds,
        socket_connect_timeout=settings.store_timeout_seconds,
    )


__all__ = ["create_redis_client", "create_supabase_client"]
