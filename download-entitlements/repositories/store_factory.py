"""
Entitlement Store selection.

STORE_BACKEND picks the backend; remote clients are only created (and their
libraries only imported) for the backend actually in use.
"""

from __future__ import annotations

import logging

from repositories.entitlement_store import EntitlementStore
from settings import Settings

logger = logging.getLogger(__name__)


def build_store(settings: Settings) -> EntitlementStore:
    if settings.store_backend == "supabase":
        from repositories.client import create_supabase_client
        from repositories.supabase_store import SupabaseEntitlementStore

        store: EntitlementStore = SupabaseEntitlementStore(
            create_supabase_client(settings),
            retention_seconds=settings.purchase_retention_seconds,
        )
    elif settings.store_backend == "redis":
        from repositories.client import create_redis_client
        from repositories.redis_store import RedisEntitlementStore

        store = RedisEntitlementStore(
            create_redis_client(settings),
            retention_seconds=settings.purchase_retention_seconds,
        )
    else:
        from repositories.memory_store import InMemoryEntitlementStore

        store = InMemoryEntitlementStore()

    logger.info("Entitlement store ready", extra={"store_backend": settings.store_backend})
    return store


__all__ = ["build_store"]
