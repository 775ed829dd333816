"""Persistence backends and boot-time backend selection."""

import logging
from typing import TYPE_CHECKING

from bizdesk.core.circuit_breaker import CircuitBreakerRegistry
from bizdesk.core.config import BackendConfig, BackendKind, Settings, get_settings
from bizdesk.db.local_store import LocalStore, LocalStoreWatcher
from bizdesk.db.mapper import map_row, partial_to_row, to_row

if TYPE_CHECKING:
    from bizdesk.services.data_service import DataService

logger = logging.getLogger(__name__)


async def connect_backend(settings: Settings | None = None) -> BackendConfig:
    """Pick and connect the backend once at boot.

    Supabase wins when configured, then Firebase; otherwise local-only.

    Raises:
        ExternalServiceError: If the configured backend cannot be reached.
    """
    settings = settings or get_settings()
    kind = settings.backend_kind
    if kind == BackendKind.RELATIONAL:
        from bizdesk.db import supabase

        return BackendConfig.relational(await supabase.connect(settings))
    if kind == BackendKind.AUTH_DOCUMENT:
        from bizdesk.db import firestore

        return BackendConfig.auth_document(firestore.connect(settings))
    logger.info("No remote backend configured, running local-only")
    return BackendConfig.local_only()


async def build_data_service(settings: Settings | None = None) -> "DataService":
    """Connect the configured backend and assemble a DataService around it."""
    from bizdesk.db.firestore import FirestoreAdapter
    from bizdesk.db.supabase import SupabaseAdapter
    from bizdesk.services.data_service import DataService

    settings = settings or get_settings()
    backend = await connect_backend(settings)
    store = LocalStore(
        settings.local_store_path,
        key_prefix=settings.LOCAL_STORE_PREFIX,
        version=settings.LOCAL_STORE_VERSION,
    )

    adapter = None
    if backend.is_remote:
        relational = backend.kind == BackendKind.RELATIONAL
        breakers = CircuitBreakerRegistry(
            "supabase" if relational else "firestore",
            failure_threshold=settings.CIRCUIT_BREAKER_FAILURE_THRESHOLD,
            recovery_timeout=settings.CIRCUIT_BREAKER_RECOVERY_SECONDS,
        )
        adapter_cls = SupabaseAdapter if relational else FirestoreAdapter
        adapter = adapter_cls(backend.client, breakers=breakers)

    return DataService(backend, store, adapter=adapter, watch_local=settings.LOCAL_STORE_WATCH)


__all__ = [
    "LocalStore",
    "LocalStoreWatcher",
    "build_data_service",
    "connect_backend",
    "map_row",
    "partial_to_row",
    "to_row",
]
