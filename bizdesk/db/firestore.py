"""Auth/document backend adapter on Firebase Firestore.

Only the collections the document backend was provisioned with are
served here; everything else stays in the local store in this mode.
"""

import inspect
import logging
from typing import Any

import firebase_admin
from firebase_admin import credentials, firestore_async

from bizdesk.core.circuit_breaker import CircuitBreakerOpen, CircuitBreakerRegistry
from bizdesk.core.config import Settings
from bizdesk.core.exceptions import DatabaseError, ExternalServiceError
from bizdesk.db.mapper import map_row, partial_to_row
from bizdesk.models.enums import EntityType
from bizdesk.models.records import Record

logger = logging.getLogger(__name__)

SUPPORTED_ENTITIES = frozenset(
    {
        EntityType.LEAD,
        EntityType.PRODUCT,
        EntityType.PURCHASE_ORDER,
        EntityType.APP_USER,
    }
)


def connect(settings: Settings) -> Any:
    """Initialize the default Firebase app and return an async Firestore client.

    Raises:
        ExternalServiceError: If Firebase cannot be initialized.
    """
    try:
        try:
            app = firebase_admin.get_app()
        except ValueError:
            cred = (
                credentials.Certificate(settings.FIREBASE_CREDENTIALS_PATH)
                if settings.FIREBASE_CREDENTIALS_PATH
                else credentials.ApplicationDefault()
            )
            app = firebase_admin.initialize_app(cred, {"projectId": settings.FIREBASE_PROJECT_ID})
        client = firestore_async.client(app)
    except Exception as e:
        logger.exception("Failed to initialize Firebase")
        raise ExternalServiceError("firebase", f"Failed to initialize Firestore: {e}") from e
    logger.info("Firestore client initialized", extra={"project_id": settings.FIREBASE_PROJECT_ID})
    return client


class FirestoreAdapter:
    """Collection-per-entity access to Firestore.

    The adapter does no visibility filtering and offers no live
    subscription; the data service filters reads itself.
    """

    def __init__(self, client: Any, breakers: CircuitBreakerRegistry | None = None) -> None:
        self._client = client
        self._breakers = breakers or CircuitBreakerRegistry("firestore")

    def supports(self, entity_type: EntityType) -> bool:
        return EntityType(entity_type) in SUPPORTED_ENTITIES

    def _collection(self, entity_type: EntityType) -> tuple[EntityType, str]:
        entity_type = EntityType(entity_type)
        if entity_type not in SUPPORTED_ENTITIES:
            raise DatabaseError(
                f"Firestore backend does not serve {entity_type.value}",
                table=entity_type.collection,
            )
        return entity_type, entity_type.collection

    async def _guard(self, name: str, action: str, operation: Any) -> Any:
        try:
            return await self._breakers.get(name).call_async(operation)
        except CircuitBreakerOpen:
            raise
        except Exception as e:
            logger.exception("Firestore %s failed", action, extra={"collection": name})
            raise DatabaseError(f"Failed to {action} {name}: {e}", table=name) from e

    async def query(self, entity_type: EntityType, requester_id: str | None = None) -> list[Record]:
        """Fetch every document of the collection; ``requester_id`` is ignored."""
        entity_type, name = self._collection(entity_type)

        async def fetch() -> list[Record]:
            records = []
            stream = self._client.collection(name).stream()
            if hasattr(stream, "__aiter__"):
                async for doc in stream:
                    records.append(_doc_to_record(entity_type, doc))
            else:
                for doc in await _resolve(stream):
                    records.append(_doc_to_record(entity_type, doc))
            return records

        return await self._guard(name, "query", fetch)

    async def insert(self, entity_type: EntityType, partial: Any) -> Record:
        """Create a document with a Firestore-assigned id."""
        entity_type, name = self._collection(entity_type)
        payload = partial_to_row(entity_type, partial)

        async def create() -> Record:
            doc_ref = self._client.collection(name).document()
            await _resolve(doc_ref.set(payload))
            return map_row(entity_type, {**payload, "id": doc_ref.id})

        return await self._guard(name, "insert into", create)

    async def update(self, entity_type: EntityType, record_id: str, partial: Any) -> Record | None:
        """Merge ``partial`` into the document and return the merged document."""
        entity_type, name = self._collection(entity_type)
        payload = partial_to_row(entity_type, partial)
        payload.pop("id", None)

        async def merge() -> Record | None:
            doc_ref = self._client.collection(name).document(record_id)
            await _resolve(doc_ref.set(payload, merge=True))
            snapshot = await _resolve(doc_ref.get())
            if not snapshot.exists:
                return None
            return map_row(entity_type, {**(snapshot.to_dict() or {}), "id": record_id})

        return await self._guard(name, "update", merge)

    async def delete(self, entity_type: EntityType, record_id: str) -> None:
        _, name = self._collection(entity_type)

        async def remove() -> None:
            await _resolve(self._client.collection(name).document(record_id).delete())

        await self._guard(name, "delete from", remove)


def _doc_to_record(entity_type: EntityType, doc: Any) -> Record:
    data = doc.to_dict() or {}
    return map_row(entity_type, {**data, "id": doc.id})


async def _resolve(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result
