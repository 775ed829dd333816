"""Relational backend adapter on Supabase (PostgREST + Realtime)."""

import inspect
import logging
import re
from collections.abc import Awaitable, Callable
from typing import Any

from supabase import AsyncClient, acreate_client

from bizdesk.core.circuit_breaker import CircuitBreakerOpen, CircuitBreakerRegistry
from bizdesk.core.config import Settings
from bizdesk.core.exceptions import DatabaseError, ExternalServiceError, SchemaMismatchError
from bizdesk.db.mapper import map_row, map_rows, partial_to_row
from bizdesk.models.enums import EntityType, Visibility
from bizdesk.models.records import VISIBILITY_COLUMNS, Record

logger = logging.getLogger(__name__)

# Postgres undefined_column and PostgREST schema cache miss
_UNDEFINED_COLUMN_CODES = frozenset({"42703", "PGRST204"})
_MISSING_COLUMN_RE = re.compile(
    r"column .* does not exist|could not find the .* column", re.IGNORECASE
)

AsyncUnsubscribe = Callable[[], Awaitable[None]]


def is_schema_mismatch(error: Exception) -> bool:
    """Whether a backend error means the table lacks a referenced column."""
    code = getattr(error, "code", None)
    if code is not None and str(code) in _UNDEFINED_COLUMN_CODES:
        return True
    text = f"{getattr(error, 'message', '') or ''} {error}"
    return any(c in text for c in _UNDEFINED_COLUMN_CODES) or bool(_MISSING_COLUMN_RE.search(text))


def _quote(value: str) -> str:
    """Double-quote a PostgREST filter value so reserved characters stay literal."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def visibility_filter(requester_id: str) -> str:
    """PostgREST ``or`` filter for records visible to ``requester_id``."""
    quoted = _quote(requester_id)
    return (
        f"visibility.eq.{Visibility.PUBLIC.value},"
        f"ownerId.eq.{quoted},"
        f"sharedWith.cs.{{{quoted}}}"
    )


async def _resolve(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


async def connect(settings: Settings) -> AsyncClient:
    """Create the async Supabase client used for queries and realtime.

    Raises:
        ExternalServiceError: If the client cannot be created.
    """
    try:
        client = await acreate_client(
            settings.SUPABASE_URL,
            settings.SUPABASE_ANON_KEY.get_secret_value(),
        )
    except Exception as e:
        logger.exception("Failed to initialize Supabase client")
        raise ExternalServiceError("supabase", f"Failed to initialize database connection: {e}") from e
    logger.info("Supabase client initialized successfully")
    return client


class SupabaseAdapter:
    """Table-per-entity access to Supabase.

    Accepts either the sync or the async client; builder results that are
    awaitable are awaited. Each table has its own circuit breaker.
    """

    def __init__(self, client: Any, breakers: CircuitBreakerRegistry | None = None) -> None:
        self._client = client
        self._breakers = breakers or CircuitBreakerRegistry("supabase")

    def supports(self, entity_type: EntityType) -> bool:
        return True

    async def _execute(self, table: str, build: Callable[[], Any], action: str) -> Any:
        breaker = self._breakers.get(table)
        breaker.check()
        try:
            response = await _resolve(build().execute())
        except CircuitBreakerOpen:
            raise
        except Exception as e:
            if is_schema_mismatch(e):
                # The server answered; an old schema is not an outage
                breaker.record_success()
                raise SchemaMismatchError(table, str(e)) from e
            breaker.record_failure()
            logger.exception("Supabase %s failed", action, extra={"table": table})
            raise DatabaseError(f"Failed to {action} {table}: {e}", table=table) from e
        breaker.record_success()
        return response

    async def query(self, entity_type: EntityType, requester_id: str | None = None) -> list[Record]:
        """Fetch all rows visible to ``requester_id``, newest id first.

        Visibility-bearing tables are filtered server side. If the table has
        no visibility columns the query is retried once unfiltered.
        """
        entity_type = EntityType(entity_type)
        table = entity_type.collection

        def build(filtered: bool) -> Any:
            q = self._client.table(table).select("*")
            if filtered and entity_type.has_visibility:
                if requester_id:
                    q = q.or_(visibility_filter(requester_id))
                else:
                    q = q.eq("visibility", Visibility.PUBLIC.value)
            return q.order("id", desc=True)

        try:
            response = await self._execute(table, lambda: build(True), "query")
        except SchemaMismatchError as e:
            logger.warning(
                "Visibility columns missing, retrying query unfiltered",
                extra={"table": table, "error": e.message},
            )
            response = await self._execute(table, lambda: build(False), "query")
        return map_rows(entity_type, response.data or [])

    async def insert(self, entity_type: EntityType, partial: Any) -> Record:
        """Insert one record and return the row as stored."""
        entity_type = EntityType(entity_type)
        table = entity_type.collection
        payload = partial_to_row(entity_type, partial)

        try:
            response = await self._execute(
                table, lambda: self._client.table(table).insert(payload), "insert into"
            )
        except SchemaMismatchError as e:
            logger.warning(
                "Visibility columns missing, retrying insert without them",
                extra={"table": table, "error": e.message},
            )
            stripped = _without_visibility(payload)
            response = await self._execute(
                table, lambda: self._client.table(table).insert(stripped), "insert into"
            )

        rows = response.data or []
        if not rows:
            raise DatabaseError(f"Insert into {table} returned no row", table=table)
        return map_row(entity_type, rows[0])

    async def update(self, entity_type: EntityType, record_id: str, partial: Any) -> Record | None:
        """Patch one row and return it as stored, or None if no row came back."""
        entity_type = EntityType(entity_type)
        table = entity_type.collection
        payload = partial_to_row(entity_type, partial)
        payload.pop("id", None)

        try:
            response = await self._execute(
                table,
                lambda: self._client.table(table).update(payload).eq("id", record_id),
                "update",
            )
        except SchemaMismatchError as e:
            logger.warning(
                "Visibility columns missing, retrying update without them",
                extra={"table": table, "record_id": record_id, "error": e.message},
            )
            stripped = _without_visibility(payload)
            response = await self._execute(
                table,
                lambda: self._client.table(table).update(stripped).eq("id", record_id),
                "update",
            )

        rows = response.data or []
        return map_row(entity_type, rows[0]) if rows else None

    async def delete(self, entity_type: EntityType, record_id: str) -> None:
        table = EntityType(entity_type).collection
        await self._execute(
            table, lambda: self._client.table(table).delete().eq("id", record_id), "delete from"
        )

    async def watch(self, entity_type: EntityType, on_change: Callable[[], None]) -> AsyncUnsubscribe:
        """Subscribe to every change on the entity's table.

        Returns:
            Coroutine function that removes the realtime channel.

        Raises:
            ExternalServiceError: If the channel cannot be opened.
        """
        table = EntityType(entity_type).collection

        def handle(_payload: Any) -> None:
            on_change()

        try:
            channel = self._client.channel(f"public:{table}")
            channel.on_postgres_changes("*", schema="public", table=table, callback=handle)
            await _resolve(channel.subscribe())
        except Exception as e:
            logger.warning("Realtime subscription failed", extra={"table": table}, exc_info=True)
            raise ExternalServiceError("supabase-realtime", f"Cannot watch {table}: {e}") from e

        logger.info("Realtime channel opened", extra={"table": table})

        async def unsubscribe() -> None:
            await _resolve(self._client.remove_channel(channel))
            logger.info("Realtime channel closed", extra={"table": table})

        return unsubscribe


def _without_visibility(payload: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in payload.items() if k not in VISIBILITY_COLUMNS}
