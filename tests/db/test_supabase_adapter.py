"""Tests for the Supabase adapter."""

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from bizdesk.core.circuit_breaker import CircuitBreakerOpen, CircuitBreakerRegistry
from bizdesk.core.exceptions import DatabaseError, ExternalServiceError
from bizdesk.db.supabase import SupabaseAdapter, is_schema_mismatch, visibility_filter
from bizdesk.models.enums import EntityType, LeadStatus
from bizdesk.models.records import Lead


class FakeAPIError(Exception):
    """Shape of a PostgREST error: message plus code."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


def _response(data: Any) -> MagicMock:
    response = MagicMock()
    response.data = data
    return response


LEAD_ROWS = [
    {"id": "2", "name": "Ravi", "status": "Qualified", "visibility": "public"},
    {"id": "1", "name": "Asha", "status": "New", "visibility": "private", "ownerId": "u1"},
]


class TestSchemaMismatchDetection:
    """Tests for is_schema_mismatch."""

    @pytest.mark.parametrize(
        "error",
        [
            FakeAPIError("column leads.ownerId does not exist", code="42703"),
            FakeAPIError("Could not find the 'sharedWith' column of 'leads' in the schema cache", code="PGRST204"),
            Exception('column "visibility" does not exist'),
        ],
    )
    def test_undefined_column_errors_detected(self, error: Exception) -> None:
        assert is_schema_mismatch(error)

    def test_other_errors_not_detected(self) -> None:
        assert not is_schema_mismatch(FakeAPIError("permission denied for table leads", code="42501"))
        assert not is_schema_mismatch(ConnectionError("connection refused"))


class TestVisibilityFilter:
    """Tests for the server-side visibility filter."""

    def test_requester_id_is_quoted(self) -> None:
        assert visibility_filter("u1") == 'visibility.eq.public,ownerId.eq."u1",sharedWith.cs.{"u1"}'

    def test_reserved_characters_cannot_add_clauses(self) -> None:
        rendered = visibility_filter("u1,visibility.eq.private")

        assert rendered == (
            "visibility.eq.public,"
            'ownerId.eq."u1,visibility.eq.private",'
            'sharedWith.cs.{"u1,visibility.eq.private"}'
        )

    def test_quotes_and_backslashes_escaped(self) -> None:
        rendered = visibility_filter('a"b\\c')

        assert 'ownerId.eq."a\\"b\\\\c"' in rendered

    @pytest.mark.asyncio
    async def test_hostile_requester_id_sent_quoted(self) -> None:
        client = MagicMock()
        select = client.table.return_value.select.return_value
        select.or_.return_value.order.return_value.execute.return_value = _response([])

        await SupabaseAdapter(client).query(EntityType.LEAD, "x),visibility.eq.private,(")

        sent = select.or_.call_args.args[0]
        assert sent.startswith('visibility.eq.public,ownerId.eq."x),visibility.eq.private,("')


class TestQuery:
    """Tests for SupabaseAdapter.query."""

    @pytest.mark.asyncio
    async def test_requester_filter_pushed_to_server(self) -> None:
        client = MagicMock()
        chain = client.table.return_value.select.return_value.or_.return_value.order.return_value
        chain.execute.return_value = _response(LEAD_ROWS)

        leads = await SupabaseAdapter(client).query(EntityType.LEAD, "u1")

        client.table.assert_called_with("leads")
        client.table.return_value.select.return_value.or_.assert_called_once_with(visibility_filter("u1"))
        client.table.return_value.select.return_value.or_.return_value.order.assert_called_once_with(
            "id", desc=True
        )
        assert [lead.id for lead in leads] == ["2", "1"]
        assert leads[0].status is LeadStatus.QUALIFIED

    @pytest.mark.asyncio
    async def test_no_requester_filters_public_only(self) -> None:
        client = MagicMock()
        chain = client.table.return_value.select.return_value.eq.return_value.order.return_value
        chain.execute.return_value = _response(LEAD_ROWS[:1])

        leads = await SupabaseAdapter(client).query(EntityType.LEAD)

        client.table.return_value.select.return_value.eq.assert_called_once_with("visibility", "public")
        assert len(leads) == 1

    @pytest.mark.asyncio
    async def test_entities_without_visibility_are_not_filtered(self) -> None:
        client = MagicMock()
        client.table.return_value.select.return_value.order.return_value.execute.return_value = _response(
            [{"id": "c1", "name": "Acme"}]
        )

        clients = await SupabaseAdapter(client).query(EntityType.CLIENT, "u1")

        client.table.return_value.select.return_value.or_.assert_not_called()
        assert clients[0].name == "Acme"

    @pytest.mark.asyncio
    async def test_schema_mismatch_retries_unfiltered(self) -> None:
        """Test an undefined-column error still yields the full result."""
        client = MagicMock()
        select = client.table.return_value.select.return_value
        select.or_.return_value.order.return_value.execute.side_effect = FakeAPIError(
            'column leads.ownerId does not exist', code="42703"
        )
        select.order.return_value.execute.return_value = _response(
            [{"id": "2", "name": "Ravi"}, {"id": "1", "name": "Asha"}]
        )

        leads = await SupabaseAdapter(client).query(EntityType.LEAD, "u1")

        assert [lead.name for lead in leads] == ["Ravi", "Asha"]
        select.order.return_value.execute.assert_called_once()

    @pytest.mark.asyncio
    async def test_schema_mismatch_does_not_trip_breaker(self) -> None:
        client = MagicMock()
        select = client.table.return_value.select.return_value
        select.or_.return_value.order.return_value.execute.side_effect = FakeAPIError("x", code="PGRST204")
        select.order.return_value.execute.return_value = _response([])
        breakers = CircuitBreakerRegistry("supabase", failure_threshold=1)

        await SupabaseAdapter(client, breakers).query(EntityType.LEAD, "u1")

        assert breakers.get("leads").failure_count == 0

    @pytest.mark.asyncio
    async def test_other_errors_raise_database_error(self) -> None:
        client = MagicMock()
        chain = client.table.return_value.select.return_value.or_.return_value.order.return_value
        chain.execute.side_effect = ConnectionError("connection refused")

        with pytest.raises(DatabaseError, match="connection refused"):
            await SupabaseAdapter(client).query(EntityType.LEAD, "u1")

    @pytest.mark.asyncio
    async def test_async_client_results_awaited(self) -> None:
        client = MagicMock()
        chain = client.table.return_value.select.return_value.order.return_value
        chain.execute = AsyncMock(return_value=_response([{"id": "t1", "subject": "Printer jam"}]))

        tickets = await SupabaseAdapter(client).query(EntityType.TICKET)

        assert tickets[0].subject == "Printer jam"


class TestCircuitBreaking:
    """Tests for per-table circuit breakers."""

    @pytest.mark.asyncio
    async def test_failing_table_opens_only_its_breaker(self) -> None:
        client = MagicMock()

        def table(name: str) -> MagicMock:
            builder = MagicMock()
            execute = builder.select.return_value.or_.return_value.order.return_value.execute
            if name == "leads":
                execute.side_effect = ConnectionError("timeout")
            else:
                execute.return_value = _response([{"id": "p1", "name": "Desk"}])
            return builder

        client.table.side_effect = table
        adapter = SupabaseAdapter(client, CircuitBreakerRegistry("supabase", failure_threshold=2))

        for _ in range(2):
            with pytest.raises(DatabaseError):
                await adapter.query(EntityType.LEAD, "u1")

        with pytest.raises(CircuitBreakerOpen):
            await adapter.query(EntityType.LEAD, "u1")

        products = await adapter.query(EntityType.PRODUCT, "u1")
        assert products[0].name == "Desk"


class TestWrites:
    """Tests for insert/update/delete."""

    @pytest.mark.asyncio
    async def test_insert_returns_stored_row(self) -> None:
        client = MagicMock()
        client.table.return_value.insert.return_value.execute.return_value = _response(
            [{"id": "42", "name": "Asha", "ownerId": "u1", "visibility": "private"}]
        )

        lead = await SupabaseAdapter(client).insert(
            EntityType.LEAD, Lead(name="Asha", owner_id="u1", visibility="private")
        )

        payload = client.table.return_value.insert.call_args.args[0]
        assert "id" not in payload
        assert payload["ownerId"] == "u1"
        assert lead.id == "42"

    @pytest.mark.asyncio
    async def test_insert_schema_mismatch_retries_without_visibility_columns(self) -> None:
        client = MagicMock()
        client.table.return_value.insert.return_value.execute.side_effect = [
            FakeAPIError("Could not find the 'ownerId' column", code="PGRST204"),
            _response([{"id": "43", "name": "Asha"}]),
        ]

        lead = await SupabaseAdapter(client).insert(EntityType.LEAD, {"name": "Asha", "ownerId": "u1"})

        retry_payload = client.table.return_value.insert.call_args_list[1].args[0]
        assert "ownerId" not in retry_payload
        assert "visibility" not in retry_payload
        assert "sharedWith" not in retry_payload
        assert retry_payload["name"] == "Asha"
        assert lead.id == "43"

    @pytest.mark.asyncio
    async def test_insert_without_returned_row_raises(self) -> None:
        client = MagicMock()
        client.table.return_value.insert.return_value.execute.return_value = _response([])

        with pytest.raises(DatabaseError, match="returned no row"):
            await SupabaseAdapter(client).insert(EntityType.CLIENT, {"name": "Acme"})

    @pytest.mark.asyncio
    async def test_update_filters_by_id(self) -> None:
        client = MagicMock()
        client.table.return_value.update.return_value.eq.return_value.execute.return_value = _response([])

        await SupabaseAdapter(client).update(EntityType.LEAD, "7", {"status": LeadStatus.WON})

        client.table.return_value.update.assert_called_once_with({"status": "Won"})
        client.table.return_value.update.return_value.eq.assert_called_once_with("id", "7")

    @pytest.mark.asyncio
    async def test_update_returns_stored_row(self) -> None:
        client = MagicMock()
        client.table.return_value.update.return_value.eq.return_value.execute.return_value = _response(
            [{"id": "7", "name": "Asha", "status": "Won", "visibility": "public"}]
        )

        lead = await SupabaseAdapter(client).update(EntityType.LEAD, "7", {"status": "Won"})

        assert lead is not None
        assert lead.name == "Asha"
        assert lead.status is LeadStatus.WON

    @pytest.mark.asyncio
    async def test_update_without_returned_row_yields_none(self) -> None:
        client = MagicMock()
        client.table.return_value.update.return_value.eq.return_value.execute.return_value = _response([])

        assert await SupabaseAdapter(client).update(EntityType.LEAD, "7", {"status": "Won"}) is None

    @pytest.mark.asyncio
    async def test_delete_filters_by_id(self) -> None:
        client = MagicMock()
        client.table.return_value.delete.return_value.eq.return_value.execute.return_value = _response([])

        await SupabaseAdapter(client).delete(EntityType.PRODUCT, "p1")

        client.table.assert_called_with("products")
        client.table.return_value.delete.return_value.eq.assert_called_once_with("id", "p1")

    @pytest.mark.asyncio
    async def test_delete_failure_raises_database_error(self) -> None:
        client = MagicMock()
        client.table.return_value.delete.return_value.eq.return_value.execute.side_effect = Exception("boom")

        with pytest.raises(DatabaseError):
            await SupabaseAdapter(client).delete(EntityType.PRODUCT, "p1")


class TestWatch:
    """Tests for realtime subscriptions."""

    @pytest.mark.asyncio
    async def test_watch_opens_channel_and_forwards_events(self) -> None:
        client = MagicMock()
        channel = client.channel.return_value
        channel.subscribe = AsyncMock()
        client.remove_channel = AsyncMock()
        on_change = MagicMock()

        unsubscribe = await SupabaseAdapter(client).watch(EntityType.LEAD, on_change)

        client.channel.assert_called_once_with("public:leads")
        kwargs = channel.on_postgres_changes.call_args.kwargs
        assert channel.on_postgres_changes.call_args.args == ("*",)
        assert kwargs["schema"] == "public"
        assert kwargs["table"] == "leads"

        kwargs["callback"]({"eventType": "INSERT"})
        on_change.assert_called_once()

        await unsubscribe()
        client.remove_channel.assert_awaited_once_with(channel)

    @pytest.mark.asyncio
    async def test_watch_failure_raises_external_service_error(self) -> None:
        client = MagicMock()
        client.channel.return_value.subscribe = AsyncMock(side_effect=RuntimeError("socket closed"))

        with pytest.raises(ExternalServiceError):
            await SupabaseAdapter(client).watch(EntityType.LEAD, MagicMock())
