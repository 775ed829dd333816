"""Data access facade used by every consumer.

Routes each operation to the backend chosen at boot, mirrors remote reads
into the local store, writes through to the local store and notifies
subscribers after every successful write.
"""

import asyncio
import logging
import uuid
from collections.abc import Callable
from functools import partial as bind
from typing import Any

from bizdesk.core.config import BackendConfig, BackendKind
from bizdesk.core.exceptions import ExternalServiceError, NotFoundError, ValidationError
from bizdesk.core.notifier import ChangeCallback, ChangeNotifier, Unsubscribe
from bizdesk.db.firestore import FirestoreAdapter
from bizdesk.db.local_store import LocalStore, LocalStoreWatcher
from bizdesk.db.mapper import map_row
from bizdesk.db.supabase import AsyncUnsubscribe, SupabaseAdapter
from bizdesk.models.enums import EntityType, Visibility
from bizdesk.models.records import (
    AppUser,
    Client,
    FinanceRecord,
    Invoice,
    Lead,
    Product,
    Proposal,
    PurchaseOrder,
    Record,
    Ticket,
    TimesheetEntry,
)
from bizdesk.services.dashboard import DashboardStats, compute_dashboard_stats

logger = logging.getLogger(__name__)


def is_visible(record: Record, requester_id: str | None) -> bool:
    """Whether ``requester_id`` may see ``record``.

    Public records are visible to everyone; otherwise only the owner and
    the users it is shared with. Entities without visibility are public.
    """
    visibility = getattr(record, "visibility", Visibility.PUBLIC) or Visibility.PUBLIC
    if visibility == Visibility.PUBLIC:
        return True
    if not requester_id:
        return False
    if requester_id == getattr(record, "owner_id", ""):
        return True
    return requester_id in getattr(record, "shared_with", [])


def _adapter_for(backend: BackendConfig) -> Any:
    if backend.kind == BackendKind.RELATIONAL:
        return SupabaseAdapter(backend.client)
    if backend.kind == BackendKind.AUTH_DOCUMENT:
        return FirestoreAdapter(backend.client)
    return None


class DataService:
    """Backend-agnostic CRUD for every entity type.

    Args:
        backend: Backend selected once at boot.
        local_store: Offline cache and fallback.
        notifier: Change notifier; a private one is created if omitted.
        adapter: Remote adapter override, mainly for tests.
        watch_local: Start a cross-process watcher on the local store.
    """

    def __init__(
        self,
        backend: BackendConfig,
        local_store: LocalStore,
        notifier: ChangeNotifier | None = None,
        *,
        adapter: Any = None,
        watch_local: bool = True,
    ) -> None:
        self.backend = backend
        self.local_store = local_store
        self.notifier = notifier or ChangeNotifier()
        self._adapter = adapter if adapter is not None else _adapter_for(backend)
        self._watcher = LocalStoreWatcher(local_store, self.notifier) if watch_local else None
        self._unwatch: dict[EntityType, AsyncUnsubscribe] = {}
        self._started = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Open realtime channels and start the local store watcher."""
        if self._started:
            return
        self._started = True
        if self._adapter is not None and hasattr(self._adapter, "watch"):
            for entity_type in EntityType:
                try:
                    self._unwatch[entity_type] = await self._adapter.watch(
                        entity_type, bind(self.notifier.publish, entity_type)
                    )
                except ExternalServiceError:
                    logger.warning(
                        "Live updates unavailable for entity type",
                        extra={"entity_type": entity_type.value},
                    )
        if self._watcher is not None:
            await self._watcher.start()
        logger.info("Data service started", extra={"backend": self.backend.kind.value})

    async def close(self) -> None:
        """Tear down realtime channels and the local store watcher."""
        for entity_type, unsubscribe in list(self._unwatch.items()):
            try:
                await unsubscribe()
            except Exception:
                logger.warning(
                    "Failed to close realtime channel",
                    extra={"entity_type": entity_type.value},
                    exc_info=True,
                )
        self._unwatch.clear()
        if self._watcher is not None:
            await self._watcher.stop()
        self._started = False

    async def __aenter__(self) -> "DataService":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def subscribe_to_data(self, entity_type: EntityType, callback: ChangeCallback) -> Unsubscribe:
        """Register ``callback`` for changes to ``entity_type``."""
        return self.notifier.subscribe(entity_type, callback)

    # ------------------------------------------------------------------
    # Generic operations
    # ------------------------------------------------------------------

    def _remote_for(self, entity_type: EntityType) -> Any:
        if self._adapter is None or not self._adapter.supports(entity_type):
            return None
        return self._adapter

    def _visible_local(self, entity_type: EntityType, requester_id: str | None) -> list[Any]:
        rows = self.local_store.load(entity_type.collection)
        records = [map_row(entity_type, row) for row in rows]
        return [r for r in records if is_visible(r, requester_id)]

    def _mirror(self, entity_type: EntityType, records: list[Record], requester_id: str | None) -> None:
        """Merge a remote result into the local snapshot without publishing.

        Cached records inside the requester's visible scope that the remote
        no longer returns are dropped; records outside it are kept.
        """
        collection = entity_type.collection
        cached = self.local_store.load(collection)
        fresh_ids = {r.id for r in records}
        kept = []
        for row in cached:
            if str(row.get("id", "")) in fresh_ids:
                continue
            if is_visible(map_row(entity_type, row), requester_id):
                continue
            kept.append(row)
        merged = [r.to_dict() for r in records] + kept
        if merged != cached:
            self.local_store.save(collection, merged)

    def _write_local(self, entity_type: EntityType, transform: Callable[[list[dict]], list[dict]]) -> None:
        collection = entity_type.collection
        self.local_store.save(collection, transform(self.local_store.load(collection)))

    def _require_local(self, entity_type: EntityType, record_id: str) -> None:
        rows = self.local_store.load(entity_type.collection)
        if not any(str(row.get("id", "")) == record_id for row in rows):
            raise NotFoundError(entity_type.value, record_id)

    @staticmethod
    def _check_ownership(record: Record) -> None:
        visibility = getattr(record, "visibility", Visibility.PUBLIC) or Visibility.PUBLIC
        if visibility != Visibility.PUBLIC and not getattr(record, "owner_id", ""):
            raise ValidationError(
                f"A {getattr(visibility, 'value', visibility)} record needs an owner",
                field="owner_id",
            )

    async def list_records(self, entity_type: EntityType, requester_id: str | None = None) -> list[Any]:
        """Records of ``entity_type`` visible to ``requester_id``. Never raises."""
        entity_type = EntityType(entity_type)
        remote = self._remote_for(entity_type)
        if remote is None:
            return self._visible_local(entity_type, requester_id)

        try:
            records = await remote.query(entity_type, requester_id)
        except Exception as e:
            logger.warning(
                "Remote read failed, serving local snapshot",
                extra={"entity_type": entity_type.value, "error": str(e)},
            )
            return self._visible_local(entity_type, requester_id)

        if self.backend.kind != BackendKind.RELATIONAL:
            records = [r for r in records if is_visible(r, requester_id)]
        self._mirror(entity_type, records, requester_id)
        return records

    async def add_record(self, entity_type: EntityType, partial: Any, owner_id: str | None = None) -> Any:
        """Create a record and return it with its assigned id.

        Raises:
            ValidationError: If a non-public record has no owner.
            DatabaseError: If the remote insert fails.
        """
        entity_type = EntityType(entity_type)
        record = map_row(entity_type, partial).copy_with(id="")
        if entity_type.has_visibility and owner_id and not record.owner_id:
            record = record.copy_with(owner_id=owner_id)
        self._check_ownership(record)

        remote = self._remote_for(entity_type)
        if remote is not None:
            created = await remote.insert(entity_type, record)
        else:
            created = record.copy_with(id=str(uuid.uuid4()))

        self._write_local(
            entity_type,
            lambda rows: [created.to_dict(), *(r for r in rows if str(r.get("id", "")) != created.id)],
        )
        self.notifier.publish(entity_type)
        logger.info(
            "Record created",
            extra={"entity_type": entity_type.value, "record_id": created.id},
        )
        return created

    async def update_record(self, entity_type: EntityType, record: Any) -> Any:
        """Replace a whole record (last write wins).

        Raises:
            ValidationError: If the record has no id or breaks the ownership rule.
            NotFoundError: In local-only mode, if no record has that id.
            DatabaseError: If the remote update fails.
        """
        entity_type = EntityType(entity_type)
        record = map_row(entity_type, record)
        if not record.id:
            raise ValidationError("Cannot update a record without an id", field="id")
        self._check_ownership(record)

        remote = self._remote_for(entity_type)
        if remote is not None:
            await remote.update(entity_type, record.id, record)
        else:
            self._require_local(entity_type, record.id)

        row = record.to_dict()

        def replace(rows: list[dict]) -> list[dict]:
            if any(str(r.get("id", "")) == record.id for r in rows):
                return [row if str(r.get("id", "")) == record.id else r for r in rows]
            return [row, *rows]

        self._write_local(entity_type, replace)
        self.notifier.publish(entity_type)
        return record

    async def update_status(self, entity_type: EntityType, record_id: str, status: Any) -> None:
        """Patch only the status of one record.

        Raises:
            ValidationError: If ``status`` is empty.
            NotFoundError: In local-only mode, if no record has that id.
            DatabaseError: If the remote update fails.
        """
        entity_type = EntityType(entity_type)
        if status is None or status == "":
            raise ValidationError("Status is required", field="status")
        sample = map_row(entity_type, {"status": status})
        if not hasattr(sample, "status"):
            raise ValidationError(f"{entity_type.value} records have no status", field="status")
        wire_status = getattr(sample.status, "value", sample.status)

        stored = None
        remote = self._remote_for(entity_type)
        if remote is not None:
            stored = await remote.update(entity_type, record_id, {"status": wire_status})
        else:
            self._require_local(entity_type, record_id)

        def patch(rows: list[dict]) -> list[dict]:
            if any(str(r.get("id", "")) == record_id for r in rows):
                return [{**r, "status": wire_status} if str(r.get("id", "")) == record_id else r for r in rows]
            # Not cached yet: take the row the backend returned
            if isinstance(stored, Record):
                return [stored.to_dict(), *rows]
            return rows

        self._write_local(entity_type, patch)
        self.notifier.publish(entity_type)
        logger.info(
            "Record status updated",
            extra={"entity_type": entity_type.value, "record_id": record_id, "status": wire_status},
        )

    async def delete_record(self, entity_type: EntityType, record_id: str) -> None:
        """Delete one record.

        Raises:
            NotFoundError: In local-only mode, if no record has that id.
            DatabaseError: If the remote delete fails.
        """
        entity_type = EntityType(entity_type)
        remote = self._remote_for(entity_type)
        if remote is not None:
            await remote.delete(entity_type, record_id)
        else:
            self._require_local(entity_type, record_id)

        self._write_local(
            entity_type, lambda rows: [r for r in rows if str(r.get("id", "")) != record_id]
        )
        self.notifier.publish(entity_type)
        logger.info(
            "Record deleted",
            extra={"entity_type": entity_type.value, "record_id": record_id},
        )

    async def get_dashboard_stats(self, requester_id: str | None = None) -> DashboardStats:
        leads, products = await asyncio.gather(
            self.get_leads(requester_id), self.get_products(requester_id)
        )
        return compute_dashboard_stats(leads, products)

    # ------------------------------------------------------------------
    # Leads
    # ------------------------------------------------------------------

    async def get_leads(self, requester_id: str | None = None) -> list[Lead]:
        return await self.list_records(EntityType.LEAD, requester_id)

    async def add_lead(self, lead: Any, owner_id: str | None = None) -> Lead:
        return await self.add_record(EntityType.LEAD, lead, owner_id=owner_id)

    async def update_lead(self, lead: Any) -> Lead:
        return await self.update_record(EntityType.LEAD, lead)

    async def update_lead_status(self, lead_id: str, status: Any) -> None:
        await self.update_status(EntityType.LEAD, lead_id, status)

    async def delete_lead(self, lead_id: str) -> None:
        await self.delete_record(EntityType.LEAD, lead_id)

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    async def get_products(self, requester_id: str | None = None) -> list[Product]:
        return await self.list_records(EntityType.PRODUCT, requester_id)

    async def add_product(self, product: Any, owner_id: str | None = None) -> Product:
        return await self.add_record(EntityType.PRODUCT, product, owner_id=owner_id)

    async def update_product(self, product: Any) -> Product:
        return await self.update_record(EntityType.PRODUCT, product)

    async def delete_product(self, product_id: str) -> None:
        await self.delete_record(EntityType.PRODUCT, product_id)

    # ------------------------------------------------------------------
    # Purchase orders
    # ------------------------------------------------------------------

    async def get_purchase_orders(self, requester_id: str | None = None) -> list[PurchaseOrder]:
        return await self.list_records(EntityType.PURCHASE_ORDER, requester_id)

    async def add_purchase_order(self, order: Any) -> PurchaseOrder:
        return await self.add_record(EntityType.PURCHASE_ORDER, order)

    async def update_purchase_order(self, order: Any) -> PurchaseOrder:
        return await self.update_record(EntityType.PURCHASE_ORDER, order)

    async def update_purchase_order_status(self, order_id: str, status: Any) -> None:
        await self.update_status(EntityType.PURCHASE_ORDER, order_id, status)

    async def delete_purchase_order(self, order_id: str) -> None:
        await self.delete_record(EntityType.PURCHASE_ORDER, order_id)

    # ------------------------------------------------------------------
    # Clients
    # ------------------------------------------------------------------

    async def get_clients(self, requester_id: str | None = None) -> list[Client]:
        return await self.list_records(EntityType.CLIENT, requester_id)

    async def add_client(self, client: Any) -> Client:
        return await self.add_record(EntityType.CLIENT, client)

    async def update_client(self, client: Any) -> Client:
        return await self.update_record(EntityType.CLIENT, client)

    async def delete_client(self, client_id: str) -> None:
        await self.delete_record(EntityType.CLIENT, client_id)

    # ------------------------------------------------------------------
    # Proposals
    # ------------------------------------------------------------------

    async def get_proposals(self, requester_id: str | None = None) -> list[Proposal]:
        return await self.list_records(EntityType.PROPOSAL, requester_id)

    async def add_proposal(self, proposal: Any) -> Proposal:
        return await self.add_record(EntityType.PROPOSAL, proposal)

    async def update_proposal(self, proposal: Any) -> Proposal:
        return await self.update_record(EntityType.PROPOSAL, proposal)

    async def update_proposal_status(self, proposal_id: str, status: Any) -> None:
        await self.update_status(EntityType.PROPOSAL, proposal_id, status)

    async def delete_proposal(self, proposal_id: str) -> None:
        await self.delete_record(EntityType.PROPOSAL, proposal_id)

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------

    async def get_invoices(self, requester_id: str | None = None) -> list[Invoice]:
        return await self.list_records(EntityType.INVOICE, requester_id)

    async def add_invoice(self, invoice: Any) -> Invoice:
        return await self.add_record(EntityType.INVOICE, invoice)

    async def update_invoice(self, invoice: Any) -> Invoice:
        return await self.update_record(EntityType.INVOICE, invoice)

    async def update_invoice_status(self, invoice_id: str, status: Any) -> None:
        await self.update_status(EntityType.INVOICE, invoice_id, status)

    async def delete_invoice(self, invoice_id: str) -> None:
        await self.delete_record(EntityType.INVOICE, invoice_id)

    # ------------------------------------------------------------------
    # Support tickets
    # ------------------------------------------------------------------

    async def get_tickets(self, requester_id: str | None = None) -> list[Ticket]:
        return await self.list_records(EntityType.TICKET, requester_id)

    async def add_ticket(self, ticket: Any) -> Ticket:
        return await self.add_record(EntityType.TICKET, ticket)

    async def update_ticket(self, ticket: Any) -> Ticket:
        return await self.update_record(EntityType.TICKET, ticket)

    async def update_ticket_status(self, ticket_id: str, status: Any) -> None:
        await self.update_status(EntityType.TICKET, ticket_id, status)

    async def delete_ticket(self, ticket_id: str) -> None:
        await self.delete_record(EntityType.TICKET, ticket_id)

    # ------------------------------------------------------------------
    # Finance records
    # ------------------------------------------------------------------

    async def get_finance_records(self, requester_id: str | None = None) -> list[FinanceRecord]:
        return await self.list_records(EntityType.FINANCE_RECORD, requester_id)

    async def add_finance_record(self, record: Any) -> FinanceRecord:
        return await self.add_record(EntityType.FINANCE_RECORD, record)

    async def update_finance_record(self, record: Any) -> FinanceRecord:
        return await self.update_record(EntityType.FINANCE_RECORD, record)

    async def delete_finance_record(self, record_id: str) -> None:
        await self.delete_record(EntityType.FINANCE_RECORD, record_id)

    # ------------------------------------------------------------------
    # Timesheets
    # ------------------------------------------------------------------

    async def get_timesheet_entries(self, requester_id: str | None = None) -> list[TimesheetEntry]:
        return await self.list_records(EntityType.TIMESHEET_ENTRY, requester_id)

    async def add_timesheet_entry(self, entry: Any) -> TimesheetEntry:
        return await self.add_record(EntityType.TIMESHEET_ENTRY, entry)

    async def update_timesheet_entry(self, entry: Any) -> TimesheetEntry:
        return await self.update_record(EntityType.TIMESHEET_ENTRY, entry)

    async def delete_timesheet_entry(self, entry_id: str) -> None:
        await self.delete_record(EntityType.TIMESHEET_ENTRY, entry_id)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def get_app_users(self, requester_id: str | None = None) -> list[AppUser]:
        return await self.list_records(EntityType.APP_USER, requester_id)

    async def add_app_user(self, user: Any) -> AppUser:
        return await self.add_record(EntityType.APP_USER, user)

    async def update_app_user(self, user: Any) -> AppUser:
        return await self.update_record(EntityType.APP_USER, user)

    async def delete_app_user(self, user_id: str) -> None:
        await self.delete_record(EntityType.APP_USER, user_id)
