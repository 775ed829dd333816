"""Canonical in-memory records for every entity type.

Attributes are snake_case; each field also declares the lower-camel wire
key used in the local JSON blobs and in remote payloads. The record mapper
reads the same field metadata to normalize raw rows.
"""

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar

from bizdesk.models.enums import (
    ClientStatus,
    EntityType,
    FinanceType,
    InvoiceStatus,
    InvoiceType,
    LeadStatus,
    ProductCategory,
    ProposalStatus,
    PurchaseOrderStatus,
    TicketPriority,
    TicketStatus,
    UserRole,
    UserStatus,
    Visibility,
)

# Field kinds understood by the mapper
STR = "str"
FLOAT = "float"
INT = "int"
STR_LIST = "str_list"
ENUM = "enum"
RECORDS = "records"


def column(
    wire: str,
    kind: str = STR,
    default: Any = "",
    *,
    enum: type[Enum] | None = None,
    item: type | None = None,
    aliases: tuple[str, ...] = (),
) -> Any:
    """Declare a record field with its wire key and normalization rules.

    Args:
        wire: Lower-camel key used on the wire and in the local store.
        kind: One of the field kinds above.
        default: Default value; lists always default to a fresh empty list.
        enum: Enum class for ``ENUM`` fields.
        item: Record class for ``RECORDS`` fields.
        aliases: Extra keys to try after the standard spellings.
    """
    metadata = {"wire": wire, "kind": kind, "enum": enum, "item": item, "aliases": aliases}
    if kind in (STR_LIST, RECORDS):
        return field(default_factory=list, metadata=metadata)
    return field(default=default, metadata=metadata)


class Record:
    """Mixin for canonical records."""

    entity_type: ClassVar[EntityType | None] = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a wire dict (lower-camel keys, enum values as strings)."""
        data: dict[str, Any] = {}
        for f in dataclasses.fields(self):  # type: ignore[arg-type]
            data[f.metadata["wire"]] = to_wire(getattr(self, f.name))
        return data

    @classmethod
    def from_dict(cls, data: Any) -> Any:
        """Build a record from any raw row, filling defaults."""
        from bizdesk.db.mapper import map_record

        return map_record(cls, data)

    def copy_with(self, **changes: Any) -> Any:
        """Return a copy with the given attributes replaced."""
        return dataclasses.replace(self, **changes)  # type: ignore[type-var]


def to_wire(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Record):
        return value.to_dict()
    if isinstance(value, list):
        return [to_wire(v) for v in value]
    return value


@dataclass
class Lead(Record):
    """A sales lead / deal moving through the pipeline."""

    entity_type: ClassVar[EntityType] = EntityType.LEAD

    id: str = column("id")
    name: str = column("name")
    company: str = column("company")
    email: str = column("email")
    phone: str = column("phone")
    state: str = column("state")
    status: LeadStatus | str = column("status", ENUM, LeadStatus.NEW, enum=LeadStatus)
    value: float = column("value", FLOAT, 0.0)
    notes: str = column("notes")
    last_contact: str = column("lastContact")
    interest: list[str] = column("interest", STR_LIST, aliases=("interests",))
    visibility: Visibility | str = column("visibility", ENUM, Visibility.PUBLIC, enum=Visibility)
    shared_with: list[str] = column("sharedWith", STR_LIST)
    owner_id: str = column("ownerId", aliases=("user_id",))


@dataclass
class Product(Record):
    """An inventory item."""

    entity_type: ClassVar[EntityType] = EntityType.PRODUCT

    id: str = column("id")
    name: str = column("name")
    category: ProductCategory | str = column(
        "category", ENUM, ProductCategory.STATIONERY, enum=ProductCategory
    )
    price: float = column("price", FLOAT, 0.0)
    stock: int = column("stock", INT, 0)
    sku: str = column("sku")
    visibility: Visibility | str = column("visibility", ENUM, Visibility.PUBLIC, enum=Visibility)
    owner_id: str = column("ownerId", aliases=("user_id",))


@dataclass
class PurchaseOrder(Record):
    """A request to buy stock from a vendor."""

    entity_type: ClassVar[EntityType] = EntityType.PURCHASE_ORDER

    id: str = column("id")
    item_name: str = column("itemName")
    vendor: str = column("vendor")
    quantity: int = column("quantity", INT, 1)
    estimated_cost: float = column("estimatedCost", FLOAT, 0.0)
    status: PurchaseOrderStatus | str = column(
        "status", ENUM, PurchaseOrderStatus.NEEDED, enum=PurchaseOrderStatus
    )
    order_date: str = column("orderDate")
    notes: str = column("notes")


@dataclass
class Client(Record):
    entity_type: ClassVar[EntityType] = EntityType.CLIENT

    id: str = column("id")
    name: str = column("name")
    company: str = column("company")
    email: str = column("email")
    phone: str = column("phone")
    gstin: str = column("gstin")
    address: str = column("address")
    status: ClientStatus | str = column("status", ENUM, ClientStatus.ACTIVE, enum=ClientStatus)


@dataclass
class Proposal(Record):
    entity_type: ClassVar[EntityType] = EntityType.PROPOSAL

    id: str = column("id")
    title: str = column("title")
    client_name: str = column("clientName")
    value: float = column("value", FLOAT, 0.0)
    date: str = column("date")
    valid_until: str = column("validUntil")
    description: str = column("description")
    status: ProposalStatus | str = column("status", ENUM, ProposalStatus.DRAFT, enum=ProposalStatus)


@dataclass
class InvoiceItem(Record):
    """One line on an invoice; GST rate is a percentage (e.g. 18)."""

    id: str = column("id")
    description: str = column("description")
    hsn: str = column("hsn")
    quantity: float = column("quantity", FLOAT, 0.0)
    rate: float = column("rate", FLOAT, 0.0)
    gst_rate: float = column("gstRate", FLOAT, 0.0)


@dataclass
class Invoice(Record):
    entity_type: ClassVar[EntityType] = EntityType.INVOICE

    id: str = column("id")
    number: str = column("number")
    client_name: str = column("clientName")
    client_gstin: str = column("clientGstin")
    client_address: str = column("clientAddress")
    date: str = column("date")
    due_date: str = column("dueDate")
    items: list[InvoiceItem] = column("items", RECORDS, item=InvoiceItem)
    amount: float = column("amount", FLOAT, 0.0)
    status: InvoiceStatus | str = column("status", ENUM, InvoiceStatus.DRAFT, enum=InvoiceStatus)
    invoice_type: InvoiceType | str = column(
        "type", ENUM, InvoiceType.INVOICE, enum=InvoiceType, aliases=("invoiceType",)
    )


@dataclass
class TicketComment(Record):
    id: str = column("id")
    text: str = column("text")
    author: str = column("author")
    date: str = column("date")


@dataclass
class Ticket(Record):
    """A support ticket with its comment thread."""

    entity_type: ClassVar[EntityType] = EntityType.TICKET

    id: str = column("id")
    subject: str = column("subject")
    client_name: str = column("clientName")
    priority: TicketPriority | str = column(
        "priority", ENUM, TicketPriority.MEDIUM, enum=TicketPriority
    )
    status: TicketStatus | str = column("status", ENUM, TicketStatus.OPEN, enum=TicketStatus)
    date: str = column("date")
    comments: list[TicketComment] = column("comments", RECORDS, item=TicketComment)


@dataclass
class FinanceRecord(Record):
    entity_type: ClassVar[EntityType] = EntityType.FINANCE_RECORD

    id: str = column("id")
    description: str = column("description")
    amount: float = column("amount", FLOAT, 0.0)
    record_type: FinanceType | str = column(
        "type", ENUM, FinanceType.INCOME, enum=FinanceType, aliases=("recordType",)
    )
    category: str = column("category")
    date: str = column("date")


@dataclass
class TimesheetEntry(Record):
    entity_type: ClassVar[EntityType] = EntityType.TIMESHEET_ENTRY

    id: str = column("id")
    project: str = column("project")
    task: str = column("task")
    hours: float = column("hours", FLOAT, 0.0)
    date: str = column("date")
    start_time: str = column("startTime")
    end_time: str = column("endTime")


@dataclass
class AppUser(Record):
    entity_type: ClassVar[EntityType] = EntityType.APP_USER

    id: str = column("id")
    name: str = column("name")
    email: str = column("email")
    role: UserRole | str = column("role", ENUM, UserRole.EMPLOYEE, enum=UserRole)
    status: UserStatus | str = column("status", ENUM, UserStatus.ACTIVE, enum=UserStatus)


RECORD_TYPES: dict[EntityType, type[Record]] = {
    EntityType.LEAD: Lead,
    EntityType.PRODUCT: Product,
    EntityType.PURCHASE_ORDER: PurchaseOrder,
    EntityType.CLIENT: Client,
    EntityType.PROPOSAL: Proposal,
    EntityType.INVOICE: Invoice,
    EntityType.TICKET: Ticket,
    EntityType.FINANCE_RECORD: FinanceRecord,
    EntityType.TIMESHEET_ENTRY: TimesheetEntry,
    EntityType.APP_USER: AppUser,
}

# Wire keys that older remote schemas may not have
VISIBILITY_COLUMNS: tuple[str, ...] = ("visibility", "ownerId", "sharedWith")
