"""Canonical records and enumerations."""

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
from bizdesk.models.records import (
    RECORD_TYPES,
    AppUser,
    Client,
    FinanceRecord,
    Invoice,
    InvoiceItem,
    Lead,
    Product,
    Proposal,
    PurchaseOrder,
    Record,
    Ticket,
    TicketComment,
    TimesheetEntry,
)

__all__ = [
    "RECORD_TYPES",
    "AppUser",
    "Client",
    "ClientStatus",
    "EntityType",
    "FinanceRecord",
    "FinanceType",
    "Invoice",
    "InvoiceItem",
    "InvoiceStatus",
    "InvoiceType",
    "Lead",
    "LeadStatus",
    "Product",
    "ProductCategory",
    "Proposal",
    "ProposalStatus",
    "PurchaseOrder",
    "PurchaseOrderStatus",
    "Record",
    "Ticket",
    "TicketComment",
    "TicketPriority",
    "TicketStatus",
    "TimesheetEntry",
    "UserRole",
    "UserStatus",
    "Visibility",
]
