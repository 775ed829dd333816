"""Enumerations shared by every backend.

Member values are the exact wire/storage strings and must round-trip
unchanged through Supabase, Firestore and the local JSON blobs.
"""

from enum import Enum


class EntityType(str, Enum):
    """Entity types exposed by the data service.

    The value doubles as the local store key, the Supabase table name and
    the Firestore collection name.
    """

    LEAD = "leads"
    PRODUCT = "products"
    PURCHASE_ORDER = "purchase_orders"
    CLIENT = "clients"
    PROPOSAL = "proposals"
    INVOICE = "invoices"
    TICKET = "tickets"
    FINANCE_RECORD = "finance_records"
    TIMESHEET_ENTRY = "timesheet_entries"
    APP_USER = "app_users"

    @property
    def collection(self) -> str:
        return self.value

    @property
    def has_visibility(self) -> bool:
        """Whether records carry visibility/ownership columns."""
        return self in (EntityType.LEAD, EntityType.PRODUCT)


class LeadStatus(str, Enum):
    """Sales pipeline stages, in pipeline order.

    Won and Lost are terminal.
    """

    NEW = "New"
    CONTACTED = "Contacted"
    QUALIFIED = "Qualified"
    PROPOSAL = "Proposal Sent"
    WON = "Won"
    LOST = "Lost"


class ProductCategory(str, Enum):
    """Closed set of inventory categories."""

    STATIONERY = "Stationery"
    IT_HARDWARE = "IT Hardware"
    SOFTWARE = "Software"
    OFFICE_FURNITURE = "Office Furniture"


class PurchaseOrderStatus(str, Enum):
    """Purchase order progress, in order; Items Reached is terminal."""

    NEEDED = "Product Needed"
    ORDERED = "Order Given"
    TRANSIT = "Items on the way"
    REACHED = "Items Reached"


class Visibility(str, Enum):
    """Access scope of a lead or product."""

    PUBLIC = "public"
    PRIVATE = "private"
    SHARED = "shared"


class ClientStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"


class ProposalStatus(str, Enum):
    DRAFT = "Draft"
    SENT = "Sent"
    ACCEPTED = "Accepted"
    REJECTED = "Rejected"


class InvoiceStatus(str, Enum):
    DRAFT = "Draft"
    SENT = "Sent"
    PAID = "Paid"
    OVERDUE = "Overdue"


class InvoiceType(str, Enum):
    INVOICE = "Invoice"
    PROFORMA = "Proforma"


class TicketPriority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class TicketStatus(str, Enum):
    OPEN = "Open"
    IN_PROGRESS = "In Progress"
    RESOLVED = "Resolved"


class FinanceType(str, Enum):
    INCOME = "Income"
    EXPENSE = "Expense"


class UserRole(str, Enum):
    ADMIN = "Admin"
    EMPLOYEE = "Employee"


class UserStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"
