"""Dashboard and inventory aggregates computed from canonical records."""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from bizdesk.models.enums import LeadStatus, ProductCategory
from bizdesk.models.records import Lead, Product

LOW_STOCK_THRESHOLD = 10


class StockLevel(str, Enum):
    IN_STOCK = "In Stock"
    LOW_STOCK = "Low Stock"
    OUT_OF_STOCK = "Out of Stock"


def stock_level(product: Product) -> StockLevel:
    """Classify a product's stock; anything at or below zero is out of stock."""
    if product.stock <= 0:
        return StockLevel.OUT_OF_STOCK
    if product.stock < LOW_STOCK_THRESHOLD:
        return StockLevel.LOW_STOCK
    return StockLevel.IN_STOCK


@dataclass
class DashboardStats:
    """KPIs shown on the dashboard."""

    total_revenue: float = 0.0
    active_leads: int = 0
    open_proposals: int = 0
    conversion_rate: float = 0.0
    inventory_value: float = 0.0
    inventory_alerts: int = 0
    leads_by_status: dict[str, int] = field(default_factory=dict)
    inventory_value_by_category: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def compute_dashboard_stats(leads: list[Lead], products: list[Product]) -> DashboardStats:
    """Aggregate leads and products into dashboard KPIs.

    Args:
        leads: Leads visible to the viewer.
        products: Products visible to the viewer.

    Returns:
        DashboardStats. Conversion rate is won / (won + lost) as a
        percentage, 0.0 while no deal has closed. Only categories holding
        stock value appear in ``inventory_value_by_category``.
    """
    won = [lead for lead in leads if lead.status == LeadStatus.WON]
    lost_count = sum(1 for lead in leads if lead.status == LeadStatus.LOST)
    closed = len(won) + lost_count

    leads_by_status = {
        status.value: sum(1 for lead in leads if lead.status == status) for status in LeadStatus
    }

    by_category: dict[str, float] = {}
    for category in ProductCategory:
        value = sum(p.price * p.stock for p in products if p.category == category)
        if value > 0:
            by_category[category.value] = round(value, 2)

    return DashboardStats(
        total_revenue=round(sum(lead.value for lead in won), 2),
        active_leads=sum(
            1 for lead in leads if lead.status not in (LeadStatus.WON, LeadStatus.LOST)
        ),
        open_proposals=leads_by_status[LeadStatus.PROPOSAL.value],
        conversion_rate=round(len(won) / closed * 100, 1) if closed else 0.0,
        inventory_value=round(sum(p.price * p.stock for p in products), 2),
        inventory_alerts=sum(1 for p in products if p.stock < LOW_STOCK_THRESHOLD),
        leads_by_status=leads_by_status,
        inventory_value_by_category=by_category,
    )
