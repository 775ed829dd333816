"""Services package."""

from bizdesk.services.dashboard import DashboardStats, StockLevel, compute_dashboard_stats, stock_level
from bizdesk.services.data_service import DataService, is_visible
from bizdesk.services.optimistic import with_optimistic_update
from bizdesk.services.pipeline import (
    advance_lead,
    advance_purchase_order,
    mark_lead_lost,
    mark_lead_won,
    next_status,
)

__all__ = [
    "DashboardStats",
    "DataService",
    "StockLevel",
    "advance_lead",
    "advance_purchase_order",
    "compute_dashboard_stats",
    "is_visible",
    "mark_lead_lost",
    "mark_lead_won",
    "next_status",
    "stock_level",
    "with_optimistic_update",
]
