"""Tests for dashboard statistics."""

import pytest

from bizdesk.models.enums import LeadStatus, ProductCategory
from bizdesk.models.records import Lead, Product
from bizdesk.services.dashboard import (
    DashboardStats,
    StockLevel,
    compute_dashboard_stats,
    stock_level,
)


@pytest.fixture
def leads() -> list[Lead]:
    return [
        Lead(id="1", status=LeadStatus.WON, value=100000),
        Lead(id="2", status=LeadStatus.WON, value=25000),
        Lead(id="3", status=LeadStatus.LOST, value=40000),
        Lead(id="4", status=LeadStatus.PROPOSAL, value=60000),
        Lead(id="5", status=LeadStatus.NEW, value=10000),
    ]


@pytest.fixture
def products() -> list[Product]:
    return [
        Product(id="p1", category=ProductCategory.OFFICE_FURNITURE, price=4500, stock=10),
        Product(id="p2", category=ProductCategory.STATIONERY, price=20, stock=5),
        Product(id="p3", category=ProductCategory.IT_HARDWARE, price=55000, stock=0),
    ]


class TestComputeDashboardStats:
    """Tests for compute_dashboard_stats."""

    def test_lead_kpis(self, leads: list[Lead], products: list[Product]) -> None:
        stats = compute_dashboard_stats(leads, products)

        assert stats.total_revenue == 125000
        assert stats.active_leads == 2
        assert stats.open_proposals == 1
        assert stats.conversion_rate == pytest.approx(66.7)

    def test_inventory_kpis(self, leads: list[Lead], products: list[Product]) -> None:
        stats = compute_dashboard_stats(leads, products)

        assert stats.inventory_value == 45100
        # Low stock and out of stock both raise an alert
        assert stats.inventory_alerts == 2
        assert stats.inventory_value_by_category == {"Office Furniture": 45000, "Stationery": 100}

    def test_leads_by_status_lists_every_stage(self, leads: list[Lead]) -> None:
        stats = compute_dashboard_stats(leads, [])
        assert stats.leads_by_status == {
            "New": 1,
            "Contacted": 0,
            "Qualified": 0,
            "Proposal Sent": 1,
            "Won": 2,
            "Lost": 1,
        }

    def test_no_closed_deals_gives_zero_conversion(self) -> None:
        stats = compute_dashboard_stats([Lead(status=LeadStatus.NEW)], [])
        assert stats.conversion_rate == 0.0

    def test_empty_inputs(self) -> None:
        stats = compute_dashboard_stats([], [])
        assert stats == DashboardStats(leads_by_status={s.value: 0 for s in LeadStatus})

    def test_to_dict(self, leads: list[Lead], products: list[Product]) -> None:
        data = compute_dashboard_stats(leads, products).to_dict()
        assert data["open_proposals"] == 1
        assert "inventory_value_by_category" in data


@pytest.mark.parametrize(
    ("stock", "level"),
    [(0, StockLevel.OUT_OF_STOCK), (1, StockLevel.LOW_STOCK), (9, StockLevel.LOW_STOCK), (10, StockLevel.IN_STOCK)],
)
def test_stock_level(stock: int, level: StockLevel) -> None:
    assert stock_level(Product(stock=stock)) is level
