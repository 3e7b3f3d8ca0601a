"""Tests for the costing aggregator (dashboard rollup and line profitability)."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from pos_engines.costing import CostingAggregator, CostingSummary, TimeWindow
from pos_kernel.domain.models import (
    CartLine,
    CostKind,
    InventorySnapshot,
    ItemKind,
    MiscCost,
    PaymentMode,
    Sale,
    StockBatch,
)
from pos_kernel.exceptions import ValidationError

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _sale(sale_id: str, lines, *, when=T0, employee_meal=False) -> Sale:
    total = Decimal("0") if employee_meal else sum((line.line_total for line in lines), Decimal("0"))
    return Sale(
        id=sale_id,
        timestamp=when,
        lines=tuple(lines),
        total=total,
        payment_mode=PaymentMode.INTERNAL if employee_meal else PaymentMode.CASH,
        is_employee_meal=employee_meal,
    )


def _bread(qty: str) -> CartLine:
    return CartLine("bread", ItemKind.PRODUCT, Decimal("25"), Decimal(qty), name="Bread")


class TestTimeWindow:
    def test_start_inclusive_end_exclusive(self):
        window = TimeWindow(T0, T0 + timedelta(hours=1))
        assert window.contains(T0)
        assert not window.contains(T0 + timedelta(hours=1))
        assert not window.contains(T0 - timedelta(seconds=1))

    def test_open_bounds(self):
        assert TimeWindow().contains(T0)
        assert TimeWindow(start=T0).contains(T0 + timedelta(days=400))
        assert TimeWindow(end=T0).contains(T0 - timedelta(days=400))

    def test_inverted_window_rejected(self):
        with pytest.raises(ValidationError):
            TimeWindow(T0, T0 - timedelta(seconds=1))


class TestRounding:
    def test_money_fields_rounded_half_up(self):
        summary = CostingSummary(
            revenue=Decimal("10.005"),
            cost_of_goods_sold=Decimal("3.3333"),
            labor_cost=Decimal("1.125"),
            other_operating_costs=Decimal("0"),
            inventory_value=Decimal("7.77777"),
            sale_count=1,
            product_count=2,
        ).rounded(2)
        assert summary.revenue == Decimal("10.01")
        assert summary.cost_of_goods_sold == Decimal("3.33")
        assert summary.labor_cost == Decimal("1.13")
        assert summary.inventory_value == Decimal("7.78")
        assert summary.net_profit == Decimal("5.55")
        assert summary.sale_count == 1

    def test_zero_places(self):
        summary = CostingSummary(
            Decimal("2.5"), Decimal("0.4"), Decimal("0"), Decimal("0"), Decimal("0"), 0, 0,
        ).rounded(0)
        assert summary.revenue == Decimal("3")
        assert summary.gross_profit == Decimal("3")


class TestSummarize:
    def setup_method(self):
        self.aggregator = CostingAggregator()

    def test_revenue_cogs_and_profit(self, snapshot):
        sales = [_sale("s1", [_bread("2")])]
        costs = [
            MiscCost("m1", "Rent", Decimal("15"), T0),
            MiscCost("m2", "Labor Cost: Ana", Decimal("12"), T0, kind=CostKind.LABOR),
        ]
        summary = self.aggregator.summarize(sales, costs, snapshot)
        assert summary.revenue == Decimal("50")
        assert summary.cost_of_goods_sold == Decimal("20")
        assert summary.gross_profit == Decimal("30")
        assert summary.labor_cost == Decimal("12")
        assert summary.other_operating_costs == Decimal("15")
        assert summary.operating_costs == Decimal("27")
        assert summary.net_profit == Decimal("3")
        assert summary.product_count == 1
        assert summary.sale_count == 1
        assert summary.inventory_value == Decimal("50")

    def test_employee_meal_costs_but_earns_nothing(self, snapshot):
        sales = [_sale("s1", [_bread("1")]), _sale("s2", [_bread("1")], employee_meal=True)]
        summary = self.aggregator.summarize(sales, [], snapshot)
        assert summary.revenue == Decimal("25")
        assert summary.cost_of_goods_sold == Decimal("20")

    def test_extras_priced_at_average_cost(self, snapshot):
        extra = CartLine("flour", ItemKind.INGREDIENT, Decimal("0.10"), Decimal("100"))
        summary = self.aggregator.summarize([_sale("s1", [extra])], [], snapshot)
        assert summary.cost_of_goods_sold == Decimal("5")

    def test_unknown_items_cost_zero(self, snapshot):
        ghost = CartLine("ghost", ItemKind.PRODUCT, Decimal("9"), Decimal("1"))
        summary = self.aggregator.summarize([_sale("s1", [ghost])], [], snapshot)
        assert summary.revenue == Decimal("9")
        assert summary.cost_of_goods_sold == Decimal("0")

    def test_window_filters_sales_and_costs(self, snapshot):
        later = T0 + timedelta(days=1)
        sales = [_sale("s1", [_bread("1")]), _sale("s2", [_bread("2")], when=later)]
        costs = [MiscCost("m1", "Rent", Decimal("15"), T0), MiscCost("m2", "Gas", Decimal("5"), later)]
        summary = self.aggregator.summarize(sales, costs, snapshot, TimeWindow(start=later))
        assert summary.revenue == Decimal("50")
        assert summary.other_operating_costs == Decimal("5")
        assert summary.sale_count == 1

    def test_cogs_uses_current_cost(self, snapshot, flour):
        """A cost change after the sale re-prices its COGS."""
        sales = [_sale("s1", [_bread("1")])]
        dearer = flour.with_batches((*flour.batches, StockBatch(T0, Decimal("1000"), Decimal("0.15"))))
        summary = self.aggregator.summarize(sales, [], snapshot.with_ingredients({"flour": dearer}))
        assert summary.cost_of_goods_sold == Decimal("20")

    def test_empty(self):
        summary = self.aggregator.summarize([], [], InventorySnapshot())
        assert summary.revenue == Decimal("0")
        assert summary.net_profit == Decimal("0")
        assert summary.product_count == 0


class TestLineProfitability:
    def test_rows(self, snapshot):
        extra = CartLine("flour", ItemKind.INGREDIENT, Decimal("0.10"), Decimal("100"), name="Flour")
        rows = CostingAggregator().line_profitability(
            [_sale("s1", [_bread("2"), extra])], snapshot,
        )
        bread_row, flour_row = rows
        assert bread_row.line_revenue == Decimal("50")
        assert bread_row.unit_cost == Decimal("10")
        assert bread_row.line_cost == Decimal("20")
        assert bread_row.line_profit == Decimal("30")
        assert flour_row.kind is ItemKind.INGREDIENT
        assert flour_row.line_profit == Decimal("5")

    def test_employee_meal_row_is_pure_cost(self, snapshot):
        rows = CostingAggregator().line_profitability(
            [_sale("s1", [_bread("1")], employee_meal=True)], snapshot,
        )
        (row,) = rows
        assert row.is_employee_meal
        assert row.payment_mode is PaymentMode.INTERNAL
        assert row.line_revenue == Decimal("0")
        assert row.line_profit == Decimal("-10")

    def test_window(self, snapshot):
        sales = [_sale("s1", [_bread("1")]), _sale("s2", [_bread("1")], when=T0 + timedelta(days=1))]
        rows = CostingAggregator().line_profitability(sales, snapshot, TimeWindow(end=T0 + timedelta(hours=1)))
        assert [r.sale_id for r in rows] == ["s1"]
