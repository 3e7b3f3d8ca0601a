"""
pos_engines.costing -- Revenue, COGS, labor and profit rollup.

Responsibility:
    Read-side rollup over committed sales, miscellaneous cost records, a
    time window and the current ledger/recipe state.  Produces the
    dashboard figures (revenue, cost of goods sold, gross profit, labor and
    other operating costs, net profit, inventory value) and per-line
    profitability rows for export collaborators.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Reads only.

Invariants enforced:
    - Revenue excludes employee meals.
    - COGS covers every sale line in the window, employee meals included.
    - Window: start inclusive, end exclusive, either bound open.

Known accuracy gap:
    COGS re-prices every sale line at the CURRENT average cost (recipe cost
    for products, ingredient average cost for extras), not at the cost
    recorded when the sale consumed stock.  Historical margins therefore
    move as ingredient costs move.  Reports downstream depend on these
    numbers, so the behaviour is kept as is.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal

from pos_engines.ledger import average_cost, inventory_value
from pos_engines.recipe import RecipeResolver
from pos_engines.tracer import traced_engine
from pos_kernel.domain.models import (
    CartLine,
    InventorySnapshot,
    ItemKind,
    MiscCost,
    PaymentMode,
    Sale,
)
from pos_kernel.domain.values import ZERO, round_money
from pos_kernel.exceptions import ValidationError
from pos_kernel.logging_config import get_logger

logger = get_logger("engines.costing")


@dataclass(frozen=True, slots=True)
class TimeWindow:
    """Half-open reporting window ``[start, end)``."""

    start: datetime | None = None
    end: datetime | None = None

    def __post_init__(self) -> None:
        if self.start is not None and self.end is not None and self.end < self.start:
            raise ValidationError("window", f"end {self.end} precedes start {self.start}")

    def contains(self, moment: datetime) -> bool:
        if self.start is not None and moment < self.start:
            return False
        if self.end is not None and moment >= self.end:
            return False
        return True


ALL_TIME = TimeWindow()


@dataclass(frozen=True, slots=True)
class CostingSummary:
    revenue: Decimal
    cost_of_goods_sold: Decimal
    labor_cost: Decimal
    other_operating_costs: Decimal
    inventory_value: Decimal
    sale_count: int
    product_count: int

    @property
    def gross_profit(self) -> Decimal:
        return self.revenue - self.cost_of_goods_sold

    @property
    def operating_costs(self) -> Decimal:
        return self.labor_cost + self.other_operating_costs

    @property
    def net_profit(self) -> Decimal:
        return self.gross_profit - self.operating_costs

    def rounded(self, places: int) -> CostingSummary:
        """Copy with every money field rounded half-up to ``places``."""
        return replace(
            self,
            revenue=round_money(self.revenue, places),
            cost_of_goods_sold=round_money(self.cost_of_goods_sold, places),
            labor_cost=round_money(self.labor_cost, places),
            other_operating_costs=round_money(self.other_operating_costs, places),
            inventory_value=round_money(self.inventory_value, places),
        )


@dataclass(frozen=True, slots=True)
class LineProfit:
    """One sale line priced for reporting."""

    sale_id: str
    timestamp: datetime
    is_employee_meal: bool
    payment_mode: PaymentMode
    item_id: str
    item_name: str
    kind: ItemKind
    quantity: Decimal
    unit_price: Decimal
    line_revenue: Decimal
    unit_cost: Decimal

    @property
    def line_cost(self) -> Decimal:
        return self.unit_cost * self.quantity

    @property
    def line_profit(self) -> Decimal:
        return self.line_revenue - self.line_cost


class CostingAggregator:
    """
    Pure rollup calculator.

    Contract:
        No I/O, fully deterministic.  All state (sales, costs, snapshot)
        is passed in on every call.
    Guarantees:
        - revenue = sum of sale totals over non-employee-meal sales.
        - cost_of_goods_sold = sum of unit_cost(line) x quantity.
        - gross_profit = revenue - cost_of_goods_sold.
        - net_profit = gross_profit - (labor + other operating costs).
    Non-goals:
        - Tabular or CSV formatting.
    """

    def __init__(self, resolver: RecipeResolver | None = None):
        self.resolver = resolver or RecipeResolver()

    def unit_cost(self, line: CartLine, snapshot: InventorySnapshot) -> Decimal:
        """Current cost of one unit of the line's item; 0 if unknown."""
        if line.kind is ItemKind.PRODUCT:
            product = snapshot.product(line.item_id)
            if product is None:
                return ZERO
            return self.resolver.cost(product.recipe, snapshot.ingredients)
        ingredient = snapshot.ingredient(line.item_id)
        if ingredient is None:
            return ZERO
        return average_cost(ingredient)

    @traced_engine("costing", "1.0")
    def summarize(
        self,
        sales: Iterable[Sale],
        misc_costs: Iterable[MiscCost],
        snapshot: InventorySnapshot,
        window: TimeWindow = ALL_TIME,
    ) -> CostingSummary:
        in_window = [s for s in sales if window.contains(s.timestamp)]
        costs = [c for c in misc_costs if window.contains(c.timestamp)]

        revenue = sum((s.total for s in in_window if not s.is_employee_meal), ZERO)
        cogs = ZERO
        unit_costs: dict[tuple[ItemKind, str], Decimal] = {}
        for sale in in_window:
            for line in sale.lines:
                key = (line.kind, line.item_id)
                if key not in unit_costs:
                    unit_costs[key] = self.unit_cost(line, snapshot)
                cogs += unit_costs[key] * line.quantity

        labor = sum((c.amount for c in costs if c.is_labor), ZERO)
        other = sum((c.amount for c in costs if not c.is_labor), ZERO)
        stock_value = sum((inventory_value(i) for i in snapshot.ingredients), ZERO)

        summary = CostingSummary(
            revenue=revenue,
            cost_of_goods_sold=cogs,
            labor_cost=labor,
            other_operating_costs=other,
            inventory_value=stock_value,
            sale_count=len(in_window),
            product_count=len(snapshot.products),
        )
        logger.info("costing_summary_computed", extra={
            "sale_count": summary.sale_count,
            "revenue": str(summary.revenue),
            "cost_of_goods_sold": str(summary.cost_of_goods_sold),
            "net_profit": str(summary.net_profit),
        })
        return summary

    def line_profitability(
        self,
        sales: Sequence[Sale],
        snapshot: InventorySnapshot,
        window: TimeWindow = ALL_TIME,
    ) -> tuple[LineProfit, ...]:
        """Per-line rows; employee meal lines carry 0 revenue."""
        rows: list[LineProfit] = []
        for sale in sales:
            if not window.contains(sale.timestamp):
                continue
            for line in sale.lines:
                rows.append(LineProfit(
                    sale_id=sale.id,
                    timestamp=sale.timestamp,
                    is_employee_meal=sale.is_employee_meal,
                    payment_mode=sale.payment_mode,
                    item_id=line.item_id,
                    item_name=line.name,
                    kind=line.kind,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    line_revenue=ZERO if sale.is_employee_meal else line.line_total,
                    unit_cost=self.unit_cost(line, snapshot),
                ))
        return tuple(rows)
