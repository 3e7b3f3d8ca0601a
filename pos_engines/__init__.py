"""
Module: pos_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines.  This is the canonical import surface for the
    service layer (pos_services).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import pos_kernel (and sibling engine modules).
    MUST NOT import pos_services or pos_config.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()``.  Timestamps are passed
      in by the caller.
    - Decimal-only arithmetic for quantities and money.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Engine entry points are wrapped with ``@traced_engine`` (see
    ``pos_engines.tracer``) and emit POS_ENGINE_TRACE log records.

Usage:
    from pos_engines.ledger import append_batch, average_cost, total_stock
    from pos_engines.recipe import RecipeResolver
    from pos_engines.consumption import price_cart, validate_sale, commit_sale
    from pos_engines.stock_count import reconcile
    from pos_engines.costing import CostingAggregator, TimeWindow
    from pos_engines.labor import accrue_shift
"""

from pos_kernel.logging_config import get_logger

logger = get_logger("engines")

from pos_engines.consumption import (
    DeductionPlan,
    IngredientDeduction,
    PricedSale,
    SaleCommit,
    SaleState,
    TaxLine,
    commit_sale,
    plan_deductions,
    price_cart,
    validate_sale,
)
from pos_engines.costing import (
    ALL_TIME,
    CostingAggregator,
    CostingSummary,
    LineProfit,
    TimeWindow,
)
from pos_engines.labor import (
    DEFAULT_PAID_HOURS_PER_DAY,
    LABOR_COST_PREFIX,
    accrue_shift,
    labor_cost,
    shift_hours,
)
from pos_engines.ledger import (
    LedgerAdjustment,
    append_batch,
    apply_adjustment,
    average_cost,
    inventory_value,
    is_low_stock,
    low_stock_ingredients,
    reset_history,
    restock_unit_cost,
    total_stock,
)
from pos_engines.recipe import (
    RecipeResolver,
    index_ingredients,
    strip_dangling_lines,
)
from pos_engines.stock_count import (
    CountState,
    DraftLine,
    ReconciliationResult,
    StockCountDraft,
    apply_count,
    finalize_count,
    reconcile,
    start_count,
)
from pos_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    # Consumption
    "DeductionPlan",
    "IngredientDeduction",
    "PricedSale",
    "SaleCommit",
    "SaleState",
    "TaxLine",
    "commit_sale",
    "plan_deductions",
    "price_cart",
    "validate_sale",
    # Costing
    "ALL_TIME",
    "CostingAggregator",
    "CostingSummary",
    "LineProfit",
    "TimeWindow",
    # Labor
    "DEFAULT_PAID_HOURS_PER_DAY",
    "LABOR_COST_PREFIX",
    "accrue_shift",
    "labor_cost",
    "shift_hours",
    # Ledger
    "LedgerAdjustment",
    "append_batch",
    "apply_adjustment",
    "average_cost",
    "inventory_value",
    "is_low_stock",
    "low_stock_ingredients",
    "reset_history",
    "restock_unit_cost",
    "total_stock",
    # Recipe
    "RecipeResolver",
    "index_ingredients",
    "strip_dangling_lines",
    # Stock count
    "CountState",
    "DraftLine",
    "ReconciliationResult",
    "StockCountDraft",
    "apply_count",
    "finalize_count",
    "reconcile",
    "start_count",
    # Tracing
    "compute_input_fingerprint",
    "traced_engine",
]
