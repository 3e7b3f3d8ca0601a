"""
Pure domain layer.

Immutable data objects and helpers with NO dependencies on persistence,
the wall clock, or I/O.
"""

from pos_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from pos_kernel.domain.models import (
    CartLine,
    CostKind,
    Employee,
    Ingredient,
    InventorySnapshot,
    ItemKind,
    KitchenOrder,
    MiscCost,
    OrderNumberState,
    PaymentMode,
    Product,
    RecipeLine,
    Sale,
    StockBatch,
    StockCount,
    StockCountLine,
    Tax,
    TimeClockEntry,
)

__all__ = [
    "CartLine",
    "Clock",
    "CostKind",
    "DeterministicClock",
    "Employee",
    "Ingredient",
    "InventorySnapshot",
    "ItemKind",
    "KitchenOrder",
    "MiscCost",
    "OrderNumberState",
    "PaymentMode",
    "Product",
    "RecipeLine",
    "Sale",
    "StockBatch",
    "StockCount",
    "StockCountLine",
    "SystemClock",
    "Tax",
    "TimeClockEntry",
]
