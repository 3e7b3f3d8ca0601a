"""
POS Domain Models (``pos_kernel.domain.models``).

Responsibility
--------------
Frozen value objects for the nouns of the point-of-sale inventory core:
ingredients and their stock batches, products and recipes, stock counts,
cart lines, sales, kitchen orders, miscellaneous costs, employees and
time clock entries, and the inventory snapshot the engines operate on.

Architecture
------------
Layer: **Kernel > Domain** -- pure data structures.  Every dataclass is
``frozen=True``; engines return new instances rather than mutating.  These
models carry NO persistence identity and NO I/O.

Invariants
----------
- All quantities and amounts are ``Decimal`` (coerced on construction,
  floats rejected).
- ``StockBatch.unit_cost >= 0``; batch quantity is signed.
- ``Ingredient.batches`` is a tuple in insertion order; it is never
  re-sorted.
- Product cost and sellable stock are NOT fields: they are derived from
  the recipe and the ledger on every read.
- ``StockCount.total_variance_value`` always equals the sum of its line
  variance values.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from pos_kernel.domain.values import (
    ZERO,
    to_decimal,
    to_non_negative,
    to_positive,
)
from pos_kernel.exceptions import ValidationError
from pos_kernel.logging_config import get_logger

logger = get_logger("domain.models")


class ItemKind(str, Enum):
    """What a cart line sells."""

    PRODUCT = "PRODUCT"          # Recipe-based menu item
    INGREDIENT = "INGREDIENT"    # Ingredient sold directly as an "extra"


class PaymentMode(str, Enum):
    CASH = "Cash"
    E_PAYMENT = "E-Payment"
    INTERNAL = "Internal"        # Employee meals


class CostKind(str, Enum):
    """Miscellaneous cost subtype."""

    OPERATING = "operating"
    LABOR = "labor"


def _require_text(value: str, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(field_name, "is required", value)
    return value.strip()


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class StockBatch:
    """
    One ledger entry: a signed quantity change and its unit cost.

    Positive quantities are acquisitions.  Negative quantities are
    consumption or corrections; their ``unit_cost`` records the average
    cost at the time they were written, not a purchase price.
    """

    timestamp: datetime
    quantity: Decimal
    unit_cost: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "quantity", to_decimal(self.quantity, "quantity"))
        unit_cost = to_decimal(self.unit_cost, "unit_cost")
        if unit_cost < ZERO:
            logger.error("stock_batch_negative_cost", extra={
                "unit_cost": str(unit_cost),
                "quantity": str(self.quantity),
            })
            raise ValidationError("unit_cost", "cannot be negative", self.unit_cost)
        object.__setattr__(self, "unit_cost", unit_cost)

    @property
    def extended_cost(self) -> Decimal:
        """Signed cost basis carried by this batch."""
        return self.quantity * self.unit_cost


@dataclass(frozen=True, slots=True)
class Ingredient:
    """
    A stocked ingredient and its append-only batch history.

    ``sell_price`` greater than zero makes the ingredient orderable
    directly as an extra.  ``low_stock_threshold`` of zero disables
    alerting.
    """

    id: str
    name: str
    unit: str
    sell_price: Decimal = ZERO
    low_stock_threshold: Decimal = ZERO
    batches: tuple[StockBatch, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", _require_text(self.name, "name"))
        object.__setattr__(self, "unit", _require_text(self.unit, "unit"))
        object.__setattr__(
            self, "sell_price", to_non_negative(self.sell_price, "sell_price")
        )
        object.__setattr__(
            self,
            "low_stock_threshold",
            to_non_negative(self.low_stock_threshold, "low_stock_threshold"),
        )
        object.__setattr__(self, "batches", tuple(self.batches))

    @property
    def is_sellable(self) -> bool:
        return self.sell_price > ZERO

    def with_batches(self, batches: Iterable[StockBatch]) -> Ingredient:
        return replace(self, batches=tuple(batches))


# ---------------------------------------------------------------------------
# Products and recipes
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RecipeLine:
    """One ingredient requirement per unit of product."""

    ingredient_id: str
    quantity: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "quantity", to_positive(self.quantity, "recipe.quantity")
        )


@dataclass(frozen=True, slots=True)
class Product:
    """A sellable menu item.  An empty recipe marks a non-recipe item."""

    id: str
    name: str
    sell_price: Decimal
    recipe: tuple[RecipeLine, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", _require_text(self.name, "name"))
        object.__setattr__(
            self, "sell_price", to_non_negative(self.sell_price, "sell_price")
        )
        object.__setattr__(self, "recipe", tuple(self.recipe))
        seen: set[str] = set()
        for line in self.recipe:
            if line.ingredient_id in seen:
                raise ValidationError(
                    "recipe", f"ingredient {line.ingredient_id} appears twice", line.ingredient_id
                )
            seen.add(line.ingredient_id)

    @property
    def has_recipe(self) -> bool:
        return len(self.recipe) > 0


# ---------------------------------------------------------------------------
# Stock counts
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class StockCountLine:
    """Expected-vs-actual for one ingredient at count time."""

    ingredient_id: str
    ingredient_name: str
    unit: str
    expected_stock: Decimal
    actual_stock: Decimal
    unit_cost_at_count: Decimal

    @property
    def variance(self) -> Decimal:
        return self.actual_stock - self.expected_stock

    @property
    def variance_value(self) -> Decimal:
        return self.variance * self.unit_cost_at_count


@dataclass(frozen=True, slots=True)
class StockCount:
    """
    Finalized physical count.  Permanent audit record, never edited.
    """

    id: str
    timestamp: datetime
    lines: tuple[StockCountLine, ...]
    total_variance_value: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "lines", tuple(self.lines))
        expected_total = sum((line.variance_value for line in self.lines), ZERO)
        if expected_total != self.total_variance_value:
            raise ValidationError(
                "total_variance_value",
                f"must equal the sum of line variances ({expected_total})",
                self.total_variance_value,
            )

    @classmethod
    def create(
        cls,
        count_id: str,
        timestamp: datetime,
        lines: Iterable[StockCountLine],
    ) -> StockCount:
        lines = tuple(lines)
        total = sum((line.variance_value for line in lines), ZERO)
        return cls(id=count_id, timestamp=timestamp, lines=lines, total_variance_value=total)

    def line_for(self, ingredient_id: str) -> StockCountLine | None:
        for line in self.lines:
            if line.ingredient_id == ingredient_id:
                return line
        return None


# ---------------------------------------------------------------------------
# Sales
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CartLine:
    """
    A sale-time line.  ``name`` is carried for audit so a sale stays
    readable after the item it references has been deleted.
    """

    item_id: str
    kind: ItemKind
    unit_price: Decimal
    quantity: Decimal
    name: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", ItemKind(self.kind))
        object.__setattr__(
            self, "unit_price", to_non_negative(self.unit_price, "unit_price")
        )
        object.__setattr__(self, "quantity", to_positive(self.quantity, "quantity"))

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True, slots=True)
class Sale:
    """Committed transaction record.  Immutable once created."""

    id: str
    timestamp: datetime
    lines: tuple[CartLine, ...]
    total: Decimal
    payment_mode: PaymentMode
    is_employee_meal: bool = False
    notes: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "lines", tuple(self.lines))
        object.__setattr__(self, "payment_mode", PaymentMode(self.payment_mode))


@dataclass(frozen=True, slots=True)
class KitchenOrder:
    """Ticket queued for the kitchen when a sale commits."""

    id: str
    order_number: int
    timestamp: datetime
    lines: tuple[CartLine, ...]


@dataclass(frozen=True, slots=True)
class OrderNumberState:
    """Last issued kitchen order number and the business date it belongs to."""

    business_date: date
    number: int

    def next_for(self, business_date: date) -> OrderNumberState:
        if business_date == self.business_date:
            return OrderNumberState(business_date, self.number + 1)
        return OrderNumberState(business_date, 1)


# ---------------------------------------------------------------------------
# Costs and labor
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class MiscCost:
    """Operating cost record; LABOR is the distinguished subtype."""

    id: str
    name: str
    amount: Decimal
    timestamp: datetime
    kind: CostKind = CostKind.OPERATING

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", _require_text(self.name, "name"))
        object.__setattr__(self, "amount", to_non_negative(self.amount, "amount"))
        object.__setattr__(self, "kind", CostKind(self.kind))

    @property
    def is_labor(self) -> bool:
        return self.kind is CostKind.LABOR


@dataclass(frozen=True, slots=True)
class Employee:
    id: str
    name: str
    daily_rate: Decimal = ZERO

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", _require_text(self.name, "name"))
        object.__setattr__(
            self, "daily_rate", to_non_negative(self.daily_rate, "daily_rate")
        )


@dataclass(frozen=True, slots=True)
class TimeClockEntry:
    id: str
    employee_id: str
    start_time: datetime
    end_time: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    def close(self, end_time: datetime) -> TimeClockEntry:
        if end_time < self.start_time:
            raise ValidationError("end_time", "cannot precede start_time", end_time)
        return replace(self, end_time=end_time)


@dataclass(frozen=True, slots=True)
class Tax:
    """Percentage tax applied to the cart subtotal at checkout."""

    name: str
    rate: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", _require_text(self.name, "tax.name"))
        object.__setattr__(self, "rate", to_non_negative(self.rate, "tax.rate"))


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class InventorySnapshot:
    """
    Consistent view of ingredients and products.

    Engines read from a snapshot and return new ingredient tuples; the
    service layer swaps snapshots.  Reads against a snapshot need no lock.
    """

    ingredients: tuple[Ingredient, ...] = ()
    products: tuple[Product, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "ingredients", tuple(self.ingredients))
        object.__setattr__(self, "products", tuple(self.products))

    def ingredient_index(self) -> dict[str, Ingredient]:
        return {ing.id: ing for ing in self.ingredients}

    def product_index(self) -> dict[str, Product]:
        return {p.id: p for p in self.products}

    def ingredient(self, ingredient_id: str) -> Ingredient | None:
        for ing in self.ingredients:
            if ing.id == ingredient_id:
                return ing
        return None

    def product(self, product_id: str) -> Product | None:
        for p in self.products:
            if p.id == product_id:
                return p
        return None

    def with_ingredients(self, updated: Mapping[str, Ingredient]) -> InventorySnapshot:
        """
        Replace ingredients by id, keeping collection order.  Ids in
        ``updated`` that are not present are appended.
        """
        seen: set[str] = set()
        merged: list[Ingredient] = []
        for ing in self.ingredients:
            if ing.id in updated:
                merged.append(updated[ing.id])
                seen.add(ing.id)
            else:
                merged.append(ing)
        merged.extend(ing for ing_id, ing in updated.items() if ing_id not in seen)
        return replace(self, ingredients=tuple(merged))

    def with_products(self, products: Iterable[Product]) -> InventorySnapshot:
        return replace(self, products=tuple(products))
