"""
pos_engines.ledger -- Per-ingredient stock ledger and weighted-average cost.

Responsibility:
    Derive stock quantity and weighted-average unit cost from an
    ingredient's append-only batch history, and produce new ingredients
    with batches appended or history collapsed.  Nothing here mutates:
    every write returns a new ``Ingredient`` and the caller owns what
    happens to it.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import pos_kernel.domain and pos_kernel.exceptions.

Invariants enforced:
    - Derived, never stored: total stock and average cost are recomputed
      from the batches on every call.
    - Average cost runs over ALL batches, positive and negative, so it is
      net cost basis over net quantity.
    - Division guard: average cost is 0 whenever net stock <= 0.
    - Batch order is insertion order; ``append_batch`` only appends.
    - ``unit_cost >= 0`` on every batch written (StockBatch rejects
      negatives).

Failure modes:
    - ValidationError from ``append_batch``/``reset_history``/
      ``apply_adjustment`` if a quantity or cost is non-numeric or a cost
      is negative, or if an adjustment names a different ingredient.

Usage:
    from pos_engines.ledger import append_batch, average_cost, total_stock

    flour = append_batch(flour, quantity=Decimal("1000"),
                         unit_cost=Decimal("0.05"), timestamp=now)
    total_stock(flour)   # Decimal("1000")
    average_cost(flour)  # Decimal("0.05")
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from pos_kernel.domain.models import Ingredient, StockBatch
from pos_kernel.domain.values import ZERO, to_decimal, to_non_negative
from pos_kernel.exceptions import ValidationError
from pos_kernel.logging_config import get_logger

logger = get_logger("engines.ledger")


def total_stock(ingredient: Ingredient) -> Decimal:
    """Net quantity on hand: the sum of every batch quantity."""
    return sum((batch.quantity for batch in ingredient.batches), ZERO)


def average_cost(ingredient: Ingredient) -> Decimal:
    """
    Weighted-average unit cost over the full batch history.

    Returns 0 when net stock is zero or negative, even if the history
    carries costs: a negative-stock average is meaningless.
    """
    stock = total_stock(ingredient)
    if stock <= ZERO:
        return ZERO
    cost_basis = sum((batch.extended_cost for batch in ingredient.batches), ZERO)
    return cost_basis / stock


def inventory_value(ingredient: Ingredient) -> Decimal:
    """Book value on hand (average cost x stock)."""
    return average_cost(ingredient) * total_stock(ingredient)


def append_batch(
    ingredient: Ingredient,
    quantity: Decimal | int | str,
    unit_cost: Decimal | int | str,
    timestamp: datetime,
) -> Ingredient:
    """Return ``ingredient`` with one batch appended.

    Preconditions:
        unit_cost >= 0.  quantity may be negative (consumption).

    Postconditions:
        The returned ingredient's batches are the original batches plus
        exactly one new batch at the end.  The input is unchanged.

    Raises:
        ValidationError: if quantity or unit_cost is invalid.
    """
    batch = StockBatch(timestamp=timestamp, quantity=quantity, unit_cost=unit_cost)
    logger.debug("stock_batch_appended", extra={
        "ingredient_id": ingredient.id,
        "quantity": str(batch.quantity),
        "unit_cost": str(batch.unit_cost),
    })
    return ingredient.with_batches((*ingredient.batches, batch))


def reset_history(
    ingredient: Ingredient,
    new_quantity: Decimal | int | str,
    unit_cost: Decimal | int | str,
    timestamp: datetime,
) -> Ingredient:
    """Replace the entire batch history with one synthetic batch.

    This is the only ledger operation that destroys history; it is used
    when a finalized stock count is applied.
    """
    batch = StockBatch(timestamp=timestamp, quantity=new_quantity, unit_cost=unit_cost)
    logger.info("stock_history_reset", extra={
        "ingredient_id": ingredient.id,
        "discarded_batches": len(ingredient.batches),
        "new_quantity": str(batch.quantity),
        "unit_cost": str(batch.unit_cost),
    })
    return ingredient.with_batches((batch,))


def restock_unit_cost(
    quantity: Decimal | int | str,
    total_cost: Decimal | int | str | None,
) -> Decimal:
    """Unit cost of a purchase given its total cost.

    A missing or zero total cost yields a unit cost of 0.
    """
    qty = to_decimal(quantity, "quantity")
    if total_cost is None:
        return ZERO
    total = to_non_negative(total_cost, "total_cost")
    if total == ZERO or qty <= ZERO:
        return ZERO
    return total / qty


def is_low_stock(ingredient: Ingredient) -> bool:
    """True when alerting is enabled and stock is at or under the threshold."""
    threshold = ingredient.low_stock_threshold
    return threshold > ZERO and total_stock(ingredient) <= threshold


def low_stock_ingredients(ingredients: Iterable[Ingredient]) -> tuple[Ingredient, ...]:
    return tuple(ing for ing in ingredients if is_low_stock(ing))


@dataclass(frozen=True, slots=True)
class LedgerAdjustment:
    """
    Manual stock correction or bulk edit: ``{ingredient_id, delta, unit_cost}``.

    Bulk edits do not know a cost, so ``unit_cost`` defaults to 0.
    """

    ingredient_id: str
    delta: Decimal
    unit_cost: Decimal = ZERO

    def __post_init__(self) -> None:
        object.__setattr__(self, "delta", to_decimal(self.delta, "delta"))
        object.__setattr__(self, "unit_cost", to_non_negative(self.unit_cost, "unit_cost"))


def apply_adjustment(
    ingredient: Ingredient,
    adjustment: LedgerAdjustment,
    timestamp: datetime,
) -> Ingredient:
    """Append the adjustment as a batch.  Net stock may legally go negative."""
    if adjustment.ingredient_id != ingredient.id:
        raise ValidationError(
            "ingredient_id",
            f"adjustment for {adjustment.ingredient_id} applied to {ingredient.id}",
            adjustment.ingredient_id,
        )
    updated = append_batch(
        ingredient,
        quantity=adjustment.delta,
        unit_cost=adjustment.unit_cost,
        timestamp=timestamp,
    )
    if total_stock(updated) < ZERO:
        logger.warning("ledger_negative_stock", extra={
            "ingredient_id": ingredient.id,
            "total_stock": str(total_stock(updated)),
        })
    return updated
