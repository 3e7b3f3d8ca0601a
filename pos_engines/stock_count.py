"""
pos_engines.stock_count -- Physical stock count reconciliation.

Responsibility:
    Capture expected-vs-actual counts for every ingredient, compute the
    per-line and total variance value, freeze the result as an immutable
    ``StockCount``, and optionally apply it by collapsing each counted
    ingredient's history into a single corrective batch.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Reads and resets the ledger through pos_engines.ledger.

State machine:
    DRAFT (actual counts editable)
      -> FINALIZED (immutable StockCount, the permanent audit record)
      -> [APPLIED] (ledger reset; optional, needs explicit confirmation)

Invariants enforced:
    - A line whose actual count was never entered finalizes with
      actual == expected, i.e. zero variance.  A blank count is never a
      write-off.
    - total_variance_value = sum((actual - expected) x unit_cost_at_count).
    - Apply carries the count-time average cost forward as the single
      batch's unit cost; ingredients not in the count are untouched.

Failure modes:
    - IngredientNotFoundError from ``StockCountDraft.with_actual`` for an id
      not in the draft.
    - ValidationError for a negative or non-numeric actual count.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum

from pos_engines.ledger import average_cost, reset_history, total_stock
from pos_engines.tracer import traced_engine
from pos_kernel.domain.models import Ingredient, StockCount, StockCountLine
from pos_kernel.domain.values import to_non_negative
from pos_kernel.exceptions import IngredientNotFoundError
from pos_kernel.logging_config import get_logger

logger = get_logger("engines.stock_count")


class CountState(str, Enum):
    DRAFT = "draft"
    FINALIZED = "finalized"
    APPLIED = "applied"


@dataclass(frozen=True, slots=True)
class DraftLine:
    ingredient_id: str
    ingredient_name: str
    unit: str
    expected_stock: Decimal
    unit_cost_at_count: Decimal
    actual_stock: Decimal | None = None

    @property
    def is_counted(self) -> bool:
        return self.actual_stock is not None


@dataclass(frozen=True, slots=True)
class StockCountDraft:
    """Editable count.  Each edit returns a new draft."""

    lines: tuple[DraftLine, ...]

    def with_actual(self, ingredient_id: str, actual: Decimal | int | str | None) -> StockCountDraft:
        """Set (or clear, with None) the physical count for one ingredient."""
        value = None if actual is None else to_non_negative(actual, "actual_stock")
        found = False
        lines: list[DraftLine] = []
        for line in self.lines:
            if line.ingredient_id == ingredient_id:
                lines.append(replace(line, actual_stock=value))
                found = True
            else:
                lines.append(line)
        if not found:
            raise IngredientNotFoundError(ingredient_id)
        return StockCountDraft(lines=tuple(lines))

    def with_actuals(self, counts: Iterable[tuple[str, Decimal | int | str]]) -> StockCountDraft:
        draft = self
        for ingredient_id, actual in counts:
            draft = draft.with_actual(ingredient_id, actual)
        return draft

    @property
    def uncounted_ids(self) -> tuple[str, ...]:
        return tuple(line.ingredient_id for line in self.lines if not line.is_counted)


@dataclass(frozen=True, slots=True)
class ReconciliationResult:
    """``{stock_count, updated_ingredients_if_applied}``."""

    stock_count: StockCount
    state: CountState
    updated_ingredients: tuple[Ingredient, ...] | None = None

    @property
    def applied(self) -> bool:
        return self.state is CountState.APPLIED


def start_count(ingredients: Sequence[Ingredient]) -> StockCountDraft:
    """Open a draft with expected stock and unit cost read from the ledger."""
    return StockCountDraft(lines=tuple(
        DraftLine(
            ingredient_id=ing.id,
            ingredient_name=ing.name,
            unit=ing.unit,
            expected_stock=total_stock(ing),
            unit_cost_at_count=average_cost(ing),
        )
        for ing in ingredients
    ))


@traced_engine("stock_count", "1.0", fingerprint_fields=("count_id",))
def finalize_count(
    draft: StockCountDraft,
    *,
    count_id: str,
    timestamp: datetime,
) -> StockCount:
    """Freeze the draft.  Uncounted lines default to their expected stock."""
    lines = tuple(
        StockCountLine(
            ingredient_id=line.ingredient_id,
            ingredient_name=line.ingredient_name,
            unit=line.unit,
            expected_stock=line.expected_stock,
            actual_stock=line.actual_stock if line.is_counted else line.expected_stock,
            unit_cost_at_count=line.unit_cost_at_count,
        )
        for line in draft.lines
    )
    stock_count = StockCount.create(count_id, timestamp, lines)
    logger.info("stock_count_finalized", extra={
        "count_id": count_id,
        "line_count": len(lines),
        "uncounted_lines": len(draft.uncounted_ids),
        "total_variance_value": str(stock_count.total_variance_value),
    })
    return stock_count


@traced_engine("stock_count", "1.0", fingerprint_fields=("timestamp",))
def apply_count(
    stock_count: StockCount,
    ingredients: Sequence[Ingredient] | Mapping[str, Ingredient],
    *,
    timestamp: datetime,
) -> tuple[Ingredient, ...]:
    """Reset every counted ingredient to ``(actual, unit_cost_at_count)``.

    Returns the full ingredient collection in its original order.
    Ingredients absent from the count, and count lines whose ingredient
    has since been deleted, are left alone.
    """
    collection = tuple(ingredients.values()) if isinstance(ingredients, Mapping) else tuple(ingredients)
    result: list[Ingredient] = []
    reset_ids: list[str] = []
    for ing in collection:
        line = stock_count.line_for(ing.id)
        if line is None:
            result.append(ing)
            continue
        result.append(reset_history(
            ing,
            new_quantity=line.actual_stock,
            unit_cost=line.unit_cost_at_count,
            timestamp=timestamp,
        ))
        reset_ids.append(ing.id)
    logger.info("stock_count_applied", extra={
        "count_id": stock_count.id,
        "reset_ingredient_count": len(reset_ids),
    })
    return tuple(result)


def reconcile(
    ingredients: Sequence[Ingredient],
    counts: Iterable[tuple[str, Decimal | int | str]],
    *,
    count_id: str,
    timestamp: datetime,
    apply: bool = False,
) -> ReconciliationResult:
    """Draft, fill, finalize and (optionally) apply in one call.

    ``counts`` is ``[(ingredient_id, actual_stock)]``; ingredients without
    an entry count as unchanged.
    """
    draft = start_count(ingredients).with_actuals(counts)
    stock_count = finalize_count(draft, count_id=count_id, timestamp=timestamp)
    if not apply:
        return ReconciliationResult(stock_count=stock_count, state=CountState.FINALIZED)
    updated = apply_count(stock_count, ingredients, timestamp=timestamp)
    return ReconciliationResult(
        stock_count=stock_count,
        state=CountState.APPLIED,
        updated_ingredients=updated,
    )
