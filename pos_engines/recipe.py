"""
pos_engines.recipe -- Recipe cost and sellable stock derivation.

Responsibility:
    Given a product recipe (ingredient id + quantity pairs) and the current
    ingredient ledger, derive the product's unit cost and the maximum number
    of units the kitchen can make.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Reads the ledger through pos_engines.ledger; never writes.

Invariants enforced:
    - Derived, never stored: cost and stock are recomputed on every call.
    - Bill-of-materials constraint: sellable stock is the MINIMUM over all
      lines of floor(stock / line quantity).
    - Lenient references: a line whose ingredient is unknown contributes 0
      cost and 0 stock.  It is never an error, so deleting an ingredient
      cannot brick a product.

Failure modes:
    - None raised.  In strict mode every dangling line is reported with a
      warning-level ``recipe_line_unresolved`` log record; in lenient mode
      the same record is emitted at debug level.

Usage:
    resolver = RecipeResolver()
    resolver.cost(bread.recipe, snapshot.ingredients)            # Decimal("10")
    resolver.sellable_stock(bread.recipe, snapshot.ingredients)  # 5
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal

from pos_engines.ledger import average_cost, total_stock
from pos_engines.tracer import traced_engine
from pos_kernel.domain.models import Ingredient, Product, RecipeLine
from pos_kernel.domain.values import ZERO, floor_int
from pos_kernel.logging_config import get_logger

logger = get_logger("engines.recipe")

IngredientSource = Mapping[str, Ingredient] | Iterable[Ingredient]


def index_ingredients(ingredients: IngredientSource) -> Mapping[str, Ingredient]:
    """Accept either an id->ingredient mapping or a plain collection."""
    if isinstance(ingredients, Mapping):
        return ingredients
    return {ing.id: ing for ing in ingredients}


class RecipeResolver:
    """
    Pure calculator for recipe-derived cost and stock.

    Contract:
        No I/O, fully deterministic.  Ingredients are passed in on every
        call; the resolver holds only its strictness flag.
    Guarantees:
        - ``cost`` = sum over lines of average_cost(ingredient) x quantity.
        - ``sellable_stock`` = min over lines of floor(stock / quantity);
          an empty recipe yields 0.
        - Raising any one ingredient's stock never lowers sellable stock.
    Non-goals:
        - Does not validate that the caller's cart fits the stock; that is
          the consumption engine's pre-commit validation.
    """

    def __init__(self, strict: bool = False):
        self.strict = strict

    def _report_unresolved(self, line: RecipeLine) -> None:
        level = logging.WARNING if self.strict else logging.DEBUG
        logger.log(level, "recipe_line_unresolved", extra={
            "ingredient_id": line.ingredient_id,
            "quantity": str(line.quantity),
        })

    @traced_engine("recipe", "1.0")
    def cost(
        self,
        recipe: Sequence[RecipeLine],
        ingredients: IngredientSource,
    ) -> Decimal:
        """Unit cost of one product built from ``recipe``."""
        index = index_ingredients(ingredients)
        total = ZERO
        for line in recipe:
            ingredient = index.get(line.ingredient_id)
            if ingredient is None:
                self._report_unresolved(line)
                continue
            total += average_cost(ingredient) * line.quantity
        return total

    @traced_engine("recipe", "1.0")
    def sellable_stock(
        self,
        recipe: Sequence[RecipeLine],
        ingredients: IngredientSource,
    ) -> int:
        """Units makeable from current stock, limited by the scarcest line."""
        if not recipe:
            return 0
        index = index_ingredients(ingredients)
        levels: list[int] = []
        for line in recipe:
            ingredient = index.get(line.ingredient_id)
            if ingredient is None:
                self._report_unresolved(line)
                levels.append(0)
                continue
            stock = total_stock(ingredient)
            if stock <= ZERO:
                levels.append(0)
                continue
            levels.append(floor_int(stock / line.quantity))
        return min(levels)

    def unresolved_lines(
        self,
        recipe: Sequence[RecipeLine],
        ingredients: IngredientSource,
    ) -> tuple[RecipeLine, ...]:
        """Lines whose ingredient id does not resolve."""
        index = index_ingredients(ingredients)
        missing = tuple(line for line in recipe if line.ingredient_id not in index)
        for line in missing:
            self._report_unresolved(line)
        return missing


def strip_dangling_lines(
    products: Iterable[Product],
    removed_ingredient_ids: Iterable[str],
) -> tuple[Product, ...]:
    """Drop recipe lines that reference removed ingredients.

    Products whose recipes are untouched are returned as the same objects.
    """
    removed = frozenset(removed_ingredient_ids)
    result: list[Product] = []
    for product in products:
        kept = tuple(line for line in product.recipe if line.ingredient_id not in removed)
        if len(kept) == len(product.recipe):
            result.append(product)
            continue
        logger.info("recipe_lines_stripped", extra={
            "product_id": product.id,
            "removed_lines": len(product.recipe) - len(kept),
        })
        result.append(Product(
            id=product.id,
            name=product.name,
            sell_price=product.sell_price,
            recipe=kept,
        ))
    return tuple(result)
