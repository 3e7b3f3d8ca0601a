"""Tests for recipe cost and sellable stock derivation."""

import logging
from datetime import datetime, timezone
from decimal import Decimal

from pos_engines.recipe import RecipeResolver, index_ingredients, strip_dangling_lines
from pos_kernel.domain.models import Ingredient, Product, RecipeLine, StockBatch

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _stocked(ingredient_id: str, quantity: str, unit_cost: str) -> Ingredient:
    return Ingredient(
        id=ingredient_id,
        name=ingredient_id.title(),
        unit="g",
        batches=(StockBatch(T0, Decimal(quantity), Decimal(unit_cost)),),
    )


class TestRecipeCost:
    def setup_method(self):
        self.resolver = RecipeResolver()

    def test_flour_bread_cost(self, bread, snapshot):
        assert self.resolver.cost(bread.recipe, snapshot.ingredients) == Decimal("10")

    def test_multi_line_cost(self):
        ingredients = [_stocked("flour", "1000", "0.05"), _stocked("butter", "500", "0.4")]
        recipe = (RecipeLine("flour", Decimal("200")), RecipeLine("butter", Decimal("25")))
        assert self.resolver.cost(recipe, ingredients) == Decimal("20")

    def test_accepts_mapping(self, bread, flour):
        assert self.resolver.cost(bread.recipe, {"flour": flour}) == Decimal("10")

    def test_empty_recipe_costs_nothing(self, snapshot):
        assert self.resolver.cost((), snapshot.ingredients) == Decimal("0")

    def test_unknown_ingredient_contributes_zero(self, flour):
        recipe = (RecipeLine("flour", Decimal("200")), RecipeLine("ghost", Decimal("5")))
        assert self.resolver.cost(recipe, [flour]) == Decimal("10")


class TestSellableStock:
    def setup_method(self):
        self.resolver = RecipeResolver()

    def test_flour_bread_stock(self, bread, snapshot):
        assert self.resolver.sellable_stock(bread.recipe, snapshot.ingredients) == 5

    def test_floor_not_round(self):
        ingredients = [_stocked("flour", "999", "0.05")]
        recipe = (RecipeLine("flour", Decimal("200")),)
        assert self.resolver.sellable_stock(recipe, ingredients) == 4

    def test_scarcest_line_limits(self):
        ingredients = [_stocked("flour", "1000", "0.05"), _stocked("butter", "60", "0.4")]
        recipe = (RecipeLine("flour", Decimal("200")), RecipeLine("butter", Decimal("25")))
        assert self.resolver.sellable_stock(recipe, ingredients) == 2

    def test_empty_recipe_is_zero(self, snapshot):
        assert self.resolver.sellable_stock((), snapshot.ingredients) == 0

    def test_missing_ingredient_is_zero(self, flour):
        recipe = (RecipeLine("flour", Decimal("200")), RecipeLine("ghost", Decimal("1")))
        assert self.resolver.sellable_stock(recipe, [flour]) == 0

    def test_negative_stock_is_zero(self):
        ingredients = [_stocked("flour", "-50", "0.05")]
        recipe = (RecipeLine("flour", Decimal("200")),)
        assert self.resolver.sellable_stock(recipe, ingredients) == 0

    def test_returns_int(self, bread, snapshot):
        assert isinstance(self.resolver.sellable_stock(bread.recipe, snapshot.ingredients), int)


class TestStrictness:
    def test_lenient_logs_debug(self, captured_logs, flour):
        recipe = (RecipeLine("ghost", Decimal("1")),)
        RecipeResolver().cost(recipe, [flour])
        records = [r for r in captured_logs() if r["message"] == "recipe_line_unresolved"]
        assert records and records[0]["level"] == logging.getLevelName(logging.DEBUG)

    def test_strict_logs_warning_but_does_not_raise(self, captured_logs, flour):
        recipe = (RecipeLine("ghost", Decimal("1")),)
        assert RecipeResolver(strict=True).sellable_stock(recipe, [flour]) == 0
        records = [r for r in captured_logs() if r["message"] == "recipe_line_unresolved"]
        assert records and records[0]["level"] == "WARNING"
        assert records[0]["ingredient_id"] == "ghost"

    def test_unresolved_lines(self, flour):
        ghost = RecipeLine("ghost", Decimal("1"))
        recipe = (RecipeLine("flour", Decimal("1")), ghost)
        assert RecipeResolver().unresolved_lines(recipe, [flour]) == (ghost,)


class TestStripDanglingLines:
    def test_removes_only_deleted_ingredient_lines(self, bread):
        cake = Product(
            id="cake",
            name="Cake",
            sell_price=Decimal("80"),
            recipe=(RecipeLine("flour", Decimal("300")), RecipeLine("sugar", Decimal("100"))),
        )
        water = Product(id="water", name="Water", sell_price=Decimal("10"))
        result = strip_dangling_lines([bread, cake, water], ["sugar"])
        assert result[0] is bread
        assert result[1].recipe == (RecipeLine("flour", Decimal("300")),)
        assert result[2] is water

    def test_product_can_end_with_empty_recipe(self, bread):
        (stripped,) = strip_dangling_lines([bread], ["flour"])
        assert stripped.recipe == ()
        assert not stripped.has_recipe


class TestIndexIngredients:
    def test_mapping_passes_through(self, flour):
        mapping = {"flour": flour}
        assert index_ingredients(mapping) is mapping

    def test_collection_is_indexed(self, flour):
        assert index_ingredients([flour]) == {"flour": flour}
