"""
pos_engines.consumption -- Sale pricing, validation and ledger consumption.

Responsibility:
    Carry a cart through ``PRICED -> VALIDATED -> COMMITTED``.  On commit,
    translate cart lines (recipe products and directly sold ingredients)
    into negative ledger batches priced at each ingredient's average cost,
    and produce the immutable sale record and its kitchen order.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Reads the ledger (pos_engines.ledger) and recipes
    (pos_engines.recipe); returns new ingredients, never mutates.

Invariants enforced:
    - No intra-sale cost drift: every deduction in a sale is priced at the
      average cost captured from the snapshot before any deduction.
    - Atomicity: all deductions are planned first, then applied together;
      an ingredient touched by several cart lines receives ONE batch with
      the combined quantity.
    - Validation strictly precedes mutation: ``commit_sale`` only accepts a
      VALIDATED sale.  Validation never mutates.
    - Referential leniency: unknown item or ingredient ids are dropped from
      the deduction plan but kept verbatim on the sale record.

Failure modes:
    - ValidationError from ``price_cart`` on an empty cart.
    - InsufficientStockError from ``validate_sale`` listing every product
      line over its sellable stock and every ingredient over its ledger
      stock.
    - SaleStateError from ``validate_sale``/``commit_sale`` when the sale is
      not in the required state.

Non-goals:
    - Partial or backordered sales.
    - Post-commit stock re-validation: the ledger may legally go negative
      if a caller bypasses validation through administrative adjustments.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from pos_engines.ledger import append_batch, average_cost, total_stock
from pos_engines.recipe import RecipeResolver
from pos_engines.tracer import traced_engine
from pos_kernel.domain.models import (
    CartLine,
    Ingredient,
    InventorySnapshot,
    ItemKind,
    KitchenOrder,
    OrderNumberState,
    PaymentMode,
    Sale,
    Tax,
)
from pos_kernel.domain.values import ZERO
from pos_kernel.exceptions import (
    InsufficientStockError,
    SaleStateError,
    StockShortfall,
    ValidationError,
)
from pos_kernel.logging_config import get_logger

logger = get_logger("engines.consumption")

EMPLOYEE_MEAL_NOTE = "Employee Meal."


class SaleState(str, Enum):
    PRICED = "priced"
    VALIDATED = "validated"
    COMMITTED = "committed"


@dataclass(frozen=True, slots=True)
class TaxLine:
    name: str
    rate: Decimal
    amount: Decimal


@dataclass(frozen=True, slots=True)
class PricedSale:
    """
    A priced cart awaiting validation and commit.

    ``recorded_total`` is what the committed sale stores: the subtotal for
    paying sales and 0 for employee meals.  Taxes are computed for the
    checkout display and ``total_due`` only.
    """

    lines: tuple[CartLine, ...]
    subtotal: Decimal
    tax_lines: tuple[TaxLine, ...]
    payment_mode: PaymentMode
    is_employee_meal: bool = False
    notes: str = ""
    state: SaleState = SaleState.PRICED

    @property
    def tax_total(self) -> Decimal:
        return sum((t.amount for t in self.tax_lines), ZERO)

    @property
    def total_due(self) -> Decimal:
        if self.is_employee_meal:
            return ZERO
        return self.subtotal + self.tax_total

    @property
    def recorded_total(self) -> Decimal:
        return ZERO if self.is_employee_meal else self.subtotal


@dataclass(frozen=True, slots=True)
class IngredientDeduction:
    """Combined quantity to consume from one ingredient, at sale-start cost."""

    ingredient_id: str
    quantity: Decimal
    unit_cost: Decimal

    @property
    def cost_value(self) -> Decimal:
        return self.quantity * self.unit_cost


@dataclass(frozen=True, slots=True)
class DeductionPlan:
    deductions: tuple[IngredientDeduction, ...]
    unresolved_item_ids: tuple[str, ...] = ()
    unresolved_ingredient_ids: tuple[str, ...] = ()

    def requirement(self, ingredient_id: str) -> Decimal:
        for d in self.deductions:
            if d.ingredient_id == ingredient_id:
                return d.quantity
        return ZERO

    @property
    def total_cost(self) -> Decimal:
        return sum((d.cost_value for d in self.deductions), ZERO)


@dataclass(frozen=True, slots=True)
class SaleCommit:
    """
    Result of a committed sale.

    ``updated_ingredients`` holds only the ingredients the sale touched;
    merge them into the caller's collection by id.
    """

    updated_ingredients: tuple[Ingredient, ...]
    sale: Sale
    kitchen_order: KitchenOrder | None
    order_state: OrderNumberState | None
    plan: DeductionPlan

    def apply_to(self, snapshot: InventorySnapshot) -> InventorySnapshot:
        return snapshot.with_ingredients({ing.id: ing for ing in self.updated_ingredients})


def price_cart(
    lines: Sequence[CartLine],
    *,
    taxes: Sequence[Tax] = (),
    payment_mode: PaymentMode = PaymentMode.CASH,
    is_employee_meal: bool = False,
    notes: str = "",
) -> PricedSale:
    """Price a cart.  Employee meals are always INTERNAL and note-prefixed."""
    lines = tuple(lines)
    if not lines:
        raise ValidationError("lines", "cart is empty")
    subtotal = sum((line.line_total for line in lines), ZERO)
    tax_lines = tuple(
        TaxLine(name=tax.name, rate=tax.rate, amount=subtotal * tax.rate / Decimal("100"))
        for tax in taxes
    )
    if is_employee_meal:
        payment_mode = PaymentMode.INTERNAL
        notes = f"{EMPLOYEE_MEAL_NOTE} {notes}".strip()
    return PricedSale(
        lines=lines,
        subtotal=subtotal,
        tax_lines=tax_lines,
        payment_mode=PaymentMode(payment_mode),
        is_employee_meal=is_employee_meal,
        notes=notes,
    )


def plan_deductions(
    lines: Sequence[CartLine],
    snapshot: InventorySnapshot,
) -> DeductionPlan:
    """
    Combine every cart line into one deduction per ingredient.

    Unit costs are read once from ``snapshot``, so the plan is priced at
    the ledger state before this sale.
    """
    ingredients = snapshot.ingredient_index()
    products = snapshot.product_index()
    quantities: dict[str, Decimal] = {}
    unresolved_items: list[str] = []
    unresolved_ingredients: list[str] = []

    def _add(ingredient_id: str, quantity: Decimal) -> None:
        if ingredient_id not in ingredients:
            if ingredient_id not in unresolved_ingredients:
                unresolved_ingredients.append(ingredient_id)
            return
        quantities[ingredient_id] = quantities.get(ingredient_id, ZERO) + quantity

    for line in lines:
        if line.kind is ItemKind.PRODUCT:
            product = products.get(line.item_id)
            if product is None:
                unresolved_items.append(line.item_id)
                continue
            for recipe_line in product.recipe:
                _add(recipe_line.ingredient_id, recipe_line.quantity * line.quantity)
        else:
            if line.item_id not in ingredients:
                unresolved_items.append(line.item_id)
                continue
            _add(line.item_id, line.quantity)

    if unresolved_items or unresolved_ingredients:
        logger.warning("sale_references_unresolved", extra={
            "unresolved_item_ids": unresolved_items,
            "unresolved_ingredient_ids": unresolved_ingredients,
        })

    deductions = tuple(
        IngredientDeduction(
            ingredient_id=ingredient_id,
            quantity=quantity,
            unit_cost=average_cost(ingredients[ingredient_id]),
        )
        for ingredient_id, quantity in quantities.items()
        if quantity > ZERO
    )
    return DeductionPlan(
        deductions=deductions,
        unresolved_item_ids=tuple(unresolved_items),
        unresolved_ingredient_ids=tuple(unresolved_ingredients),
    )


def validate_sale(
    priced: PricedSale,
    snapshot: InventorySnapshot,
    resolver: RecipeResolver | None = None,
) -> PricedSale:
    """Check availability against sellable stock and ledger stock.

    Preconditions:
        priced.state is PRICED.

    Postconditions:
        Returns the same sale in state VALIDATED.  Nothing is mutated.

    Raises:
        SaleStateError: if the sale is not PRICED.
        InsufficientStockError: listing every shortfall found.
    """
    if priced.state is not SaleState.PRICED:
        raise SaleStateError(SaleState.PRICED.value, priced.state.value)
    resolver = resolver or RecipeResolver()
    products = snapshot.product_index()
    ingredients = snapshot.ingredient_index()
    shortfalls: list[StockShortfall] = []

    product_qty: dict[str, Decimal] = {}
    for line in priced.lines:
        if line.kind is ItemKind.PRODUCT and line.item_id in products:
            product_qty[line.item_id] = product_qty.get(line.item_id, ZERO) + line.quantity
    for product_id, quantity in product_qty.items():
        available = Decimal(
            resolver.sellable_stock(products[product_id].recipe, ingredients)
        )
        if quantity > available:
            shortfalls.append(StockShortfall(
                item_id=product_id,
                required=quantity,
                available=available,
                kind=ItemKind.PRODUCT.value,
            ))

    plan = plan_deductions(priced.lines, snapshot)
    for deduction in plan.deductions:
        available = total_stock(ingredients[deduction.ingredient_id])
        if deduction.quantity > available:
            shortfalls.append(StockShortfall(
                item_id=deduction.ingredient_id,
                required=deduction.quantity,
                available=available,
            ))

    if shortfalls:
        logger.warning("sale_validation_failed", extra={
            "shortfalls": [
                {"item_id": s.item_id, "kind": s.kind,
                 "required": str(s.required), "available": str(s.available)}
                for s in shortfalls
            ],
        })
        raise InsufficientStockError(shortfalls)

    return replace(priced, state=SaleState.VALIDATED)


@traced_engine("consumption", "1.0", fingerprint_fields=("sale_id", "kitchen_order_id"))
def commit_sale(
    validated: PricedSale,
    snapshot: InventorySnapshot,
    *,
    sale_id: str,
    timestamp: datetime,
    kitchen_order_id: str | None = None,
    order_state: OrderNumberState | None = None,
    business_date: date | None = None,
) -> SaleCommit:
    """Apply a validated sale to the ledger in one step.

    Preconditions:
        validated.state is VALIDATED, and ``snapshot`` is the state the
        sale was validated against.

    Postconditions:
        - One negative batch per affected ingredient, priced at the
          average cost in ``snapshot``.
        - An immutable ``Sale`` holding the original cart lines.
        - When ``kitchen_order_id`` is given, a kitchen order numbered from
          ``order_state`` (restarting at 1 on a new business date).

    Raises:
        SaleStateError: if the sale is not VALIDATED.
    """
    if validated.state is not SaleState.VALIDATED:
        raise SaleStateError(SaleState.VALIDATED.value, validated.state.value)

    plan = plan_deductions(validated.lines, snapshot)
    ingredients = snapshot.ingredient_index()
    updated = tuple(
        append_batch(
            ingredients[d.ingredient_id],
            quantity=-d.quantity,
            unit_cost=d.unit_cost,
            timestamp=timestamp,
        )
        for d in plan.deductions
    )

    sale = Sale(
        id=sale_id,
        timestamp=timestamp,
        lines=validated.lines,
        total=validated.recorded_total,
        payment_mode=validated.payment_mode,
        is_employee_meal=validated.is_employee_meal,
        notes=validated.notes,
    )

    kitchen_order = None
    next_state = order_state
    if kitchen_order_id is not None:
        day = business_date or timestamp.date()
        next_state = (
            order_state.next_for(day) if order_state is not None
            else OrderNumberState(day, 1)
        )
        kitchen_order = KitchenOrder(
            id=kitchen_order_id,
            order_number=next_state.number,
            timestamp=timestamp,
            lines=validated.lines,
        )

    logger.info("sale_committed", extra={
        "sale_id": sale_id,
        "line_count": len(validated.lines),
        "total": str(sale.total),
        "is_employee_meal": sale.is_employee_meal,
        "ingredients_consumed": len(updated),
        "consumed_cost": str(plan.total_cost),
        "order_number": kitchen_order.order_number if kitchen_order else None,
    })

    return SaleCommit(
        updated_ingredients=updated,
        sale=sale,
        kitchen_order=kitchen_order,
        order_state=next_state,
        plan=plan,
    )
