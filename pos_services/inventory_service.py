"""
pos_services.inventory_service -- Stateful owner of the inventory snapshot.

Responsibility:
    Hold the current ``InventorySnapshot`` together with sales, stock
    counts, miscellaneous costs, the kitchen queue, employees and the time
    clock, and drive the pure engines against them.  This is the only
    mutable holder in the system.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Reads configuration once, at construction, from a ``PosConfig``.
    Time comes from an injected ``Clock``; ids are ``uuid4`` strings.

Invariants enforced:
    - Per-ingredient serialization: every write that touches an
      ingredient's ledger (sale commit, stock count apply, restock,
      adjustment, field update, delete) holds that ingredient's lock for
      its whole critical section.  Locks are acquired in sorted id order.
    - Merge-by-id: snapshot replacement happens under a short collection
      lock and only replaces the ingredients the write touched, so commits
      on disjoint ingredients both survive.
    - Validation strictly precedes mutation: a checkout that fails
      validation leaves every collection untouched.
    - Reads never lock: they run against whichever snapshot is current.

Failure modes:
    - ValidationError / DuplicateIngredientNameError on bad input.
    - IngredientNotFoundError, ProductNotFoundError, OrderNotFoundError,
      EmployeeNotFoundError on explicit lookups of unknown ids.
    - InsufficientStockError from ``checkout``.
    - ShiftStateError on a double clock in or a clock out without a shift.

Usage:
    service = InventoryService(clock=SystemClock(), config=get_active_config())
    flour = service.add_ingredient("Flour", "g", initial_stock="1000", total_cost="50")
    bread = service.add_product("Bread", "25", recipe=[RecipeLine(flour.id, "200")])
    commit = service.checkout([CartLine(bread.id, ItemKind.PRODUCT, "25", "2")])
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import replace
from decimal import Decimal
from uuid import uuid4

from pos_config.schema import PosConfig
from pos_engines.consumption import (
    SaleCommit,
    commit_sale,
    plan_deductions,
    price_cart,
    validate_sale,
)
from pos_engines.costing import ALL_TIME, CostingAggregator, CostingSummary, LineProfit, TimeWindow
from pos_engines.labor import accrue_shift
from pos_engines.ledger import (
    LedgerAdjustment,
    append_batch,
    apply_adjustment,
    low_stock_ingredients,
    restock_unit_cost,
    total_stock,
)
from pos_engines.recipe import RecipeResolver, strip_dangling_lines
from pos_engines.stock_count import (
    CountState,
    ReconciliationResult,
    StockCountDraft,
    apply_count,
    finalize_count,
    reconcile,
    start_count,
)
from pos_kernel.domain.clock import Clock, SystemClock
from pos_kernel.domain.models import (
    CartLine,
    CostKind,
    Employee,
    Ingredient,
    InventorySnapshot,
    KitchenOrder,
    MiscCost,
    OrderNumberState,
    PaymentMode,
    Product,
    RecipeLine,
    Sale,
    StockCount,
    TimeClockEntry,
)
from pos_kernel.domain.values import ZERO, to_positive
from pos_kernel.exceptions import (
    DuplicateIngredientNameError,
    EmployeeNotFoundError,
    IngredientNotFoundError,
    OrderNotFoundError,
    ProductNotFoundError,
    ShiftStateError,
)
from pos_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.inventory")


def _new_id() -> str:
    return str(uuid4())


# ---------------------------------------------------------------------------
# Lock table
# ---------------------------------------------------------------------------


class IngredientLockTable:
    """
    One ``threading.Lock`` per ingredient id, created on first use.

    ``hold(ids)`` acquires the locks for a set of ids in sorted order, so
    two writers that share ingredients can never wait on each other in a
    cycle.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def lock_for(self, ingredient_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(ingredient_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[ingredient_id] = lock
            return lock

    def discard(self, ingredient_ids: Iterable[str]) -> None:
        """Forget the locks of deleted ingredients.  Call outside ``hold``."""
        with self._guard:
            for ingredient_id in ingredient_ids:
                self._locks.pop(ingredient_id, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, ingredient_ids: Iterable[str]) -> Iterator[tuple[str, ...]]:
        ordered = tuple(sorted(set(ingredient_ids)))
        acquired: list[threading.Lock] = []
        try:
            for ingredient_id in ordered:
                lock = self.lock_for(ingredient_id)
                lock.acquire()
                acquired.append(lock)
            yield ordered
        finally:
            for lock in reversed(acquired):
                lock.release()


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class InventoryService:
    """
    Application service over the inventory engines.

    Contract:
        Receives its clock and configuration via constructor injection.
        Every public write returns the new domain object(s) it produced.
    Guarantees:
        - Ledger writes are serialized per ingredient.
        - ``checkout`` either records the sale, its ledger batches and its
          kitchen order together, or changes nothing.
        - Kitchen order numbers restart at 1 on each business date.
    Non-goals:
        - Persistence; callers snapshot the collections if they need to.
        - Cancelling a kitchen order does not return stock.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        config: PosConfig | None = None,
        snapshot: InventorySnapshot | None = None,
    ):
        self._clock = clock or SystemClock()
        self._config = config or PosConfig()
        self._resolver = RecipeResolver(strict=self._config.strict_references)
        self._costing = CostingAggregator(self._resolver)
        self._locks = IngredientLockTable()
        self._collection_lock = threading.RLock()

        self._snapshot = snapshot or InventorySnapshot()
        self._sales: list[Sale] = []
        self._stock_counts: list[StockCount] = []
        self._misc_costs: list[MiscCost] = []
        self._kitchen_queue: list[KitchenOrder] = []
        self._order_state: OrderNumberState | None = None
        self._employees: dict[str, Employee] = {}
        self._time_entries: list[TimeClockEntry] = []

    # -- read side ----------------------------------------------------------

    @property
    def config(self) -> PosConfig:
        return self._config

    @property
    def snapshot(self) -> InventorySnapshot:
        return self._snapshot

    @property
    def sales(self) -> tuple[Sale, ...]:
        return tuple(self._sales)

    @property
    def stock_counts(self) -> tuple[StockCount, ...]:
        return tuple(self._stock_counts)

    @property
    def misc_costs(self) -> tuple[MiscCost, ...]:
        return tuple(self._misc_costs)

    @property
    def kitchen_queue(self) -> tuple[KitchenOrder, ...]:
        return tuple(self._kitchen_queue)

    @property
    def employees(self) -> tuple[Employee, ...]:
        return tuple(self._employees.values())

    @property
    def time_entries(self) -> tuple[TimeClockEntry, ...]:
        return tuple(self._time_entries)

    def get_ingredient(self, ingredient_id: str) -> Ingredient:
        ingredient = self._snapshot.ingredient(ingredient_id)
        if ingredient is None:
            raise IngredientNotFoundError(ingredient_id)
        return ingredient

    def get_product(self, product_id: str) -> Product:
        product = self._snapshot.product(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    def ingredient_stock(self, ingredient_id: str) -> Decimal:
        return total_stock(self.get_ingredient(ingredient_id))

    def product_cost(self, product_id: str) -> Decimal:
        snapshot = self._snapshot
        product = snapshot.product(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return self._resolver.cost(product.recipe, snapshot.ingredients)

    def product_stock(self, product_id: str) -> int:
        snapshot = self._snapshot
        product = snapshot.product(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return self._resolver.sellable_stock(product.recipe, snapshot.ingredients)

    def low_stock(self) -> tuple[Ingredient, ...]:
        return low_stock_ingredients(self._snapshot.ingredients)

    def dashboard(self, window: TimeWindow = ALL_TIME) -> CostingSummary:
        summary = self._costing.summarize(
            self.sales, self.misc_costs, self._snapshot, window,
        )
        return summary.rounded(self._config.money_places)

    def line_profitability(self, window: TimeWindow = ALL_TIME) -> tuple[LineProfit, ...]:
        return self._costing.line_profitability(self.sales, self._snapshot, window)

    # -- snapshot swaps -----------------------------------------------------

    def _merge_ingredients(self, updated: Mapping[str, Ingredient]) -> None:
        with self._collection_lock:
            self._snapshot = self._snapshot.with_ingredients(updated)

    def _check_unique_name(self, name: str, exclude_id: str | None = None) -> None:
        wanted = name.strip().lower()
        for ing in self._snapshot.ingredients:
            if ing.id != exclude_id and ing.name.lower() == wanted:
                logger.warning("ingredient_name_duplicate", extra={
                    "ingredient_name": name,
                    "existing_id": ing.id,
                })
                raise DuplicateIngredientNameError(name, ing.id)

    # -- ingredients --------------------------------------------------------

    def add_ingredient(
        self,
        name: str,
        unit: str,
        *,
        initial_stock: Decimal | int | str | None = None,
        total_cost: Decimal | int | str | None = None,
        sell_price: Decimal | int | str = ZERO,
        low_stock_threshold: Decimal | int | str = ZERO,
    ) -> Ingredient:
        """Create an ingredient, optionally with an opening batch.

        The opening batch's unit cost is ``total_cost / initial_stock``.
        """
        ingredient = Ingredient(
            id=_new_id(),
            name=name,
            unit=unit,
            sell_price=sell_price,
            low_stock_threshold=low_stock_threshold,
        )
        if initial_stock is not None:
            quantity = to_positive(initial_stock, "initial_stock")
            unit_cost = restock_unit_cost(quantity, total_cost)
            ingredient = append_batch(ingredient, quantity, unit_cost, self._clock.now())

        with self._collection_lock:
            self._check_unique_name(ingredient.name)
            self._snapshot = self._snapshot.with_ingredients({ingredient.id: ingredient})

        logger.info("ingredient_added", extra={
            "ingredient_id": ingredient.id,
            "ingredient_name": ingredient.name,
            "initial_stock": str(total_stock(ingredient)),
        })
        return ingredient

    def update_ingredient(
        self,
        ingredient_id: str,
        *,
        name: str | None = None,
        unit: str | None = None,
        sell_price: Decimal | int | str | None = None,
        low_stock_threshold: Decimal | int | str | None = None,
    ) -> Ingredient:
        """Edit descriptive fields.  The batch history is never touched."""
        with self._locks.hold([ingredient_id]):
            current = self.get_ingredient(ingredient_id)
            changes: dict[str, object] = {}
            if name is not None:
                changes["name"] = name
            if unit is not None:
                changes["unit"] = unit
            if sell_price is not None:
                changes["sell_price"] = sell_price
            if low_stock_threshold is not None:
                changes["low_stock_threshold"] = low_stock_threshold
            updated = replace(current, **changes)
            with self._collection_lock:
                if name is not None:
                    self._check_unique_name(updated.name, exclude_id=ingredient_id)
                self._snapshot = self._snapshot.with_ingredients({ingredient_id: updated})
        logger.info("ingredient_updated", extra={
            "ingredient_id": ingredient_id,
            "fields": sorted(changes),
        })
        return updated

    def restock(
        self,
        ingredient_id: str,
        quantity: Decimal | int | str,
        total_cost: Decimal | int | str | None = None,
    ) -> Ingredient:
        """Record a purchase of ``quantity`` for ``total_cost``."""
        qty = to_positive(quantity, "quantity")
        unit_cost = restock_unit_cost(qty, total_cost)
        with self._locks.hold([ingredient_id]):
            current = self.get_ingredient(ingredient_id)
            updated = append_batch(current, qty, unit_cost, self._clock.now())
            self._merge_ingredients({ingredient_id: updated})
        logger.info("ingredient_restocked", extra={
            "ingredient_id": ingredient_id,
            "quantity": str(qty),
            "unit_cost": str(unit_cost),
        })
        return updated

    def adjust_stock(self, adjustments: Sequence[LedgerAdjustment]) -> tuple[Ingredient, ...]:
        """Apply a bulk edit.  All ids are checked before any batch is written."""
        adjustments = tuple(adjustments)
        ids = [a.ingredient_id for a in adjustments]
        with self._locks.hold(ids):
            index = self._snapshot.ingredient_index()
            for ingredient_id in ids:
                if ingredient_id not in index:
                    raise IngredientNotFoundError(ingredient_id)
            now = self._clock.now()
            updated: dict[str, Ingredient] = {}
            for adjustment in adjustments:
                base = updated.get(adjustment.ingredient_id, index[adjustment.ingredient_id])
                updated[adjustment.ingredient_id] = apply_adjustment(base, adjustment, now)
            self._merge_ingredients(updated)
        logger.info("stock_adjusted", extra={"adjustment_count": len(adjustments)})
        return tuple(updated.values())

    def delete_ingredients(self, ingredient_ids: Iterable[str]) -> tuple[Ingredient, ...]:
        """Remove ingredients and strip every recipe line that used them."""
        ids = tuple(dict.fromkeys(ingredient_ids))
        with self._locks.hold(ids):
            with self._collection_lock:
                snapshot = self._snapshot
                index = snapshot.ingredient_index()
                for ingredient_id in ids:
                    if ingredient_id not in index:
                        raise IngredientNotFoundError(ingredient_id)
                removed = frozenset(ids)
                self._snapshot = InventorySnapshot(
                    ingredients=tuple(i for i in snapshot.ingredients if i.id not in removed),
                    products=strip_dangling_lines(snapshot.products, removed),
                )
        self._locks.discard(ids)
        logger.info("ingredients_deleted", extra={"ingredient_ids": list(ids)})
        return tuple(index[i] for i in ids)

    # -- products -----------------------------------------------------------

    def add_product(
        self,
        name: str,
        sell_price: Decimal | int | str,
        recipe: Iterable[RecipeLine] = (),
    ) -> Product:
        product = Product(id=_new_id(), name=name, sell_price=sell_price, recipe=tuple(recipe))
        with self._collection_lock:
            snapshot = self._snapshot
            self._snapshot = snapshot.with_products((*snapshot.products, product))
        unresolved = self._resolver.unresolved_lines(product.recipe, self._snapshot.ingredients)
        logger.info("product_added", extra={
            "product_id": product.id,
            "recipe_lines": len(product.recipe),
            "unresolved_lines": len(unresolved),
        })
        return product

    def update_product(
        self,
        product_id: str,
        *,
        name: str | None = None,
        sell_price: Decimal | int | str | None = None,
        recipe: Iterable[RecipeLine] | None = None,
    ) -> Product:
        with self._collection_lock:
            snapshot = self._snapshot
            current = snapshot.product(product_id)
            if current is None:
                raise ProductNotFoundError(product_id)
            updated = Product(
                id=current.id,
                name=current.name if name is None else name,
                sell_price=current.sell_price if sell_price is None else sell_price,
                recipe=current.recipe if recipe is None else tuple(recipe),
            )
            self._snapshot = snapshot.with_products(
                updated if p.id == product_id else p for p in snapshot.products
            )
        logger.info("product_updated", extra={"product_id": product_id})
        return updated

    def delete_products(self, product_ids: Iterable[str]) -> tuple[Product, ...]:
        ids = tuple(dict.fromkeys(product_ids))
        with self._collection_lock:
            snapshot = self._snapshot
            index = snapshot.product_index()
            for product_id in ids:
                if product_id not in index:
                    raise ProductNotFoundError(product_id)
            removed = frozenset(ids)
            self._snapshot = snapshot.with_products(
                p for p in snapshot.products if p.id not in removed
            )
        logger.info("products_deleted", extra={"product_ids": list(ids)})
        return tuple(index[i] for i in ids)

    # -- sales --------------------------------------------------------------

    def checkout(
        self,
        lines: Sequence[CartLine],
        *,
        payment_mode: PaymentMode = PaymentMode.CASH,
        is_employee_meal: bool = False,
        notes: str = "",
    ) -> SaleCommit:
        """Price, validate and commit a cart, then queue its kitchen order.

        Raises:
            ValidationError: on an empty cart.
            InsufficientStockError: when stock does not cover the cart.
        """
        priced = price_cart(
            lines,
            taxes=self._config.taxes,
            payment_mode=payment_mode,
            is_employee_meal=is_employee_meal,
            notes=notes,
        )
        sale_id = _new_id()
        with LogContext.bind(sale_id=sale_id):
            while True:
                wanted = self._touched_ingredients(priced.lines, self._snapshot)
                with self._locks.hold(wanted):
                    with self._collection_lock:
                        snapshot = self._snapshot
                        # A recipe edit since planning can widen the set.
                        if not self._touched_ingredients(priced.lines, snapshot) <= wanted:
                            continue
                        validated = validate_sale(priced, snapshot, self._resolver)
                        now = self._clock.now()
                        commit = commit_sale(
                            validated,
                            snapshot,
                            sale_id=sale_id,
                            timestamp=now,
                            kitchen_order_id=_new_id(),
                            order_state=self._order_state,
                            business_date=self._clock.today(),
                        )
                        self._snapshot = commit.apply_to(snapshot)
                        self._sales.append(commit.sale)
                        self._order_state = commit.order_state
                        if commit.kitchen_order is not None:
                            self._kitchen_queue.append(commit.kitchen_order)
                    break
            logger.info("checkout_completed", extra={
                "sale_id": sale_id,
                "payment_mode": commit.sale.payment_mode.value,
                "total_due": str(priced.total_due),
                "order_number": commit.kitchen_order.order_number if commit.kitchen_order else None,
            })
        return commit

    @staticmethod
    def _touched_ingredients(lines: Sequence[CartLine], snapshot: InventorySnapshot) -> set[str]:
        return {d.ingredient_id for d in plan_deductions(lines, snapshot).deductions}

    def _pop_order(self, order_id: str) -> KitchenOrder:
        with self._collection_lock:
            for i, order in enumerate(self._kitchen_queue):
                if order.id == order_id:
                    return self._kitchen_queue.pop(i)
        raise OrderNotFoundError(order_id)

    def complete_order(self, order_id: str) -> KitchenOrder:
        order = self._pop_order(order_id)
        logger.info("kitchen_order_completed", extra={
            "order_id": order_id, "order_number": order.order_number,
        })
        return order

    def cancel_order(self, order_id: str) -> KitchenOrder:
        order = self._pop_order(order_id)
        logger.info("kitchen_order_cancelled", extra={
            "order_id": order_id, "order_number": order.order_number,
        })
        return order

    # -- stock counts -------------------------------------------------------

    def start_stock_count(self) -> StockCountDraft:
        return start_count(self._snapshot.ingredients)

    def reconcile(
        self,
        counts: Iterable[tuple[str, Decimal | int | str]],
        *,
        apply: bool = False,
    ) -> ReconciliationResult:
        """Count every ingredient against ``counts`` and optionally apply.

        Applying holds every ingredient lock, so no sale can land between
        reading expected stock and resetting the ledger.
        """
        counts = tuple(counts)
        count_id = _new_id()
        with LogContext.bind(count_id=count_id):
            if apply:
                ids = [i.id for i in self._snapshot.ingredients]
                with self._locks.hold(ids):
                    locked = frozenset(ids)
                    result = reconcile(
                        [i for i in self._snapshot.ingredients if i.id in locked],
                        counts,
                        count_id=count_id, timestamp=self._clock.now(), apply=True,
                    )
                    self._merge_ingredients({i.id: i for i in result.updated_ingredients or ()})
            else:
                result = reconcile(
                    self._snapshot.ingredients, counts,
                    count_id=count_id, timestamp=self._clock.now(),
                )
            with self._collection_lock:
                self._stock_counts.append(result.stock_count)
        return result

    def submit_stock_count(self, draft: StockCountDraft, *, apply: bool = False) -> ReconciliationResult:
        """Finalize a draft opened with ``start_stock_count``.

        Apply resets each counted ingredient to its counted quantity, even
        if sales landed after the draft was opened.
        """
        count_id = _new_id()
        with LogContext.bind(count_id=count_id):
            now = self._clock.now()
            stock_count = finalize_count(draft, count_id=count_id, timestamp=now)
            with self._collection_lock:
                self._stock_counts.append(stock_count)
            if not apply:
                return ReconciliationResult(stock_count=stock_count, state=CountState.FINALIZED)
            ids = frozenset(line.ingredient_id for line in stock_count.lines)
            with self._locks.hold(ids):
                counted = [i for i in self._snapshot.ingredients if i.id in ids]
                updated = apply_count(stock_count, counted, timestamp=now)
                self._merge_ingredients({i.id: i for i in updated})
        return ReconciliationResult(
            stock_count=stock_count,
            state=CountState.APPLIED,
            updated_ingredients=updated,
        )

    # -- costs and labor ----------------------------------------------------

    def add_misc_cost(
        self,
        name: str,
        amount: Decimal | int | str,
        kind: CostKind = CostKind.OPERATING,
    ) -> MiscCost:
        cost = MiscCost(
            id=_new_id(), name=name, amount=amount,
            timestamp=self._clock.now(), kind=kind,
        )
        with self._collection_lock:
            self._misc_costs.append(cost)
        logger.info("misc_cost_added", extra={
            "cost_id": cost.id, "kind": cost.kind.value, "amount": str(cost.amount),
        })
        return cost

    def add_employee(self, name: str, daily_rate: Decimal | int | str = ZERO) -> Employee:
        employee = Employee(id=_new_id(), name=name, daily_rate=daily_rate)
        with self._collection_lock:
            self._employees[employee.id] = employee
        logger.info("employee_added", extra={"employee_id": employee.id})
        return employee

    def _employee(self, employee_id: str) -> Employee:
        employee = self._employees.get(employee_id)
        if employee is None:
            raise EmployeeNotFoundError(employee_id)
        return employee

    def _open_entry(self, employee_id: str) -> tuple[int, TimeClockEntry] | None:
        for i, entry in enumerate(self._time_entries):
            if entry.employee_id == employee_id and entry.is_open:
                return i, entry
        return None

    def clock_in(self, employee_id: str) -> TimeClockEntry:
        with LogContext.bind(actor_id=employee_id):
            with self._collection_lock:
                self._employee(employee_id)
                if self._open_entry(employee_id) is not None:
                    raise ShiftStateError(employee_id, "already clocked in")
                entry = TimeClockEntry(
                    id=_new_id(), employee_id=employee_id, start_time=self._clock.now(),
                )
                self._time_entries.append(entry)
            logger.info("employee_clocked_in", extra={"entry_id": entry.id})
        return entry

    def clock_out(self, employee_id: str) -> tuple[TimeClockEntry, MiscCost | None]:
        """Close the open shift and accrue its labor cost, if any."""
        with LogContext.bind(actor_id=employee_id):
            with self._collection_lock:
                employee = self._employee(employee_id)
                found = self._open_entry(employee_id)
                if found is None:
                    raise ShiftStateError(employee_id, "not clocked in")
                position, entry = found
                now = self._clock.now()
                closed = entry.close(now)
                cost = accrue_shift(
                    entry, employee,
                    clock_out=now,
                    cost_id=_new_id(),
                    paid_hours_per_day=self._config.paid_hours_per_day,
                )
                self._time_entries[position] = closed
                if cost is not None:
                    self._misc_costs.append(cost)
            logger.info("employee_clocked_out", extra={
                "entry_id": closed.id,
                "labor_cost": str(cost.amount) if cost is not None else None,
            })
        return closed, cost
