"""
Typed exception hierarchy for the POS kernel.

Every error carries a machine-readable ``code`` class attribute and the
structured data that caused it, so callers catch by type and report by
field rather than by parsing message text:

    try:
        service.checkout(lines, payment_mode=PaymentMode.CASH)
    except InsufficientStockError as e:
        for shortfall in e.shortfalls:
            show_out_of_stock(shortfall.item_id)

Hierarchy
---------

    PosKernelError (base)
    |
    +-- ValidationError
    |   +-- DuplicateIngredientNameError
    |
    +-- NotFoundError
    |   +-- IngredientNotFoundError
    |   +-- ProductNotFoundError
    |   +-- OrderNotFoundError
    |   +-- EmployeeNotFoundError
    |
    +-- StockError
    |   +-- InsufficientStockError
    |
    +-- StateError
    |   +-- SaleStateError
    |   +-- ShiftStateError
    |
    +-- ConfigError
        +-- InvalidConfigError

Error codes
-----------

Category    | Code                      | When raised
------------|---------------------------|--------------------------------------
Validation  | VALIDATION_ERROR          | Malformed input, before any change
            | DUPLICATE_INGREDIENT_NAME | Name clash (case-insensitive)
NotFound    | INGREDIENT_NOT_FOUND      | Explicit lookup of unknown ingredient
            | PRODUCT_NOT_FOUND         | Explicit lookup of unknown product
            | ORDER_NOT_FOUND           | Kitchen order not in queue
            | EMPLOYEE_NOT_FOUND        | Unknown employee on time clock
Stock       | INSUFFICIENT_STOCK        | Pre-commit availability check failed
State       | SALE_STATE_INVALID        | Sale not in the required state
            | SHIFT_STATE_INVALID       | Clock in/out out of order
Config      | INVALID_CONFIG            | Configuration value rejected

Referential gaps inside recipes and sale lines are NOT errors; they
contribute zero stock and zero cost.  ``NotFoundError`` is raised only by
operations that look an id up explicitly.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal


class PosKernelError(Exception):
    """
    Base exception for all POS kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "POS_KERNEL_ERROR"


# Validation exceptions


class ValidationError(PosKernelError):
    """Input was rejected before any state change."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str, value: object = None):
        self.field = field
        self.reason = reason
        self.value = value
        super().__init__(f"Invalid {field}: {reason}")


class DuplicateIngredientNameError(ValidationError):
    """Another ingredient already uses this name (case-insensitive)."""

    code: str = "DUPLICATE_INGREDIENT_NAME"

    def __init__(self, name: str, existing_id: str):
        self.existing_id = existing_id
        super().__init__(
            "name",
            f'an ingredient named "{name}" already exists',
            value=name,
        )


# Lookup exceptions


class NotFoundError(PosKernelError):
    """Base exception for explicit lookups of unknown ids."""

    code: str = "NOT_FOUND"


class IngredientNotFoundError(NotFoundError):
    """Ingredient with given ID was not found."""

    code: str = "INGREDIENT_NOT_FOUND"

    def __init__(self, ingredient_id: str):
        self.ingredient_id = ingredient_id
        super().__init__(f"Ingredient not found: {ingredient_id}")


class ProductNotFoundError(NotFoundError):
    """Product with given ID was not found."""

    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class OrderNotFoundError(NotFoundError):
    """Kitchen order with given ID is not in the queue."""

    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Kitchen order not found: {order_id}")


class EmployeeNotFoundError(NotFoundError):
    """Employee with given ID was not found."""

    code: str = "EMPLOYEE_NOT_FOUND"

    def __init__(self, employee_id: str):
        self.employee_id = employee_id
        super().__init__(f"Employee not found: {employee_id}")


# Stock exceptions


class StockError(PosKernelError):
    """Base exception for stock availability errors."""

    code: str = "STOCK_ERROR"


@dataclass(frozen=True, slots=True)
class StockShortfall:
    """One cart item or ingredient whose requirement exceeds availability.

    ``kind`` is "INGREDIENT" for ledger shortfalls and "PRODUCT" when a
    product line exceeds the product's sellable stock.
    """

    item_id: str
    required: Decimal
    available: Decimal
    kind: str = "INGREDIENT"

    @property
    def missing(self) -> Decimal:
        return self.required - self.available


class InsufficientStockError(StockError):
    """A sale needs more of one or more ingredients than is in stock."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, shortfalls: Sequence[StockShortfall]):
        self.shortfalls = tuple(shortfalls)
        ids = ", ".join(s.item_id for s in self.shortfalls)
        super().__init__(f"Insufficient stock for: {ids}")


# State machine exceptions


class StateError(PosKernelError):
    """Base exception for out-of-order state transitions."""

    code: str = "STATE_ERROR"


class SaleStateError(StateError):
    """Sale is not in the state the operation requires."""

    code: str = "SALE_STATE_INVALID"

    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Sale must be {expected}, but is {actual}")


class ShiftStateError(StateError):
    """Clock in while a shift is open, or clock out with none open."""

    code: str = "SHIFT_STATE_INVALID"

    def __init__(self, employee_id: str, reason: str):
        self.employee_id = employee_id
        self.reason = reason
        super().__init__(f"Shift error for employee {employee_id}: {reason}")


# Configuration exceptions


class ConfigError(PosKernelError):
    """Base exception for configuration errors."""

    code: str = "CONFIG_ERROR"


class InvalidConfigError(ConfigError):
    """A configuration value was rejected."""

    code: str = "INVALID_CONFIG"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration for {key}: {reason}")
