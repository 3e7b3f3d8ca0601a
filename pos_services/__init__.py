"""
pos_services -- Package init and public API.

Responsibility:
    Stateful orchestration over the pure engines (pos_engines/).  This is
    the **only** layer that holds mutable collections, takes locks, or
    reads wall-clock time.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

    Dependency direction:
        pos_services/ -> pos_engines/  (allowed)
        pos_services/ -> pos_kernel/   (allowed)
        pos_services/ -> pos_config/   (allowed)
        pos_engines/  -> pos_services/ (FORBIDDEN)
        pos_kernel/   -> pos_services/ (FORBIDDEN)
"""

from pos_services.bootstrap import init_service
from pos_services.inventory_service import IngredientLockTable, InventoryService

__all__ = [
    "IngredientLockTable",
    "InventoryService",
    "init_service",
]
