"""
pos_services.bootstrap -- Process-level wiring for a store.

Loads the active configuration, applies its logging level to the
pos_kernel logger hierarchy and builds the ``InventoryService``.  Tests and
embedding applications that already hold a ``PosConfig`` construct the
service directly instead.
"""

from __future__ import annotations

from pathlib import Path

from pos_config import get_active_config
from pos_kernel.domain.clock import Clock
from pos_kernel.domain.models import InventorySnapshot
from pos_kernel.logging_config import configure_logging, get_logger, set_log_level
from pos_services.inventory_service import InventoryService

logger = get_logger("services.bootstrap")


def init_service(
    config_path: Path | str | None = None,
    *,
    clock: Clock | None = None,
    snapshot: InventorySnapshot | None = None,
) -> InventoryService:
    """Load config, configure logging and return a ready service."""
    config = get_active_config(config_path)
    configure_logging(level=config.log_level_number)
    # configure_logging is a no-op once a handler is installed.
    set_log_level(config.log_level_number)

    service = InventoryService(clock=clock, config=config, snapshot=snapshot)
    logger.info("service_initialized", extra={
        "log_level": config.log_level,
        "money_places": config.money_places,
        "strict_references": config.strict_references,
        "ingredient_count": len(service.snapshot.ingredients),
        "product_count": len(service.snapshot.products),
    })
    return service
