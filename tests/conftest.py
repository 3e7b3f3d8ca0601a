"""
Pytest fixtures for the POS inventory test suite.

Provides:
- Structured logging configured once per session
- A deterministic clock
- The Flour/Bread reference snapshot
- An ``InventoryService`` wired to the deterministic clock
"""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO

import pytest

from pos_config.schema import PosConfig
from pos_kernel.domain.clock import DeterministicClock
from pos_kernel.domain.models import (
    Ingredient,
    InventorySnapshot,
    Product,
    RecipeLine,
    StockBatch,
)
from pos_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from pos_services.inventory_service import InventoryService

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture pos_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, service):
            service.checkout(...)
            logs = captured_logs()
            assert any(r["message"] == "sale_committed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("pos_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(T0)


@pytest.fixture
def flour() -> Ingredient:
    """1000 g of flour bought at 0.05 per gram."""
    return Ingredient(
        id="flour",
        name="Flour",
        unit="g",
        batches=(StockBatch(T0, Decimal("1000"), Decimal("0.05")),),
    )


@pytest.fixture
def bread() -> Product:
    """Bread uses 200 g of flour per loaf."""
    return Product(
        id="bread",
        name="Bread",
        sell_price=Decimal("25"),
        recipe=(RecipeLine("flour", Decimal("200")),),
    )


@pytest.fixture
def snapshot(flour, bread) -> InventorySnapshot:
    return InventorySnapshot(ingredients=(flour,), products=(bread,))


@pytest.fixture
def config() -> PosConfig:
    return PosConfig()


@pytest.fixture
def service(clock, config) -> InventoryService:
    return InventoryService(clock=clock, config=config)


@pytest.fixture
def stocked_service(clock, config, snapshot) -> InventoryService:
    """Service pre-loaded with the Flour/Bread snapshot."""
    return InventoryService(clock=clock, config=config, snapshot=snapshot)
