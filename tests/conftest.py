"""Shared fixtures."""
from __future__ import annotations

from decimal import Decimal

import pytest

from bomcore.config.settings import EngineSettings
from bomcore.domain.shared.value_objects import ComponentType
from bomcore.infrastructure.registry import RepositoryRegistry, set_registry

from tests.factories import make_item


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings(
        high_cost_threshold=Decimal("10000"),
        minor_cost_threshold=Decimal("0"),
        cycle_max_depth=50,
        cycle_check_timeout=2.0,
        money_places=2,
    )


@pytest.fixture
def registry():
    """Fresh in-memory repositories, installed for the Celery tasks."""
    registry = RepositoryRegistry.in_memory()
    set_registry(registry)
    yield registry
    set_registry(None)


@pytest.fixture
def sample_items():
    """
    PRODUCT
    ├── FRAME (seq 2)
    │   ├── BOLT (seq 2)
    │   └── PLATE (seq 1)
    └── MOTOR (seq 1, optional)
        └── WIRE
    """
    return [
        make_item("i-frame", "FRAME", sequence=2, quantity="1", unit_cost="500",
                  component_type=ComponentType.SUB_ASSEMBLY),
        make_item("i-bolt", "BOLT", parent="i-frame", sequence=2, quantity="8",
                  unit_cost="0.25", process_step="ASSEMBLY"),
        make_item("i-plate", "PLATE", parent="i-frame", sequence=1, quantity="2",
                  unit_cost="40", scrap_rate="5", process_step="CUTTING"),
        make_item("i-motor", "MOTOR", sequence=1, quantity="1", unit_cost="1200",
                  is_optional=True),
        make_item("i-wire", "WIRE", parent="i-motor", sequence=1, quantity="3",
                  unit_cost="2", process_step="ASSEMBLY"),
    ]
