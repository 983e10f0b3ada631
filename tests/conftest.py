from __future__ import annotations

from collections.abc import Iterator

import pytest

from rollgen.events import reset_event_bus_for_testing
from rollgen.util.live_vars import live_variable_registry


@pytest.fixture(autouse=True)
def clear_live_variable_registry() -> Iterator[None]:
    """Clear the global live variable registry before and after each test."""
    live_variable_registry._variables.clear()
    live_variable_registry.strict = False
    yield
    live_variable_registry._variables.clear()
    live_variable_registry.strict = True


@pytest.fixture(autouse=True)
def fresh_event_bus() -> Iterator[None]:
    """Give every test its own global event bus."""
    reset_event_bus_for_testing()
    yield
    reset_event_bus_for_testing()
