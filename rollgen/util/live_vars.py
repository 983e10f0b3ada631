"""Live generation telemetry.

Hosts (debug overlays, editor panels, the CLI with ``-v``) inspect the
generator through one global registry. A *watched* variable is read through
a getter each time it is inspected. A *metric* keeps a rolling window of
samples, usually millisecond timings.

Usage:
    live_variable_registry.register_metrics([MetricSpec("levelgen.step_ms", "...")])
    with record_time("levelgen.step_ms"):
        generator.step()
    print(live_variable_registry.snapshot())
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from time import perf_counter
from typing import Any, NamedTuple

from .metrics import RollingStats


class MetricSpec(NamedTuple):
    name: str
    description: str
    window: int = 100


@dataclass
class LiveVariable:
    """One inspectable value. Exactly one of ``getter`` and ``stats`` is set."""

    name: str
    description: str = ""
    getter: Callable[[], Any] | None = None
    stats: RollingStats | None = None

    @property
    def is_metric(self) -> bool:
        return self.stats is not None

    def read(self) -> Any:
        if self.stats is not None:
            return self.stats.summary()
        assert self.getter is not None
        return self.getter()


class LiveVariableRegistry:
    """Name-indexed watched variables and metrics.

    With ``strict`` set (the default) recording an unknown metric raises
    ``KeyError``. Tests that wipe the registry turn ``strict`` off so timing
    in the generator keeps working against an empty registry.
    """

    def __init__(self) -> None:
        self._variables: dict[str, LiveVariable] = {}
        self.strict = True

    def watch(
        self, name: str, getter: Callable[[], Any], *, description: str = ""
    ) -> LiveVariable:
        """Expose ``getter`` under ``name``; watching a name again rebinds it.

        Raises:
            ValueError: If ``name`` is already a metric.
        """
        existing = self._variables.get(name)
        if existing is not None and existing.is_metric:
            raise ValueError(f"'{name}' is already registered as a metric")
        var = LiveVariable(name, description, getter=getter)
        self._variables[name] = var
        return var

    def register_metric(
        self, name: str, description: str = "", window: int = 100
    ) -> LiveVariable:
        if name in self._variables:
            raise ValueError(f"Live variable '{name}' already registered")
        var = LiveVariable(name, description, stats=RollingStats(window))
        self._variables[name] = var
        return var

    def register_metrics(self, specs: Sequence[MetricSpec]) -> None:
        """Register each spec whose name is still free."""
        for spec in specs:
            if spec.name not in self._variables:
                self.register_metric(*spec)

    def get(self, name: str) -> LiveVariable | None:
        return self._variables.get(name)

    def metrics(self) -> list[LiveVariable]:
        return sorted(
            (var for var in self._variables.values() if var.is_metric),
            key=lambda var: var.name,
        )

    def snapshot(self) -> dict[str, Any]:
        """Current reading of every variable, watched ones before metrics."""
        ordered = sorted(
            self._variables.values(), key=lambda var: (var.is_metric, var.name)
        )
        return {var.name: var.read() for var in ordered}

    def record(self, name: str, value: float) -> None:
        """Add a sample to the metric ``name``.

        Raises:
            KeyError: In strict mode, if ``name`` is not a registered metric.
        """
        var = self._variables.get(name)
        if var is None or var.stats is None:
            if self.strict:
                raise KeyError(f"'{name}' is not a registered metric")
            return
        var.stats.record(value)


live_variable_registry = LiveVariableRegistry()


@contextmanager
def record_time(metric_name: str) -> Iterator[None]:
    """Record the wall-clock time of the block, in ms, to ``metric_name``."""
    start = perf_counter()
    try:
        yield
    finally:
        live_variable_registry.record(metric_name, (perf_counter() - start) * 1000)
