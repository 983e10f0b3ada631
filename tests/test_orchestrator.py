"""Tests for the LevelGenerator run lifecycle."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TypeVar
from unittest.mock import patch

import numpy as np
import pytest

from rollgen.errors import ConfigurationError, ReentrancyViolation
from rollgen.events import (
    EventBus,
    GenerationCancelledEvent,
    GenerationCompletedEvent,
    GenerationErrorEvent,
    GenerationEvent,
    GenerationStartedEvent,
    GenerationWarningEvent,
    StageCompletedEvent,
    subscribe_to_event,
)
from rollgen.generation.collectibles import CollectiblePlacer
from rollgen.generation.effects import EffectLayer
from rollgen.generation.instantiation import ObjectInstantiator
from rollgen.generation.pool import PrefabPool
from rollgen.orchestrator import (
    RUN_METRIC,
    STATE_VARIABLE,
    STEP_METRIC,
    GenerationOutcome,
    GenerationState,
    LevelGenerator,
)
from rollgen.profile import GenerationMode
from rollgen.util.live_vars import live_variable_registry
from tests.helpers import make_profile

E = TypeVar("E", bound=GenerationEvent)


@dataclass
class Recorder:
    """Collects every event published on a bus, in order."""

    bus: EventBus = field(default_factory=EventBus)
    events: list[GenerationEvent] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.bus.subscribe(GenerationEvent, self.events.append)

    def of_type(self, event_type: type[E]) -> list[E]:
        return [e for e in self.events if isinstance(e, event_type)]

    def warnings(self) -> list[str]:
        return [e.message for e in self.of_type(GenerationWarningEvent)]


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def generator(recorder: Recorder) -> LevelGenerator:
    return LevelGenerator(event_bus=recorder.bus)


def run_until(generator: LevelGenerator, state: GenerationState) -> None:
    while generator.state is not state:
        assert generator.step(), f"run ended before reaching {state.name}"


# =============================================================================
# Successful runs
# =============================================================================


class TestGenerate:
    def test_generate_returns_current_level(self, generator: LevelGenerator) -> None:
        level = generator.generate(make_profile(level_size=12))

        assert generator.current_level is level
        assert generator.last_outcome is GenerationOutcome.SUCCESS
        assert generator.state is GenerationState.IDLE
        assert not generator.is_generating
        assert level.size == 12
        assert level.seed == 1234
        assert level.goal is not None
        assert len(level.collectibles) == 3
        assert level.objects

    def test_level_grid_is_read_only(self, generator: LevelGenerator) -> None:
        level = generator.generate(make_profile(level_size=10))
        with pytest.raises(ValueError):
            level.grid[1, 1] = 1

    def test_stage_events_in_order(
        self, generator: LevelGenerator, recorder: Recorder
    ) -> None:
        generator.generate(make_profile(level_size=12))

        stages = [e.stage for e in recorder.of_type(StageCompletedEvent)]
        assert stages == [
            GenerationState.VALIDATING,
            GenerationState.INITIALIZING,
            GenerationState.GENERATING_TERRAIN,
            GenerationState.PLACING_COLLECTIBLES,
            GenerationState.INSTANTIATING_OBJECTS,
            GenerationState.APPLYING_EFFECTS,
            GenerationState.PLACING_INTERACTIVE,
            GenerationState.FINALIZING,
        ]
        assert isinstance(recorder.events[-1], GenerationCompletedEvent)
        assert recorder.of_type(GenerationErrorEvent) == []

    def test_started_and_completed_payloads(
        self, generator: LevelGenerator, recorder: Recorder
    ) -> None:
        level = generator.generate(
            make_profile(level_size=12, generation_mode=GenerationMode.SIMPLE)
        )

        (started,) = recorder.of_type(GenerationStartedEvent)
        assert started.profile_name == "test"
        assert started.seed == 1234
        assert started.mode is GenerationMode.SIMPLE

        terrain = recorder.of_type(StageCompletedEvent)[2]
        assert terrain.payload["walkable_tiles"] == len(level.walkable_tiles)

        (completed,) = recorder.of_type(GenerationCompletedEvent)
        assert completed.level is level

    def test_stepping_spreads_work_over_calls(self, generator: LevelGenerator) -> None:
        assert generator.step() is False

        generator.start(make_profile(level_size=20))
        assert generator.is_generating
        steps = 1
        while generator.step():
            steps += 1
        assert steps > 10
        assert generator.current_level is not None
        assert generator.last_outcome is GenerationOutcome.SUCCESS

    def test_same_seed_same_level(self) -> None:
        profile = make_profile(level_size=16, generation_mode=GenerationMode.PLATFORMS)
        a = LevelGenerator().generate(profile)
        b = LevelGenerator().generate(profile)
        np.testing.assert_array_equal(a.grid, b.grid)
        assert a.collectibles == b.collectibles
        assert a.goal == b.goal
        assert a.object_counts == b.object_counts

    def test_adaptive_mode_is_reported(self, generator: LevelGenerator) -> None:
        level = generator.generate(make_profile(level_size=8, adaptive_mode=True))
        assert level.mode in (GenerationMode.SIMPLE, GenerationMode.MAZE)

    def test_uses_global_bus_without_injected_one(self) -> None:
        completed: list[GenerationCompletedEvent] = []
        subscribe_to_event(GenerationCompletedEvent, completed.append)
        level = LevelGenerator().generate(make_profile(level_size=10))
        assert [e.level for e in completed] == [level]

    def test_metrics_recorded(self, generator: LevelGenerator) -> None:
        generator.generate(make_profile(level_size=12))
        step_metric = live_variable_registry.get(STEP_METRIC)
        run_metric = live_variable_registry.get(RUN_METRIC)
        assert step_metric is not None and step_metric.stats is not None
        assert run_metric is not None and run_metric.stats is not None
        assert step_metric.stats.count > 1
        assert run_metric.stats.count == 1
        assert live_variable_registry.snapshot()[STATE_VARIABLE] == "IDLE"

    def test_to_ascii(self, generator: LevelGenerator) -> None:
        level = generator.generate(
            make_profile(level_size=10, generation_mode=GenerationMode.SIMPLE)
        )
        rows = level.to_ascii().splitlines()
        assert len(rows) == 10
        assert all(len(row) == 10 for row in rows)
        assert rows[0] == "#" * 10
        sx, sy = level.spawn
        assert rows[sy][sx] == "S"
        assert "G" in level.to_ascii()
        assert "o" in level.to_ascii(show_path=True)


# =============================================================================
# Warnings from recoverable problems
# =============================================================================


class TestWarnings:
    def test_low_walkable_area(
        self, generator: LevelGenerator, recorder: Recorder
    ) -> None:
        level = generator.generate(
            make_profile(
                level_size=12,
                generation_mode=GenerationMode.MAZE,
                min_walkable_area=95,
                collectible_count=3,
            )
        )
        assert level.walkable_percentage < 95
        assert any("below the minimum" in w for w in recorder.warnings())
        assert level.warnings == recorder.warnings()

    def test_collectible_exhaustion(
        self, generator: LevelGenerator, recorder: Recorder
    ) -> None:
        level = generator.generate(
            make_profile(level_size=12, collectible_count=3, min_collectible_distance=50)
        )
        assert len(level.collectibles) == 1
        assert "Placed 1 of 3 collectibles" in recorder.warnings()
        assert "Placed 1 of 3 collectibles" in level.warnings

    def test_level_keeps_warnings_of_its_own_run(
        self, generator: LevelGenerator
    ) -> None:
        crowded = generator.generate(
            make_profile(
                level_size=12,
                generation_mode=GenerationMode.MAZE,
                min_walkable_area=95,
                collectible_count=3,
                min_collectible_distance=50,
            )
        )
        assert any("below the minimum" in w for w in crowded.warnings)
        assert any("collectibles" in w for w in crowded.warnings)

        calm = generator.generate(
            make_profile(level_size=12, generation_mode=GenerationMode.SIMPLE)
        )
        assert calm.warnings == []

    def test_each_problem_is_logged_once(
        self, generator: LevelGenerator, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.WARNING, logger="rollgen"):
            generator.generate(
                make_profile(
                    level_size=12,
                    generation_mode=GenerationMode.MAZE,
                    min_walkable_area=95,
                    collectible_count=3,
                    min_collectible_distance=50,
                )
            )
        messages = [r.getMessage() for r in caplog.records]
        assert len([m for m in messages if "below the" in m]) == 1
        assert len([m for m in messages if "collectibles" in m]) == 1

    def test_pool_fallback(self, recorder: Recorder) -> None:
        pool = PrefabPool()
        pool.close()
        generator = LevelGenerator(pool=pool, event_bus=recorder.bus)
        level = generator.generate(make_profile(level_size=16))
        assert level.objects
        assert any("pool unavailable" in w for w in recorder.warnings())
        assert level.warnings == recorder.warnings()

    def test_effect_stage_failure_is_skipped(
        self, generator: LevelGenerator, recorder: Recorder
    ) -> None:
        with patch.object(EffectLayer, "run", side_effect=RuntimeError("no fog")):
            level = generator.generate(make_profile(level_size=12))

        assert generator.last_outcome is GenerationOutcome.SUCCESS
        assert level.decorations == []
        assert level.atmosphere is None
        warning = next(
            e for e in recorder.of_type(GenerationWarningEvent) if e.error is not None
        )
        assert warning.stage is GenerationState.APPLYING_EFFECTS
        assert "Effects skipped" in warning.message

    def test_interactive_stage_failure_is_skipped(
        self, generator: LevelGenerator, recorder: Recorder
    ) -> None:
        with patch.object(
            ObjectInstantiator, "run_gates", side_effect=RuntimeError("jammed")
        ):
            level = generator.generate(
                make_profile(level_size=12, enable_interactive_gates=True)
            )

        assert level.gates == []
        assert any("Interactive elements skipped" in w for w in recorder.warnings())
        assert level.warnings == recorder.warnings()


# =============================================================================
# Fatal errors
# =============================================================================


class TestFailures:
    def test_invalid_profile_raises_and_publishes(
        self, generator: LevelGenerator, recorder: Recorder
    ) -> None:
        with pytest.raises(ConfigurationError):
            generator.generate(make_profile(level_size=3))

        (error,) = recorder.of_type(GenerationErrorEvent)
        assert error.stage is GenerationState.VALIDATING
        assert isinstance(error.error, ConfigurationError)
        assert "level_size 3" in error.message
        assert generator.last_outcome is GenerationOutcome.ERROR
        assert generator.current_level is None
        assert recorder.of_type(GenerationStartedEvent) == []

    def test_step_reports_failure_without_raising(
        self, generator: LevelGenerator
    ) -> None:
        generator.start(make_profile(level_size=3))
        assert generator.step() is False
        assert isinstance(generator.last_error, ConfigurationError)

    def test_failed_run_keeps_previous_level(self) -> None:
        pool = PrefabPool()
        generator = LevelGenerator(pool=pool)
        level = generator.generate(make_profile(level_size=16))
        in_use = pool.in_use_count

        with pytest.raises(ConfigurationError):
            generator.generate(make_profile(level_size=16, obstacle_density=3.0))

        assert generator.current_level is level
        assert pool.in_use_count == in_use
        assert all(obj.active for obj in level.objects)

    def test_core_stage_fault_is_fatal(
        self, generator: LevelGenerator, recorder: Recorder
    ) -> None:
        with (
            patch.object(CollectiblePlacer, "run", side_effect=RuntimeError("bad grid")),
            pytest.raises(RuntimeError, match="bad grid"),
        ):
            generator.generate(make_profile(level_size=12))

        (error,) = recorder.of_type(GenerationErrorEvent)
        assert error.stage is GenerationState.PLACING_COLLECTIBLES
        assert recorder.of_type(GenerationCompletedEvent) == []

    def test_fault_mid_instantiation_releases_partial_objects(self) -> None:
        pool = PrefabPool()
        generator = LevelGenerator(pool=pool)
        with (
            patch.object(
                ObjectInstantiator,
                "run_dynamic_elements",
                side_effect=RuntimeError("lost prototype"),
            ),
            pytest.raises(RuntimeError),
        ):
            generator.generate(make_profile(level_size=16))

        assert pool.created_count > 0
        assert pool.in_use_count == 0
        assert generator.current_level is None


# =============================================================================
# Reentrancy, cancellation and teardown
# =============================================================================


class TestLifecycle:
    def test_second_start_is_rejected(self, generator: LevelGenerator) -> None:
        profile = make_profile(level_size=12)
        generator.start(profile)
        generator.step()
        state = generator.state

        with pytest.raises(ReentrancyViolation):
            generator.start(profile)
        with pytest.raises(ReentrancyViolation):
            generator.generate(profile)

        assert generator.state is state
        assert generator.is_generating
        while generator.step():
            pass
        assert generator.last_outcome is GenerationOutcome.SUCCESS

    def test_cancel_mid_run_releases_objects(
        self, recorder: Recorder
    ) -> None:
        pool = PrefabPool()
        generator = LevelGenerator(pool=pool, event_bus=recorder.bus)
        generator.start(make_profile(level_size=20))
        run_until(generator, GenerationState.INSTANTIATING_OBJECTS)
        generator.step()
        assert pool.in_use_count > 0

        assert generator.cancel() is True

        assert pool.in_use_count == 0
        assert not generator.is_generating
        assert generator.state is GenerationState.IDLE
        assert generator.last_outcome is GenerationOutcome.CANCELLED
        assert generator.current_level is None
        (cancelled,) = recorder.of_type(GenerationCancelledEvent)
        assert cancelled.stage is GenerationState.INSTANTIATING_OBJECTS

    def test_cancel_keeps_previous_level(self, generator: LevelGenerator) -> None:
        level = generator.generate(make_profile(level_size=12))
        generator.start(make_profile(level_size=12, seed=99))
        generator.step()
        generator.cancel()
        assert generator.current_level is level

    def test_cancel_when_idle(self, generator: LevelGenerator) -> None:
        assert generator.cancel() is False

    def test_clear_level_releases_everything(self) -> None:
        pool = PrefabPool()
        generator = LevelGenerator(pool=pool)
        level = generator.generate(make_profile(level_size=16))
        assert pool.in_use_count == len(level.objects)

        generator.clear_level()

        assert pool.in_use_count == 0
        assert generator.current_level is None
        assert not any(obj.active for obj in level.objects)

    def test_new_level_releases_previous_one(self) -> None:
        pool = PrefabPool()
        generator = LevelGenerator(pool=pool)
        first = generator.generate(make_profile(level_size=16))
        second = generator.generate(make_profile(level_size=16, seed=4321))

        assert generator.current_level is second
        assert pool.in_use_count == len(second.objects)
        assert not any(obj.active for obj in first.objects)

    def test_regenerate_defers_new_run(
        self, recorder: Recorder
    ) -> None:
        pool = PrefabPool()
        generator = LevelGenerator(pool=pool, event_bus=recorder.bus)
        first = generator.generate(make_profile(level_size=16))

        generator.regenerate()

        assert generator.current_level is None
        assert pool.in_use_count == 0
        assert generator.has_pending_run
        assert not generator.is_generating
        assert len(recorder.of_type(GenerationStartedEvent)) == 1

        while generator.step():
            pass

        second = generator.current_level
        assert second is not None
        assert not generator.has_pending_run
        np.testing.assert_array_equal(first.grid, second.grid)
        assert pool.reused_count > 0
        assert len(recorder.of_type(GenerationStartedEvent)) == 2

    def test_regenerate_with_new_profile(self, generator: LevelGenerator) -> None:
        generator.generate(make_profile(level_size=12))
        generator.regenerate(make_profile(level_size=14))
        while generator.step():
            pass
        assert generator.current_level is not None
        assert generator.current_level.size == 14

    def test_regenerate_without_profile(self, generator: LevelGenerator) -> None:
        with pytest.raises(ConfigurationError):
            generator.regenerate()

    def test_cancel_drops_pending_regeneration(self, generator: LevelGenerator) -> None:
        generator.generate(make_profile(level_size=12))
        generator.regenerate()
        assert generator.cancel() is False
        assert not generator.has_pending_run
        assert generator.step() is False
