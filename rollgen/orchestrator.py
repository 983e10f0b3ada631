"""Level generation orchestrator.

The LevelGenerator sequences the pipeline stages as one cooperative run:

    IDLE -> VALIDATING -> INITIALIZING -> GENERATING_TERRAIN
         -> PLACING_COLLECTIBLES -> INSTANTIATING_OBJECTS -> APPLYING_EFFECTS
         -> PLACING_INTERACTIVE -> FINALIZING -> IDLE

The host drives a run by calling ``step()`` once per tick (or ``generate()``
to run it to completion). Each step advances the run's generator to its next
yield point, so a large level never blocks a frame for long.

Failure rules:
- Validation problems and unexpected errors in a core stage (terrain,
  placement, instantiation, finalization) end the run. The previous level
  stays current and the run's partial objects are released.
- Errors in an optional stage (effects, interactive elements) are logged,
  published as warnings, and the stage is skipped.
"""

from __future__ import annotations

import logging
from collections.abc import Generator
from dataclasses import dataclass, field
from enum import Enum, auto
from time import perf_counter

import numpy as np

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
    publish_event,
)
from rollgen.generation.collectibles import CollectiblePlacer, PlacementResult
from rollgen.generation.context import GenerationContext, PlatformGraph, Room
from rollgen.generation.effects import (
    AtmosphereSettings,
    EffectLayer,
    EffectPlacement,
)
from rollgen.generation.grid import CellType
from rollgen.generation.instantiation import ObjectInstantiator
from rollgen.generation.objects import GateController, LevelObject, SwitchTrigger
from rollgen.generation.pool import PrefabPool
from rollgen.generation.terrain import TerrainGenerator, select_generation_mode
from rollgen.profile import GenerationMode, LevelProfile, PrototypeKind
from rollgen.types import GridPos
from rollgen.util.live_vars import MetricSpec, live_variable_registry, record_time
from rollgen.util.rng import RandomSource

logger = logging.getLogger(__name__)

STEP_METRIC = "levelgen.step_ms"
RUN_METRIC = "levelgen.run_ms"
STATE_VARIABLE = "levelgen.state"

_METRICS = [
    MetricSpec(STEP_METRIC, "Time spent in one LevelGenerator.step() call"),
    MetricSpec(RUN_METRIC, "Wall-clock time of a complete generation run", 20),
]


class GenerationState(Enum):
    """Stage the orchestrator is currently in."""

    IDLE = auto()
    VALIDATING = auto()
    INITIALIZING = auto()
    GENERATING_TERRAIN = auto()
    PLACING_COLLECTIBLES = auto()
    INSTANTIATING_OBJECTS = auto()
    APPLYING_EFFECTS = auto()
    PLACING_INTERACTIVE = auto()
    FINALIZING = auto()


class GenerationOutcome(Enum):
    """How the most recent run ended."""

    NONE = auto()
    SUCCESS = auto()
    ERROR = auto()
    CANCELLED = auto()


_CELL_GLYPHS = {
    CellType.WALKABLE: ".",
    CellType.WALL: "#",
    CellType.COLLECTIBLE: "*",
    CellType.GOAL: "G",
}


@dataclass(frozen=True)
class GeneratedLevel:
    """A finished level. The grid is read-only."""

    profile: LevelProfile
    seed: int
    mode: GenerationMode
    grid: np.ndarray
    walkable_tiles: list[GridPos]
    walkable_percentage: float
    main_path: list[GridPos]
    platform_graph: PlatformGraph
    moving_platform_tiles: list[GridPos]
    rotating_obstacle_sites: list[GridPos]
    rooms: list[Room]
    dead_ends: list[GridPos]
    collectibles: list[GridPos]
    goal: GridPos | None
    spawn: GridPos
    goal_collision: bool
    decorations: list[EffectPlacement] = field(default_factory=list)
    steam_emitters: list[EffectPlacement] = field(default_factory=list)
    atmosphere: AtmosphereSettings | None = None
    objects: list[LevelObject] = field(default_factory=list)
    gates: list[tuple[SwitchTrigger, GateController]] = field(default_factory=list)
    object_counts: dict[PrototypeKind, int] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    @property
    def size(self) -> int:
        return self.grid.shape[0]

    def cell(self, x: int, y: int) -> CellType:
        return CellType(int(self.grid[x, y]))

    def to_ascii(self, show_path: bool = False) -> str:
        """Render the grid as text, one row per y, with spawn marked ``S``."""
        path = set(self.main_path) if show_path else set()
        rows = []
        for y in range(self.size):
            row = []
            for x in range(self.size):
                if (x, y) == self.spawn:
                    row.append("S")
                elif (x, y) in path and self.grid[x, y] == CellType.WALKABLE:
                    row.append("o")
                else:
                    row.append(_CELL_GLYPHS[CellType(int(self.grid[x, y]))])
            rows.append("".join(row))
        return "\n".join(rows)


class LevelGenerator:
    """Runs generation pipelines one at a time and owns the current level.

    Example:
        generator = LevelGenerator()
        generator.start(profile)
        while generator.step():
            ...  # render a frame, pump input, etc.
        level = generator.current_level
    """

    def __init__(
        self, pool: PrefabPool | None = None, event_bus: EventBus | None = None
    ) -> None:
        self.pool = pool if pool is not None else PrefabPool()
        self.event_bus = event_bus
        self.state = GenerationState.IDLE
        self.last_outcome = GenerationOutcome.NONE
        self.last_error: Exception | None = None
        self.current_level: GeneratedLevel | None = None
        self.last_profile: LevelProfile | None = None

        self._run: Generator[None, None, GeneratedLevel] | None = None
        self._run_started_at = 0.0
        self._pending_profile: LevelProfile | None = None
        self._run_instantiator: ObjectInstantiator | None = None
        self._level_instantiator: ObjectInstantiator | None = None
        self._published_warnings = 0
        self._run_warnings: list[str] = []

        live_variable_registry.register_metrics(_METRICS)
        live_variable_registry.watch(
            STATE_VARIABLE,
            lambda: self.state.name,
            description="Pipeline state of the most recently created generator",
        )

    @property
    def is_generating(self) -> bool:
        return self._run is not None

    @property
    def has_pending_run(self) -> bool:
        return self._pending_profile is not None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start(self, profile: LevelProfile) -> None:
        """Begin a new run. The first ``step()`` performs validation.

        Raises:
            ReentrancyViolation: If a run is already active.
        """
        if self._run is not None:
            raise ReentrancyViolation(
                f"Generation already running (state {self.state.name})"
            )
        self._pending_profile = None
        self.last_profile = profile
        self.last_error = None
        self._run_started_at = perf_counter()
        self._published_warnings = 0
        self._run_warnings = []
        self._run = self._pipeline(profile)
        logger.info("Level generation started for profile '%s'", profile.name)

    def step(self) -> bool:
        """Advance the active run by one cooperative step.

        A run scheduled by ``regenerate()`` starts here. Returns True while
        there is still work left.
        """
        if self._run is None:
            if self._pending_profile is None:
                return False
            self.start(self._pending_profile)

        assert self._run is not None
        with record_time(STEP_METRIC):
            try:
                next(self._run)
            except StopIteration as stop:
                self._finish(stop.value)
            except Exception as e:
                self._fail(e)
        return self._run is not None or self._pending_profile is not None

    def generate(self, profile: LevelProfile) -> GeneratedLevel:
        """Run a whole pipeline synchronously and return the new level.

        Raises:
            ReentrancyViolation: If a run is already active.
            ConfigurationError: If the profile fails validation.
            Exception: Any fatal error raised by a core stage.
        """
        self.start(profile)
        while self._run is not None:
            self.step()

        if self.last_outcome is not GenerationOutcome.SUCCESS:
            assert self.last_error is not None
            raise self.last_error
        assert self.current_level is not None
        return self.current_level

    def regenerate(self, profile: LevelProfile | None = None) -> None:
        """Tear down the current level and schedule a new run for the next step.

        The new run is deliberately deferred by one tick so the host sees the
        old objects disappear before new ones appear at the same positions.
        """
        profile = profile if profile is not None else self.last_profile
        if profile is None:
            raise ConfigurationError("No profile to regenerate from")
        self.clear_level()
        self._pending_profile = profile
        logger.debug("Regeneration scheduled for profile '%s'", profile.name)

    def cancel(self) -> bool:
        """Stop the active run. Returns False if nothing was running.

        The previously completed level, if any, is left untouched.
        """
        self._pending_profile = None
        if self._run is None:
            return False

        stage = self.state
        self._run.close()
        self._run = None
        self._release_run_objects()
        self.state = GenerationState.IDLE
        self.last_outcome = GenerationOutcome.CANCELLED
        logger.info("Level generation cancelled during %s", stage.name)
        self._publish(GenerationCancelledEvent(stage=stage))
        return True

    def clear_level(self) -> None:
        """Cancel any run, release every object and forget the current level."""
        self.cancel()
        if self._level_instantiator is not None:
            self._level_instantiator.release_all()
            self._level_instantiator = None
        self.pool.release_all()
        self.current_level = None

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _pipeline(self, profile: LevelProfile) -> Generator[None, None, GeneratedLevel]:
        # --- Validation ---
        self.state = GenerationState.VALIDATING
        problems = profile.validate()
        if problems:
            raise ConfigurationError(problems)
        self._stage_completed({"profile": profile.name})
        yield

        # --- Initialization ---
        self.state = GenerationState.INITIALIZING
        seed = profile.resolve_seed()
        rng = RandomSource(seed)
        mode = select_generation_mode(profile, rng)
        logger.info(
            "Generating '%s': %dx%d, %s mode, seed %d",
            profile.name,
            profile.level_size,
            profile.level_size,
            mode.name,
            seed,
        )
        self._publish(GenerationStartedEvent(profile.name, seed, mode))
        self._stage_completed({"seed": seed, "mode": mode})
        yield

        # --- Terrain ---
        self.state = GenerationState.GENERATING_TERRAIN
        terrain = TerrainGenerator(profile, rng, mode)
        yield from terrain.run()
        ctx = terrain.context
        assert ctx is not None
        if ctx.below_min_walkable:
            self._warn(
                f"Walkable area {ctx.walkable_percentage:.1f}% is below the "
                f"minimum of {profile.min_walkable_area}%"
            )
        self._stage_completed(
            {
                "mode": ctx.mode,
                "walkable_tiles": len(ctx.walkable_tiles),
                "walkable_percentage": ctx.walkable_percentage,
                "main_path_length": len(ctx.main_path),
            }
        )

        # --- Collectibles and goal ---
        self.state = GenerationState.PLACING_COLLECTIBLES
        placer = CollectiblePlacer(ctx)
        yield from placer.run()
        placement = placer.result
        if placement.exhaustion is not None:
            self._warn(str(placement.exhaustion), placement.exhaustion)
        if placement.goal_collision:
            self._warn(f"Goal at {placement.goal} shares a collectible cell")
        self._stage_completed(
            {
                "collectibles": len(placement.collectibles),
                "goal": placement.goal,
                "goal_collision": placement.goal_collision,
            }
        )

        # --- Objects ---
        self.state = GenerationState.INSTANTIATING_OBJECTS
        effects = EffectLayer(ctx)
        instantiator = ObjectInstantiator(ctx, placement, effects, self.pool)
        self._run_instantiator = instantiator
        yield from instantiator.run_tiles()
        yield from instantiator.run_dynamic_elements()
        self._publish_instantiator_warnings(instantiator)
        self._stage_completed({"objects": len(instantiator.objects)})

        # --- Optional: effects ---
        self.state = GenerationState.APPLYING_EFFECTS
        try:
            yield from effects.run()
            yield from instantiator.run_effects(effects.plan)
        except Exception as e:
            logger.exception("Effect stage failed; continuing without effects")
            self._warn(f"Effects skipped: {e}", e)
        self._publish_instantiator_warnings(instantiator)
        self._stage_completed(
            {
                "decorations": len(effects.plan.decorations),
                "steam_emitters": len(effects.plan.steam_emitters),
            }
        )

        # --- Optional: switches and gates ---
        self.state = GenerationState.PLACING_INTERACTIVE
        try:
            yield from instantiator.run_gates()
        except Exception as e:
            logger.exception("Interactive stage failed; continuing without gates")
            self._warn(f"Interactive elements skipped: {e}", e)
        self._publish_instantiator_warnings(instantiator)
        self._stage_completed({"gate_pairs": len(instantiator.gates)})

        # --- Finalization ---
        self.state = GenerationState.FINALIZING
        return self._build_level(profile, seed, ctx, placement, effects, instantiator)

    def _build_level(
        self,
        profile: LevelProfile,
        seed: int,
        ctx: GenerationContext,
        placement: PlacementResult,
        effects: EffectLayer,
        instantiator: ObjectInstantiator,
    ) -> GeneratedLevel:
        grid = ctx.grid.copy(order="F")
        grid.flags.writeable = False
        return GeneratedLevel(
            profile=profile,
            seed=seed,
            mode=ctx.mode,
            grid=grid,
            walkable_tiles=list(ctx.walkable_tiles),
            walkable_percentage=ctx.walkable_percentage,
            main_path=list(ctx.main_path),
            platform_graph=ctx.platform_graph,
            moving_platform_tiles=list(ctx.moving_platform_tiles),
            rotating_obstacle_sites=list(ctx.rotating_obstacle_sites),
            rooms=list(ctx.rooms),
            dead_ends=list(ctx.dead_ends),
            collectibles=list(placement.collectibles),
            goal=placement.goal,
            spawn=placement.spawn,
            goal_collision=placement.goal_collision,
            decorations=list(effects.plan.decorations),
            steam_emitters=list(effects.plan.steam_emitters),
            atmosphere=effects.plan.atmosphere,
            objects=list(instantiator.objects),
            gates=list(instantiator.gates),
            object_counts=instantiator.object_counts(),
            warnings=list(self._run_warnings),
        )

    # ------------------------------------------------------------------
    # Run endings
    # ------------------------------------------------------------------

    def _finish(self, level: GeneratedLevel) -> None:
        self._stage_completed({"objects": len(level.objects)})
        if self._level_instantiator is not None:
            self._level_instantiator.release_all()
        self._level_instantiator = self._run_instantiator
        self._run_instantiator = None
        self._run = None

        self.current_level = level
        self.state = GenerationState.IDLE
        self.last_outcome = GenerationOutcome.SUCCESS

        elapsed_ms = (perf_counter() - self._run_started_at) * 1000
        live_variable_registry.record(RUN_METRIC, elapsed_ms)

        logger.info(
            "Level '%s' generated in %.1f ms: %d objects, %d collectibles",
            level.profile.name,
            elapsed_ms,
            len(level.objects),
            len(level.collectibles),
        )
        self._publish(GenerationCompletedEvent(level))

    def _fail(self, error: Exception) -> None:
        stage = self.state
        self._run = None
        self._release_run_objects()
        self.state = GenerationState.IDLE
        self.last_outcome = GenerationOutcome.ERROR
        self.last_error = error

        if isinstance(error, ConfigurationError):
            logger.error("Invalid level profile: %s", error)
        else:
            logger.exception(f"Level generation failed during {stage.name}")
        self._publish(GenerationErrorEvent(str(error), stage, error))

    def _release_run_objects(self) -> None:
        if self._run_instantiator is not None:
            self._run_instantiator.release_all()
            self._run_instantiator = None

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _publish(self, event: GenerationEvent) -> None:
        if self.event_bus is not None:
            self.event_bus.publish(event)
        else:
            publish_event(event)

    def _stage_completed(self, payload: dict) -> None:
        logger.debug("Stage %s completed: %s", self.state.name, payload)
        self._publish(StageCompletedEvent(self.state, payload))

    def _warn(self, message: str, error: Exception | None = None) -> None:
        logger.warning(message)
        self._run_warnings.append(message)
        self._publish(GenerationWarningEvent(message, self.state, error))

    def _publish_instantiator_warnings(self, instantiator: ObjectInstantiator) -> None:
        for message in instantiator.warnings[self._published_warnings :]:
            self._run_warnings.append(message)
            self._publish(GenerationWarningEvent(message, self.state))
        self._published_warnings = len(instantiator.warnings)

