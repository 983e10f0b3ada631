"""Level profiles: the immutable inputs of one generation run.

A LevelProfile bundles everything the pipeline reads: grid dimensions,
densities, feature flags, the seed policy and the host's prototype handles.
Profiles are frozen; use ``dataclasses.replace`` or ``scaled()`` to derive
variants.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from enum import Enum, IntEnum, auto

from rollgen import config
from rollgen.errors import ConfigurationError
from rollgen.types import ColorRGBf, PrototypeHandle
from rollgen.util.rng import entropy_seed, time_based_seed

logger = logging.getLogger(__name__)


class GenerationMode(IntEnum):
    """Terrain algorithm used to build the grid."""

    SIMPLE = 0
    MAZE = 1
    PLATFORMS = 2
    ORGANIC = 3
    HYBRID_MAZE_OPEN = 4
    HYBRID_ORGANIC_PATH = 5


class SeedMode(Enum):
    """How a profile without an explicit seed picks one."""

    EXPLICIT = auto()
    TIME_BASED = auto()
    RANDOM = auto()


class PrototypeKind(IntEnum):
    """Every kind of object the instantiator can create."""

    GROUND = 0
    WALL = 1
    COLLECTIBLE = 2
    GOAL = 3
    MOVING_PLATFORM = 4
    ROTATING_OBSTACLE = 5
    GATE = 6
    SWITCH = 7
    DECORATION = 8
    STEAM_EMITTER = 9


# Kinds without which a level cannot be built at all.
REQUIRED_PROTOTYPE_KINDS = (
    PrototypeKind.GROUND,
    PrototypeKind.WALL,
    PrototypeKind.COLLECTIBLE,
    PrototypeKind.GOAL,
)

# Bonus added to the difficulty score per generation mode.
_MODE_DIFFICULTY_BONUS = {
    GenerationMode.SIMPLE: 0.0,
    GenerationMode.MAZE: 15.0,
    GenerationMode.PLATFORMS: 20.0,
    GenerationMode.ORGANIC: 18.0,
    GenerationMode.HYBRID_MAZE_OPEN: 25.0,
    GenerationMode.HYBRID_ORGANIC_PATH: 25.0,
}


@dataclass(frozen=True)
class PrototypeSet:
    """Opaque prototype handles supplied by the host, grouped by kind.

    Handles are only compared and hashed; their content (meshes, materials,
    sounds) is the host's business. Materials are optional: an empty
    material tuple means objects keep their prototype's default.
    """

    ground: tuple[PrototypeHandle, ...] = ()
    wall: tuple[PrototypeHandle, ...] = ()
    collectible: tuple[PrototypeHandle, ...] = ()
    goal: tuple[PrototypeHandle, ...] = ()
    moving_platform: tuple[PrototypeHandle, ...] = ()
    rotating_obstacle: tuple[PrototypeHandle, ...] = ()
    gate: tuple[PrototypeHandle, ...] = ()
    switch: tuple[PrototypeHandle, ...] = ()
    decoration: tuple[PrototypeHandle, ...] = ()
    steam_emitter: tuple[PrototypeHandle, ...] = ()

    ground_materials: tuple[PrototypeHandle, ...] = ()
    wall_materials: tuple[PrototypeHandle, ...] = ()
    goal_material: PrototypeHandle | None = None

    def for_kind(self, kind: PrototypeKind) -> tuple[PrototypeHandle, ...]:
        """Return the prototype handles registered for ``kind``."""
        return getattr(self, kind.name.lower())

    def missing_required(self) -> list[PrototypeKind]:
        return [kind for kind in REQUIRED_PROTOTYPE_KINDS if not self.for_kind(kind)]


@dataclass(frozen=True)
class AdaptiveModeTable:
    """Thresholds and odds used when a profile lets the generator pick its mode.

    Rows are checked top to bottom. Each row flips a biased coin between two
    modes; the ``*_probability`` field is the chance of the first one.
    """

    small_size: int = 12
    large_size: int = 20
    high_difficulty: int = 3
    medium_difficulty: int = 2

    small_simple_probability: float = 0.5  # SIMPLE vs MAZE
    large_organic_path_probability: float = 0.5  # vs HYBRID_MAZE_OPEN
    medium_maze_probability: float = 0.5  # MAZE vs ORGANIC


@dataclass(frozen=True)
class LevelProfile:
    """Immutable configuration for one generated level."""

    # Identity
    name: str = "New Level Profile"
    display_name: str = "Level"
    difficulty_level: int = 1
    theme_color: ColorRGBf = (0.0, 1.0, 1.0)

    # Dimensions
    level_size: int = 10
    tile_size: float = 2.0
    min_walkable_area: int = 60  # Percent of the whole grid

    # Collectibles
    collectible_count: int = 5
    min_collectible_distance: int = 2
    collectible_spawn_height: float = 0.5

    # Densities, all in [0, 1]
    obstacle_density: float = 0.1
    rotating_obstacle_density: float = 0.08
    moving_platform_density: float = 0.05
    steam_emitter_density: float = 0.06
    interactive_gate_density: float = 0.02
    slippery_tile_chance: float = 0.1

    # Feature flags
    enable_rotating_obstacles: bool = True
    enable_moving_platforms: bool = True
    enable_steam_emitters: bool = True
    enable_interactive_gates: bool = False
    enable_slippery_tiles: bool = False
    enable_particle_effects: bool = True

    # Generation
    generation_mode: GenerationMode = GenerationMode.MAZE
    path_complexity: float = 0.5
    seed: int = 0  # 0 = no explicit seed, use seed_mode
    seed_mode: SeedMode = SeedMode.TIME_BASED
    adaptive_mode: bool = False
    adaptive_table: AdaptiveModeTable = field(default_factory=AdaptiveModeTable)

    # Spawn
    randomize_spawn_position: bool = False
    spawn_safe_radius: float = 3.0

    prototypes: PrototypeSet = field(default_factory=PrototypeSet)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self) -> list[str]:
        """Return every problem that makes this profile ungeneratable.

        An empty list means the profile is valid. A crowded total density
        is only logged, never reported as a problem.
        """
        problems: list[str] = []

        if self.level_size < config.MIN_LEVEL_SIZE:
            problems.append(
                f"level_size {self.level_size} is below the minimum of "
                f"{config.MIN_LEVEL_SIZE}"
            )
        if self.tile_size <= 0:
            problems.append(f"tile_size must be positive, got {self.tile_size}")

        low, high = config.MIN_WALKABLE_AREA_RANGE
        if not low <= self.min_walkable_area <= high:
            problems.append(
                f"min_walkable_area {self.min_walkable_area} outside [{low}, {high}]"
            )

        if self.collectible_count < 1:
            problems.append("collectible_count must be at least 1")
        else:
            capacity = (
                self.level_size * self.level_size * self.min_walkable_area // 100
            ) // 4
            if self.collectible_count > capacity:
                problems.append(
                    f"collectible_count {self.collectible_count} too high for "
                    f"level_size {self.level_size} (max {capacity})"
                )
        if self.min_collectible_distance < 1:
            problems.append("min_collectible_distance must be at least 1")

        for name in (
            "obstacle_density",
            "rotating_obstacle_density",
            "moving_platform_density",
            "steam_emitter_density",
            "interactive_gate_density",
            "slippery_tile_chance",
            "path_complexity",
        ):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                problems.append(f"{name} must be between 0 and 1, got {value}")

        if self.spawn_safe_radius < 1:
            problems.append("spawn_safe_radius must be at least 1")
        if self.seed_mode is SeedMode.EXPLICIT and self.seed == 0:
            problems.append("seed_mode EXPLICIT requires a non-zero seed")

        for kind in self.prototypes.missing_required():
            problems.append(f"no {kind.name.lower()} prototypes supplied")

        total = self.total_density()
        if total > config.RECOMMENDED_MAX_TOTAL_DENSITY:
            logger.warning(
                "LevelProfile '%s': total object density %.2f is above the "
                "recommended %.2f",
                self.name,
                total,
                config.RECOMMENDED_MAX_TOTAL_DENSITY,
            )

        return problems

    def validated(self) -> LevelProfile:
        """Return ``self`` if valid, otherwise raise ConfigurationError."""
        problems = self.validate()
        if problems:
            raise ConfigurationError(problems)
        return self

    def clamped(self) -> LevelProfile:
        """Return a copy with every numeric field forced into its legal range.

        Useful for profiles assembled from user input, where a slightly out
        of range slider value should be corrected rather than rejected.
        """
        low, high = config.MIN_WALKABLE_AREA_RANGE
        return replace(
            self,
            level_size=max(config.MIN_LEVEL_SIZE, self.level_size),
            collectible_count=max(1, self.collectible_count),
            min_collectible_distance=max(1, self.min_collectible_distance),
            min_walkable_area=min(max(self.min_walkable_area, low), high),
            spawn_safe_radius=max(1.0, self.spawn_safe_radius),
            obstacle_density=_clamp01(self.obstacle_density),
            rotating_obstacle_density=_clamp01(self.rotating_obstacle_density),
            moving_platform_density=_clamp01(self.moving_platform_density),
            steam_emitter_density=_clamp01(self.steam_emitter_density),
            interactive_gate_density=_clamp01(self.interactive_gate_density),
            slippery_tile_chance=_clamp01(self.slippery_tile_chance),
            path_complexity=_clamp01(self.path_complexity),
        )

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    def total_density(self) -> float:
        """Sum of the densities that place objects into the level."""
        return (
            self.obstacle_density
            + self.rotating_obstacle_density
            + self.moving_platform_density
            + self.steam_emitter_density
            + self.interactive_gate_density
        )

    def resolve_seed(self) -> int:
        """Return the seed for the next run.

        A non-zero explicit seed always wins. Otherwise ``seed_mode`` decides
        between a wall-clock derived seed and pure system entropy.
        """
        if self.seed != 0:
            return self.seed
        if self.seed_mode is SeedMode.RANDOM:
            return entropy_seed()
        return time_based_seed()

    def difficulty_score(self) -> float:
        """Rate how hard this profile plays, from 0 to 100."""
        score = self.difficulty_level * 20.0
        score += (self.level_size / 20.0) * 10.0
        score += self.obstacle_density * 15.0
        score += self.rotating_obstacle_density * 12.0
        score += self.moving_platform_density * 10.0
        score += self.steam_emitter_density * 5.0
        score += self.interactive_gate_density * 8.0
        score += _MODE_DIFFICULTY_BONUS[self.generation_mode]
        return min(max(score, 0.0), 100.0)

    def difficulty_description(self) -> str:
        score = self.difficulty_score()
        if score < 25:
            return "Easy"
        if score < 45:
            return "Normal"
        if score < 70:
            return "Hard"
        return "Very Hard"

    def scaled(self, multiplier: float) -> LevelProfile:
        """Return a harder (multiplier > 1) or easier copy of this profile.

        Counts and densities scale linearly (densities clamped to [0, 1]);
        the level edge scales with the square root so the area grows in
        step with the collectible count.
        """
        return replace(
            self,
            collectible_count=round(self.collectible_count * multiplier),
            level_size=round(self.level_size * math.sqrt(multiplier)),
            obstacle_density=_clamp01(self.obstacle_density * multiplier),
            path_complexity=_clamp01(self.path_complexity * multiplier),
            rotating_obstacle_density=_clamp01(
                self.rotating_obstacle_density * multiplier
            ),
            moving_platform_density=_clamp01(
                self.moving_platform_density * multiplier
            ),
            steam_emitter_density=_clamp01(self.steam_emitter_density * multiplier),
        )


def _clamp01(value: float) -> float:
    return min(max(value, 0.0), 1.0)
