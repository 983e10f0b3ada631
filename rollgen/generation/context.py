"""Generation context and layer base class for the terrain pipeline.

The GenerationContext is a mutable container holding all terrain state for
one run. Each layer receives the same context and modifies it in place,
which avoids copying the grid between stages.

Layers are cooperative: ``run()`` is a generator that yields after each
batch of work so the orchestrator can spread a run across host ticks.
``apply()`` drains it for callers that want the result synchronously.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass, field

import numpy as np

from rollgen.profile import GenerationMode, LevelProfile
from rollgen.types import GridPos
from rollgen.util.rng import RNG

from .grid import create_grid


@dataclass(frozen=True)
class PlatformEdge:
    """Connection between two platform centres."""

    a: GridPos
    b: GridPos
    length: float
    supports_moving_platform: bool = False


@dataclass
class PlatformGraph:
    """Connectivity of platform centres in PLATFORMS mode."""

    nodes: list[GridPos] = field(default_factory=list)
    edges: list[PlatformEdge] = field(default_factory=list)

    def neighbors(self, node: GridPos) -> list[GridPos]:
        result = []
        for edge in self.edges:
            if edge.a == node:
                result.append(edge.b)
            elif edge.b == node:
                result.append(edge.a)
        return result


@dataclass(frozen=True)
class Room:
    """An open rectangle carved into a maze. Inclusive of x..x+width-1."""

    x: int
    y: int
    width: int
    height: int

    def cells(self) -> Iterator[GridPos]:
        for x in range(self.x, self.x + self.width):
            for y in range(self.y, self.y + self.height):
                yield (x, y)


@dataclass
class GenerationContext:
    """Mutable terrain state passed through the layers of one run.

    Attributes:
        profile: The profile being generated.
        rng: The run's single random stream.
        mode: Generation mode actually used (after adaptive selection).
        grid: ``(size, size)`` uint8 array of CellType values.
        main_path: Ordered guaranteed route between the mode's anchors.
        platform_graph: Platform centres and their edges (PLATFORMS only).
        moving_platform_tiles: Cells tagged for moving platforms.
        rotating_obstacle_sites: Platform centres tagged for rotating obstacles.
        rooms: Open rooms carved by HYBRID_MAZE_OPEN.
        walkable_tiles: Every WALKABLE cell in x-major order.
        dead_ends: Off-path walkable cells with a single walkable neighbour.
        spawn: Player spawn cell.
    """

    profile: LevelProfile
    rng: RNG
    mode: GenerationMode
    grid: np.ndarray
    main_path: list[GridPos] = field(default_factory=list)
    platform_graph: PlatformGraph = field(default_factory=PlatformGraph)
    moving_platform_tiles: list[GridPos] = field(default_factory=list)
    rotating_obstacle_sites: list[GridPos] = field(default_factory=list)
    rooms: list[Room] = field(default_factory=list)
    walkable_tiles: list[GridPos] = field(default_factory=list)
    dead_ends: list[GridPos] = field(default_factory=list)
    spawn: GridPos = (1, 1)
    walkable_percentage: float = 0.0
    below_min_walkable: bool = False

    @classmethod
    def create_empty(
        cls, profile: LevelProfile, rng: RNG, mode: GenerationMode
    ) -> GenerationContext:
        """Create a context whose grid has a wall ring and an open interior."""
        return cls(
            profile=profile,
            rng=rng,
            mode=mode,
            grid=create_grid(profile.level_size),
        )

    @property
    def size(self) -> int:
        return self.grid.shape[0]

    @property
    def start_anchor(self) -> GridPos:
        return (1, 1)

    @property
    def end_anchor(self) -> GridPos:
        return (self.size - 2, self.size - 2)

    @property
    def platform_centers(self) -> list[GridPos]:
        return self.platform_graph.nodes


class GenerationLayer(ABC):
    """Abstract base class for terrain generation layers.

    Layers are applied sequentially by the TerrainGenerator. Each layer
    receives a GenerationContext and modifies it in place.
    """

    @abstractmethod
    def run(self, ctx: GenerationContext) -> Iterator[None]:
        """Apply this layer to ``ctx``, yielding between batches of work."""
        raise NotImplementedError

    def apply(self, ctx: GenerationContext) -> None:
        """Apply this layer to ``ctx`` in one go."""
        for _ in self.run(ctx):
            pass
