"""Terrain generation layers.

Each generation mode is a short stack of layers applied to a shared
GenerationContext:
- SIMPLE: SimplePathLayer - rasterized corner-to-corner path plus sparse,
  non-clustering obstacles
- MAZE: MazeLayer - recursive backtracker on a 2-cell lattice, then extra
  openings scaled by path complexity
- PLATFORMS: PlatformChainLayer + PlatformIslandLayer + PlatformGraphLayer -
  a jittered chain of platform centres, round islands around them and the
  graph of nearby centres (moving platforms, rotating obstacles)
- ORGANIC: CaveLayer + ConnectivityLayer - cellular automata caves trimmed
  to the region reachable from the start corner
- HYBRID_MAZE_OPEN: MazeLayer + OpenRoomLayer
- HYBRID_ORGANIC_PATH: CaveLayer + GuaranteedPathLayer + ConnectivityLayer

Every stack ends with WalkableSurveyLayer, which collects walkable tiles,
dead ends and the spawn cell.

Cellular automata tuning guide:
- initial_density=0.45, iterations=4 -> balanced caves
- initial_density=0.35, iterations=5 -> more open areas
- initial_density=0.55, iterations=3 -> tighter, more enclosed
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterator

import numpy as np

from rollgen import config
from rollgen.profile import GenerationMode, LevelProfile
from rollgen.types import GridPos
from rollgen.util.rng import RNG

from .context import GenerationContext, GenerationLayer, PlatformEdge, Room
from .grid import (
    CellType,
    cells_of_type,
    count_wall_neighbors,
    distance,
    find_dead_ends,
    flood_fill,
    has_adjacent_wall,
    is_interior,
    largest_region,
    shortest_path,
    stepped_line,
    wall_interior,
)

logger = logging.getLogger(__name__)


def select_generation_mode(profile: LevelProfile, rng: RNG) -> GenerationMode:
    """Pick the mode for a run, honouring adaptive selection when enabled."""
    if not profile.adaptive_mode:
        return profile.generation_mode

    table = profile.adaptive_table
    size = profile.level_size
    difficulty = profile.difficulty_level
    roll = rng.random()

    if size < table.small_size:
        if roll < table.small_simple_probability:
            return GenerationMode.SIMPLE
        return GenerationMode.MAZE
    if size >= table.large_size and difficulty >= table.high_difficulty:
        if roll < table.large_organic_path_probability:
            return GenerationMode.HYBRID_ORGANIC_PATH
        return GenerationMode.HYBRID_MAZE_OPEN
    if difficulty >= table.medium_difficulty:
        if roll < table.medium_maze_probability:
            return GenerationMode.MAZE
        return GenerationMode.ORGANIC
    return profile.generation_mode


def maze_end_anchor(size: int) -> GridPos:
    """Largest odd lattice cell inside the border."""
    last = size - 2
    if last % 2 == 0:
        last -= 1
    return (last, last)


def _extend_path(path: list[GridPos], cells: list[GridPos]) -> None:
    seen = set(path)
    for cell in cells:
        if cell not in seen:
            path.append(cell)
            seen.add(cell)


# =============================================================================
# SIMPLE
# =============================================================================


class SimplePathLayer(GenerationLayer):
    """Open field with a guaranteed diagonal path and scattered obstacles.

    An obstacle is only placed where none of its interior 8-neighbours is
    already a wall, so blocked cells never form clusters.
    """

    def run(self, ctx: GenerationContext) -> Iterator[None]:
        size = ctx.size
        ctx.main_path = stepped_line(ctx.start_anchor, ctx.end_anchor)
        for x, y in ctx.main_path:
            ctx.grid[x, y] = CellType.WALKABLE
        path_cells = set(ctx.main_path)
        logger.debug("Simple layout: main path of %d tiles", len(ctx.main_path))
        yield

        density = ctx.profile.obstacle_density
        for x in range(1, size - 1):
            for y in range(1, size - 1):
                if (x, y) in path_cells:
                    continue
                if ctx.rng.random() < density and not has_adjacent_wall(
                    ctx.grid, x, y
                ):
                    ctx.grid[x, y] = CellType.WALL
        yield


# =============================================================================
# MAZE
# =============================================================================


class MazeLayer(GenerationLayer):
    """Recursive backtracker maze with complexity-driven extra openings."""

    # up, down, left, right
    DIRECTIONS = ((0, 2), (0, -2), (-2, 0), (2, 0))

    def __init__(self, max_iterations: int = config.MAZE_MAX_ITERATIONS) -> None:
        self.max_iterations = max_iterations

    def _unvisited_neighbors(
        self, ctx: GenerationContext, pos: GridPos
    ) -> list[GridPos]:
        size = ctx.size
        result = []
        for dx, dy in self.DIRECTIONS:
            nx, ny = pos[0] + dx, pos[1] + dy
            if is_interior(size, nx, ny) and ctx.grid[nx, ny] == CellType.WALL:
                result.append((nx, ny))
        return result

    def run(self, ctx: GenerationContext) -> Iterator[None]:
        size = ctx.size
        grid = ctx.grid
        wall_interior(grid)

        start = ctx.start_anchor
        grid[start] = CellType.WALKABLE
        stack = [start]
        iterations = 0

        while stack and iterations < self.max_iterations:
            iterations += 1
            current = stack[-1]
            neighbors = self._unvisited_neighbors(ctx, current)
            if neighbors:
                chosen = ctx.rng.choice(neighbors)
                between = (
                    current[0] + (chosen[0] - current[0]) // 2,
                    current[1] + (chosen[1] - current[1]) // 2,
                )
                grid[between] = CellType.WALKABLE
                grid[chosen] = CellType.WALKABLE
                stack.append(chosen)
            else:
                stack.pop()

            if iterations % config.MAZE_YIELD_INTERVAL == 0:
                yield

        if stack:
            logger.warning(
                "Maze carving stopped at the %d iteration cap", self.max_iterations
            )

        # Knock out extra walls so the maze has more than one route
        openings = math.floor(
            size * size * ctx.profile.path_complexity * config.MAZE_EXTRA_OPENING_FACTOR
        )
        removed = 0
        for _ in range(openings):
            x = ctx.rng.randrange(1, size - 1)
            y = ctx.rng.randrange(1, size - 1)
            if grid[x, y] == CellType.WALL:
                grid[x, y] = CellType.WALKABLE
                removed += 1

        ctx.main_path = shortest_path(grid, start, maze_end_anchor(size))
        logger.debug(
            "Maze layout: %d iterations, %d/%d extra openings",
            iterations,
            removed,
            openings,
        )
        yield


class OpenRoomLayer(GenerationLayer):
    """Carves square open rooms into an existing maze."""

    def run(self, ctx: GenerationContext) -> Iterator[None]:
        size = ctx.size
        interior = size - 2
        low, high = config.HYBRID_ROOM_SIZE_RANGE
        count = max(1, size // config.HYBRID_ROOMS_PER_TILES)

        for _ in range(count):
            room_size = min(ctx.rng.randint(low, high), interior)
            x = ctx.rng.randint(1, size - 1 - room_size)
            y = ctx.rng.randint(1, size - 1 - room_size)
            room = Room(x, y, room_size, room_size)
            ctx.grid[x : x + room_size, y : y + room_size] = CellType.WALKABLE
            ctx.rooms.append(room)
            yield

        ctx.main_path = shortest_path(ctx.grid, ctx.start_anchor, maze_end_anchor(size))


# =============================================================================
# PLATFORMS
# =============================================================================


class PlatformChainLayer(GenerationLayer):
    """Chains platform centres from the start corner toward the end corner."""

    def __init__(self, max_steps: int | None = None) -> None:
        # None caps the chain at one step per grid cell
        self.max_steps = max_steps

    def next_center(self, ctx: GenerationContext, current: GridPos) -> GridPos:
        size = ctx.size
        end = ctx.end_anchor
        max_step = config.PLATFORM_MAX_STEP

        step_x = max(-2, min(2, end[0] - current[0]))
        step_y = max(-2, min(2, end[1] - current[1]))

        # Jitter within jump distance
        step_x += ctx.rng.randint(-1, 1)
        step_y += ctx.rng.randint(-1, 1)

        step_x = max(-max_step, min(max_step, step_x))
        step_y = max(-max_step, min(max_step, step_y))

        # Keep the Manhattan length of the jump within max_step
        if abs(step_x) + abs(step_y) > max_step:
            if abs(step_x) > abs(step_y):
                step_x = int(math.copysign(max_step - abs(step_y), step_x))
            else:
                step_y = int(math.copysign(max_step - abs(step_x), step_y))

        return (
            max(1, min(size - 2, current[0] + step_x)),
            max(1, min(size - 2, current[1] + step_y)),
        )

    def run(self, ctx: GenerationContext) -> Iterator[None]:
        wall_interior(ctx.grid)
        ctx.main_path = []
        centers = ctx.platform_graph.nodes
        centers.clear()

        end = ctx.end_anchor
        reach = config.PLATFORM_MAX_STEP
        current = ctx.start_anchor
        centers.append(current)

        max_steps = self.max_steps if self.max_steps is not None else ctx.size**2
        steps = 0
        while abs(current[0] - end[0]) > reach or abs(current[1] - end[1]) > reach:
            if steps >= max_steps:
                logger.debug("Platform chain stopped at the %d step cap", max_steps)
                break
            steps += 1
            nxt = self.next_center(ctx, current)
            if nxt == current:
                break
            centers.append(nxt)
            self._connect(ctx, current, nxt)
            current = nxt
            yield

        centers.append(end)
        self._connect(ctx, current, end)
        logger.debug("Platform layout: %d centres", len(centers))

    def _connect(self, ctx: GenerationContext, a: GridPos, b: GridPos) -> None:
        cells = stepped_line(a, b)
        for x, y in cells:
            ctx.grid[x, y] = CellType.WALKABLE
        _extend_path(ctx.main_path, cells)


class PlatformIslandLayer(GenerationLayer):
    """Carves a round island of walkable cells around every platform centre."""

    def run(self, ctx: GenerationContext) -> Iterator[None]:
        size = ctx.size
        low, high = config.PLATFORM_ISLAND_RADIUS_RANGE
        for cx, cy in ctx.platform_graph.nodes:
            radius = ctx.rng.randint(low, high)
            for dx in range(-radius, radius + 1):
                for dy in range(-radius, radius + 1):
                    x, y = cx + dx, cy + dy
                    if is_interior(size, x, y) and math.hypot(dx, dy) <= radius:
                        ctx.grid[x, y] = CellType.WALKABLE
            yield


class PlatformGraphLayer(GenerationLayer):
    """Links nearby platform centres and tags dynamic element sites."""

    def run(self, ctx: GenerationContext) -> Iterator[None]:
        profile = ctx.profile
        graph = ctx.platform_graph
        nodes = graph.nodes
        graph.edges.clear()
        ctx.moving_platform_tiles.clear()
        ctx.rotating_obstacle_sites.clear()

        low, high = config.PLATFORM_EDGE_DISTANCE_RANGE
        moving = profile.enable_moving_platforms
        tagged: set[GridPos] = set()

        for i, a in enumerate(nodes):
            for b in nodes[i + 1 :]:
                dist = distance(a, b)
                if not low < dist < high:
                    continue
                graph.edges.append(
                    PlatformEdge(a, b, dist, supports_moving_platform=moving)
                )
                if moving:
                    for index, cell in enumerate(stepped_line(a, b)):
                        if ctx.grid[cell] == CellType.WALL:
                            ctx.grid[cell] = CellType.WALKABLE
                        if index % 2 == 0 and cell not in (a, b) and cell not in tagged:
                            tagged.add(cell)
                            ctx.moving_platform_tiles.append(cell)

        if profile.enable_rotating_obstacles and nodes:
            draws = max(
                1, round(len(nodes) * config.ROTATING_OBSTACLE_CENTER_RATIO)
            )
            for _ in range(draws):
                center = ctx.rng.choice(nodes)
                if center not in ctx.rotating_obstacle_sites:
                    ctx.rotating_obstacle_sites.append(center)

        logger.debug(
            "Platform graph: %d edges, %d moving platform tiles, %d rotating sites",
            len(graph.edges),
            len(ctx.moving_platform_tiles),
            len(ctx.rotating_obstacle_sites),
        )
        yield


# =============================================================================
# ORGANIC
# =============================================================================


class CaveLayer(GenerationLayer):
    """Cellular automata caves.

    The interior is seeded with random walls, then smoothed: a cell becomes
    wall with ``birth_limit`` or more wall neighbours and floor with fewer
    than ``death_limit``. Both corner anchors are forced open afterwards.
    """

    def __init__(
        self,
        initial_density: float = config.ORGANIC_INITIAL_DENSITY,
        iterations: int = config.ORGANIC_ITERATIONS,
        birth_limit: int = config.ORGANIC_BIRTH_LIMIT,
        death_limit: int = config.ORGANIC_DEATH_LIMIT,
    ) -> None:
        self.initial_density = initial_density
        self.iterations = iterations
        self.birth_limit = birth_limit
        self.death_limit = death_limit

    def run(self, ctx: GenerationContext) -> Iterator[None]:
        size = ctx.size
        grid = ctx.grid
        for x in range(1, size - 1):
            for y in range(1, size - 1):
                if ctx.rng.random() < self.initial_density:
                    grid[x, y] = CellType.WALL
                else:
                    grid[x, y] = CellType.WALKABLE
        yield

        inner = (slice(1, size - 1), slice(1, size - 1))
        for _ in range(self.iterations):
            counts = count_wall_neighbors(grid)[inner]
            cells = grid[inner]
            smoothed = cells.copy()
            smoothed[counts >= self.birth_limit] = CellType.WALL
            smoothed[counts < self.death_limit] = CellType.WALKABLE
            grid[inner] = smoothed
            yield

        grid[ctx.start_anchor] = CellType.WALKABLE
        grid[ctx.end_anchor] = CellType.WALKABLE


class GuaranteedPathLayer(GenerationLayer):
    """Carves a straight path between the corner anchors."""

    def run(self, ctx: GenerationContext) -> Iterator[None]:
        ctx.main_path = stepped_line(ctx.start_anchor, ctx.end_anchor)
        for x, y in ctx.main_path:
            ctx.grid[x, y] = CellType.WALKABLE
        yield


class ConnectivityLayer(GenerationLayer):
    """Reduces the floor to one region that contains the start anchor.

    Smoothing tends to wall in the corner around the start anchor, so when
    the anchor is cut off from the biggest cave a tunnel is carved to that
    cave first. Every floor cell still not connected to the anchor then
    becomes wall. If no main path was recorded yet, the shortest route from
    the start anchor to the reachable cell nearest the end anchor becomes
    the path.
    """

    def run(self, ctx: GenerationContext) -> Iterator[None]:
        grid = ctx.grid
        start = ctx.start_anchor

        largest = largest_region(grid)
        if largest.any() and not largest[start]:
            target = min(
                ((int(x), int(y)) for x, y in np.argwhere(largest)),
                key=lambda pos: distance(pos, start),
            )
            for cell in stepped_line(start, target):
                grid[cell] = CellType.WALKABLE
            logger.debug("Tunnelled from %s to the main cave at %s", start, target)
        yield

        reached = flood_fill(grid, start)
        isolated = (grid == CellType.WALKABLE) & ~reached
        grid[isolated] = CellType.WALL
        yield

        if not ctx.main_path:
            end = ctx.end_anchor
            candidates = cells_of_type(grid, CellType.WALKABLE)
            target = min(
                candidates,
                key=lambda pos: (pos[0] - end[0]) ** 2 + (pos[1] - end[1]) ** 2,
            )
            ctx.main_path = shortest_path(grid, ctx.start_anchor, target)
        logger.debug(
            "Connectivity pass removed %d isolated cells", int(isolated.sum())
        )


# =============================================================================
# POST-PROCESSING
# =============================================================================


class WalkableSurveyLayer(GenerationLayer):
    """Collects walkable tiles, dead ends and the spawn cell."""

    def run(self, ctx: GenerationContext) -> Iterator[None]:
        profile = ctx.profile
        size = ctx.size

        ctx.walkable_tiles = cells_of_type(ctx.grid, CellType.WALKABLE)
        ctx.walkable_percentage = 100.0 * len(ctx.walkable_tiles) / (size * size)
        ctx.below_min_walkable = ctx.walkable_percentage < profile.min_walkable_area
        if ctx.below_min_walkable:
            logger.debug(
                "Walkable area %.1f%% is below the profile minimum of %d%%",
                ctx.walkable_percentage,
                profile.min_walkable_area,
            )

        ctx.dead_ends = find_dead_ends(ctx.grid, set(ctx.main_path))
        ctx.spawn = self.choose_spawn(ctx)
        yield

    def choose_spawn(self, ctx: GenerationContext) -> GridPos:
        profile = ctx.profile
        if not ctx.walkable_tiles:
            return ctx.start_anchor

        if profile.randomize_spawn_position:
            size = ctx.size
            radius = profile.spawn_safe_radius / profile.tile_size
            for x, y in ctx.walkable_tiles:
                if radius <= x <= size - radius and radius <= y <= size - radius:
                    return (x, y)
        return ctx.walkable_tiles[0]


# =============================================================================
# GENERATOR
# =============================================================================


def build_layers(mode: GenerationMode) -> list[GenerationLayer]:
    """Return the layer stack for ``mode``."""
    match mode:
        case GenerationMode.SIMPLE:
            layers: list[GenerationLayer] = [SimplePathLayer()]
        case GenerationMode.MAZE:
            layers = [MazeLayer()]
        case GenerationMode.PLATFORMS:
            layers = [PlatformChainLayer(), PlatformIslandLayer(), PlatformGraphLayer()]
        case GenerationMode.ORGANIC:
            layers = [CaveLayer(), ConnectivityLayer()]
        case GenerationMode.HYBRID_MAZE_OPEN:
            layers = [MazeLayer(), OpenRoomLayer()]
        case GenerationMode.HYBRID_ORGANIC_PATH:
            layers = [CaveLayer(), GuaranteedPathLayer(), ConnectivityLayer()]
        case _:
            raise ValueError(f"Unknown generation mode: {mode!r}")
    layers.append(WalkableSurveyLayer())
    return layers


class TerrainGenerator:
    """Builds the grid for one run.

    Example:
        terrain = TerrainGenerator(profile, RandomSource(42))
        ctx = terrain.generate()
        ctx.grid[1, 1]  # CellType.WALKABLE
    """

    def __init__(
        self, profile: LevelProfile, rng: RNG, mode: GenerationMode | None = None
    ) -> None:
        self.profile = profile
        self.rng = rng
        self.mode = mode
        self.context: GenerationContext | None = None

    def run(self) -> Iterator[None]:
        """Generate terrain cooperatively; the result lands in ``context``."""
        mode = self.mode
        if mode is None:
            mode = select_generation_mode(self.profile, self.rng)
        ctx = GenerationContext.create_empty(self.profile, self.rng, mode)
        logger.debug(
            "Generating %dx%d terrain in %s mode",
            ctx.size,
            ctx.size,
            mode.name,
        )
        for layer in build_layers(mode):
            yield from layer.run(ctx)
        self.context = ctx

    def generate(self) -> GenerationContext:
        for _ in self.run():
            pass
        assert self.context is not None
        return self.context

    def reset(self) -> None:
        self.context = None
