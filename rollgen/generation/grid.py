"""Grid primitives shared by the generation stages.

Grids are ``uint8`` numpy arrays of shape ``(size, size)`` in Fortran order,
indexed ``grid[x, y]``. Iterating "x-major" means x in the outer loop and y
in the inner one, which is also the row order ``np.argwhere`` returns.
"""

from __future__ import annotations

import math
from collections import deque
from enum import IntEnum

import numpy as np
import tcod.los

from rollgen.types import GridPos, ZoneIndex

# 8-directional Moore neighborhood offsets.
MOORE_OFFSETS = (
    (-1, -1),
    (-1, 0),
    (-1, 1),
    (0, -1),
    (0, 1),
    (1, -1),
    (1, 0),
    (1, 1),
)

# 4-directional offsets used for connectivity.
CARDINAL_OFFSETS = ((1, 0), (-1, 0), (0, 1), (0, -1))


class CellType(IntEnum):
    """Value stored in each grid cell."""

    WALKABLE = 0
    WALL = 1
    COLLECTIBLE = 2
    GOAL = 3


def create_grid(size: int) -> np.ndarray:
    """Create a grid with a solid outer wall ring and a walkable interior."""
    grid = np.full((size, size), fill_value=CellType.WALL, dtype=np.uint8, order="F")
    grid[1 : size - 1, 1 : size - 1] = CellType.WALKABLE
    return grid


def wall_interior(grid: np.ndarray) -> None:
    """Fill every non-border cell with WALL."""
    size = grid.shape[0]
    grid[1 : size - 1, 1 : size - 1] = CellType.WALL


def is_interior(size: int, x: int, y: int) -> bool:
    return 1 <= x <= size - 2 and 1 <= y <= size - 2


def line(start: GridPos, end: GridPos) -> list[GridPos]:
    """Rasterize a straight line, both endpoints included."""
    return [
        (int(x), int(y))
        for x, y in tcod.los.bresenham((start[0], start[1]), (end[0], end[1]))
    ]


def stepped_line(start: GridPos, end: GridPos) -> list[GridPos]:
    """Rasterize a line whose consecutive cells always share an edge.

    Each diagonal Bresenham step is split by an extra cell taken along x,
    so the whole line stays connected under 4-neighbour flood fill.
    """
    cells = line(start, end)
    result = cells[:1]
    for x, y in cells[1:]:
        px, py = result[-1]
        if x != px and y != py:
            result.append((x, py))
        result.append((x, y))
    return result


def has_adjacent_wall(grid: np.ndarray, x: int, y: int) -> bool:
    """Return True if any interior 8-neighbour of (x, y) is a WALL.

    Border cells are ignored so obstacles may still touch the outer ring.
    """
    size = grid.shape[0]
    for dx, dy in MOORE_OFFSETS:
        nx, ny = x + dx, y + dy
        if is_interior(size, nx, ny) and grid[nx, ny] == CellType.WALL:
            return True
    return False


def count_wall_neighbors(grid: np.ndarray) -> np.ndarray:
    """Count WALL cells in the Moore neighborhood of every cell.

    Cells outside the grid count as walls.
    """
    walls = np.pad(
        (grid == CellType.WALL).astype(np.uint8), 1, constant_values=1
    )
    width, height = grid.shape
    counts = np.zeros(grid.shape, dtype=np.uint8, order="F")
    for dx, dy in MOORE_OFFSETS:
        counts += walls[1 + dx : 1 + dx + width, 1 + dy : 1 + dy + height]
    return counts


def flood_fill(grid: np.ndarray, start: GridPos) -> np.ndarray:
    """Return a boolean mask of non-wall cells 4-connected to ``start``."""
    width, height = grid.shape
    reached = np.zeros(grid.shape, dtype=bool, order="F")
    sx, sy = start
    if grid[sx, sy] == CellType.WALL:
        return reached

    queue = deque([start])
    reached[sx, sy] = True
    while queue:
        cx, cy = queue.popleft()
        for dx, dy in CARDINAL_OFFSETS:
            nx, ny = cx + dx, cy + dy
            if (
                0 <= nx < width
                and 0 <= ny < height
                and not reached[nx, ny]
                and grid[nx, ny] != CellType.WALL
            ):
                reached[nx, ny] = True
                queue.append((nx, ny))
    return reached


def largest_region(grid: np.ndarray) -> np.ndarray:
    """Return a boolean mask of the biggest 4-connected non-wall region."""
    remaining = grid != CellType.WALL
    best = np.zeros(grid.shape, dtype=bool, order="F")
    best_size = 0
    while remaining.any():
        x, y = np.argwhere(remaining)[0]
        region = flood_fill(grid, (int(x), int(y)))
        remaining &= ~region
        size = int(region.sum())
        if size > best_size:
            best, best_size = region, size
    return best


def shortest_path(grid: np.ndarray, start: GridPos, goal: GridPos) -> list[GridPos]:
    """Breadth-first shortest 4-connected path over non-wall cells.

    Returns the cells from ``start`` to ``goal`` inclusive, or an empty list
    when ``goal`` cannot be reached.
    """
    width, height = grid.shape
    if grid[start] == CellType.WALL or grid[goal] == CellType.WALL:
        return []

    came_from: dict[GridPos, GridPos | None] = {start: None}
    queue = deque([start])
    while queue:
        current = queue.popleft()
        if current == goal:
            break
        cx, cy = current
        for dx, dy in CARDINAL_OFFSETS:
            nxt = (cx + dx, cy + dy)
            if (
                0 <= nxt[0] < width
                and 0 <= nxt[1] < height
                and nxt not in came_from
                and grid[nxt] != CellType.WALL
            ):
                came_from[nxt] = current
                queue.append(nxt)

    if goal not in came_from:
        return []

    path: list[GridPos] = []
    node: GridPos | None = goal
    while node is not None:
        path.append(node)
        node = came_from[node]
    path.reverse()
    return path


def cells_of_type(grid: np.ndarray, cell_type: CellType) -> list[GridPos]:
    """Return every cell holding ``cell_type`` in x-major order."""
    return [(int(x), int(y)) for x, y in np.argwhere(grid == cell_type)]


def walkable_neighbor_count(grid: np.ndarray, x: int, y: int) -> int:
    width, height = grid.shape
    count = 0
    for dx, dy in CARDINAL_OFFSETS:
        nx, ny = x + dx, y + dy
        if 0 <= nx < width and 0 <= ny < height and grid[nx, ny] == CellType.WALKABLE:
            count += 1
    return count


def find_dead_ends(grid: np.ndarray, main_path: set[GridPos]) -> list[GridPos]:
    """Walkable off-path cells with exactly one walkable 4-neighbour."""
    return [
        pos
        for pos in cells_of_type(grid, CellType.WALKABLE)
        if pos not in main_path and walkable_neighbor_count(grid, *pos) == 1
    ]


def zone_of(pos: GridPos, size: int) -> ZoneIndex:
    """Quadrant index: bit 0 set for the high-x half, bit 1 for the high-y half."""
    half = size // 2
    return int(pos[0] >= half) + 2 * int(pos[1] >= half)


def distance(a: GridPos, b: GridPos) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])
