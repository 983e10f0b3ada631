"""Collectible and goal placement.

Collectibles are spread over the four quadrants ("zones") of the level:
the first pass tries to put one collectible into each zone, the second
pass fills up from all remaining candidates. Dead ends are preferred
because they reward exploring off the main path. The goal goes to the
walkable cell farthest from the level centre.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field

from rollgen import config
from rollgen.errors import PlacementExhaustion
from rollgen.types import GridPos

from .context import GenerationContext
from .grid import CellType, distance, zone_of

logger = logging.getLogger(__name__)

ZONE_COUNT = 4


@dataclass
class PlacementResult:
    """Outcome of collectible and goal placement.

    Attributes:
        collectibles: Accepted cells, pairwise at least the minimum distance apart.
        goal: Goal cell, or None when the level has no walkable cell.
        spawn: Player spawn cell, copied from the terrain.
        goal_collision: True when the goal had to reuse a collectible cell.
        exhaustion: Set when fewer collectibles (or no goal) could be placed.
        attempts: Candidates examined against the shared attempt budget.
    """

    collectibles: list[GridPos] = field(default_factory=list)
    goal: GridPos | None = None
    spawn: GridPos = (1, 1)
    goal_collision: bool = False
    exhaustion: PlacementExhaustion | None = None
    attempts: int = 0


class CollectiblePlacer:
    """Places collectibles and the goal onto a generated terrain."""

    def __init__(
        self,
        ctx: GenerationContext,
        max_attempts: int = config.COLLECTIBLE_MAX_ATTEMPTS,
    ) -> None:
        self.ctx = ctx
        self.max_attempts = max_attempts
        self.result = PlacementResult(spawn=ctx.spawn)

    # ------------------------------------------------------------------
    # Candidates
    # ------------------------------------------------------------------

    def candidates(self) -> list[GridPos]:
        """Walkable cells off the main path other than spawn, dead ends first."""
        excluded = set(self.ctx.main_path)
        # Spawn is kept clear so the ball never starts on top of a pickup
        excluded.add(self.ctx.spawn)
        dead_ends = [pos for pos in self.ctx.dead_ends if pos not in excluded]
        dead_end_set = set(dead_ends)
        others = [
            pos
            for pos in self.ctx.walkable_tiles
            if pos not in excluded and pos not in dead_end_set
        ]
        return dead_ends + others

    def zone_pools(self) -> list[list[GridPos]]:
        pools: list[list[GridPos]] = [[] for _ in range(ZONE_COUNT)]
        for pos in self.candidates():
            pools[zone_of(pos, self.ctx.size)].append(pos)
        return pools

    def is_far_enough(self, candidate: GridPos) -> bool:
        min_distance = self.ctx.profile.min_collectible_distance
        return all(
            distance(candidate, placed) >= min_distance
            for placed in self.result.collectibles
        )

    # ------------------------------------------------------------------
    # Placement
    # ------------------------------------------------------------------

    def run(self) -> Iterator[None]:
        """Place collectibles then the goal, yielding every few attempts."""
        yield from self.place_collectibles()
        self.place_goal()
        self.apply_to_grid()
        yield

    def place(self) -> PlacementResult:
        for _ in self.run():
            pass
        return self.result

    def place_collectibles(self) -> Iterator[None]:
        rng = self.ctx.rng
        target = self.ctx.profile.collectible_count
        placed = self.result.collectibles
        pools = self.zone_pools()

        # First pass: at most one collectible per zone
        for pool in pools:
            if len(placed) >= target:
                break
            while (
                pool
                and len(placed) < target
                and self.result.attempts < self.max_attempts
            ):
                self.result.attempts += 1
                candidate = pool.pop(rng.randrange(len(pool)))
                if self.is_far_enough(candidate):
                    placed.append(candidate)
                    break
                if self.result.attempts % config.PLACEMENT_YIELD_INTERVAL == 0:
                    yield

        # Second pass: whatever is left, from any zone
        remaining = [pos for pool in pools for pos in pool]
        while (
            len(placed) < target
            and self.result.attempts < self.max_attempts
            and remaining
        ):
            self.result.attempts += 1
            candidate = remaining.pop(rng.randrange(len(remaining)))
            if self.is_far_enough(candidate):
                placed.append(candidate)
            if self.result.attempts % config.PLACEMENT_YIELD_INTERVAL == 0:
                yield

        if len(placed) < target:
            self.result.exhaustion = PlacementExhaustion(
                "collectibles", requested=target, placed=len(placed)
            )
            logger.debug(
                "Placed only %d of %d collectibles after %d attempts",
                len(placed),
                target,
                self.result.attempts,
            )
        else:
            logger.debug(
                "Placed %d collectibles in %d attempts",
                len(placed),
                self.result.attempts,
            )

    def place_goal(self) -> None:
        """Put the goal on the walkable cell farthest from the level centre.

        Cells holding a collectible are skipped, and so is the spawn cell
        unless nothing else is free. If every cell holds a collectible, the
        best collectible cell is reused and ``goal_collision`` is set.
        """
        size = self.ctx.size
        center = ((size - 1) / 2, (size - 1) / 2)
        taken = set(self.result.collectibles)
        spawn = self.result.spawn

        best: GridPos | None = None
        best_distance = -1.0
        fallback: GridPos | None = None
        fallback_distance = -1.0
        spawn_free = False

        for pos in self.ctx.walkable_tiles:
            dist = distance(pos, center)
            if pos in taken:
                if dist > fallback_distance:
                    fallback, fallback_distance = pos, dist
            elif pos == spawn:
                spawn_free = True
            elif dist > best_distance:
                best, best_distance = pos, dist

        # A goal on spawn would finish the level at once, so spawn is a last resort
        if best is None and spawn_free:
            best = spawn

        if best is not None:
            self.result.goal = best
        elif fallback is not None:
            self.result.goal = fallback
            self.result.goal_collision = True
            logger.debug("Goal placed on collectible cell %s", fallback)
        else:
            self.result.exhaustion = PlacementExhaustion(
                "goal", requested=1, placed=0
            )
            logger.debug("No walkable cell left for the goal")

    def apply_to_grid(self) -> None:
        """Write collectible markers, then the goal marker, into the grid."""
        grid = self.ctx.grid
        for x, y in self.result.collectibles:
            grid[x, y] = CellType.COLLECTIBLE
        if self.result.goal is not None:
            grid[self.result.goal] = CellType.GOAL
