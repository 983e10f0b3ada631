"""Turns a finished grid into LevelObjects.

The ObjectInstantiator walks the grid once, creating ground, wall,
collectible and goal objects, then adds dynamic elements (moving platforms,
rotating obstacles), the effect objects planned by the EffectLayer, and
switch/gate pairs. Objects come from a PrefabPool on large levels and are
allocated directly otherwise.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterator

from rollgen import config
from rollgen.errors import PlacementExhaustion, SubsystemFallback
from rollgen.profile import PrototypeKind
from rollgen.types import GridPos, PrototypeHandle, WorldPos

from .collectibles import PlacementResult
from .context import GenerationContext
from .effects import EffectLayer, EffectPlan
from .grid import CellType, distance
from .objects import GateController, LevelObject, PrototypeKey, SwitchTrigger
from .pool import PrefabPool

logger = logging.getLogger(__name__)


class ObjectInstantiator:
    """Creates and tracks every object of one generated level."""

    def __init__(
        self,
        ctx: GenerationContext,
        placement: PlacementResult,
        effects: EffectLayer,
        pool: PrefabPool | None = None,
    ) -> None:
        self.ctx = ctx
        self.placement = placement
        self.effects = effects
        self.pool = pool
        self.use_pooling = pool is not None and ctx.size >= config.POOLING_MIN_SIZE
        self.objects: list[LevelObject] = []
        self.gates: list[tuple[SwitchTrigger, GateController]] = []
        self.gate_exhaustion: PlacementExhaustion | None = None
        self.warnings: list[str] = []

    # ------------------------------------------------------------------
    # Object creation
    # ------------------------------------------------------------------

    def _warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)

    def create(
        self,
        key: PrototypeKey,
        prototype: PrototypeHandle | None,
        grid_pos: GridPos,
        world_pos: WorldPos,
        yaw: float = 0.0,
    ) -> LevelObject:
        """Create one object, from the pool when pooling is on."""
        obj: LevelObject | None = None
        if self.use_pooling and self.pool is not None:
            try:
                obj = self.pool.acquire(key, prototype)
            except SubsystemFallback as e:
                self._warn(f"{e}; falling back to direct allocation")
                self.use_pooling = False
        if obj is None:
            obj = LevelObject(key=key, prototype=prototype)

        obj.place(grid_pos, world_pos, yaw)
        self.objects.append(obj)
        return obj

    def create_random(
        self, kind: PrototypeKind, grid_pos: GridPos, height: float = 0.0
    ) -> LevelObject | None:
        """Create an object from a randomly chosen prototype of ``kind``."""
        prototypes = self.ctx.profile.prototypes.for_kind(kind)
        if not prototypes:
            return None
        index = self.ctx.rng.randrange(len(prototypes))
        return self.create(
            PrototypeKey(kind, index),
            prototypes[index],
            grid_pos,
            self.world_pos(grid_pos, height),
        )

    def world_pos(self, pos: GridPos, height: float = 0.0) -> WorldPos:
        tile = self.ctx.profile.tile_size
        return (pos[0] * tile, height, pos[1] * tile)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def run_tiles(self) -> Iterator[None]:
        """Create one object per cell plus collectible and goal overlays."""
        grid = self.ctx.grid
        profile = self.ctx.profile
        prototypes = profile.prototypes
        size = self.ctx.size
        processed = 0

        for x in range(size):
            for y in range(size):
                pos = (x, y)
                cell = grid[x, y]
                if cell == CellType.WALL:
                    wall = self.create_random(PrototypeKind.WALL, pos)
                    if wall is not None:
                        wall.material = self.effects.wall_material(pos)
                else:
                    ground = self.create_random(PrototypeKind.GROUND, pos)
                    if ground is not None:
                        ground.material = self.effects.ground_material(pos)
                        if cell == CellType.WALKABLE:
                            ground.slippery = self.effects.roll_slippery()

                    if cell == CellType.COLLECTIBLE:
                        self.create_random(
                            PrototypeKind.COLLECTIBLE,
                            pos,
                            profile.collectible_spawn_height,
                        )
                    elif cell == CellType.GOAL:
                        goal = self.create_random(
                            PrototypeKind.GOAL, pos, config.GOAL_HEIGHT_OFFSET
                        )
                        if goal is not None:
                            goal.material = prototypes.goal_material

                processed += 1
                if processed % config.INSTANTIATION_YIELD_INTERVAL == 0:
                    yield

        logger.debug(
            "Instantiated %d tile objects (pooling %s)",
            len(self.objects),
            "on" if self.use_pooling else "off",
        )

    def run_dynamic_elements(self) -> Iterator[None]:
        """Create moving platforms and rotating obstacles at tagged cells."""
        profile = self.ctx.profile
        sites = (
            (
                PrototypeKind.MOVING_PLATFORM,
                profile.enable_moving_platforms,
                self.ctx.moving_platform_tiles,
            ),
            (
                PrototypeKind.ROTATING_OBSTACLE,
                profile.enable_rotating_obstacles,
                self.ctx.rotating_obstacle_sites,
            ),
        )
        for kind, enabled, cells in sites:
            if not enabled or not cells:
                continue
            if not profile.prototypes.for_kind(kind):
                self._warn(
                    f"{kind.name.lower()} enabled but no prototypes supplied; skipped"
                )
                continue
            for i, pos in enumerate(cells, start=1):
                self.create_random(kind, pos)
                if i % config.DYNAMIC_ELEMENT_YIELD_INTERVAL == 0:
                    yield

    def run_effects(self, plan: EffectPlan) -> Iterator[None]:
        """Create the decorations and steam emitters of an EffectPlan."""
        placements = plan.decorations + plan.steam_emitters
        for i, placement in enumerate(placements, start=1):
            self.create(
                placement.key,
                placement.prototype,
                placement.grid_pos,
                placement.world_pos,
                placement.yaw,
            )
            if i % config.DECORATION_YIELD_INTERVAL == 0:
                yield

    def gate_pair_count(self) -> int:
        walkable = len(self.ctx.walkable_tiles)
        if walkable < 2:
            return 0
        return max(1, round(walkable * self.ctx.profile.interactive_gate_density))

    def run_gates(self) -> Iterator[None]:
        """Create switch/gate pairs that are far enough apart to matter.

        The gate tile is re-drawn up to ``GATE_MAX_RETRIES`` times; a pair
        that still ends up too close is skipped and reported through
        ``gate_exhaustion``.
        """
        ctx = self.ctx
        profile = ctx.profile
        if not profile.enable_interactive_gates:
            return
        if not profile.prototypes.gate:
            self._warn("interactive gates enabled but no prototypes supplied; skipped")
            return

        requested = self.gate_pair_count()
        walkable = ctx.walkable_tiles
        min_distance = max(2, ctx.size // 3)
        switch_prototypes = profile.prototypes.switch

        for i in range(requested):
            switch_pos = ctx.rng.choice(walkable)
            gate_pos = ctx.rng.choice(walkable)
            retries = 0
            while (
                distance(switch_pos, gate_pos) < min_distance
                and retries < config.GATE_MAX_RETRIES
            ):
                gate_pos = ctx.rng.choice(walkable)
                retries += 1

            if distance(switch_pos, gate_pos) >= min_distance:
                gate_obj = self.create_random(PrototypeKind.GATE, gate_pos)
                assert gate_obj is not None
                if switch_prototypes:
                    switch_obj = self.create_random(PrototypeKind.SWITCH, switch_pos)
                    assert switch_obj is not None
                else:
                    switch_obj = self.create(
                        PrototypeKey(PrototypeKind.SWITCH, 0),
                        None,
                        switch_pos,
                        self.world_pos(switch_pos),
                    )

                gate = GateController(gate_obj)
                switch = SwitchTrigger(switch_obj)
                switch.bind(gate)
                gate_obj.controller = gate
                switch_obj.controller = switch
                self.gates.append((switch, gate))

            if (i + 1) % config.GATE_YIELD_INTERVAL == 0:
                yield

        if len(self.gates) < requested:
            self.gate_exhaustion = PlacementExhaustion(
                "gate pairs", requested=requested, placed=len(self.gates)
            )
            self._warn(str(self.gate_exhaustion))

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def object_counts(self) -> dict[PrototypeKind, int]:
        return dict(Counter(obj.kind for obj in self.objects))

    def release_all(self) -> None:
        """Return pooled objects to the pool and destroy the rest."""
        for obj in self.objects:
            if obj.pooled and self.pool is not None:
                self.pool.release(obj)
            else:
                obj.destroy()
        self.objects.clear()
        self.gates.clear()
