"""Cosmetic layer: materials, slippery surfaces, decorations, steam, atmosphere.

Nothing here changes the grid. The EffectLayer is set up right after
placement so the instantiator can ask it for per-tile materials, and then
run as its own stage to scatter decorations and steam emitters.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterator
from dataclasses import dataclass, field

from rollgen import config
from rollgen.profile import GenerationMode, PrototypeKind
from rollgen.types import ColorRGBf, GridPos, PrototypeHandle, WorldPos

from .context import GenerationContext
from .grid import zone_of
from .objects import PrototypeKey

logger = logging.getLogger(__name__)

SECTOR_COUNT = 4


def lerp_color(a: ColorRGBf, b: ColorRGBf, t: float) -> ColorRGBf:
    """Linear interpolation between two RGB colors."""
    return (
        a[0] + (b[0] - a[0]) * t,
        a[1] + (b[1] - a[1]) * t,
        a[2] + (b[2] - a[2]) * t,
    )


@dataclass(frozen=True)
class AtmosphereSettings:
    """Fog and ambient lighting derived from the profile theme color."""

    fog_color: ColorRGBf
    fog_density: float
    ambient_color: ColorRGBf

    @classmethod
    def from_theme(cls, theme: ColorRGBf) -> AtmosphereSettings:
        return cls(
            fog_color=lerp_color(theme, config.FOG_GREY, config.FOG_THEME_BLEND),
            fog_density=config.FOG_DENSITY,
            ambient_color=lerp_color(
                theme, config.AMBIENT_BASE_COLOR, config.AMBIENT_THEME_BLEND
            ),
        )


@dataclass(frozen=True)
class EffectPlacement:
    """A decoration or steam emitter to be instantiated."""

    key: PrototypeKey
    prototype: PrototypeHandle
    grid_pos: GridPos
    world_pos: WorldPos
    yaw: float = 0.0


@dataclass
class EffectPlan:
    """Everything the effect stage decided for one run."""

    decorations: list[EffectPlacement] = field(default_factory=list)
    steam_emitters: list[EffectPlacement] = field(default_factory=list)
    atmosphere: AtmosphereSettings | None = None


class EffectLayer:
    """Assigns materials and plans ambient effects for a generated terrain."""

    def __init__(self, ctx: GenerationContext) -> None:
        self.ctx = ctx
        self.plan = EffectPlan()
        self.use_sector_materials = ctx.size >= config.SECTOR_MATERIAL_MIN_SIZE
        self.sector_ground_materials: list[PrototypeHandle | None] = []
        self.sector_wall_materials: list[PrototypeHandle | None] = []
        if self.use_sector_materials:
            self._sample_sector_materials()

    def _pick(self, pool: tuple[PrototypeHandle, ...]) -> PrototypeHandle | None:
        if not pool:
            return None
        return self.ctx.rng.choice(pool)

    def _sample_sector_materials(self) -> None:
        prototypes = self.ctx.profile.prototypes
        for _ in range(SECTOR_COUNT):
            self.sector_ground_materials.append(self._pick(prototypes.ground_materials))
            self.sector_wall_materials.append(self._pick(prototypes.wall_materials))

    # ------------------------------------------------------------------
    # Per-tile queries used during instantiation
    # ------------------------------------------------------------------

    def ground_material(self, pos: GridPos) -> PrototypeHandle | None:
        if self.use_sector_materials:
            return self.sector_ground_materials[zone_of(pos, self.ctx.size)]
        return self._pick(self.ctx.profile.prototypes.ground_materials)

    def wall_material(self, pos: GridPos) -> PrototypeHandle | None:
        if self.use_sector_materials:
            return self.sector_wall_materials[zone_of(pos, self.ctx.size)]
        return self._pick(self.ctx.profile.prototypes.wall_materials)

    def roll_slippery(self) -> bool:
        profile = self.ctx.profile
        if not profile.enable_slippery_tiles:
            return False
        return self.ctx.rng.random() < profile.slippery_tile_chance

    # ------------------------------------------------------------------
    # Effect stage
    # ------------------------------------------------------------------

    def run(self) -> Iterator[None]:
        yield from self.place_decorations()
        yield from self.place_steam_emitters()
        self.plan.atmosphere = AtmosphereSettings.from_theme(
            self.ctx.profile.theme_color
        )
        logger.debug(
            "Effects planned: %d decorations, %d steam emitters",
            len(self.plan.decorations),
            len(self.plan.steam_emitters),
        )

    def apply(self) -> EffectPlan:
        for _ in self.run():
            pass
        return self.plan

    def world_pos(self, pos: GridPos, height: float) -> WorldPos:
        tile = self.ctx.profile.tile_size
        return (pos[0] * tile, height, pos[1] * tile)

    def place_decorations(self) -> Iterator[None]:
        profile = self.ctx.profile
        prototypes = profile.prototypes.decoration
        if not profile.enable_particle_effects or not prototypes:
            return

        walkable = self.ctx.walkable_tiles
        count = min(
            math.floor(len(walkable) * config.DECORATION_TILE_RATIO), len(prototypes)
        )
        rng = self.ctx.rng
        for i, pos in enumerate(rng.sample(walkable, count)):
            index = rng.randrange(len(prototypes))
            self.plan.decorations.append(
                EffectPlacement(
                    key=PrototypeKey(PrototypeKind.DECORATION, index),
                    prototype=prototypes[index],
                    grid_pos=pos,
                    world_pos=self.world_pos(pos, profile.collectible_spawn_height),
                    yaw=rng.random() * 360.0,
                )
            )
            if i % config.DECORATION_YIELD_INTERVAL == 0:
                yield

    def place_steam_emitters(self) -> Iterator[None]:
        ctx = self.ctx
        profile = ctx.profile
        prototypes = profile.prototypes.steam_emitter
        if ctx.mode != GenerationMode.PLATFORMS or not profile.enable_steam_emitters:
            return
        if not prototypes:
            logger.warning("Steam emitters enabled but no prototypes supplied")
            return

        height = profile.collectible_spawn_height + config.STEAM_EMITTER_HEIGHT_OFFSET
        for center in ctx.platform_centers:
            if ctx.rng.random() < profile.steam_emitter_density:
                index = ctx.rng.randrange(len(prototypes))
                self.plan.steam_emitters.append(
                    EffectPlacement(
                        key=PrototypeKey(PrototypeKind.STEAM_EMITTER, index),
                        prototype=prototypes[index],
                        grid_pos=center,
                        world_pos=self.world_pos(center, height),
                    )
                )
            yield
