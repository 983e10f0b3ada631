"""Shared builders for rollgen tests."""

from __future__ import annotations

from dataclasses import replace
from typing import Any

import numpy as np

from rollgen.generation.context import GenerationContext
from rollgen.generation.grid import CellType, flood_fill
from rollgen.generation.terrain import TerrainGenerator
from rollgen.profile import GenerationMode, LevelProfile, PrototypeSet, SeedMode
from rollgen.util.rng import RandomSource

FULL_PROTOTYPES = PrototypeSet(
    ground=("ground",),
    wall=("wall",),
    collectible=("collectible",),
    goal=("goal",),
    moving_platform=("platform_a", "platform_b"),
    rotating_obstacle=("spinner",),
    gate=("gate",),
    switch=("switch",),
    decoration=("lamp", "pipe", "gear", "valve"),
    steam_emitter=("steam",),
    ground_materials=("brass", "copper"),
    wall_materials=("brick", "stone"),
    goal_material="gold",
)

ALL_MODES = list(GenerationMode)


def make_profile(**overrides: Any) -> LevelProfile:
    """A valid profile with every prototype kind present."""
    base = LevelProfile(
        name="test",
        level_size=10,
        seed=1234,
        seed_mode=SeedMode.EXPLICIT,
        min_walkable_area=30,
        collectible_count=3,
        prototypes=FULL_PROTOTYPES,
    )
    return replace(base, **overrides)


def make_terrain(**overrides: Any) -> GenerationContext:
    """Run terrain generation for a profile built from ``overrides``."""
    profile = make_profile(**overrides)
    return TerrainGenerator(profile, RandomSource(profile.seed)).generate()


def border_is_wall(grid: np.ndarray) -> bool:
    return bool(
        np.all(grid[0, :] == CellType.WALL)
        and np.all(grid[-1, :] == CellType.WALL)
        and np.all(grid[:, 0] == CellType.WALL)
        and np.all(grid[:, -1] == CellType.WALL)
    )


def connected(grid: np.ndarray, a: tuple[int, int], b: tuple[int, int]) -> bool:
    return bool(flood_fill(grid, a)[b])
