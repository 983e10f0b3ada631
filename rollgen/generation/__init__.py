"""Generation stages used by the LevelGenerator.

- TerrainGenerator: grid synthesis in six modes (layers in terrain.py)
- CollectiblePlacer: zone-balanced collectibles and the goal
- EffectLayer: materials, slippery tiles, decorations, steam, atmosphere
- ObjectInstantiator: LevelObjects for every cell plus dynamic elements
- PrefabPool: reuse of LevelObjects between runs
"""

from .collectibles import CollectiblePlacer, PlacementResult
from .context import (
    GenerationContext,
    GenerationLayer,
    PlatformEdge,
    PlatformGraph,
    Room,
)
from .effects import AtmosphereSettings, EffectLayer, EffectPlacement, EffectPlan
from .grid import CellType
from .instantiation import ObjectInstantiator
from .objects import GateController, LevelObject, PrototypeKey, SwitchTrigger
from .pool import PrefabPool
from .terrain import TerrainGenerator, build_layers, select_generation_mode

__all__ = [
    "AtmosphereSettings",
    "CellType",
    "CollectiblePlacer",
    "EffectLayer",
    "EffectPlacement",
    "EffectPlan",
    "GateController",
    "GenerationContext",
    "GenerationLayer",
    "LevelObject",
    "ObjectInstantiator",
    "PlacementResult",
    "PlatformEdge",
    "PlatformGraph",
    "PrefabPool",
    "PrototypeKey",
    "Room",
    "SwitchTrigger",
    "TerrainGenerator",
    "build_layers",
    "select_generation_mode",
]
