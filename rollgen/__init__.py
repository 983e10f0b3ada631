"""Procedural level generation for ball-rolling games.

Quick start:
    from rollgen import LevelGenerator, LevelProfile, PrototypeSet

    profile = LevelProfile(
        level_size=12,
        seed=42,
        prototypes=PrototypeSet(
            ground=("ground",), wall=("wall",), collectible=("gem",), goal=("goal",)
        ),
    )
    level = LevelGenerator().generate(profile)
    print(level.to_ascii())
"""

from .errors import (
    ConfigurationError,
    LevelGenerationError,
    PlacementExhaustion,
    ReentrancyViolation,
    SubsystemFallback,
)
from .orchestrator import (
    GeneratedLevel,
    GenerationOutcome,
    GenerationState,
    LevelGenerator,
)
from .profile import (
    AdaptiveModeTable,
    GenerationMode,
    LevelProfile,
    PrototypeKind,
    PrototypeSet,
    SeedMode,
)

__all__ = [
    "AdaptiveModeTable",
    "ConfigurationError",
    "GeneratedLevel",
    "GenerationMode",
    "GenerationOutcome",
    "GenerationState",
    "LevelGenerationError",
    "LevelGenerator",
    "LevelProfile",
    "PlacementExhaustion",
    "PrototypeKind",
    "PrototypeSet",
    "ReentrancyViolation",
    "SeedMode",
    "SubsystemFallback",
]
