from __future__ import annotations

from typing import TypeAlias


# =============================================================================
# SPATIAL TYPES
# =============================================================================

GridCoord: TypeAlias = int  # Always integer cell index

# Grid positions - used both as array index and as world placement key
GridPos: TypeAlias = tuple[GridCoord, GridCoord]  # Example: (5, 3) = cell 5,3

# World positions - grid position scaled by the profile tile size
WorldPos: TypeAlias = tuple[float, float, float]  # Example: (10.0, 0.5, 6.0)

# Zone / sector index: 0 = low x low y, 1 = high x, 2 = high y, 3 = both high
ZoneIndex: TypeAlias = int

# =============================================================================
# COLOR TYPES
# =============================================================================

# Float RGB color in 0.0-1.0 space.
ColorRGBf: TypeAlias = tuple[float, float, float]

# =============================================================================
# GENERATION-RELATED TYPES
# =============================================================================

# Random seed for deterministic generation.
# Can be an int for numeric seeds or a descriptive string like "level-7".
RandomSeed: TypeAlias = int | str | None

# Prototype handles are owned by the host (prefabs, materials, sprite ids...).
# The core never looks inside them; they only need to be hashable.
PrototypeHandle: TypeAlias = object
