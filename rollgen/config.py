"""
Configuration constants.

Centralizes the magic numbers used by the level generation pipeline.
Per-level values (sizes, densities, seeds) live on LevelProfile instead;
this module only holds engine-wide tuning knobs.
"""

# =============================================================================
# GENERAL
# =============================================================================

# Smallest grid that still has an interior after the wall ring.
MIN_LEVEL_SIZE = 5

# Accepted range for LevelProfile.min_walkable_area (percent of the grid).
MIN_WALKABLE_AREA_RANGE = (30, 95)

# Sum of all feature densities above which a profile is considered crowded.
RECOMMENDED_MAX_TOTAL_DENSITY = 0.8

# =============================================================================
# TERRAIN GENERATION
# =============================================================================

# Recursive backtracker safety cap.
MAZE_MAX_ITERATIONS = 10_000

# Fraction of size^2 * path_complexity walls removed after carving a maze.
MAZE_EXTRA_OPENING_FACTOR = 0.1

# Platform chain stepping (Manhattan magnitude of one step).
PLATFORM_MAX_STEP = 3
PLATFORM_ISLAND_RADIUS_RANGE = (2, 3)

# PlatformGraph edges join centres whose distance lies strictly in this range.
PLATFORM_EDGE_DISTANCE_RANGE = (2.0, 6.0)

# Share of platform centres that receive a rotating obstacle.
ROTATING_OBSTACLE_CENTER_RATIO = 0.1

# Cellular automata caves (ORGANIC and HYBRID_ORGANIC_PATH modes).
#   initial_density=0.45, iterations=4 -> balanced caves
#   initial_density=0.35, iterations=5 -> more open areas
#   initial_density=0.55, iterations=3 -> tighter, more enclosed
ORGANIC_INITIAL_DENSITY = 0.45
ORGANIC_ITERATIONS = 4
ORGANIC_BIRTH_LIMIT = 5  # Cell becomes wall at >= this many wall neighbors
ORGANIC_DEATH_LIMIT = 4  # Cell becomes floor below this many wall neighbors

# Open rooms carved into HYBRID_MAZE_OPEN mazes.
HYBRID_ROOM_SIZE_RANGE = (3, 5)
HYBRID_ROOMS_PER_TILES = 8  # One room per this many cells of level size

# =============================================================================
# PLACEMENT
# =============================================================================

# Global attempt budget shared by both collectible passes.
COLLECTIBLE_MAX_ATTEMPTS = 1000

# Gate re-draws before a switch/gate pair is given up.
GATE_MAX_RETRIES = 20

# Goal overlay is raised slightly above the ground tile to avoid z-fighting.
GOAL_HEIGHT_OFFSET = 0.05

# Steam emitters sit above the collectible spawn height.
STEAM_EMITTER_HEIGHT_OFFSET = 0.5

# =============================================================================
# EFFECTS
# =============================================================================

# Levels at or above this size use one material per quadrant.
SECTOR_MATERIAL_MIN_SIZE = 16

# Fraction of walkable tiles that receive an ambient decoration.
DECORATION_TILE_RATIO = 0.05

# Atmosphere derived from the profile theme color.
FOG_GREY = (0.5, 0.5, 0.5)
FOG_THEME_BLEND = 0.7
FOG_DENSITY = 0.01
AMBIENT_BASE_COLOR = (0.2, 0.15, 0.1)
AMBIENT_THEME_BLEND = 0.5

# =============================================================================
# POOLING
# =============================================================================

# Pooling switches on automatically for levels at or above this size.
POOLING_MIN_SIZE = 16

# Inactive instances kept per prototype; overflow is destroyed.
POOL_CAPACITY_PER_PROTOTYPE = 20

# =============================================================================
# COOPERATIVE SCHEDULING
# =============================================================================

# Work items processed between yields back to the host.
MAZE_YIELD_INTERVAL = 100
PLACEMENT_YIELD_INTERVAL = 50
INSTANTIATION_YIELD_INTERVAL = 25
DYNAMIC_ELEMENT_YIELD_INTERVAL = 10
GATE_YIELD_INTERVAL = 5
DECORATION_YIELD_INTERVAL = 5
