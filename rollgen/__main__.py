"""Command line preview: ``python -m rollgen --size 16 --mode maze --seed 7``."""

import argparse
import logging

from rollgen.errors import LevelGenerationError
from rollgen.orchestrator import GeneratedLevel, LevelGenerator
from rollgen.profile import GenerationMode, LevelProfile, PrototypeSet, SeedMode
from rollgen.util.live_vars import live_variable_registry

# Placeholder handles so every object kind can be instantiated.
PREVIEW_PROTOTYPES = PrototypeSet(
    ground=("ground",),
    wall=("wall",),
    collectible=("collectible",),
    goal=("goal",),
    moving_platform=("moving_platform",),
    rotating_obstacle=("rotating_obstacle",),
    gate=("gate",),
    switch=("switch",),
    decoration=("lamp", "pipe", "gear"),
    steam_emitter=("steam",),
    ground_materials=("brass", "copper", "iron"),
    wall_materials=("brick", "stone"),
    goal_material="gold",
)


def build_profile(args: argparse.Namespace) -> LevelProfile:
    return LevelProfile(
        name="cli-preview",
        display_name="CLI Preview",
        difficulty_level=args.difficulty,
        level_size=args.size,
        collectible_count=args.collectibles,
        min_collectible_distance=args.min_distance,
        obstacle_density=args.obstacle_density,
        path_complexity=args.path_complexity,
        generation_mode=GenerationMode[args.mode.upper()],
        adaptive_mode=args.adaptive,
        seed=args.seed,
        seed_mode=SeedMode.EXPLICIT if args.seed else SeedMode.RANDOM,
        enable_interactive_gates=args.gates,
        prototypes=PREVIEW_PROTOTYPES,
    )


def describe(level: GeneratedLevel) -> str:
    counts = ", ".join(
        f"{kind.name.lower()}={count}"
        for kind, count in sorted(level.object_counts.items())
    )
    lines = [
        f"mode={level.mode.name} seed={level.seed} size={level.size}",
        f"walkable={len(level.walkable_tiles)} ({level.walkable_percentage:.1f}%)"
        f" main_path={len(level.main_path)} dead_ends={len(level.dead_ends)}",
        f"collectibles={len(level.collectibles)} goal={level.goal}"
        f" spawn={level.spawn}",
        f"objects: {counts}",
    ]
    lines.extend(f"warning: {message}" for message in level.warnings)
    return "\n".join(lines)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Preview a generated level")
    parser.add_argument("--size", type=int, default=12, help="Level edge (default: 12)")
    parser.add_argument(
        "--mode",
        choices=[mode.name.lower() for mode in GenerationMode],
        default="maze",
        help="Generation mode (default: maze)",
    )
    parser.add_argument(
        "--seed", type=int, default=0, help="Explicit seed, 0 for random (default: 0)"
    )
    parser.add_argument("--difficulty", type=int, default=1)
    parser.add_argument("--collectibles", type=int, default=5)
    parser.add_argument("--min-distance", type=int, default=2)
    parser.add_argument("--obstacle-density", type=float, default=0.1)
    parser.add_argument("--path-complexity", type=float, default=0.5)
    parser.add_argument(
        "--adaptive", action="store_true", help="Let the generator pick the mode"
    )
    parser.add_argument(
        "--gates", action="store_true", help="Place switch/gate pairs"
    )
    parser.add_argument(
        "--show-path", action="store_true", help="Mark the main path with 'o'"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Debug logging and timings"
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        level = LevelGenerator().generate(build_profile(args))
    except LevelGenerationError as e:
        parser.exit(1, f"error: {e}\n")

    print(level.to_ascii(show_path=args.show_path))
    print()
    print(describe(level))
    if args.verbose:
        for name, value in live_variable_registry.snapshot().items():
            print(f"{name}: {value}")


if __name__ == "__main__":
    main()
