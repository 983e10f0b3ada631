"""Tests for LevelProfile validation and derived values."""

from __future__ import annotations

import logging
from dataclasses import replace
from unittest.mock import patch

import pytest

from rollgen.errors import ConfigurationError
from rollgen.profile import (
    GenerationMode,
    LevelProfile,
    PrototypeKind,
    PrototypeSet,
    SeedMode,
)
from tests.helpers import FULL_PROTOTYPES, make_profile

# =============================================================================
# PrototypeSet
# =============================================================================


class TestPrototypeSet:
    def test_for_kind_maps_every_kind(self) -> None:
        for kind in PrototypeKind:
            assert FULL_PROTOTYPES.for_kind(kind) == getattr(
                FULL_PROTOTYPES, kind.name.lower()
            )

    def test_missing_required_lists_core_kinds(self) -> None:
        prototypes = PrototypeSet(ground=("g",), goal=("goal",))
        assert prototypes.missing_required() == [
            PrototypeKind.WALL,
            PrototypeKind.COLLECTIBLE,
        ]

    def test_optional_kinds_are_not_required(self) -> None:
        prototypes = PrototypeSet(
            ground=("g",), wall=("w",), collectible=("c",), goal=("goal",)
        )
        assert prototypes.missing_required() == []


# =============================================================================
# Validation
# =============================================================================


class TestValidation:
    def test_valid_profile_has_no_problems(self) -> None:
        profile = make_profile()
        assert profile.validate() == []
        assert profile.validated() is profile

    def test_default_profile_lacks_prototypes(self) -> None:
        problems = LevelProfile().validate()
        assert "no ground prototypes supplied" in problems
        assert "no goal prototypes supplied" in problems

    @pytest.mark.parametrize(
        ("overrides", "fragment"),
        [
            ({"level_size": 4}, "level_size 4"),
            ({"tile_size": 0.0}, "tile_size"),
            ({"min_walkable_area": 20}, "min_walkable_area 20"),
            ({"min_walkable_area": 96}, "min_walkable_area 96"),
            ({"collectible_count": 0}, "collectible_count must be at least 1"),
            ({"collectible_count": 8}, "too high"),
            ({"min_collectible_distance": 0}, "min_collectible_distance"),
            ({"obstacle_density": 1.5}, "obstacle_density"),
            ({"slippery_tile_chance": -0.1}, "slippery_tile_chance"),
            ({"path_complexity": 2.0}, "path_complexity"),
            ({"spawn_safe_radius": 0.5}, "spawn_safe_radius"),
            ({"seed": 0}, "EXPLICIT"),
        ],
    )
    def test_each_rule_reports_a_problem(
        self, overrides: dict, fragment: str
    ) -> None:
        problems = make_profile(**overrides).validate()
        assert any(fragment in problem for problem in problems)

    def test_validated_raises_with_all_problems(self) -> None:
        profile = make_profile(level_size=3, obstacle_density=2.0)
        with pytest.raises(ConfigurationError) as excinfo:
            profile.validated()
        assert len(excinfo.value.problems) >= 2
        assert isinstance(excinfo.value, ValueError)

    def test_crowded_density_only_warns(self, caplog: pytest.LogCaptureFixture) -> None:
        profile = make_profile(
            obstacle_density=0.3,
            rotating_obstacle_density=0.3,
            moving_platform_density=0.3,
        )
        assert profile.total_density() == pytest.approx(0.98)
        with caplog.at_level(logging.WARNING, logger="rollgen.profile"):
            assert profile.validate() == []
        assert "total object density" in caplog.text

    def test_clamped_fixes_out_of_range_values(self) -> None:
        profile = make_profile(
            level_size=2,
            collectible_count=1,
            min_walkable_area=10,
            obstacle_density=1.5,
            path_complexity=-1.0,
            spawn_safe_radius=0.0,
        ).clamped()
        assert profile.level_size == 5
        assert profile.min_walkable_area == 30
        assert profile.obstacle_density == 1.0
        assert profile.path_complexity == 0.0
        assert profile.spawn_safe_radius == 1.0
        assert profile.validate() == []


# =============================================================================
# Seeds
# =============================================================================


class TestResolveSeed:
    def test_explicit_seed_wins(self) -> None:
        assert make_profile(seed=99, seed_mode=SeedMode.RANDOM).resolve_seed() == 99

    def test_time_based_seed_used_without_explicit_seed(self) -> None:
        profile = make_profile(seed=0, seed_mode=SeedMode.TIME_BASED)
        with patch("rollgen.profile.time_based_seed", return_value=777):
            assert profile.resolve_seed() == 777

    def test_random_seed_uses_entropy(self) -> None:
        profile = make_profile(seed=0, seed_mode=SeedMode.RANDOM)
        with patch("rollgen.profile.entropy_seed", return_value=31337) as entropy:
            assert profile.resolve_seed() == 31337
        entropy.assert_called_once()


# =============================================================================
# Difficulty
# =============================================================================


class TestDifficulty:
    def test_default_profile_score(self) -> None:
        # 20 + 5 + 1.5 + 0.96 + 0.5 + 0.3 + 0.16 + 15 (maze)
        assert LevelProfile().difficulty_score() == pytest.approx(43.42)
        assert LevelProfile().difficulty_description() == "Normal"

    def test_score_is_clamped(self) -> None:
        easy = LevelProfile(
            difficulty_level=0,
            level_size=5,
            obstacle_density=0.0,
            rotating_obstacle_density=0.0,
            moving_platform_density=0.0,
            steam_emitter_density=0.0,
            interactive_gate_density=0.0,
            generation_mode=GenerationMode.SIMPLE,
        )
        assert easy.difficulty_score() == pytest.approx(2.5)
        assert easy.difficulty_description() == "Easy"

        brutal = replace(easy, difficulty_level=10)
        assert brutal.difficulty_score() == 100.0
        assert brutal.difficulty_description() == "Very Hard"

    def test_mode_changes_score(self) -> None:
        simple = make_profile(generation_mode=GenerationMode.SIMPLE)
        hybrid = make_profile(generation_mode=GenerationMode.HYBRID_MAZE_OPEN)
        assert hybrid.difficulty_score() - simple.difficulty_score() == pytest.approx(25)

    def test_scaled_profile(self) -> None:
        profile = make_profile(collectible_count=3, obstacle_density=0.6).scaled(2.0)
        assert profile.collectible_count == 6
        assert profile.level_size == 14
        assert profile.obstacle_density == 1.0
        assert profile.name == "test"
