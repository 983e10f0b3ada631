"""Deterministic random number generation for a single generation run.

Every generation run owns exactly one RandomSource. All stages of the run
(terrain, placement, effects, instantiation) draw from it in a fixed order,
so the same profile and seed always produce the same level.

Usage:
    source = RandomSource(profile.resolve_seed())
    if source.random() < density:
        ...

String seeds are supported ("level-7"). They are hashed with crc32 rather
than hash() so the derived integer seed is stable across interpreter
sessions.
"""

from __future__ import annotations

import time
import zlib
from collections.abc import Sequence
from random import Random
from typing import TYPE_CHECKING, TypeAlias, TypeVar

if TYPE_CHECKING:
    from rollgen.types import RandomSeed

T = TypeVar("T")


def derive_seed(seed: RandomSeed) -> int | None:
    """Convert a seed value into the integer fed to ``random.Random``.

    Integers pass through unchanged, strings are hashed with crc32 and
    ``None`` stays ``None`` (system entropy).
    """
    if seed is None or isinstance(seed, int):
        return seed
    # str hashes change between interpreter runs (PYTHONHASHSEED).
    return zlib.crc32(seed.encode())


def time_based_seed() -> int:
    """Return a non-zero seed derived from the current wall-clock time."""
    seed = zlib.crc32(str(time.time_ns()).encode())
    return seed or 1


def entropy_seed() -> int:
    """Return a non-zero seed drawn from system entropy."""
    seed = Random().getrandbits(31)
    return seed or 1


class RandomSource:
    """The single seeded random stream owned by one generation run.

    The method set mirrors ``random.Random`` for the calls the pipeline
    needs, which keeps call sites readable and lets tests substitute a
    plain ``Random`` where convenient.
    """

    def __init__(self, seed: RandomSeed = None) -> None:
        self.seed = seed
        self._random = Random(derive_seed(seed))

    def random(self) -> float:
        """Return random float in [0.0, 1.0)."""
        return self._random.random()

    def randint(self, a: int, b: int) -> int:
        """Return random integer N such that a <= N <= b."""
        return self._random.randint(a, b)

    def randrange(self, start: int, stop: int | None = None, step: int = 1) -> int:
        """Return randomly selected element from range(start, stop, step)."""
        return self._random.randrange(start, stop, step)

    def choice(self, seq: Sequence[T]) -> T:
        """Return random element from non-empty sequence."""
        return self._random.choice(seq)

    def shuffle(self, x: list) -> None:
        """Shuffle list x in place."""
        self._random.shuffle(x)

    def sample(self, population: Sequence[T], k: int) -> list[T]:
        """Return k unique elements from population."""
        return self._random.sample(population, k)

    def uniform(self, a: float, b: float) -> float:
        """Return random float N such that a <= N <= b."""
        return self._random.uniform(a, b)

    def getrandbits(self, k: int) -> int:
        """Return an integer with k random bits."""
        return self._random.getrandbits(k)

    def reset(self, seed: RandomSeed = None) -> None:
        """Restart the stream from a new seed."""
        self.seed = seed
        self._random = Random(derive_seed(seed))

    def __repr__(self) -> str:
        return f"RandomSource(seed={self.seed!r})"


# Type alias for functions that accept either Random or RandomSource.
RNG: TypeAlias = Random | RandomSource
