"""Exceptions raised and reported by the level generation pipeline.

Fatal errors (``ConfigurationError`` and anything unexpected from a core
stage) end the run and are published as a ``GenerationErrorEvent``.
``PlacementExhaustion`` and ``SubsystemFallback`` are recoverable: they are
carried in results or logged, and the run continues.
"""

from __future__ import annotations


class LevelGenerationError(Exception):
    """Base class for every error raised by rollgen."""


class ConfigurationError(LevelGenerationError, ValueError):
    """A LevelProfile (or its prototype set) cannot be generated from.

    Attributes:
        problems: Every individual validation failure, in check order.
    """

    def __init__(self, problems: list[str] | str) -> None:
        if isinstance(problems, str):
            problems = [problems]
        self.problems = list(problems)
        super().__init__("; ".join(self.problems))


class PlacementExhaustion(LevelGenerationError):
    """A placement loop ran out of attempts or candidates before its target.

    Usually not raised: placers return it inside their result so the caller
    can decide whether a short count matters.
    """

    def __init__(self, what: str, requested: int, placed: int) -> None:
        self.what = what
        self.requested = requested
        self.placed = placed
        super().__init__(f"Placed {placed} of {requested} {what}")


class SubsystemFallback(LevelGenerationError):
    """An optional subsystem failed and a simpler path was used instead."""

    def __init__(self, subsystem: str, reason: str) -> None:
        self.subsystem = subsystem
        self.reason = reason
        super().__init__(f"{subsystem} unavailable: {reason}")


class ReentrancyViolation(LevelGenerationError, RuntimeError):
    """A generation run was requested while another one is still active."""
