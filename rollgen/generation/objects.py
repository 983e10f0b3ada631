"""Records for the objects a generated level is made of.

The host turns these into real scene objects. The core only tracks what
was created where, whether it is active, and how gates and switches are
wired together.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import NamedTuple

from rollgen.profile import PrototypeKind
from rollgen.types import GridPos, PrototypeHandle, WorldPos

logger = logging.getLogger(__name__)


class PrototypeKey(NamedTuple):
    """Stable identity of a prototype: its kind and index in the PrototypeSet."""

    kind: PrototypeKind
    index: int


@dataclass(eq=False)
class LevelObject:
    """One object instantiated for a level.

    Objects compare by identity, so two tiles built from the same prototype
    are still distinct objects.
    """

    key: PrototypeKey
    prototype: PrototypeHandle | None
    grid_pos: GridPos = (0, 0)
    world_pos: WorldPos = (0.0, 0.0, 0.0)
    yaw: float = 0.0
    material: PrototypeHandle | None = None
    slippery: bool = False
    active: bool = True
    pooled: bool = False
    destroyed: bool = False
    controller: GateController | SwitchTrigger | None = None

    @property
    def kind(self) -> PrototypeKind:
        return self.key.kind

    def place(
        self, grid_pos: GridPos, world_pos: WorldPos, yaw: float = 0.0
    ) -> None:
        self.grid_pos = grid_pos
        self.world_pos = world_pos
        self.yaw = yaw

    def reset(self) -> None:
        """Clear per-use state before the object is reused or parked."""
        self.material = None
        self.slippery = False
        self.yaw = 0.0
        self.controller = None

    def destroy(self) -> None:
        self.reset()
        self.active = False
        self.destroyed = True


@dataclass(eq=False)
class GateController:
    """A gate that blocks its tile until opened."""

    obj: LevelObject
    is_open: bool = False

    def open(self) -> None:
        if self.is_open:
            return
        self.is_open = True
        logger.debug("Gate at %s opened", self.obj.grid_pos)

    def close(self) -> None:
        self.is_open = False


@dataclass(eq=False)
class SwitchTrigger:
    """A floor switch that opens its gate the first time it is triggered."""

    obj: LevelObject
    gate: GateController | None = None
    triggered: bool = field(default=False)

    def bind(self, gate: GateController) -> None:
        self.gate = gate

    def trigger(self) -> bool:
        """Fire the switch. Returns True only on the first activation."""
        if self.triggered or self.gate is None:
            return False
        self.triggered = True
        self.gate.open()
        return True
