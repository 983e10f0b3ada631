"""Object pool for reusing level objects across regenerations."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from typing import TypeAlias

from rollgen import config
from rollgen.errors import SubsystemFallback
from rollgen.types import PrototypeHandle

from .objects import LevelObject, PrototypeKey

logger = logging.getLogger(__name__)

ObjectFactory: TypeAlias = Callable[[PrototypeKey, PrototypeHandle], LevelObject]


def _default_factory(key: PrototypeKey, prototype: PrototypeHandle) -> LevelObject:
    return LevelObject(key=key, prototype=prototype)


class PrefabPool:
    """Per-prototype pool of inactive LevelObjects.

    Queues are created lazily the first time a prototype is released and
    hold at most ``capacity`` objects; anything beyond that is destroyed.
    The pool is owned by one LevelGenerator and only touched by its
    active run.
    """

    def __init__(
        self,
        capacity: int = config.POOL_CAPACITY_PER_PROTOTYPE,
        factory: ObjectFactory = _default_factory,
    ) -> None:
        self.capacity = capacity
        self.factory = factory
        self._free: dict[PrototypeKey, deque[LevelObject]] = {}
        self._in_use: dict[int, LevelObject] = {}
        self.closed = False
        self.created_count = 0
        self.reused_count = 0
        self.destroyed_count = 0

    @property
    def in_use_count(self) -> int:
        return len(self._in_use)

    def free_count(self, key: PrototypeKey | None = None) -> int:
        """Number of parked objects for ``key``, or across all keys."""
        if key is not None:
            return len(self._free.get(key, ()))
        return sum(len(queue) for queue in self._free.values())

    def acquire(self, key: PrototypeKey, prototype: PrototypeHandle) -> LevelObject:
        """Get an active object for ``key``, reusing a parked one if possible.

        Raises:
            SubsystemFallback: If the pool is closed or the factory fails.
        """
        if self.closed:
            raise SubsystemFallback("pool", "pool is closed")

        queue = self._free.get(key)
        if queue:
            obj = queue.popleft()
            self.reused_count += 1
        else:
            try:
                obj = self.factory(key, prototype)
            except Exception as e:
                raise SubsystemFallback("pool", f"factory failed for {key}") from e
            obj.pooled = True
            self.created_count += 1

        obj.active = True
        self._in_use[id(obj)] = obj
        return obj

    def release(self, obj: LevelObject) -> None:
        """Deactivate ``obj`` and park it, or destroy it if it can't be parked."""
        self._in_use.pop(id(obj), None)
        if obj.destroyed:
            return

        if not obj.pooled or self.closed:
            self._destroy(obj)
            return

        queue = self._free.setdefault(obj.key, deque())
        if len(queue) >= self.capacity:
            self._destroy(obj)
            return

        obj.reset()
        obj.active = False
        queue.append(obj)

    def release_all(self) -> None:
        """Return every object handed out by this pool."""
        for obj in list(self._in_use.values()):
            self.release(obj)

    def clear(self) -> None:
        """Destroy every parked object. Objects in use are left alone."""
        for queue in self._free.values():
            for obj in queue:
                self._destroy(obj)
        self._free.clear()

    def close(self) -> None:
        """Release everything and refuse further acquisitions."""
        self.release_all()
        self.clear()
        self.closed = True
        logger.debug(
            "Pool closed: %d created, %d reused, %d destroyed",
            self.created_count,
            self.reused_count,
            self.destroyed_count,
        )

    def _destroy(self, obj: LevelObject) -> None:
        obj.destroy()
        self.destroyed_count += 1
