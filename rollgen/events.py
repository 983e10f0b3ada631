"""Event system for observing level generation runs.

The orchestrator reports progress through an EventBus instead of callbacks
so hosts (UI, audio, analytics, tests) can listen without the pipeline
knowing about them. A global instance is provided for convenience; the
LevelGenerator also accepts an injected bus.

USE FOR:
- Run lifecycle (started, stage completed, completed, failed)
- Recoverable problems the host may want to surface (warnings)

DO NOT USE FOR:
- Passing data between pipeline stages
- Anything that needs a return value

The bus is fire-and-forget. Handlers run synchronously, and a handler that
raises is logged and skipped so one bad listener cannot break a run.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeAlias

logger = logging.getLogger(__name__)


@dataclass
class GenerationEvent:
    """Base class for all generation events."""

    pass


@dataclass
class GenerationStartedEvent(GenerationEvent):
    """A run passed validation and is about to build terrain."""

    profile_name: str
    seed: int
    mode: Any  # GenerationMode, avoids importing the profile module here


@dataclass
class StageCompletedEvent(GenerationEvent):
    """A pipeline stage finished.

    Attributes:
        stage: The GenerationState that just completed.
        payload: Stage-specific summary (counts, mode used, etc).
    """

    stage: Any
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class GenerationWarningEvent(GenerationEvent):
    """Something recoverable went wrong; the run continues."""

    message: str
    stage: Any = None
    error: Exception | None = None


@dataclass
class GenerationCompletedEvent(GenerationEvent):
    """A run finished and its level is now the current level."""

    level: Any  # GeneratedLevel


@dataclass
class GenerationErrorEvent(GenerationEvent):
    """A run failed. The previous level, if any, is left in place."""

    message: str
    stage: Any = None
    error: Exception | None = None


@dataclass
class GenerationCancelledEvent(GenerationEvent):
    """An active run was stopped before it finished."""

    stage: Any = None


EventHandler: TypeAlias = Callable[[Any], None]


class EventBus:
    """Synchronous publish/subscribe keyed by event class.

    A handler subscribed to a class also receives events of its subclasses,
    so subscribing to ``GenerationEvent`` observes a whole run.
    """

    def __init__(self) -> None:
        self._handlers: dict[type[GenerationEvent], list[EventHandler]] = {}

    def subscribe(
        self, event_type: type[GenerationEvent], handler: EventHandler
    ) -> None:
        self._handlers.setdefault(event_type, []).append(handler)

    def unsubscribe(
        self, event_type: type[GenerationEvent], handler: EventHandler
    ) -> None:
        """Remove ``handler``; unknown handlers are ignored."""
        handlers = self._handlers.get(event_type)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def handler_count(self, event_type: type[GenerationEvent]) -> int:
        return len(self._handlers.get(event_type, ()))

    def publish(self, event: GenerationEvent) -> None:
        """Deliver ``event`` to handlers of its class, then of its base classes."""
        # Snapshot first: handlers may subscribe or unsubscribe while running.
        targets = [
            handler
            for cls in type(event).__mro__
            for handler in list(self._handlers.get(cls, ()))
        ]
        for handler in targets:
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Error handling event %s in %r", type(event).__name__, handler
                )


_global_event_bus = EventBus()


def get_event_bus() -> EventBus:
    return _global_event_bus


def subscribe_to_event(
    event_type: type[GenerationEvent], handler: EventHandler
) -> None:
    """Subscribe ``handler`` on the global bus."""
    _global_event_bus.subscribe(event_type, handler)


def unsubscribe_from_event(
    event_type: type[GenerationEvent], handler: EventHandler
) -> None:
    _global_event_bus.unsubscribe(event_type, handler)


def publish_event(event: GenerationEvent) -> None:
    """Publish on the global bus. Used when no bus is injected."""
    _global_event_bus.publish(event)


def reset_event_bus_for_testing() -> None:
    """Swap in a fresh global bus, dropping every subscription."""
    global _global_event_bus
    _global_event_bus = EventBus()
