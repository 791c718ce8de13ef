"""Typed in-process publish/subscribe channel for workspace notifications."""

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, TypeVar

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class WorkspaceEvent:
    occurred_at: datetime = field(default_factory=_now, kw_only=True)


@dataclass(frozen=True)
class FocusSelected(WorkspaceEvent):
    user_id: int
    focus_id: uuid.UUID


@dataclass(frozen=True)
class FocusCleared(WorkspaceEvent):
    user_id: int
    previous_focus_id: uuid.UUID | None = None


@dataclass(frozen=True)
class FocusDeleted(WorkspaceEvent):
    focus_id: uuid.UUID
    redirected_users: int = 0


@dataclass(frozen=True)
class LayoutDiscarded(WorkspaceEvent):
    target: str
    state: str
    found_version: Any = None
    notice: str = ""


E = TypeVar("E", bound=WorkspaceEvent)
Handler = Callable[[Any], None]


class EventChannel:
    def __init__(self) -> None:
        self._subs: dict[type[WorkspaceEvent], list[Handler]] = {}

    def subscribe(self, event_type: type[E], handler: Callable[[E], None]) -> None:
        self._subs.setdefault(event_type, []).append(handler)

    def unsubscribe(self, event_type: type[WorkspaceEvent], handler: Handler) -> bool:
        handlers = self._subs.get(event_type)
        if not handlers or handler not in handlers:
            return False
        handlers.remove(handler)
        if not handlers:
            del self._subs[event_type]
        return True

    def publish(self, event: WorkspaceEvent) -> None:
        # Subscribers registered for a base class also receive subclasses
        for event_type, handlers in list(self._subs.items()):
            if not isinstance(event, event_type):
                continue
            for handler in list(handlers):
                try:
                    handler(event)
                except Exception:
                    logger.exception("Event handler %r failed for %s", handler, type(event).__name__)


def log_event(event: WorkspaceEvent) -> None:
    if isinstance(event, LayoutDiscarded):
        logger.warning("Discarded layout for %s (%s, version=%r)", event.target, event.state, event.found_version)
    else:
        logger.info("%s: %s", type(event).__name__, event)
