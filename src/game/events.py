"""Notifications emitted by the protocol, consumed by orchestrators (and tests)."""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from src.core.shared_types import EventName

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GameEvent:
    name: EventName
    game_id: int
    player: str | None = None
    data: dict[str, Any] = field(default_factory=dict)


EventListener = Callable[[GameEvent], None]


class EventBus:
    def __init__(self) -> None:
        self._listeners: list[EventListener] = []
        self.history: list[GameEvent] = []

    def subscribe(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: EventListener) -> None:
        self._listeners.remove(listener)

    def emit(self, name: EventName, game_id: int, player: str | None = None, **data: Any) -> GameEvent:
        event = GameEvent(name, game_id, player, data)
        self.history.append(event)
        logger.debug("Event %s game=%s player=%s %s", name, game_id, player, data or "")
        for listener in list(self._listeners):
            listener(event)
        return event

    def truncate(self, length: int) -> None:
        """Drop history recorded after `length` events. Listeners that already saw those events are not told."""
        del self.history[length:]

    def events_for(self, game_id: int, name: EventName | None = None) -> list[GameEvent]:
        return [
            event
            for event in self.history
            if event.game_id == game_id and (name is None or event.name == name)
        ]
