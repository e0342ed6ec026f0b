from __future__ import annotations

from collections.abc import Callable

from loguru import logger

TOKENS_UPDATED = "tokens-updated"


class NotificationBus:
    """In-process push channel for backend notifications such as ``tokens-updated``."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Callable[[], None]]] = {}

    def subscribe(self, event: str, listener: Callable[[], None]) -> Callable[[], None]:
        """Register ``listener`` and return a function that removes it again."""
        self._listeners.setdefault(event, []).append(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(event, [])
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def emit(self, event: str) -> None:
        listeners = list(self._listeners.get(event, []))
        logger.debug(f"Notification {event!r} -> {len(listeners)} listener(s)")
        for listener in listeners:
            listener()
