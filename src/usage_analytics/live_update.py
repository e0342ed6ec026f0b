from __future__ import annotations

from collections.abc import Awaitable, Callable

from loguru import logger

from usage_analytics.notifications import TOKENS_UPDATED, NotificationBus
from usage_analytics.timers import OwnedTimer

REFRESH_DEBOUNCE_SECONDS = 1.0


class LiveUpdateTrigger:
    """Re-fetch once after a burst of ``tokens-updated`` notifications goes quiet."""

    def __init__(
        self,
        *,
        name: str,
        bus: NotificationBus,
        fetch: Callable[[], Awaitable[None]],
        delay_seconds: float = REFRESH_DEBOUNCE_SECONDS,
        event: str = TOKENS_UPDATED,
    ) -> None:
        self._name = name
        self._bus = bus
        self._fetch = fetch
        self._event = event
        self._timer = OwnedTimer(f"{name}-debounce", delay_seconds, self._fire)
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def is_listening(self) -> bool:
        return self._unsubscribe is not None

    @property
    def pending(self) -> bool:
        return self._timer.pending

    def set_fetch(self, fetch: Callable[[], Awaitable[None]]) -> None:
        self._fetch = fetch

    def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self._bus.subscribe(self._event, self._on_notification)

    def close(self) -> None:
        self._timer.cancel()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_notification(self) -> None:
        logger.debug(f"{self._name}: {self._event} received, refresh in {self._timer.delay_seconds:.1f}s")
        self._timer.start()

    async def _fire(self) -> None:
        if self._unsubscribe is None:
            return
        await self._fetch()
