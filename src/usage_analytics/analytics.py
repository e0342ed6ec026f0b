from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from loguru import logger

from usage_analytics.breakdown import CONFIRM_TIMEOUT_SECONDS, BreakdownController, DeleteOutcome
from usage_analytics.live_update import REFRESH_DEBOUNCE_SECONDS, LiveUpdateTrigger
from usage_analytics.merge import merge_series
from usage_analytics.models import BreakdownMode, BreakdownRow, MergedPoint, RangeType, Selection, UsageBucket
from usage_analytics.notifications import NotificationBus
from usage_analytics.queries import TokenParams, TokenQuery, UsageParams, UsageQuery
from usage_analytics.query_interface import QueryInterface
from usage_analytics.ranges import effective_token_range, range_days, token_filters, validate_range

DEFAULT_BUCKET = "7 days"


class AnalyticsController:
    """State behind the analytics screen.

    Owns the display range and bucket, the utilization and token queries, the
    breakdown controller and the live-update triggers, and keeps the token query
    scoped to the active drill-down selection.
    """

    def __init__(
        self,
        query: QueryInterface,
        bus: NotificationBus,
        *,
        range_name: RangeType = "24h",
        buckets: list[UsageBucket] | None = None,
        debounce_seconds: float = REFRESH_DEBOUNCE_SECONDS,
        confirm_timeout_seconds: float = CONFIRM_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] | None = None,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self._range: RangeType = validate_range(range_name)
        self._clock = clock
        self._on_change = on_change
        self._bucket = buckets[0].label if buckets else DEFAULT_BUCKET
        self.usage = UsageQuery(query, on_change=lambda _state: self._notify())
        self.usage.set_buckets(buckets)
        self.tokens = TokenQuery(query, on_change=lambda _state: self._notify())
        self.breakdown = BreakdownController(
            query,
            days=range_days(self._range),
            confirm_timeout_seconds=confirm_timeout_seconds,
            on_change=self._notify,
        )
        self._token_trigger = LiveUpdateTrigger(
            name="tokens",
            bus=bus,
            fetch=self.tokens.refresh,
            delay_seconds=debounce_seconds,
        )
        self._breakdown_trigger = LiveUpdateTrigger(
            name="breakdown",
            bus=bus,
            fetch=self.breakdown.refresh,
            delay_seconds=debounce_seconds,
        )

    # -- derived state ----------------------------------------------------

    @property
    def range_name(self) -> RangeType:
        return self._range

    @property
    def bucket(self) -> str:
        return self._bucket

    @property
    def bucket_labels(self) -> list[str]:
        return [b.label for b in self.usage.buckets]

    @property
    def selection(self) -> Selection | None:
        return self.breakdown.selection

    @property
    def loading(self) -> bool:
        return self.usage.loading

    @property
    def error(self) -> str | None:
        return self.usage.error

    @property
    def is_empty(self) -> bool:
        """No snapshots recorded yet: the screen shows its collecting-data state."""
        return self.usage.data.snapshot_count == 0 and not self.usage.loading

    def usage_params(self) -> UsageParams:
        return UsageParams(bucket=self._bucket, range_name=self._range, has_buckets=bool(self.usage.buckets))

    def token_params(self) -> TokenParams:
        selection = self.breakdown.selection
        now = self._clock() if self._clock else None
        hostname, session_id, cwd = token_filters(selection)
        return TokenParams(
            range_name=effective_token_range(self._range, selection, now),
            hostname=hostname,
            session_id=session_id,
            cwd=cwd,
        )

    def chart_series(self) -> list[MergedPoint]:
        return merge_series(list(self.usage.data.history), list(self.tokens.data.history))

    def filter_label(self) -> str | None:
        selection = self.breakdown.selection
        if selection is None:
            return None
        if selection.kind == "host":
            return selection.key
        if selection.kind == "project":
            parts = [p for p in selection.key.split("/") if p]
            return parts[-1] if parts else selection.key
        return selection.key[:8]

    # -- lifecycle --------------------------------------------------------

    async def start(self) -> None:
        self._token_trigger.start()
        self._breakdown_trigger.start()
        await self._sync_usage(force=True)
        await self._sync_tokens(force=True)
        await self.breakdown.fetch()

    def close(self) -> None:
        self._token_trigger.close()
        self._breakdown_trigger.close()
        self.breakdown.close()

    # -- user actions -----------------------------------------------------

    async def set_range(self, range_name: str) -> None:
        self._range = validate_range(range_name)
        await self._sync_usage()
        await self.breakdown.set_days(range_days(self._range))
        await self._sync_tokens()

    async def set_bucket(self, bucket: str) -> None:
        self._bucket = bucket
        await self._sync_usage()

    async def set_buckets(self, buckets: list[UsageBucket] | None) -> None:
        """Take the latest live bucket values; refetches only when buckets first appear or vanish."""
        self.usage.set_buckets(buckets)
        if buckets and self._bucket not in self.bucket_labels and self._bucket == DEFAULT_BUCKET:
            self._bucket = buckets[0].label
        await self._sync_usage()

    async def set_mode(self, mode: BreakdownMode) -> None:
        await self.breakdown.set_mode(mode)
        await self._sync_tokens()

    async def select_row(self, row: BreakdownRow) -> Selection | None:
        selection = self.breakdown.select_row(row)
        await self._sync_tokens()
        return selection

    async def clear_selection(self) -> None:
        self.breakdown.clear_selection()
        await self._sync_tokens()

    async def request_delete(self) -> DeleteOutcome:
        outcome = await self.breakdown.request_delete()
        if outcome == "deleted":
            await self._sync_tokens()
        return outcome

    async def refresh(self) -> None:
        await self.usage.refresh()
        await self.tokens.refresh()
        await self.breakdown.refresh()

    # -- internals --------------------------------------------------------

    async def _sync_usage(self, *, force: bool = False) -> None:
        params = self.usage_params()
        if force or params != self.usage.parameters:
            await self.usage.fetch(params)

    async def _sync_tokens(self, *, force: bool = False) -> None:
        params = self.token_params()
        if force or params != self.tokens.parameters:
            logger.debug(f"Token query scope: {params}")
            await self.tokens.fetch(params)

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()
