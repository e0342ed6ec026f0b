from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

from loguru import logger

from usage_analytics.coordinator import Commit, QueryCoordinator
from usage_analytics.models import MODES, BreakdownMode, BreakdownRow, Selection
from usage_analytics.query_interface import QueryInterface
from usage_analytics.timers import OwnedTimer

PAGE_SIZE = 5
CONFIRM_TIMEOUT_SECONDS = 3.0

DeleteOutcome = Literal["ignored", "confirm", "deleted"]


@dataclass(frozen=True)
class BreakdownParams:
    mode: BreakdownMode
    days: int


@dataclass(frozen=True)
class BreakdownData:
    mode: BreakdownMode | None = None
    rows: tuple[BreakdownRow, ...] = ()


class BreakdownController:
    """Hosts / projects / sessions breakdown with paging, one drill-down selection
    and a two-step delete.

    Rows are surfaced only while the mode that produced them is still the active
    mode; right after a mode switch ``rows`` is empty and ``loading`` is true
    until the new mode's data lands.

    ``request_delete`` works in two phases: the first call arms a confirmation
    that expires on its own after ``confirm_timeout_seconds``; a second call
    inside that window deletes the selected entity's data and re-fetches. Mode
    switches, row clicks and clearing the selection cancel a pending
    confirmation.
    """

    def __init__(
        self,
        query: QueryInterface,
        *,
        days: int = 1,
        mode: BreakdownMode = "hosts",
        page_size: int = PAGE_SIZE,
        confirm_timeout_seconds: float = CONFIRM_TIMEOUT_SECONDS,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self._query = query
        self._mode: BreakdownMode = _validate_mode(mode)
        self._days = days
        self._page_size = max(1, page_size)
        self._page = 0
        self._confirm_pending = False
        self._deleting = False
        self._selection: Selection | None = None
        self._on_change = on_change
        self._confirm_timer = OwnedTimer("delete-confirm", confirm_timeout_seconds, self._expire_confirm)
        self._data: QueryCoordinator[BreakdownParams, BreakdownData] = QueryCoordinator(
            name="breakdown",
            loader=self._load,
            initial_data=BreakdownData(),
            on_change=lambda _state: self._notify(),
        )

    # -- state ------------------------------------------------------------

    @property
    def mode(self) -> BreakdownMode:
        return self._mode

    @property
    def days(self) -> int:
        return self._days

    @property
    def page(self) -> int:
        return self._page

    @property
    def page_size(self) -> int:
        return self._page_size

    @property
    def confirm_pending(self) -> bool:
        return self._confirm_pending

    @property
    def deleting(self) -> bool:
        return self._deleting

    @property
    def selection(self) -> Selection | None:
        return self._selection

    @property
    def stale(self) -> bool:
        return self._data.data.mode != self._mode

    @property
    def rows(self) -> tuple[BreakdownRow, ...]:
        if self.stale:
            return ()
        return self._data.data.rows

    @property
    def loading(self) -> bool:
        return self._data.loading or self.stale

    @property
    def error(self) -> str | None:
        return self._data.error

    @property
    def total_pages(self) -> int:
        return max(1, math.ceil(len(self.rows) / self._page_size))

    @property
    def current_page(self) -> int:
        return min(self._page, self.total_pages - 1)

    @property
    def page_rows(self) -> tuple[BreakdownRow, ...]:
        start = self.current_page * self._page_size
        return self.rows[start : start + self._page_size]

    def is_selected(self, row: BreakdownRow) -> bool:
        return self._selection is not None and self._selection.matches(row.kind, row.key)

    # -- fetching ---------------------------------------------------------

    async def fetch(self) -> None:
        await self._data.fetch(BreakdownParams(mode=self._mode, days=self._days))

    async def refresh(self) -> None:
        await self.fetch()

    async def set_days(self, days: int) -> None:
        if days == self._days and self._data.generation > 0:
            return
        self._days = days
        await self.fetch()

    async def _load(self, params: BreakdownParams, commit: Commit) -> None:
        if params.mode == "hosts":
            rows = await self._query.get_host_breakdown(params.days)
        elif params.mode == "projects":
            rows = await self._query.get_project_breakdown(params.days)
        else:
            rows = await self._query.get_session_breakdown(params.days, hostname=None)
        commit(mode=params.mode, rows=tuple(rows))

    # -- user actions -----------------------------------------------------

    async def set_mode(self, mode: BreakdownMode) -> None:
        self._mode = _validate_mode(mode)
        self._page = 0
        self._reset_confirm()
        self._set_selection(None)
        await self.fetch()

    def select_row(self, row: BreakdownRow) -> Selection | None:
        """Select ``row``, or clear the selection when ``row`` is already selected."""
        self._reset_confirm()
        if self.is_selected(row):
            self._set_selection(None)
        else:
            if row not in self.rows:
                raise ValueError(f"{row.kind} {row.key!r} is not in the current {self._mode} breakdown")
            self._set_selection(Selection.from_row(row))
        return self._selection

    def clear_selection(self) -> None:
        self._reset_confirm()
        self._set_selection(None)

    def next_page(self) -> int:
        if self.current_page < self.total_pages - 1:
            self._page = self.current_page + 1
            self._notify()
        return self.current_page

    def previous_page(self) -> int:
        if self.current_page > 0:
            self._page = self.current_page - 1
            self._notify()
        return self.current_page

    async def request_delete(self) -> DeleteOutcome:
        if self._selection is None or self._deleting:
            return "ignored"

        if not self._confirm_pending:
            self._confirm_pending = True
            self._confirm_timer.start()
            self._notify()
            return "confirm"

        self._reset_confirm()
        selection = self._selection
        self._deleting = True
        self._notify()
        try:
            await self._delete(selection)
            logger.info(f"Deleted {selection.kind} data for {selection.key!r}")
            self._set_selection(None)
            await self.refresh()
        finally:
            self._deleting = False
            self._notify()
        return "deleted"

    async def _delete(self, selection: Selection) -> None:
        if selection.kind == "host":
            await self._query.delete_host_data(selection.key)
        elif selection.kind == "project":
            await self._query.delete_project_data(selection.key)
        else:
            await self._query.delete_session_data(selection.key)

    def close(self) -> None:
        self._reset_confirm()

    # -- internals --------------------------------------------------------

    def _reset_confirm(self) -> None:
        self._confirm_timer.cancel()
        if self._confirm_pending:
            self._confirm_pending = False
            self._notify()

    def _expire_confirm(self) -> None:
        logger.debug("Delete confirmation expired")
        self._confirm_pending = False
        self._notify()

    def _set_selection(self, selection: Selection | None) -> None:
        if selection == self._selection:
            return
        self._selection = selection
        self._notify()

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()


def _validate_mode(mode: str) -> BreakdownMode:
    if mode not in MODES:
        raise ValueError(f"Unknown breakdown mode: {mode!r}. Supported: {', '.join(MODES)}")
    return mode  # type: ignore[return-value]
