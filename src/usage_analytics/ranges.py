from __future__ import annotations

from datetime import UTC, datetime, timedelta

from usage_analytics.models import RangeType, Selection

RANGE_DAYS: dict[str, int] = {
    "1h": 1,
    "24h": 1,
    "7d": 7,
    "30d": 30,
}

RANGE_LABELS: dict[str, str] = {
    "1h": "1 Hour",
    "24h": "24 Hours",
    "7d": "7 Days",
    "30d": "30 Days",
}

# Ranges a drill-down can widen to, narrowest first.
_WIDENING_ORDER: tuple[RangeType, ...] = ("24h", "7d", "30d")


def range_days(range_name: str) -> int:
    """Statistics lookback for a range. "1h" and "24h" share the 1-day window."""
    return RANGE_DAYS.get(range_name, 1)


def validate_range(range_name: str) -> RangeType:
    if range_name not in RANGE_DAYS:
        raise ValueError(f"Unknown range: {range_name!r}. Supported: {', '.join(RANGE_DAYS)}")
    return range_name  # type: ignore[return-value]


def effective_token_range(
    display_range: RangeType,
    selection: Selection | None,
    now: datetime | None = None,
) -> RangeType:
    """Range to use for the token history query.

    Without a drill-down selection this is the display range. With one, the
    range is widened so the selected entity's whole history stays in view: the
    smallest standard range covering both the display window and the time since
    the entity was first seen.
    """
    if selection is None:
        return display_range

    now = now or datetime.now(UTC)
    needed = max(timedelta(days=range_days(display_range)), now - selection.first_seen)
    for candidate in _WIDENING_ORDER:
        if timedelta(days=RANGE_DAYS[candidate]) >= needed:
            return candidate
    return _WIDENING_ORDER[-1]


def token_filters(selection: Selection | None) -> tuple[str | None, str | None, str | None]:
    """Map a selection to the (hostname, session_id, cwd) token query filters."""
    if selection is None:
        return None, None, None
    if selection.kind == "host":
        return selection.key, None, None
    if selection.kind == "session":
        return None, selection.key, None
    return None, None, selection.key
