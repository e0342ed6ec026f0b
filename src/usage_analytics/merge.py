from __future__ import annotations

from bisect import bisect_left, insort
from datetime import datetime, timedelta

from usage_analytics.models import MergedPoint, TokenSample, UsageSample

MATCH_WINDOW = timedelta(minutes=30)


def _nearest_index(times: list[datetime], target: datetime) -> int | None:
    """Index of the entry closest to ``target``; the earliest one wins ties."""
    if not times:
        return None
    idx = bisect_left(times, target)
    if idx == 0:
        return 0
    if idx == len(times):
        return bisect_left(times, times[-1])
    before, after = times[idx - 1], times[idx]
    if target - before <= after - target:
        return bisect_left(times, before)
    return idx


def _has_within(times: list[datetime], target: datetime, window: timedelta) -> bool:
    idx = _nearest_index(times, target)
    return idx is not None and abs(times[idx] - target) <= window


def merge_series(
    usage: list[UsageSample],
    tokens: list[TokenSample],
    *,
    window: timedelta = MATCH_WINDOW,
) -> list[MergedPoint]:
    """Align a utilization series and a token series for dual-axis display.

    Both inputs must already be ascending by timestamp. Each usage point takes
    the total of its nearest token sample when that sample is within ``window``.
    Token samples with no point of the merged set inside ``window`` (usage points
    and token-only points added before them) are added as token-only points.
    The result is stably sorted by timestamp.
    """
    token_times = [t.timestamp for t in tokens]
    merged: list[MergedPoint] = []
    for point in usage:
        total: int | None = None
        idx = _nearest_index(token_times, point.timestamp)
        if idx is not None and abs(token_times[idx] - point.timestamp) <= window:
            total = tokens[idx].total_tokens
        merged.append(MergedPoint(timestamp=point.timestamp, utilization=point.utilization, total_tokens=total))

    if not tokens:
        return merged

    # Token-only points count as neighbours for later token samples.
    merged_times = sorted(p.timestamp for p in merged)
    for sample in tokens:
        if not _has_within(merged_times, sample.timestamp, window):
            merged.append(MergedPoint(timestamp=sample.timestamp, utilization=None, total_tokens=sample.total_tokens))
            insort(merged_times, sample.timestamp)

    return sorted(merged, key=lambda p: p.timestamp)
