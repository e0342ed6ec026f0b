from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from dataclasses import dataclass, replace

from usage_analytics.coordinator import Commit, QueryCoordinator, QueryState
from usage_analytics.models import (
    BucketStats,
    RangeType,
    TokenSample,
    TokenStats,
    UsageBucket,
    UsageSample,
)
from usage_analytics.query_interface import QueryInterface
from usage_analytics.ranges import range_days


@dataclass(frozen=True)
class UsageParams:
    bucket: str
    range_name: RangeType
    has_buckets: bool


@dataclass(frozen=True)
class UsageData:
    history: tuple[UsageSample, ...] = ()
    snapshot_count: int = 0
    stats: BucketStats | None = None
    all_stats: tuple[BucketStats, ...] = ()


@dataclass(frozen=True)
class TokenParams:
    range_name: RangeType
    hostname: str | None = None
    session_id: str | None = None
    cwd: str | None = None


@dataclass(frozen=True)
class TokenData:
    history: tuple[TokenSample, ...] = ()
    stats: TokenStats | None = None
    hostnames: tuple[str, ...] = ()


def buckets_snapshot_json(buckets: tuple[UsageBucket, ...]) -> str:
    return json.dumps([b.to_dict() for b in buckets])


class UsageQuery(QueryCoordinator[UsageParams, UsageData]):
    """Utilization history for one bucket plus its rolling statistics.

    History and snapshot count are fetched first and committed together. When
    live bucket values are known, bucket statistics follow; their ``current``
    figure is replaced by the live utilization of the selected bucket. Bucket
    values are read when the fetch starts, so they are not part of the
    parameters and do not trigger refetches on their own.
    """

    def __init__(
        self,
        query: QueryInterface,
        *,
        on_change: Callable[[QueryState], None] | None = None,
    ) -> None:
        super().__init__(name="usage", loader=self._load, initial_data=UsageData(), on_change=on_change)
        self._query = query
        self._buckets: tuple[UsageBucket, ...] = ()

    @property
    def buckets(self) -> tuple[UsageBucket, ...]:
        return self._buckets

    def set_buckets(self, buckets: list[UsageBucket] | tuple[UsageBucket, ...] | None) -> None:
        self._buckets = tuple(buckets or ())

    async def _load(self, params: UsageParams, commit: Commit) -> None:
        days = range_days(params.range_name)
        buckets = self._buckets

        history, snapshot_count = await asyncio.gather(
            self._query.get_usage_history(params.bucket, params.range_name),
            self._query.get_snapshot_count(),
        )
        commit(history=tuple(history), snapshot_count=int(snapshot_count))

        if not buckets:
            return

        stats, all_stats = await asyncio.gather(
            self._query.get_usage_stats(params.bucket, days),
            self._query.get_all_bucket_stats(buckets_snapshot_json(buckets), days),
        )
        live = next((b for b in buckets if b.label == params.bucket), None)
        if live is not None and stats is not None:
            stats = replace(stats, current=live.utilization)
        commit(stats=stats, all_stats=tuple(all_stats))


class TokenQuery(QueryCoordinator[TokenParams, TokenData]):
    """Token history and statistics, optionally scoped to one host, session or project.

    The host listing is refreshed on every fetch alongside the scoped queries.
    """

    def __init__(
        self,
        query: QueryInterface,
        *,
        on_change: Callable[[QueryState], None] | None = None,
    ) -> None:
        super().__init__(name="tokens", loader=self._load, initial_data=TokenData(), on_change=on_change)
        self._query = query

    async def _load(self, params: TokenParams, commit: Commit) -> None:
        history, stats, hostnames = await asyncio.gather(
            self._query.get_token_history(
                params.range_name,
                hostname=params.hostname or None,
                session_id=params.session_id or None,
                cwd=params.cwd or None,
            ),
            self._query.get_token_stats(
                range_days(params.range_name),
                hostname=params.hostname or None,
                cwd=params.cwd or None,
            ),
            self._query.get_token_hostnames(),
        )
        commit(history=tuple(history), stats=stats, hostnames=tuple(hostnames))
